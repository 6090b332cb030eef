from itertools import count

# `next()` on `itertools.count` is atomic in CPython, so IDs stay unique across threads.
_id_counter = count(1)


def gen_id() -> str:
    """Generate a unique ID that can be associated with a Node"""
    return f"{next(_id_counter):04x}"


def split_patterns(value: str | None, separator: str = ",") -> list[str]:
    """
    Split a comma-separated list of glob patterns, dropping empty entries.

    `"js/*.js, lib/**/*.js,"` -> `["js/*.js", "lib/**/*.js"]`
    """
    if not value:
        return []
    return [part.strip() for part in value.split(separator) if part.strip()]
