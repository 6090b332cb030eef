"""
Resolve glob patterns like `js/**/*.js` into the list of URLs of the matching files.
"""

import os
from collections.abc import Iterable, Iterator
from hashlib import md5
from pathlib import Path
from typing import Protocol

import pathspec
from django.core.cache import BaseCache

from django_script_tags.app_settings import app_settings
from django_script_tags.util.logger import trace
from django_script_tags.util.misc import split_patterns

CACHE_KEY_PREFIX = "scripttags:glob:"


class FileMatcher(Protocol):
    def match(self, include_patterns: list[str], exclude_patterns: list[str]) -> list[str]:
        """
        Return paths of files that match any of `include_patterns` and none of `exclude_patterns`.

        Paths are relative to the matcher's root, use forward slashes, and don't start with `/`.
        """
        ...


class PathSpecFileMatcher:
    """
    Find files under `root` using glob patterns (via `pathspec`).

    - Patterns are relative to `root`, so `*.js` matches only the files directly in `root`.
    - `*` does not cross directories, `**` does, e.g. `js/**/*.js`.
    - Files are yielded in sorted directory-walk order.
    """

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root)

    def match(self, include_patterns: list[str], exclude_patterns: list[str]) -> list[str]:
        includes = _to_pathspec_lines(include_patterns)
        if not includes:
            return []

        excludes = _to_pathspec_lines(exclude_patterns)

        include_spec = pathspec.GitIgnoreSpec.from_lines(includes)
        exclude_spec = pathspec.GitIgnoreSpec.from_lines(excludes) if excludes else None

        matches: list[str] = []
        for rel_path in self._iter_files():
            if not include_spec.match_file(rel_path):
                continue
            if exclude_spec is not None and exclude_spec.match_file(rel_path):
                continue
            matches.append(rel_path)
        return matches

    def _iter_files(self) -> Iterator[str]:
        if not self.root.is_dir():
            raise FileNotFoundError(f"Webroot directory '{self.root}' does not exist")

        root = self.root.resolve()
        for dirpath, dirnames, filenames in os.walk(root):
            # Walk in a stable order
            dirnames.sort()
            for filename in sorted(filenames):
                full_path = Path(dirpath) / filename
                yield full_path.relative_to(root).as_posix()

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}: {self.root}>"


class WebrootFileMatcher:
    """
    Same as `PathSpecFileMatcher`, but the root is the `SCRIPT_TAGS["webroot"]` setting,
    read each time files are matched.
    """

    def match(self, include_patterns: list[str], exclude_patterns: list[str]) -> list[str]:
        return PathSpecFileMatcher(app_settings.WEBROOT).match(include_patterns, exclude_patterns)

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}>"


def _to_pathspec_lines(patterns: Iterable[str]) -> list[str]:
    lines: list[str] = []
    for pattern in patterns:
        pattern = pattern.strip().lstrip("/")
        if not pattern:
            continue
        # Anchor to the root. With the leading `/`, a pattern like `!a.js` or `#a.js`
        # is also matched literally, instead of as a gitignore negation or comment.
        lines.append("/" + pattern)
    return lines


class GlobbingUrlBuilder:
    """
    Build lists of URLs from a static URL plus include and exclude glob patterns.

    Results of the globbing are cached in `cache`, keyed by the request path base
    and the include and exclude patterns.

    **Example:**

    ```python
    builder = GlobbingUrlBuilder(PathSpecFileMatcher("/srv/static"), cache, "/myapp")
    builder.build_url_list("/lib.js", "js/*.js", "js/*.min.js")
    # ["/lib.js", "/myapp/js/a.js", "/myapp/js/b.js"]
    ```
    """

    def __init__(
        self,
        file_matcher: FileMatcher,
        cache: BaseCache | None,
        request_path_base: str = "",
        cache_timeout: int | None = None,
    ) -> None:
        self.file_matcher = file_matcher
        self.cache = cache
        self.request_path_base = request_path_base.rstrip("/")
        self.cache_timeout = cache_timeout

    def build_url_list(
        self,
        static_url: str | None,
        include_pattern: str | None,
        exclude_pattern: str | None,
    ) -> list[str]:
        """
        Build the list of URLs for the given static URL and glob patterns.

        - The static URL, if given, always comes first.
        - URLs found by globbing follow in the order in which the file matcher found them.
        - Each URL is included only once.
        """
        urls: list[str] = []
        if static_url:
            urls.append(static_url)

        if not include_pattern:
            return urls

        if self.cache is None:
            matched_urls = self._find_urls(include_pattern, exclude_pattern)
        else:
            cache_key = self._gen_cache_key(include_pattern, exclude_pattern)
            # NOTE: Concurrent misses may each scan the file system and store the same result.
            matched_urls = self.cache.get_or_set(
                cache_key,
                lambda: self._find_urls(include_pattern, exclude_pattern),
                timeout=self.cache_timeout,
            )

        return _dedupe(urls + list(matched_urls))

    def _find_urls(self, include_pattern: str, exclude_pattern: str | None) -> list[str]:
        include_patterns = split_patterns(include_pattern)
        exclude_patterns = split_patterns(exclude_pattern)

        trace(f"GLOB include={include_patterns} exclude={exclude_patterns} matcher={self.file_matcher!r}")
        files = self.file_matcher.match(include_patterns, exclude_patterns)
        return [self._resolve_matched_path(path) for path in files]

    def _resolve_matched_path(self, matched_path: str) -> str:
        # Resolve the path to site root
        return f"{self.request_path_base}/{matched_path.lstrip('/')}"

    def _gen_cache_key(self, include_pattern: str, exclude_pattern: str | None) -> str:
        # Hash the key so it's safe for cache backends with restricted key formats, like memcached.
        raw_key = "\x00".join([self.request_path_base, include_pattern, exclude_pattern or ""])
        key_hash = md5(raw_key.encode()).hexdigest()  # noqa: S324
        return f"{CACHE_KEY_PREFIX}{key_hash}"


def _dedupe(items: Iterable[str]) -> list[str]:
    # First occurrence wins
    return list(dict.fromkeys(items))
