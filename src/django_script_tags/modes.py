"""
Decide how a `{% script %}` tag should be processed, based on which of the
special `asp-*` attributes it was given.
"""

import logging
from collections.abc import Collection, Iterable, Sequence
from enum import Enum
from typing import NamedTuple

from django.core.exceptions import ImproperlyConfigured

SRC_INCLUDE_ATTRIBUTE_NAME = "asp-src-include"
SRC_EXCLUDE_ATTRIBUTE_NAME = "asp-src-exclude"
FALLBACK_SRC_ATTRIBUTE_NAME = "asp-fallback-src"
FALLBACK_SRC_INCLUDE_ATTRIBUTE_NAME = "asp-fallback-src-include"
FALLBACK_SRC_EXCLUDE_ATTRIBUTE_NAME = "asp-fallback-src-exclude"
FALLBACK_TEST_EXPRESSION_ATTRIBUTE_NAME = "asp-fallback-test"
SRC_ATTRIBUTE_NAME = "src"

ASP_ATTRIBUTE_NAMES = (
    SRC_INCLUDE_ATTRIBUTE_NAME,
    SRC_EXCLUDE_ATTRIBUTE_NAME,
    FALLBACK_SRC_ATTRIBUTE_NAME,
    FALLBACK_SRC_INCLUDE_ATTRIBUTE_NAME,
    FALLBACK_SRC_EXCLUDE_ATTRIBUTE_NAME,
    FALLBACK_TEST_EXPRESSION_ATTRIBUTE_NAME,
)


class Mode(Enum):
    GLOBBED_SRC = "GlobbedSrc"
    """
    Just performing file globbing search for the src, rendering a separate `<script>` for each match.
    """

    FALLBACK = "Fallback"
    """
    Rendering a fallback block if the primary script fails to load.
    Will also do globbing if the `asp-src-include` attribute is set.
    """


class ModeAttributes(NamedTuple):
    """A mode, and the attributes that must ALL be present on a tag for the mode to apply."""

    mode: Mode
    attributes: frozenset[str]

    @classmethod
    def create(cls, mode: Mode, attributes: Iterable[str]) -> "ModeAttributes":
        return cls(mode, frozenset(attributes))


# NOTE: Fallback rows come first. A tag that sets both `asp-src-include` and the fallback
# attributes matches rows of both modes, and the fallback mode already does the globbing.
MODE_DETAILS: tuple[ModeAttributes, ...] = (
    # Fallback with static src
    ModeAttributes.create(
        Mode.FALLBACK,
        [FALLBACK_SRC_ATTRIBUTE_NAME, FALLBACK_TEST_EXPRESSION_ATTRIBUTE_NAME],
    ),
    # Fallback with globbed src (include only)
    ModeAttributes.create(
        Mode.FALLBACK,
        [FALLBACK_SRC_INCLUDE_ATTRIBUTE_NAME, FALLBACK_TEST_EXPRESSION_ATTRIBUTE_NAME],
    ),
    # Fallback with globbed src (include & exclude)
    ModeAttributes.create(
        Mode.FALLBACK,
        [
            FALLBACK_SRC_INCLUDE_ATTRIBUTE_NAME,
            FALLBACK_SRC_EXCLUDE_ATTRIBUTE_NAME,
            FALLBACK_TEST_EXPRESSION_ATTRIBUTE_NAME,
        ],
    ),
    # Globbed src (include only)
    ModeAttributes.create(Mode.GLOBBED_SRC, [SRC_INCLUDE_ATTRIBUTE_NAME]),
    # Globbed src (include & exclude)
    ModeAttributes.create(Mode.GLOBBED_SRC, [SRC_INCLUDE_ATTRIBUTE_NAME, SRC_EXCLUDE_ATTRIBUTE_NAME]),
)


class ModeMatch(NamedTuple):
    mode: Mode
    present_attributes: tuple[str, ...]
    missing_attributes: tuple[str, ...]


class ModeMatchResult(NamedTuple):
    """
    Result of [`determine_mode()`](#determine_mode).

    Only `full_matches` decide what happens with the tag. Partial matches are
    kept so we can warn the user about attribute combinations that are almost,
    but not quite, recognized.
    """

    full_matches: list[ModeMatch]
    partial_matches: list[ModeMatch]
    partially_matched_attributes: list[str]

    @property
    def mode(self) -> Mode | None:
        """Mode of the first full match, or `None` if the tag should be left as it is."""
        if not self.full_matches:
            return None
        return self.full_matches[0].mode

    def log_details(self, logger: logging.Logger, tag_id: str, template_name: str | None) -> None:
        if self.partially_matched_attributes and logger.isEnabledFor(logging.WARNING):
            # Report only those partial matches that have attributes not used by any of the full matches.
            # E.g. `asp-src-include` alone partially matches the "include & exclude" row,
            # but that's fine as it fully matches the "include only" row.
            fully_matched = {attr for match in self.full_matches for attr in match.present_attributes}
            partial_only = [
                match
                for match in self.partial_matches
                if any(attr not in fully_matched for attr in match.present_attributes)
            ]
            if partial_only:
                lines = [
                    f"  Mode '{match.mode.value}' is missing attributes: {', '.join(match.missing_attributes)}"
                    for match in partial_only
                ]
                logger.warning(
                    "Tag 'script' with ID %s in template '%s' had unrecognized attribute combinations:\n%s",
                    tag_id,
                    template_name or "<unknown>",
                    "\n".join(lines),
                )

        if not self.full_matches:
            logger.debug("Skipping processing for tag 'script' with ID %s", tag_id)


def determine_mode(
    present_attributes: Collection[str],
    mode_details: Sequence[ModeAttributes] = MODE_DETAILS,
) -> ModeMatchResult:
    """
    Go over the `mode_details` in order and find which of them are satisfied by `present_attributes`.

    **Example:**

    ```python
    result = determine_mode({"src", "asp-src-include"})
    result.mode
    # Mode.GLOBBED_SRC
    ```
    """
    present = set(present_attributes)
    full_matches: list[ModeMatch] = []
    partial_matches: list[ModeMatch] = []
    partially_matched_attributes: list[str] = []

    for details in mode_details:
        # Keep the output stable by sorting the attribute names
        required = sorted(details.attributes)
        found = tuple(attr for attr in required if attr in present)
        missing = tuple(attr for attr in required if attr not in present)

        if not missing:
            full_matches.append(ModeMatch(details.mode, found, ()))
        elif found:
            partial_matches.append(ModeMatch(details.mode, found, missing))
            for attr in found:
                if attr not in partially_matched_attributes:
                    partially_matched_attributes.append(attr)

    return ModeMatchResult(full_matches, partial_matches, partially_matched_attributes)


def check_mode_details(mode_details: Sequence[ModeAttributes] = MODE_DETAILS) -> None:
    """
    Verify that the table of modes is not ambiguous.

    Two rows with different modes must not require the same attributes, and the attributes
    of one row must not be a subset of a row with a different mode. Otherwise the tag
    could never resolve to the mode of the bigger row.

    Raises `ImproperlyConfigured` on the first conflict.
    """
    for index, details in enumerate(mode_details):
        if not details.attributes:
            raise ImproperlyConfigured(f"Mode '{details.mode.value}' at index {index} requires no attributes")

        for other in mode_details[index + 1 :]:
            if other.mode == details.mode:
                continue
            if details.attributes <= other.attributes or other.attributes <= details.attributes:
                raise ImproperlyConfigured(
                    f"Ambiguous script tag modes: '{details.mode.value}' requires "
                    f"{sorted(details.attributes)} and '{other.mode.value}' requires {sorted(other.attributes)}"
                )
