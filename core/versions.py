"""
Ranking of PyPI release strings.

Not a full PEP 440 implementation, just enough to find the most recent
usable release of a package:

    [N!]N(.SEGMENT)*[+local]

where each SEGMENT is N, N{a|b|rc}N, devN or postN. The "c" spelling of
release candidates is not accepted.
"""

import logging
import re
from dataclasses import dataclass
from typing import Iterable, Tuple

logger = logging.getLogger(__name__)

_VERSION_RE = re.compile(
    r"^(?:(?P<epoch>\d+)!)?(?P<release>[^+]+)(?:\+[A-Za-z0-9.]*)?$"
)
_SEGMENT_RE = re.compile(
    r"^(?:"
    r"(?P<marker>dev|post)(?P<marker_number>\d*)"
    r"|(?P<number>\d+)(?:(?P<pre>a|b|rc)\d*)?"
    r")$"
)

PRERELEASE_MARKERS = {"dev", "a", "b", "rc"}


class VersionParseError(ValueError):
    """Raised for release strings outside the supported grammar."""


@dataclass(frozen=True)
class ParsedVersion:
    epoch: int
    major: int
    components: Tuple[int, ...]
    is_prerelease: bool


# Lowest rank: everything parseable outranks or ties it
SENTINEL_VERSION = ParsedVersion(epoch=0, major=0, components=(), is_prerelease=True)
SENTINEL_RELEASE = "0"


def _parse_segment(segment: str, text: str) -> Tuple[int, bool]:
    match = _SEGMENT_RE.match(segment)
    if not match:
        raise VersionParseError(f"Invalid segment {segment!r} in version {text!r}")

    if match.group("marker"):
        number = int(match.group("marker_number") or 0)
        return number, match.group("marker") in PRERELEASE_MARKERS

    return int(match.group("number")), match.group("pre") is not None


def parse_version(text: str) -> ParsedVersion:
    """
    Parse a release string into its rankable parts.

    Args:
        text: Release version string, e.g. "1!2.0.0rc1"

    Returns:
        ParsedVersion

    Raises:
        VersionParseError: If the string does not follow the grammar
    """
    match = _VERSION_RE.match(text.strip()) if text else None
    if not match:
        raise VersionParseError(f"Invalid version {text!r}")

    epoch = int(match.group("epoch") or 0)
    segments = match.group("release").split(".")

    major_text = segments[0]
    if major_text.startswith(("dev", "post")):
        raise VersionParseError(f"Version {text!r} has no major number")
    major, is_prerelease = _parse_segment(major_text, text)

    components = []
    for segment in segments[1:]:
        number, marks_prerelease = _parse_segment(segment, text)
        is_prerelease = is_prerelease or marks_prerelease
        components.append(number)

    return ParsedVersion(
        epoch=epoch,
        major=major,
        components=tuple(components),
        is_prerelease=is_prerelease,
    )


def greater_than(a: ParsedVersion, b: ParsedVersion) -> bool:
    """
    Check whether a ranks strictly above b.

    A final release always outranks a prerelease. Then epoch, major and
    the remaining components decide; on an exact prefix tie the longer
    sequence wins.
    """
    if a.is_prerelease != b.is_prerelease:
        return b.is_prerelease
    if a.epoch != b.epoch:
        return a.epoch > b.epoch
    if a.major != b.major:
        return a.major > b.major

    for left, right in zip(a.components, b.components):
        if left != right:
            return left > right

    return len(a.components) > len(b.components)


def select_best_version(releases: Iterable[str]) -> str:
    """
    Pick the highest final release, else the highest prerelease.

    Unparseable release strings are skipped.

    Args:
        releases: Release version strings of one package

    Returns:
        The winning release string, or "0" if nothing parsed
    """
    best_release = SENTINEL_RELEASE
    best_version = SENTINEL_VERSION

    for release in releases:
        try:
            version = parse_version(release)
        except VersionParseError as e:
            logger.debug(f"Skipping release: {e}")
            continue

        if greater_than(version, best_version):
            best_version = version
            best_release = release

    return best_release
