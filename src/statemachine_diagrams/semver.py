from __future__ import annotations

import re
from dataclasses import dataclass
from functools import total_ordering

from .errors import DiagramError, ErrorType

# Strict: no leading "v", no surrounding whitespace, ASCII digits only.
SEMVER_RE = re.compile(r"([0-9]+)\.([0-9]+)\.([0-9]+)(?:-([A-Za-z0-9.-]+))?")


@total_ordering
@dataclass(frozen=True)
class Version:
    """Semantic version ``MAJOR.MINOR.PATCH`` with an optional pre-release tag."""

    major: int
    minor: int
    patch: int
    prerelease: str = ""

    def __str__(self) -> str:
        text = f"{self.major}.{self.minor}.{self.patch}"
        if self.prerelease:
            text += f"-{self.prerelease}"
        return text

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, Version):
            return NotImplemented
        return compare_versions(self, other) < 0

    @property
    def is_prerelease(self) -> bool:
        return bool(self.prerelease)


def parse_version(value: str) -> Version:
    """Parse *value* into a :class:`Version`.

    Raises:
        DiagramError: kind ``VERSION_PARSING`` if *value* is not a strict
            semantic version.
    """
    match = SEMVER_RE.fullmatch(value)
    if match is None:
        raise DiagramError(
            ErrorType.VERSION_PARSING,
            f"invalid version format: {value!r}",
            code="INVALID_VERSION",
            component="semver",
            context={"version": value},
        )
    major, minor, patch, prerelease = match.groups()
    return Version(int(major), int(minor), int(patch), prerelease or "")


def is_valid_version(value: str) -> bool:
    return SEMVER_RE.fullmatch(value) is not None


def compare_versions(left: Version, right: Version) -> int:
    """Return -1, 0 or 1 as *left* sorts before, equal to or after *right*.

    A release sorts after any pre-release of the same core version; two
    pre-releases compare lexicographically on their identifier strings.
    """
    left_core = (left.major, left.minor, left.patch)
    right_core = (right.major, right.minor, right.patch)
    if left_core != right_core:
        return -1 if left_core < right_core else 1
    if left.prerelease == right.prerelease:
        return 0
    if not left.prerelease:
        return 1
    if not right.prerelease:
        return -1
    return -1 if left.prerelease < right.prerelease else 1
