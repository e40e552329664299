"""Instance version model and upgrade range generation.

Versions are (major, minor) pairs; patch releases never gate structural
decisions and are discarded when parsing. The only place that knows where a
major series ends is the VersionTable, which maps each major version to the
last minor released in that series (3.47 is followed by 4.0).

Usage:
    from rolling_upgrade.core.version import Version, VersionTable

    table = VersionTable({3: 47})
    table.make_range(Version.parse("3.46"), Version.parse("v4.1.0"))
    # [3.46, 3.47, 4.0, 4.1]
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType

from rolling_upgrade.core.errors import (
    InvalidVersionFormatError,
    InvertedRangeError,
    MissingSeriesBoundaryError,
)

VERSION_PATTERN = re.compile(r"^v?(\d+)\.(\d+)(?:\.\d+)?$")

# 3.47.0 -> 4.0.0
DEFAULT_LAST_MINOR_IN_SERIES: Mapping[int, int] = MappingProxyType({3: 47})


class VersionOrder(Enum):
    """Relationship of `a` to `b` as returned by compare_versions(a, b)."""

    BEFORE = "before"
    EQUAL = "equal"
    AFTER = "after"


@dataclass(frozen=True, order=True)
class Version:
    """An instance version without its patch component."""

    major: int
    minor: int

    def __post_init__(self) -> None:
        if self.major < 0 or self.minor < 0:
            raise InvalidVersionFormatError(f"{self.major}.{self.minor}")

    @classmethod
    def parse(cls, text: str) -> Version:
        """Parse 'major.minor', 'vmajor.minor' or either with a patch suffix.

        Raises:
            InvalidVersionFormatError: If the string does not match.
        """
        version = try_parse_version(text)
        if version is None:
            raise InvalidVersionFormatError(text)
        return version

    @property
    def git_tag(self) -> str:
        """Release tag under which this version's definitions were recorded."""
        return f"v{self.major}.{self.minor}.0"

    def __str__(self) -> str:
        return f"{self.major}.{self.minor}"


def try_parse_version(text: str) -> Version | None:
    """Parse a version string, returning None when it is malformed."""
    match = VERSION_PATTERN.match(text.strip())
    if match is None:
        return None
    return Version(int(match.group(1)), int(match.group(2)))


def compare_versions(a: Version, b: Version) -> VersionOrder:
    """Return the relationship between `a (op) b`."""
    for left, right in ((a.major, b.major), (a.minor, b.minor)):
        if left < right:
            return VersionOrder.BEFORE
        if left > right:
            return VersionOrder.AFTER
    return VersionOrder.EQUAL


def point_intersects_interval(lower: Version, upper: Version, point: Version) -> bool:
    """Return True if point falls within the closed interval [lower, upper]."""
    return (
        compare_versions(point, lower) is not VersionOrder.BEFORE
        and compare_versions(upper, point) is not VersionOrder.BEFORE
    )


class VersionTable:
    """Major version boundaries used to step through an upgrade.

    Instances are immutable; build a separate table to model a different
    release policy.
    """

    def __init__(self, last_minor_in_series: Mapping[int, int] | None = None) -> None:
        if last_minor_in_series is None:
            last_minor_in_series = DEFAULT_LAST_MINOR_IN_SERIES
        for major, minor in last_minor_in_series.items():
            if major < 0 or minor < 0:
                raise ValueError(f"Invalid series boundary {major}.{minor}")
        self._last_minor = MappingProxyType(dict(last_minor_in_series))

    @property
    def last_minor_in_series(self) -> Mapping[int, int]:
        return self._last_minor

    def bump(self, version: Version) -> Version:
        """Return the release that directly follows `version`."""
        if self._last_minor.get(version.major) == version.minor:
            return Version(version.major + 1, 0)
        return Version(version.major, version.minor + 1)

    def make_range(self, from_version: Version, to_version: Version) -> list[Version]:
        """Build the inclusive upgrade range [from_version, to_version].

        Every release between the endpoints is visited, including the last
        minor of each major series crossed.

        Raises:
            InvertedRangeError: If from_version is after to_version.
            MissingSeriesBoundaryError: If the range crosses a major series
                whose last minor is unknown, or an endpoint lies past the end
                of its series.
        """
        if compare_versions(from_version, to_version) is VersionOrder.AFTER:
            raise InvertedRangeError(from_version, to_version)
        self._check_series(from_version, to_version)

        versions: list[Version] = []
        version = from_version
        while compare_versions(version, to_version) is not VersionOrder.AFTER:
            versions.append(version)
            version = self.bump(version)
        return versions

    def _check_series(self, from_version: Version, to_version: Version) -> None:
        for endpoint in (from_version, to_version):
            last_minor = self._last_minor.get(endpoint.major)
            if last_minor is not None and endpoint.minor > last_minor:
                raise MissingSeriesBoundaryError(
                    endpoint.major,
                    f"Version {endpoint} is past the last release ({endpoint.major}.{last_minor}) "
                    f"of major series {endpoint.major}",
                )

        for major in range(from_version.major, to_version.major):
            if major not in self._last_minor:
                raise MissingSeriesBoundaryError(
                    major,
                    f"Cannot upgrade across major version {major} -> {major + 1}: "
                    f"no last minor version registered for {major}",
                )

    def __repr__(self) -> str:
        return f"VersionTable({dict(self._last_minor)!r})"
