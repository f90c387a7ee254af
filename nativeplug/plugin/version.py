"""
Plugin Version Compatibility.

This module checks a plugin's declared minimum runtime version for a
platform against the version installed in the project.

Key features:
- Semantic version parsing (major.minor.patch, optional pre-release/build)
- Semver precedence comparison
- Advisory compatibility check that warns instead of failing
"""

import logging
import re
from dataclasses import dataclass

from nativeplug.plugin.classifier import PluginRecord
from nativeplug.project import Platform

logger = logging.getLogger(__name__)

_SEMVER_RE = re.compile(
    r"^v?(\d+)(?:\.(\d+))?(?:\.(\d+))?"
    r"(?:-([0-9A-Za-z.-]+))?(?:\+[0-9A-Za-z.-]+)?$"
)


class VersionError(Exception):
    """Raised when a version string cannot be parsed."""

    pass


@dataclass(frozen=True)
class SemVer:
    """
    Parsed semantic version.

    Attributes:
        major: Major version
        minor: Minor version
        patch: Patch version
        prerelease: Dot-separated pre-release identifiers (empty if release)
    """

    major: int
    minor: int
    patch: int
    prerelease: tuple[str, ...] = ()

    @classmethod
    def parse(cls, version: str) -> "SemVer":
        """
        Parse a version string.

        Missing minor/patch components default to zero and build metadata is
        ignored.

        Raises:
            VersionError: If the string is not a semantic version
        """
        match = _SEMVER_RE.match(str(version).strip())
        if not match:
            raise VersionError(f"Invalid semantic version: {version!r}")

        major, minor, patch, pre = match.groups()
        return cls(
            major=int(major),
            minor=int(minor or 0),
            patch=int(patch or 0),
            prerelease=tuple(pre.split(".")) if pre else (),
        )

    def compare(self, other: "SemVer") -> int:
        """
        Compare by semver precedence.

        Returns:
            -1 if self < other, 0 if equal, 1 if self > other
        """
        core1 = (self.major, self.minor, self.patch)
        core2 = (other.major, other.minor, other.patch)
        if core1 != core2:
            return -1 if core1 < core2 else 1

        # A pre-release sorts before the release it precedes
        if not self.prerelease or not other.prerelease:
            if self.prerelease == other.prerelease:
                return 0
            return -1 if self.prerelease else 1

        for p1, p2 in zip(self.prerelease, other.prerelease):
            result = _compare_identifier(p1, p2)
            if result:
                return result

        if len(self.prerelease) == len(other.prerelease):
            return 0
        return -1 if len(self.prerelease) < len(other.prerelease) else 1


def _compare_identifier(a: str, b: str) -> int:
    a_num, b_num = a.isdigit(), b.isdigit()
    if a_num and b_num:
        x, y = int(a), int(b)
    elif a_num or b_num:
        # Numeric identifiers have lower precedence than alphanumeric ones
        return -1 if a_num else 1
    else:
        x, y = a, b
    if x == y:
        return 0
    return -1 if x < y else 1


def compare_versions(v1: str, v2: str) -> int:
    """
    Compare two version strings.

    Returns:
        -1 if v1 < v2, 0 if v1 == v2, 1 if v1 > v2
    """
    return SemVer.parse(v1).compare(SemVer.parse(v2))


def is_greater(v1: str, v2: str) -> bool:
    """Check whether ``v1`` has strictly higher precedence than ``v2``."""
    return compare_versions(v1, v2) > 0


def is_compatible(
    plugin: PluginRecord,
    platform: Platform | str,
    installed_framework_version: str | None,
) -> bool:
    """
    Check whether a plugin supports the installed runtime of a platform.

    A plugin that declares no platform requirements at all is accepted.
    When it declares some, the platform must be listed and its minimum
    version must not exceed the installed one. Mismatches are logged as
    warnings; callers decide whether ``False`` blocks anything.

    Args:
        plugin: Classified plugin
        platform: Target platform
        installed_framework_version: Runtime version installed in the project

    Returns:
        True if the plugin is compatible
    """
    platform = Platform.parse(platform)
    requirements = plugin.per_platform_min_version
    if requirements is None:
        return True

    required = requirements.get(platform.value)
    if not required:
        logger.warning("%s is not supported for %s.", plugin.name, platform.value)
        return False

    if not installed_framework_version:
        logger.warning(
            "%s requires at least version %s of platform %s, but the installed "
            "version is unknown.",
            plugin.name,
            required,
            platform.value,
        )
        return False

    try:
        too_old = is_greater(required, installed_framework_version)
    except VersionError as e:
        logger.warning(
            "Cannot compare versions for %s on %s: %s", plugin.name, platform.value, e
        )
        return False

    if too_old:
        logger.warning(
            "%s requires at least version %s of platform %s. "
            "Currently installed version is %s.",
            plugin.name,
            required,
            platform.value,
            installed_framework_version,
        )
        return False

    return True
