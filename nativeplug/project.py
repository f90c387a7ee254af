"""
Project Model.

This module describes the mobile application project a plugin operation
works on.

Key features:
- ProjectContext: project root, platforms directory, manifest location
- Platform enumeration (fixed order, case-insensitive parsing)
- PlatformTarget discovery by directory presence under platforms/
- Installed framework version lookup from the project manifest
"""

import re
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Protocol

from nativeplug.fs import FileSystemError, read_json

PACKAGE_JSON = "package.json"
NODE_MODULES = "node_modules"
PLATFORMS_DIR = "platforms"
APP_FOLDER_NAME = "app"
MODULES_FOLDER_NAME = "tns_modules"
PROJECT_METADATA_KEY = "nativescript"


class ProjectError(Exception):
    """Base exception for project-related errors."""

    pass


class Platform(Enum):
    """Supported platforms, in enumeration order."""

    IOS = "ios"
    ANDROID = "android"

    @classmethod
    def parse(cls, value: "str | Platform") -> "Platform":
        """
        Parse a platform identifier, ignoring case.

        Raises:
            ProjectError: If the identifier is not a supported platform
        """
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError as e:
            supported = ", ".join(p.value for p in cls)
            raise ProjectError(
                f"Invalid platform: {value}. Supported platforms: {supported}"
            ) from e


FRAMEWORK_PACKAGES = {
    Platform.IOS: "tns-ios",
    Platform.ANDROID: "tns-android",
}


@dataclass(frozen=True)
class ProjectContext:
    """
    Immutable description of a project for the duration of one operation.

    Attributes:
        project_dir: Project root directory
        platforms_dir: Directory holding one folder per installed platform
        package_json_path: The project's dependency manifest
        project_name: Name used for the iOS native project folder
    """

    project_dir: Path
    platforms_dir: Path
    package_json_path: Path
    project_name: str

    @classmethod
    def from_dir(cls, project_dir: Path | str) -> "ProjectContext":
        project_dir = Path(project_dir).resolve()
        return cls(
            project_dir=project_dir,
            platforms_dir=project_dir / PLATFORMS_DIR,
            package_json_path=project_dir / PACKAGE_JSON,
            project_name=_sanitize_project_name(project_dir.name),
        )

    @property
    def node_modules_dir(self) -> Path:
        return self.project_dir / NODE_MODULES


@dataclass(frozen=True)
class PlatformTarget:
    """
    One installed native platform of a project.

    Attributes:
        platform: Platform identifier
        app_destination_dir: Where the application's JS modules are copied
        project_root: Root of the native project (holds the build ledger)
        framework_package_name: Runtime package whose version gates plugins
    """

    platform: Platform
    app_destination_dir: Path
    project_root: Path
    framework_package_name: str

    @property
    def modules_destination_dir(self) -> Path:
        return self.app_destination_dir / APP_FOLDER_NAME / MODULES_FOLDER_NAME


class PlatformDataProvider(Protocol):
    def get_platform_data(
        self, platform: Platform, project: ProjectContext
    ) -> PlatformTarget: ...


class DefaultPlatformDataProvider:
    """Native project layout of the two supported runtimes."""

    def get_platform_data(
        self, platform: Platform, project: ProjectContext
    ) -> PlatformTarget:
        platform = Platform.parse(platform)
        project_root = project.platforms_dir / platform.value

        if platform is Platform.IOS:
            app_destination = project_root / project.project_name
        else:
            app_destination = project_root / "app" / "src" / "main" / "assets"

        return PlatformTarget(
            platform=platform,
            app_destination_dir=app_destination,
            project_root=project_root,
            framework_package_name=FRAMEWORK_PACKAGES[platform],
        )


def list_installed_platforms(project: ProjectContext) -> list[Platform]:
    """
    List installed platforms in enumeration order.

    A platform is installed when ``platforms/<platform>`` exists.
    """
    return [p for p in Platform if (project.platforms_dir / p.value).is_dir()]


def get_installed_framework_version(
    project: ProjectContext, target: PlatformTarget
) -> str | None:
    """
    Read the installed runtime version for a platform.

    The version lives in the project manifest under
    ``nativescript.<framework package>.version``.

    Returns:
        Version string, or None if the project does not record one
    """
    try:
        data = read_json(project.package_json_path)
    except FileSystemError as e:
        raise ProjectError(f"Failed to read project manifest: {e}") from e

    section = data.get(PROJECT_METADATA_KEY) if isinstance(data, dict) else None
    if not isinstance(section, dict):
        return None
    framework = section.get(target.framework_package_name)
    if not isinstance(framework, dict):
        return None
    version = framework.get("version")
    return str(version) if version else None


def _sanitize_project_name(name: str) -> str:
    sanitized = re.sub(r"[^A-Za-z0-9]", "", name)
    return sanitized or "app"
