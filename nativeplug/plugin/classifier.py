"""
Plugin Classifier.

This module turns a package's on-disk metadata into a normalized plugin
record.

Key features:
- Plugin vs plain dependency decided once, from the ``nativescript`` section
- Node-style module lookup through parent node_modules folders
- Per-platform native asset folder derivation
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from nativeplug.fs import FileSystemError, read_json
from nativeplug.project import NODE_MODULES, PACKAGE_JSON, Platform

PLUGIN_METADATA_KEY = "nativescript"
MODULE_INFO_KEY = "module_info"


class ClassifierError(Exception):
    """Base exception for plugin classification errors."""

    pass


class ModuleNotFoundInProject(ClassifierError):
    """Raised when a module cannot be resolved from the project."""

    pass


@dataclass(frozen=True)
class PluginMetadata:
    """
    Native-integration metadata of a plugin.

    Attributes:
        per_platform_min_version: platform -> minimum runtime version, or None
            when the plugin declares no platform requirements at all
        variables: Opaque plugin configuration variables
    """

    per_platform_min_version: dict[str, str] | None = None
    variables: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class PluginRecord:
    """
    Normalized view of an installed package.

    ``metadata`` is None for plain dependencies; only packages whose
    package.json carries the recognized section get native semantics.
    """

    name: str
    version: str
    full_path: Path
    metadata: PluginMetadata | None = None

    @property
    def is_plugin(self) -> bool:
        return self.metadata is not None

    @property
    def per_platform_min_version(self) -> dict[str, str] | None:
        return self.metadata.per_platform_min_version if self.metadata else None

    @property
    def variables(self) -> dict[str, Any]:
        return dict(self.metadata.variables) if self.metadata else {}

    def native_folder_path(self, platform: Platform | str) -> Path:
        """Directory holding this plugin's native assets for ``platform``."""
        return self.full_path / "platforms" / Platform.parse(platform).value


def classify(
    package_data: dict[str, Any],
    project_dir: Path,
    directory: Path | str | None = None,
) -> PluginRecord:
    """
    Build a PluginRecord from package metadata.

    Args:
        package_data: A package's package.json content, or node module data
            (which carries the section under ``module_info``)
        project_dir: Project root used to resolve the module directory
        directory: Owning directory, if already known

    Returns:
        PluginRecord

    Raises:
        ClassifierError: If the metadata has no name
        ModuleNotFoundInProject: If no directory is given and the module
            cannot be resolved
    """
    name = package_data.get("name")
    if not isinstance(name, str) or not name:
        raise ClassifierError("Package metadata has no name")

    directory = directory or package_data.get("directory")
    if directory:
        full_path = Path(directory)
    else:
        full_path = resolve_module_package_json(name, project_dir).parent

    section = package_data.get(PLUGIN_METADATA_KEY)
    if section is None:
        section = package_data.get(MODULE_INFO_KEY)

    return PluginRecord(
        name=name,
        version=str(package_data.get("version") or ""),
        full_path=full_path,
        metadata=_parse_metadata(section),
    )


def _parse_metadata(section: Any) -> PluginMetadata | None:
    if not isinstance(section, dict):
        # Any truthy value marks a plugin; an empty object counts too.
        return PluginMetadata() if section else None

    platforms = section.get("platforms")
    min_versions = None
    if isinstance(platforms, dict):
        min_versions = {
            str(k).lower(): str(v) for k, v in platforms.items() if v is not None
        }

    variables = section.get("variables")
    return PluginMetadata(
        per_platform_min_version=min_versions,
        variables=dict(variables) if isinstance(variables, dict) else {},
    )


def resolve_module_package_json(name: str, project_dir: Path) -> Path:
    """
    Find ``<name>/package.json`` the way Node resolves modules.

    Looks in ``node_modules`` of the project directory, then of each parent.

    Raises:
        ModuleNotFoundInProject: If the module is not installed
    """
    start = Path(project_dir).resolve()
    for base in (start, *start.parents):
        candidate = base / NODE_MODULES / name / PACKAGE_JSON
        if candidate.is_file():
            return candidate
    raise ModuleNotFoundInProject(f"Cannot find module '{name}' from {start}")


def read_node_module_data(module: str | Path, project_dir: Path) -> dict[str, Any]:
    """
    Read an installed module's metadata.

    Args:
        module: Module name, or path to its package.json
        project_dir: Project root

    Returns:
        Dict with name, version, directory and module_info (the plugin section)

    Raises:
        ClassifierError: If the package.json cannot be read
    """
    path = Path(module)
    if not (path.name == PACKAGE_JSON and path.is_file()):
        path = resolve_module_package_json(str(module), project_dir)

    try:
        data = read_json(path)
    except FileSystemError as e:
        raise ClassifierError(f"Failed to read module metadata: {e}") from e
    if not isinstance(data, dict):
        raise ClassifierError(f"Module metadata {path} must be a JSON object")

    return {
        "name": data.get("name"),
        "version": data.get("version"),
        "directory": str(path.parent),
        MODULE_INFO_KEY: data.get(PLUGIN_METADATA_KEY),
    }


def is_plugin_package(package_json_path: Path) -> bool:
    """Check whether a package.json declares the plugin metadata section."""
    try:
        data = read_json(package_json_path)
    except FileSystemError as e:
        raise ClassifierError(str(e)) from e
    if not isinstance(data, dict):
        return False
    return _parse_metadata(data.get(PLUGIN_METADATA_KEY)) is not None
