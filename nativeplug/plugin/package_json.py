"""
Project Manifest Mutator.

This module reads and updates the dependency sections of a project's
package.json.

Key features:
- Moving an entry between dependencies and devDependencies idempotently
- Removal that only touches the file when something was removed
- Atomic writes that keep the file's indentation
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Any

from nativeplug.fs import FileSystemError, read_json, write_json
from nativeplug.project import PACKAGE_JSON

DEPENDENCIES = "dependencies"
DEV_DEPENDENCIES = "devDependencies"


class ManifestError(Exception):
    """Base exception for project manifest errors."""

    pass


class ManifestWriteError(ManifestError):
    """Raised when the manifest cannot be persisted."""

    pass


@dataclass(frozen=True)
class DependencyEntry:
    """A name/version pair declared in the manifest."""

    name: str
    version: str


@dataclass
class ManifestDependencies:
    dependencies: list[DependencyEntry]
    dev_dependencies: list[DependencyEntry]


def package_json_path(project_dir: Path) -> Path:
    return Path(project_dir) / PACKAGE_JSON


def read_package_json(project_dir: Path) -> dict[str, Any]:
    """
    Read the project manifest.

    Raises:
        ManifestError: If the manifest is missing, unreadable or not an object
    """
    path = package_json_path(project_dir)
    try:
        data = read_json(path)
    except FileSystemError as e:
        raise ManifestError(str(e)) from e

    if not isinstance(data, dict):
        raise ManifestError(f"Manifest {path} must contain a JSON object")
    return data


def add_entry(name: str, version: str, is_dev: bool, project_dir: Path) -> None:
    """
    Declare a dependency in the manifest.

    If ``name`` is declared in the opposite section it is removed there first,
    so a package is never listed as both a dependency and a devDependency.

    Args:
        name: Package name
        version: Version or range to record
        is_dev: Write to devDependencies instead of dependencies
        project_dir: Project root

    Raises:
        ManifestError: If the manifest cannot be read
        ManifestWriteError: If the manifest cannot be written
    """
    content = read_package_json(project_dir)
    section = DEV_DEPENDENCIES if is_dev else DEPENDENCIES
    opposite = DEPENDENCIES if is_dev else DEV_DEPENDENCIES

    opposite_section = content.get(opposite)
    if isinstance(opposite_section, dict) and name in opposite_section:
        _remove_dependency(content, name)

    if not isinstance(content.get(section), dict):
        content[section] = {}
    content[section][name] = version

    _write(project_dir, content)


def remove_entry(name: str, project_dir: Path) -> bool:
    """
    Remove a dependency from both manifest sections.

    The file is written only when an entry was actually removed.

    Returns:
        True if the manifest was modified
    """
    content = read_package_json(project_dir)
    modified = _remove_dependency(content, name)
    if modified:
        _write(project_dir, content)
    return modified


def is_declared(name: str, project_dir: Path, is_dev: bool | None = None) -> bool:
    """Check whether ``name`` is declared (in a given section, or in either)."""
    content = read_package_json(project_dir)
    if is_dev is None:
        sections = (DEPENDENCIES, DEV_DEPENDENCIES)
    else:
        sections = (DEV_DEPENDENCIES if is_dev else DEPENDENCIES,)
    return any(
        isinstance(content.get(s), dict) and name in content[s] for s in sections
    )


def get_dependencies_from_package_json(project_dir: Path) -> ManifestDependencies:
    """Read both dependency sections as lists of DependencyEntry."""
    content = read_package_json(project_dir)
    return ManifestDependencies(
        dependencies=_entries(content.get(DEPENDENCIES)),
        dev_dependencies=_entries(content.get(DEV_DEPENDENCIES)),
    )


def _entries(section: Any) -> list[DependencyEntry]:
    if not isinstance(section, dict):
        return []
    return [DependencyEntry(name=k, version=str(v)) for k, v in section.items()]


def _remove_dependency(content: dict[str, Any], name: str) -> bool:
    modified = False
    for section in (DEV_DEPENDENCIES, DEPENDENCIES):
        deps = content.get(section)
        if isinstance(deps, dict) and name in deps:
            del deps[name]
            modified = True
    return modified


def _detect_indent(path: Path) -> int | str:
    """Indentation of the first indented line: a space count, or a tab."""
    try:
        with open(path, encoding="utf-8") as f:
            for line in f:
                stripped = line.lstrip(" \t")
                if stripped == line or not stripped.strip():
                    continue
                if line.startswith("\t"):
                    return "\t"
                return len(line) - len(stripped)
    except OSError:
        pass
    return 2


def _write(project_dir: Path, content: dict[str, Any]) -> None:
    path = package_json_path(project_dir)
    try:
        write_json(path, content, indent=_detect_indent(path))
    except FileSystemError as e:
        raise ManifestWriteError(f"Failed to write manifest {path}: {e}") from e
