"""
Production Dependency Graph.

This module lists the installed production dependencies of a project.

Versions are not resolved here: every dependency is looked up by name in
node_modules, the same way Node resolves it at runtime, starting from the
package that depends on it.
"""

import logging
from pathlib import Path
from typing import Any, Protocol

from nativeplug.fs import FileSystemError, read_json
from nativeplug.plugin.classifier import (
    PLUGIN_METADATA_KEY,
    ModuleNotFoundInProject,
    resolve_module_package_json,
)
from nativeplug.project import PACKAGE_JSON

logger = logging.getLogger(__name__)


class DependencyGraphBuilder(Protocol):
    def get_production_dependencies(self, project_dir: Path) -> list[dict[str, Any]]: ...


class NodeModulesDependenciesBuilder:
    """Walks the installed node_modules tree breadth-first."""

    def get_production_dependencies(self, project_dir: Path) -> list[dict[str, Any]]:
        """
        Collect installed production dependencies, transitively.

        Args:
            project_dir: Project root

        Returns:
            One dict per installed package (name, version, directory, depth and
            the plugin section under ``nativescript``), in breadth-first order
        """
        project_dir = Path(project_dir)
        try:
            root = read_json(project_dir / PACKAGE_JSON)
        except FileSystemError as e:
            logger.warning("Cannot read project manifest: %s", e)
            return []

        result: list[dict[str, Any]] = []
        seen: set[Path] = set()
        queue: list[tuple[str, Path, int]] = [
            (name, project_dir, 0) for name in _production_names(root)
        ]

        while queue:
            name, parent_dir, depth = queue.pop(0)
            try:
                package_json = resolve_module_package_json(name, parent_dir)
            except ModuleNotFoundInProject:
                logger.debug("Dependency %s is not installed", name)
                continue

            directory = package_json.parent.resolve()
            if directory in seen:
                continue
            seen.add(directory)

            try:
                data = read_json(package_json)
            except FileSystemError as e:
                logger.warning("Skipping dependency %s: %s", name, e)
                continue

            result.append(
                {
                    "name": data.get("name", name),
                    "version": data.get("version", ""),
                    "directory": str(directory),
                    "depth": depth,
                    PLUGIN_METADATA_KEY: data.get(PLUGIN_METADATA_KEY),
                }
            )
            queue.extend(
                (dep, directory, depth + 1) for dep in _production_names(data)
            )

        return result


def _production_names(package_data: Any) -> list[str]:
    if not isinstance(package_data, dict):
        return []
    deps = package_data.get("dependencies")
    return list(deps) if isinstance(deps, dict) else []
