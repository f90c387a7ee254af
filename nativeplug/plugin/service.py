"""
Plugins Service.

This module orchestrates plugin installation and removal for a project and
drives native preparation of installed plugins.

Key features:
- add: install, classify, roll back non-plugins, validate per platform
- remove: per-platform native removal, a single uninstall, manifest cleanup
- Project-wide dependency install when declared packages are missing
- Installed / production plugin listing
- Multi-platform prepare sweep gated by the native-build cache
- One lock per project around everything that touches the manifest
"""

import asyncio
import logging
import shutil
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Iterable

from nativeplug.config import Options
from nativeplug.plugin import package_json
from nativeplug.plugin.classifier import (
    ClassifierError,
    PluginRecord,
    classify,
    is_plugin_package,
    read_node_module_data,
)
from nativeplug.plugin.dependencies import (
    DependencyGraphBuilder,
    NodeModulesDependenciesBuilder,
)
from nativeplug.plugin.hooks import NativeIntegrationHook, ScriptIntegrationHook
from nativeplug.plugin.native_cache import NativeBuildCache, PrepareOutcome
from nativeplug.plugin.package_manager import (
    InstallOptions,
    PackageManager,
    PackageManagerError,
)
from nativeplug.plugin.version import is_compatible
from nativeplug.project import (
    DefaultPlatformDataProvider,
    Platform,
    PlatformDataProvider,
    PlatformTarget,
    ProjectContext,
    ProjectError,
    get_installed_framework_version,
    list_installed_platforms,
)

logger = logging.getLogger(__name__)

TARBALL_EXTENSION = ".tgz"
UNINSTALL_OPTIONS = InstallOptions(save=True)


class PluginError(Exception):
    """Base exception for plugin operation errors."""

    pass


class InvalidPluginError(PluginError):
    """Raised when an installed package carries no plugin metadata."""

    pass


class PlatformOutcome(Enum):
    """Result of a per-platform removal step."""

    REMOVED = "removed"
    FAILED = "failed"


@dataclass
class PlatformResult:
    platform: Platform
    outcome: PlatformOutcome
    error: str | None = None


@dataclass
class AddResult:
    """
    Outcome of adding a plugin.

    Attributes:
        plugin: The installed plugin
        compatibility: platform -> whether the installed runtime satisfies
            the plugin's minimum version (advisory)
    """

    plugin: PluginRecord
    compatibility: dict[Platform, bool] = field(default_factory=dict)


@dataclass
class RemoveResult:
    """
    Outcome of removing a plugin.

    Attributes:
        name: Plugin name
        platforms: Per-platform removal results, in platform order
        uninstalled: Whether the package manager uninstall succeeded
    """

    name: str
    platforms: list[PlatformResult] = field(default_factory=list)
    uninstalled: bool = False

    @property
    def succeeded(self) -> bool:
        return self.uninstalled or any(
            r.outcome is PlatformOutcome.REMOVED for r in self.platforms
        )


@dataclass
class PrepareResult:
    plugin: str
    platform: Platform
    outcome: PrepareOutcome


class PluginsService:
    """
    Plugin install/remove orchestrator.

    All collaborators are injected; defaults run npm, the project's hook
    scripts and the node_modules dependency walker.
    """

    def __init__(
        self,
        package_manager: PackageManager,
        platform_data: PlatformDataProvider | None = None,
        hook_factory: Callable[[PlatformTarget], NativeIntegrationHook] | None = None,
        dependency_builder: DependencyGraphBuilder | None = None,
        options: Options | None = None,
    ):
        """
        Initialize PluginsService.

        Args:
            package_manager: Installs and uninstalls packages
            platform_data: Maps platforms to native project layouts
            hook_factory: Returns the native-integration hook for a platform
            dependency_builder: Lists installed production dependencies
            options: Process options
        """
        self.package_manager = package_manager
        self.platform_data = platform_data or DefaultPlatformDataProvider()
        self.options = options or Options()
        self.dependency_builder = dependency_builder or NodeModulesDependenciesBuilder()
        self._hook_factory = hook_factory or self._default_hook
        self.native_cache = NativeBuildCache(self._hook_factory)
        self._project_locks: dict[Path, asyncio.Lock] = {}

    def _default_hook(self, target: PlatformTarget) -> NativeIntegrationHook:
        return ScriptIntegrationHook(target.platform, timeout=self.options.hook_timeout)

    def _lock_for(self, project: ProjectContext) -> asyncio.Lock:
        key = project.project_dir
        if key not in self._project_locks:
            self._project_locks[key] = asyncio.Lock()
        return self._project_locks[key]

    async def add(self, specifier: str, project: ProjectContext) -> AddResult:
        """
        Install a plugin into a project.

        Args:
            specifier: Registry specifier, or path to a packaged .tgz
            project: Target project

        Returns:
            AddResult

        Raises:
            InvalidPluginError: If the package is not a plugin (it has been
                uninstalled again)
            PluginError: If installation or the rollback fails
            ManifestError: If the manifest cannot be read or written
        """
        async with self._lock_for(project):
            await self._ensure(project)

            resolved = _resolve_specifier(specifier)
            try:
                installed = await self.package_manager.install(
                    resolved, project.project_dir, self.options.install_options()
                )
            except PackageManagerError as e:
                raise PluginError(f"Failed to install {specifier}: {e}") from e
            if installed is None:
                raise PluginError(f"Package manager did not install {specifier}")

            try:
                plugin = classify(
                    read_node_module_data(installed.name, project.project_dir),
                    project.project_dir,
                )
            except ClassifierError as e:
                raise PluginError(f"Failed to read installed package {installed.name}: {e}") from e

            if not plugin.is_plugin:
                await self._rollback(plugin.name, project)
                raise InvalidPluginError(
                    f"{specifier} is not a valid NativeScript plugin. Verify that the "
                    f"plugin package.json file contains a nativescript key and try again."
                )

            compatibility = {
                target.platform: self._validate_for_platform(plugin, target, project)
                for target in self._installed_targets(project)
            }

            if not package_json.is_declared(plugin.name, project.project_dir, is_dev=False):
                package_json.add_entry(plugin.name, plugin.version, False, project.project_dir)

        logger.info("Successfully installed plugin %s.", plugin.name)
        return AddResult(plugin=plugin, compatibility=compatibility)

    async def _rollback(self, name: str, project: ProjectContext) -> None:
        # Uninstall by the resolved package name; the specifier may be a path
        try:
            await self.package_manager.uninstall(name, UNINSTALL_OPTIONS, project.project_dir)
        except PackageManagerError as e:
            raise PluginError(f"Failed to uninstall invalid package {name}: {e}") from e
        package_json.remove_entry(name, project.project_dir)

    def _validate_for_platform(
        self, plugin: PluginRecord, target: PlatformTarget, project: ProjectContext
    ) -> bool:
        try:
            installed_version = get_installed_framework_version(project, target)
        except ProjectError as e:
            logger.warning("Cannot validate %s for %s: %s", plugin.name, target.platform.value, e)
            return False
        return is_compatible(plugin, target.platform, installed_version)

    async def remove(self, name: str, project: ProjectContext) -> RemoveResult:
        """
        Remove a plugin from a project.

        Every installed platform gets a chance to drop the plugin's native
        code; a failing platform does not stop the others. The package is
        then uninstalled once.

        Returns:
            RemoveResult

        Raises:
            PluginError: If the plugin is not installed, or no platform step
                and no uninstall succeeded
            ManifestError: If the manifest cannot be updated
        """
        async with self._lock_for(project):
            try:
                plugin = classify(
                    read_node_module_data(name, project.project_dir), project.project_dir
                )
            except ClassifierError as e:
                raise PluginError(f"Plugin {name} is not installed: {e}") from e

            result = RemoveResult(name=name)
            for target in self._installed_targets(project):
                result.platforms.append(
                    await self._remove_from_platform(plugin, target, project)
                )

            try:
                await self.package_manager.uninstall(
                    name, UNINSTALL_OPTIONS, project.project_dir
                )
                result.uninstalled = True
            except PackageManagerError as e:
                logger.error("Failed to uninstall %s: %s", name, e)

            if not result.succeeded:
                raise PluginError(f"Failed to remove plugin {name}")

            if result.uninstalled:
                package_json.remove_entry(name, project.project_dir)

        if not result.platforms:
            logger.info("Successfully removed plugin %s", name)
        return result

    async def _remove_from_platform(
        self, plugin: PluginRecord, target: PlatformTarget, project: ProjectContext
    ) -> PlatformResult:
        platform = target.platform
        error = None
        try:
            await self._hook_factory(target).remove(plugin, project)
        except Exception as e:
            logger.error(
                "Failed to remove plugin %s for %s: %s", plugin.name, platform.value, e
            )
            error = str(e)

        # Leftover copy in the app's modules folder goes regardless of the hook
        leftover = target.modules_destination_dir / plugin.name
        try:
            if leftover.exists():
                await asyncio.to_thread(shutil.rmtree, leftover)
        except OSError as e:
            logger.error("Failed to delete %s: %s", leftover, e)
            error = error or str(e)

        if error is not None:
            return PlatformResult(platform, PlatformOutcome.FAILED, error)

        logger.info("Successfully removed plugin %s for %s.", plugin.name, platform.value)
        return PlatformResult(platform, PlatformOutcome.REMOVED)

    async def add_to_package_json(
        self, name: str, version: str, is_dev: bool, project: ProjectContext
    ) -> None:
        """Declare a dependency, serialized with other manifest writers."""
        async with self._lock_for(project):
            package_json.add_entry(name, version, is_dev, project.project_dir)

    async def remove_from_package_json(self, name: str, project: ProjectContext) -> bool:
        """Remove a dependency, serialized with other manifest writers."""
        async with self._lock_for(project):
            return package_json.remove_entry(name, project.project_dir)

    async def ensure_all_dependencies_installed(self, project: ProjectContext) -> None:
        """Run a project-wide install if any declared dependency is missing."""
        async with self._lock_for(project):
            await self._ensure(project)

    async def _ensure(self, project: ProjectContext) -> None:
        installed = _installed_module_names(project.node_modules_dir)
        declared = package_json.get_dependencies_from_package_json(project.project_dir)
        missing = [
            entry.name
            for entry in declared.dependencies + declared.dev_dependencies
            if entry.name not in installed
        ]

        if self.options.force or missing:
            logger.debug(
                "Running npm install. Force option is: %s. Not installed dependencies are: %s",
                self.options.force,
                missing,
            )
            try:
                await self.package_manager.install(
                    str(project.project_dir),
                    project.project_dir,
                    self.options.install_options(save=False),
                )
            except PackageManagerError as e:
                raise PluginError(f"Failed to install project dependencies: {e}") from e

        project.node_modules_dir.mkdir(parents=True, exist_ok=True)

    async def get_all_installed_plugins(self, project: ProjectContext) -> list[PluginRecord]:
        """Classify the project's declared dependencies and keep plugins."""
        await self.ensure_all_dependencies_installed(project)

        declared = package_json.get_dependencies_from_package_json(project.project_dir)
        plugins = []
        for entry in declared.dependencies:
            try:
                record = classify(
                    read_node_module_data(entry.name, project.project_dir),
                    project.project_dir,
                )
            except ClassifierError as e:
                logger.warning("Skipping dependency %s: %s", entry.name, e)
                continue
            if record.is_plugin:
                plugins.append(record)
        return plugins

    def get_all_production_plugins(
        self,
        project: ProjectContext,
        dependencies: list[dict[str, Any]] | None = None,
    ) -> list[PluginRecord]:
        """
        Plugins among all production dependencies, not only the root ones.

        Args:
            project: Project to inspect
            dependencies: Pre-computed dependency data (defaults to the
                dependency builder's result)
        """
        if dependencies is None:
            dependencies = self.dependency_builder.get_production_dependencies(
                project.project_dir
            )

        plugins = []
        for dependency in dependencies:
            record = classify(dependency, project.project_dir)
            if record.is_plugin:
                plugins.append(record)
        return plugins

    def get_dependencies_from_package_json(
        self, project_dir: Path
    ) -> package_json.ManifestDependencies:
        return package_json.get_dependencies_from_package_json(project_dir)

    def is_plugin_package(self, package_json_path: Path) -> bool:
        return is_plugin_package(package_json_path)

    def list_installed_platforms(self, project: ProjectContext) -> list[Platform]:
        return list_installed_platforms(project)

    def _installed_targets(self, project: ProjectContext) -> list[PlatformTarget]:
        return [
            self.platform_data.get_platform_data(platform, project)
            for platform in list_installed_platforms(project)
        ]

    async def prepare_native_code(
        self, plugin: PluginRecord, platform: Platform | str, project: ProjectContext
    ) -> PrepareOutcome:
        """Prepare one plugin for one platform through the native-build cache."""
        target = self.platform_data.get_platform_data(Platform.parse(platform), project)
        return await self.native_cache.prepare_native_code(plugin, target, project)

    async def prepare_all(
        self,
        project: ProjectContext,
        platforms: Iterable[Platform | str] | None = None,
    ) -> list[PrepareResult]:
        """
        Prepare every production plugin on every installed platform.

        Platforms are processed concurrently; plugins within a platform run
        one after another.

        Args:
            project: Project to prepare
            platforms: Restrict to these platforms (default: all installed)

        Returns:
            One PrepareResult per plugin and platform
        """
        wanted = None if platforms is None else {Platform.parse(p) for p in platforms}
        targets = [
            t for t in self._installed_targets(project)
            if wanted is None or t.platform in wanted
        ]
        plugins = self.get_all_production_plugins(project)

        async def prepare_platform(target: PlatformTarget) -> list[PrepareResult]:
            results = []
            for plugin in plugins:
                outcome = await self.native_cache.prepare_native_code(plugin, target, project)
                results.append(PrepareResult(plugin.name, target.platform, outcome))
            return results

        batches = await asyncio.gather(*(prepare_platform(t) for t in targets))
        return [result for batch in batches for result in batch]


def _resolve_specifier(specifier: str) -> str:
    candidate = Path(specifier).resolve()
    if TARBALL_EXTENSION in str(candidate) and candidate.exists():
        return str(candidate)
    return specifier


def _installed_module_names(node_modules: Path) -> set[str]:
    if not node_modules.is_dir():
        return set()

    names: set[str] = set()
    for entry in node_modules.iterdir():
        if not entry.is_dir():
            continue
        names.add(entry.name)
        # Scoped packages live one level down: node_modules/@scope/name
        if entry.name.startswith("@"):
            names.update(
                f"{entry.name}/{child.name}" for child in entry.iterdir() if child.is_dir()
            )
    return names
