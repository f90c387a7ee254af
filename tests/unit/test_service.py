"""
Tests for the plugins service.

This test suite covers:
1. Adding plugins (registry, tarball, invalid packages)
2. Advisory platform validation during add
3. Project-wide install of missing dependencies
4. Removing plugins across platforms with partial failures
5. Installed / production plugin listing
6. Multi-platform prepare sweeps through the native-build cache
"""

import asyncio
import json
import logging
from unittest.mock import AsyncMock

import pytest

from conftest import FakePackageManager, install_module, read_json, write_json
from nativeplug.config import Options
from nativeplug.plugin.native_cache import PLUGINS_BUILD_DATA_FILENAME, PrepareOutcome
from nativeplug.plugin.package_manager import PackageManagerError
from nativeplug.plugin.service import (
    InvalidPluginError,
    PlatformOutcome,
    PluginError,
    PluginsService,
)
from nativeplug.project import Platform

CAMERA = {
    "name": "nativescript-camera",
    "version": "4.5.0",
    "nativescript": {"platforms": {"ios": "6.0.0", "android": "5.0.0"}},
}
LEFT_PAD = {"name": "left-pad", "version": "1.3.0"}


def add_platform(project, platform):
    (project.platforms_dir / platform).mkdir(parents=True)


def make_service(package_manager, hooks=None, **options):
    hooks = {} if hooks is None else hooks

    def hook_factory(target):
        return hooks.setdefault(target.platform, AsyncMock())

    return PluginsService(package_manager, hook_factory=hook_factory, options=Options(**options))


class TestAdd:
    """Test installing plugins."""

    @pytest.mark.asyncio
    async def test_add_plugin(self, project):
        """Should install, classify and record a plugin."""
        pm = FakePackageManager({"nativescript-camera@4.5.0": CAMERA})
        service = make_service(pm, ignore_scripts=True)

        result = await service.add("nativescript-camera@4.5.0", project)

        assert result.plugin.is_plugin
        assert result.plugin.name == "nativescript-camera"
        specifier, options = pm.installs[-1]
        assert specifier == "nativescript-camera@4.5.0"
        assert options.save is True
        assert options.ignore_scripts is True
        assert read_json(project.package_json_path)["dependencies"] == {
            "nativescript-camera": "^4.5.0"
        }

    @pytest.mark.asyncio
    async def test_add_records_manifest_entry(self, project):
        """Should declare the plugin if the package manager did not."""
        pm = FakePackageManager({"cam": CAMERA})
        pm.saves_to_manifest = False
        service = make_service(pm)

        await service.add("cam", project)

        assert read_json(project.package_json_path)["dependencies"] == {
            "nativescript-camera": "4.5.0"
        }

    @pytest.mark.asyncio
    async def test_add_invalid_plugin_rolls_back(self, project):
        """A package without plugin metadata should be uninstalled again."""
        pm = FakePackageManager({"left-pad@^1.3.0": LEFT_PAD})
        service = make_service(pm)

        with pytest.raises(InvalidPluginError, match="left-pad@\\^1.3.0 is not a valid"):
            await service.add("left-pad@^1.3.0", project)

        assert pm.uninstalls == ["left-pad"]
        manifest = read_json(project.package_json_path)
        assert "left-pad" not in manifest["dependencies"]
        assert "left-pad" not in manifest["devDependencies"]

    @pytest.mark.asyncio
    async def test_add_invalid_tarball_uninstalls_resolved_name(self, project):
        """Rollback should use the installed package name, not the path."""
        tarball = project.project_dir / "left-pad-1.3.0.tgz"
        tarball.write_bytes(b"")
        pm = FakePackageManager({str(tarball.resolve()): LEFT_PAD})
        service = make_service(pm)

        with pytest.raises(InvalidPluginError, match="left-pad-1.3.0.tgz"):
            await service.add(str(tarball), project)

        assert pm.installs[-1][0] == str(tarball.resolve())
        assert pm.uninstalls == ["left-pad"]

    @pytest.mark.asyncio
    async def test_add_rollback_failure(self, project):
        """A failing rollback uninstall should abort with PluginError."""
        pm = FakePackageManager({"left-pad": LEFT_PAD})
        pm.fail_uninstall = PackageManagerError("npm exploded")
        service = make_service(pm)

        with pytest.raises(PluginError, match="Failed to uninstall invalid package left-pad"):
            await service.add("left-pad", project)

    @pytest.mark.asyncio
    async def test_add_incompatible_platform_warns(self, project, caplog):
        """An old runtime should warn but still install."""
        add_platform(project, "ios")
        add_platform(project, "android")
        pm = FakePackageManager({"cam": CAMERA})
        service = make_service(pm)

        with caplog.at_level(logging.WARNING):
            result = await service.add("cam", project)

        assert result.compatibility == {Platform.IOS: False, Platform.ANDROID: True}
        assert "6.0.0" in caplog.text and "5.2.0" in caplog.text
        assert "nativescript-camera" in read_json(project.package_json_path)["dependencies"]

    @pytest.mark.asyncio
    async def test_add_install_failure(self, project):
        """Package manager failures should surface as PluginError."""
        pm = FakePackageManager()
        pm.install = AsyncMock(side_effect=PackageManagerError("404 Not Found"))
        service = make_service(pm)

        with pytest.raises(PluginError, match="404 Not Found"):
            await service.add("ghost", project)


class TestEnsureDependencies:
    """Test the project-wide install before adding plugins."""

    @pytest.mark.asyncio
    async def test_missing_dependency_triggers_install(self, project):
        """A declared but absent dependency should run a project install."""
        write_json(
            project.package_json_path,
            {"dependencies": {"@scope/pkg": "1.0.0"}, "devDependencies": {"typescript": "3"}},
        )
        install_module(project.project_dir, {"name": "@scope/pkg", "version": "1.0.0"})
        pm = FakePackageManager()
        service = make_service(pm)

        await service.ensure_all_dependencies_installed(project)

        specifier, options = pm.installs[0]
        assert specifier == str(project.project_dir)
        assert options.save is False

    @pytest.mark.asyncio
    async def test_all_installed_is_noop(self, project):
        """Nothing should run when every dependency is present (scoped too)."""
        write_json(project.package_json_path, {"dependencies": {"@scope/pkg": "1.0.0"}})
        install_module(project.project_dir, {"name": "@scope/pkg", "version": "1.0.0"})
        pm = FakePackageManager()
        service = make_service(pm)

        await service.ensure_all_dependencies_installed(project)

        assert pm.installs == []

    @pytest.mark.asyncio
    async def test_force_always_installs(self, project):
        """The force option should always run a project install."""
        pm = FakePackageManager()
        service = make_service(pm, force=True)

        await service.ensure_all_dependencies_installed(project)

        assert len(pm.installs) == 1


class TestRemove:
    """Test removing plugins."""

    async def installed(self, project, hooks=None):
        pm = FakePackageManager({"cam": CAMERA})
        service = make_service(pm, hooks)
        await service.add("cam", project)
        return pm, service

    @pytest.mark.asyncio
    async def test_remove_all_platforms(self, project):
        """Should run the removal hook per platform and uninstall once."""
        add_platform(project, "ios")
        add_platform(project, "android")
        hooks = {}
        pm, service = await self.installed(project, hooks)
        leftover = (
            service.platform_data.get_platform_data(Platform.ANDROID, project)
            .modules_destination_dir / "nativescript-camera"
        )
        leftover.mkdir(parents=True)

        result = await service.remove("nativescript-camera", project)

        assert result.succeeded
        assert [r.platform for r in result.platforms] == [Platform.IOS, Platform.ANDROID]
        hooks[Platform.IOS].remove.assert_awaited_once()
        hooks[Platform.ANDROID].remove.assert_awaited_once()
        assert pm.uninstalls == ["nativescript-camera"]
        assert not leftover.exists()
        assert "nativescript-camera" not in read_json(project.package_json_path)["dependencies"]

    @pytest.mark.asyncio
    async def test_remove_continues_after_platform_failure(self, project):
        """A failing platform should not stop the others or the uninstall."""
        add_platform(project, "ios")
        add_platform(project, "android")
        hooks = {Platform.IOS: AsyncMock()}
        hooks[Platform.IOS].remove.side_effect = RuntimeError("xcode missing")
        pm, service = await self.installed(project, hooks)

        result = await service.remove("nativescript-camera", project)

        assert result.succeeded
        outcomes = {r.platform: r for r in result.platforms}
        assert outcomes[Platform.IOS].outcome is PlatformOutcome.FAILED
        assert "xcode missing" in outcomes[Platform.IOS].error
        assert outcomes[Platform.ANDROID].outcome is PlatformOutcome.REMOVED
        assert pm.uninstalls == ["nativescript-camera"]

    @pytest.mark.asyncio
    async def test_remove_deletes_leftover_after_hook_failure(self, project):
        """The app's copy of the plugin should go even when the hook fails."""
        add_platform(project, "android")
        hooks = {Platform.ANDROID: AsyncMock()}
        hooks[Platform.ANDROID].remove.side_effect = RuntimeError("gradle missing")
        pm, service = await self.installed(project, hooks)
        leftover = (
            service.platform_data.get_platform_data(Platform.ANDROID, project)
            .modules_destination_dir / "nativescript-camera"
        )
        leftover.mkdir(parents=True)

        result = await service.remove("nativescript-camera", project)

        assert result.platforms[0].outcome is PlatformOutcome.FAILED
        assert "gradle missing" in result.platforms[0].error
        assert not leftover.exists()
        assert result.uninstalled

    @pytest.mark.asyncio
    async def test_remove_without_platforms(self, project):
        """Should still uninstall when no platform is installed."""
        pm, service = await self.installed(project)

        result = await service.remove("nativescript-camera", project)

        assert result.platforms == []
        assert result.uninstalled

    @pytest.mark.asyncio
    async def test_remove_nothing_succeeded(self, project):
        """Should fail when every platform and the uninstall failed."""
        add_platform(project, "android")
        hooks = {Platform.ANDROID: AsyncMock()}
        hooks[Platform.ANDROID].remove.side_effect = RuntimeError("boom")
        pm, service = await self.installed(project, hooks)
        pm.fail_uninstall = PackageManagerError("npm exploded")

        with pytest.raises(PluginError, match="Failed to remove plugin"):
            await service.remove("nativescript-camera", project)

        assert "nativescript-camera" in read_json(project.package_json_path)["dependencies"]

    @pytest.mark.asyncio
    async def test_remove_uninstall_failure_keeps_manifest(self, project):
        """A failed uninstall should leave the manifest entry in place."""
        add_platform(project, "android")
        pm, service = await self.installed(project)
        pm.fail_uninstall = PackageManagerError("npm exploded")

        result = await service.remove("nativescript-camera", project)

        assert result.succeeded
        assert not result.uninstalled
        assert "nativescript-camera" in read_json(project.package_json_path)["dependencies"]

    @pytest.mark.asyncio
    async def test_remove_not_installed(self, project):
        """Removing an unknown plugin should fail before touching platforms."""
        pm = FakePackageManager()
        service = make_service(pm)

        with pytest.raises(PluginError, match="is not installed"):
            await service.remove("ghost", project)
        assert pm.uninstalls == []


class TestListing:
    """Test plugin listing."""

    @pytest.mark.asyncio
    async def test_get_all_installed_plugins(self, project):
        """Should return only plugins among root dependencies."""
        write_json(
            project.package_json_path,
            {"dependencies": {"nativescript-camera": "4", "left-pad": "1"}},
        )
        install_module(project.project_dir, CAMERA)
        install_module(project.project_dir, LEFT_PAD)
        service = make_service(FakePackageManager())

        plugins = await service.get_all_installed_plugins(project)

        assert [p.name for p in plugins] == ["nativescript-camera"]

    def test_get_all_production_plugins_from_data(self, project):
        """Should classify provided dependency data."""
        service = make_service(FakePackageManager())
        dependencies = [
            dict(CAMERA, directory=str(project.project_dir / "cam")),
            dict(LEFT_PAD, directory=str(project.project_dir / "lp")),
        ]

        plugins = service.get_all_production_plugins(project, dependencies)

        assert [p.name for p in plugins] == ["nativescript-camera"]
        assert plugins[0].full_path == project.project_dir / "cam"

    def test_get_all_production_plugins_empty(self, project):
        """No dependencies should mean no plugins."""
        service = make_service(FakePackageManager())

        assert service.get_all_production_plugins(project, []) == []

    def test_list_installed_platforms(self, project):
        """Platforms should be listed in enumeration order."""
        add_platform(project, "android")
        add_platform(project, "ios")
        service = make_service(FakePackageManager())

        assert service.list_installed_platforms(project) == [Platform.IOS, Platform.ANDROID]

    @pytest.mark.asyncio
    async def test_manifest_helpers(self, project):
        """Manifest updates through the service should apply."""
        service = make_service(FakePackageManager())

        await service.add_to_package_json("foo", "1.0.0", True, project)
        assert await service.remove_from_package_json("foo", project) is True
        assert await service.remove_from_package_json("foo", project) is False


class TestPrepareAll:
    """Test the multi-platform prepare sweep."""

    def install_camera(self, project):
        write_json(project.package_json_path, {"dependencies": {"nativescript-camera": "4"}})
        module_dir = install_module(project.project_dir, CAMERA)
        for platform in ("ios", "android"):
            native = module_dir / "platforms" / platform
            native.mkdir(parents=True)
            (native / "native.txt").write_text(platform)
        return module_dir

    @pytest.mark.asyncio
    async def test_prepare_all_then_cache_hit(self, project):
        """The first sweep integrates, the second skips everything."""
        add_platform(project, "ios")
        add_platform(project, "android")
        self.install_camera(project)
        hooks = {}
        service = make_service(FakePackageManager(), hooks)

        first = await service.prepare_all(project)
        second = await service.prepare_all(project)

        assert {(r.platform, r.outcome) for r in first} == {
            (Platform.IOS, PrepareOutcome.INTEGRATED),
            (Platform.ANDROID, PrepareOutcome.INTEGRATED),
        }
        assert all(r.outcome is PrepareOutcome.SKIPPED for r in second)
        hooks[Platform.IOS].integrate.assert_awaited_once()
        hooks[Platform.ANDROID].integrate.assert_awaited_once()

        ledger = json.loads(
            (project.platforms_dir / "android" / PLUGINS_BUILD_DATA_FILENAME).read_text()
        )
        assert list(ledger["nativescript-camera"]) == ["native.txt"]

    @pytest.mark.asyncio
    async def test_prepare_single_platform_change(self, project):
        """A change on one platform should only re-integrate that platform."""
        add_platform(project, "ios")
        add_platform(project, "android")
        module_dir = self.install_camera(project)
        hooks = {}
        service = make_service(FakePackageManager(), hooks)
        await service.prepare_all(project)

        (module_dir / "platforms" / "android" / "native.txt").write_text("changed")
        results = await service.prepare_all(project)

        outcomes = {r.platform: r.outcome for r in results}
        assert outcomes == {
            Platform.IOS: PrepareOutcome.SKIPPED,
            Platform.ANDROID: PrepareOutcome.INTEGRATED,
        }
        assert hooks[Platform.ANDROID].integrate.await_count == 2

    @pytest.mark.asyncio
    async def test_prepare_selected_platforms(self, project):
        """Should restrict the sweep to the requested platforms."""
        add_platform(project, "ios")
        add_platform(project, "android")
        self.install_camera(project)
        service = make_service(FakePackageManager())

        results = await service.prepare_all(project, ["Android"])

        assert [r.platform for r in results] == [Platform.ANDROID]

    @pytest.mark.asyncio
    async def test_prepare_native_code_single(self, project):
        """Should prepare one plugin for one platform."""
        add_platform(project, "android")
        self.install_camera(project)
        service = make_service(FakePackageManager())
        plugin = service.get_all_production_plugins(project)[0]

        assert await service.prepare_native_code(plugin, "android", project) is PrepareOutcome.INTEGRATED
        assert await service.prepare_native_code(plugin, "android", project) is PrepareOutcome.SKIPPED


GEOLOCATION = {
    "name": "nativescript-geolocation",
    "version": "5.1.0",
    "nativescript": {"platforms": {"android": "5.0.0"}},
}


class SlowPackageManager(FakePackageManager):
    """Fake npm whose installs yield to the event loop and record overlap."""

    def __init__(self, packages):
        super().__init__(packages)
        self.active = 0
        self.peak = 0

    async def install(self, specifier, project_dir, options):
        self.active += 1
        self.peak = max(self.peak, self.active)
        try:
            await asyncio.sleep(0.01)
            return await super().install(specifier, project_dir, options)
        finally:
            self.active -= 1


class TestConcurrency:
    """Test serialization of operations on one project."""

    @pytest.mark.asyncio
    async def test_concurrent_adds_serialize(self, project):
        """Two adds on one project should not overlap and both should be recorded."""
        pm = SlowPackageManager({"cam": CAMERA, "geo": GEOLOCATION})
        service = make_service(pm)

        results = await asyncio.gather(service.add("cam", project), service.add("geo", project))

        assert [r.plugin.name for r in results] == [
            "nativescript-camera",
            "nativescript-geolocation",
        ]
        assert pm.peak == 1
        dependencies = read_json(project.package_json_path)["dependencies"]
        assert set(dependencies) == {"nativescript-camera", "nativescript-geolocation"}

    @pytest.mark.asyncio
    async def test_concurrent_manifest_writes(self, project):
        """Concurrent manifest updates should all land."""
        service = make_service(FakePackageManager())
        names = [f"dep-{i}" for i in range(5)]

        await asyncio.gather(
            *(service.add_to_package_json(name, "1.0.0", False, project) for name in names),
            service.add_to_package_json("tool", "2.0.0", True, project),
        )

        manifest = read_json(project.package_json_path)
        assert manifest["dependencies"] == {name: "1.0.0" for name in names}
        assert manifest["devDependencies"] == {"tool": "2.0.0"}
