"""Shared fixtures: on-disk projects and a fake package manager."""

import json
import shutil
from pathlib import Path
from typing import Any

import pytest

from nativeplug.plugin.package_manager import InstalledPackage, InstallOptions
from nativeplug.project import ProjectContext


def write_json(path: Path, data: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data, indent=2), encoding="utf-8")


def read_json(path: Path) -> Any:
    return json.loads(path.read_text(encoding="utf-8"))


def install_module(project_dir: Path, package_data: dict[str, Any]) -> Path:
    """Place a package under node_modules and return its directory."""
    module_dir = project_dir / "node_modules" / package_data["name"]
    write_json(module_dir / "package.json", package_data)
    return module_dir


@pytest.fixture
def project_dir(tmp_path):
    """A project with a manifest, runtime versions and an empty node_modules."""
    root = tmp_path / "MyApp"
    write_json(
        root / "package.json",
        {
            "name": "my-app",
            "nativescript": {
                "id": "org.example.myapp",
                "tns-android": {"version": "6.0.0"},
                "tns-ios": {"version": "5.2.0"},
            },
            "dependencies": {},
            "devDependencies": {},
        },
    )
    (root / "node_modules").mkdir()
    return root


@pytest.fixture
def project(project_dir):
    return ProjectContext.from_dir(project_dir)


class FakePackageManager:
    """
    In-memory stand-in for npm.

    ``packages`` maps an install specifier to the package.json it installs.
    """

    def __init__(self, packages: dict[str, dict[str, Any]] | None = None):
        self.packages = packages or {}
        self.installs: list[tuple[str, InstallOptions]] = []
        self.uninstalls: list[str] = []
        self.fail_uninstall: Exception | None = None
        self.saves_to_manifest = True

    async def install(self, specifier, project_dir, options):
        self.installs.append((specifier, options))
        project_dir = Path(project_dir)
        if Path(specifier).resolve() == project_dir.resolve():
            return None

        data = self.packages[specifier]
        install_module(project_dir, data)
        if options.save and self.saves_to_manifest:
            manifest = read_json(project_dir / "package.json")
            manifest.setdefault("dependencies", {})[data["name"]] = f"^{data['version']}"
            write_json(project_dir / "package.json", manifest)
        return InstalledPackage(name=data["name"], version=data["version"])

    async def uninstall(self, name, options, project_dir):
        self.uninstalls.append(name)
        if self.fail_uninstall is not None:
            raise self.fail_uninstall

        project_dir = Path(project_dir)
        shutil.rmtree(project_dir / "node_modules" / name, ignore_errors=True)
        if options.save:
            manifest = read_json(project_dir / "package.json")
            manifest.get("dependencies", {}).pop(name, None)
            write_json(project_dir / "package.json", manifest)


@pytest.fixture
def package_manager():
    return FakePackageManager()
