"""
Package Manager Collaborator.

This module provides the npm-facing side of plugin installation.

Key features:
- PackageManager protocol (install / uninstall)
- InstallOptions forwarded from process configuration
- npm implementation running the npm executable as a subprocess
- Resolution of the installed package's name and version, reading a
  local tarball's own package.json when the manifest does not change
"""

import asyncio
import json
import logging
import tarfile
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from nativeplug.fs import FileSystemError, read_json
from nativeplug.project import NODE_MODULES, PACKAGE_JSON

logger = logging.getLogger(__name__)

TARBALL_SUFFIXES = (".tgz", ".tar.gz", ".tar")


class PackageManagerError(Exception):
    """Base exception for package manager errors."""

    pass


@dataclass(frozen=True)
class InstallOptions:
    """
    Options understood by the package manager.

    Attributes:
        save: Record the package in the project manifest
        disable_npm_install: Skip project-wide installs
        framework_path: Local path of the runtime framework package
        ignore_scripts: Do not run package lifecycle scripts
        path: Project path override
    """

    save: bool = False
    disable_npm_install: bool = False
    framework_path: str | None = None
    ignore_scripts: bool = False
    path: str | None = None


@dataclass(frozen=True)
class InstalledPackage:
    name: str
    version: str


class PackageManager(Protocol):
    async def install(
        self, specifier: str, project_dir: Path, options: InstallOptions
    ) -> InstalledPackage | None: ...

    async def uninstall(
        self, name: str, options: InstallOptions, project_dir: Path
    ) -> None: ...


def parse_specifier_name(specifier: str) -> str:
    """
    Extract the package name from a registry specifier.

    ``lodash@4`` -> ``lodash``, ``@scope/pkg@1.0.0`` -> ``@scope/pkg``.
    """
    if specifier.startswith("@"):
        scope_end = specifier.find("/")
        at = specifier.find("@", scope_end + 1 if scope_end != -1 else 1)
    else:
        at = specifier.find("@")
    return specifier if at == -1 else specifier[:at]


def is_tarball(specifier: str) -> bool:
    return specifier.endswith(TARBALL_SUFFIXES) and Path(specifier).is_file()


def read_tarball_package_name(tarball: Path) -> str:
    """
    Read the package name from a packed tarball.

    npm packs everything under one top-level folder (``package/`` by
    default); the package.json directly inside it is the package's own.

    Raises:
        PackageManagerError: If the archive is unreadable or names no package
    """
    try:
        with tarfile.open(tarball, "r:*") as archive:
            for member in archive.getmembers():
                parts = member.name.removeprefix("./").split("/")
                if len(parts) != 2 or parts[1] != PACKAGE_JSON or not member.isfile():
                    continue
                f = archive.extractfile(member)
                if f is None:
                    continue
                data = json.loads(f.read().decode("utf-8"))
                name = data.get("name") if isinstance(data, dict) else None
                if isinstance(name, str) and name:
                    return name
    except (tarfile.TarError, OSError, UnicodeDecodeError, ValueError) as e:
        raise PackageManagerError(f"Failed to read package tarball {tarball}: {e}") from e

    raise PackageManagerError(f"Package tarball {tarball} has no package.json with a name")


class NpmPackageManager:
    """Installs and uninstalls packages by running npm."""

    def __init__(self, executable: str = "npm", timeout: float | None = None):
        self.executable = executable
        self.timeout = timeout

    async def install(
        self, specifier: str, project_dir: Path, options: InstallOptions
    ) -> InstalledPackage | None:
        """
        Install a package, or the whole project when ``specifier`` is the
        project directory.

        Returns:
            The installed package, or None for a project-wide install

        Raises:
            PackageManagerError: If npm fails or the result cannot be read
        """
        project_dir = Path(project_dir)
        is_project_install = Path(specifier).resolve() == project_dir.resolve()

        if is_project_install:
            if options.disable_npm_install:
                logger.debug("Project install disabled, skipping npm install")
                return None
            await self._run(["install", *self._flags(options)], project_dir)
            return None

        before = _declared_names(project_dir)
        args = ["install", specifier, *self._flags(options)]
        if options.save:
            args.append("--save")
        await self._run(args, project_dir)

        added = sorted(_declared_names(project_dir) - before)
        if is_tarball(specifier):
            # Holds on re-add or upgrade too, when the manifest key already exists
            name = read_tarball_package_name(Path(specifier))
        elif len(added) == 1:
            name = added[0]
        else:
            name = parse_specifier_name(specifier)
        return InstalledPackage(name=name, version=_installed_version(name, project_dir))

    async def uninstall(
        self, name: str, options: InstallOptions, project_dir: Path
    ) -> None:
        args = ["uninstall", name, *self._flags(options)]
        if options.save:
            args.append("--save")
        await self._run(args, Path(project_dir))

    def _flags(self, options: InstallOptions) -> list[str]:
        return ["--ignore-scripts"] if options.ignore_scripts else []

    async def _run(self, args: list[str], cwd: Path) -> str:
        cmd = [self.executable, *args]
        logger.debug("Running %s in %s", " ".join(cmd), cwd)
        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                cwd=cwd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as e:
            raise PackageManagerError(
                f"{self.executable} command not found. Please install Node.js."
            ) from e

        try:
            stdout, stderr = await asyncio.wait_for(
                process.communicate(), timeout=self.timeout
            )
        except asyncio.TimeoutError as e:
            process.kill()
            await process.wait()
            raise PackageManagerError(
                f"{' '.join(cmd)} timed out after {self.timeout} seconds"
            ) from e

        out = stdout.decode(errors="replace")
        if process.returncode != 0:
            err = stderr.decode(errors="replace")
            raise PackageManagerError(
                f"{' '.join(cmd)} failed with exit code {process.returncode}: "
                f"{err or out}"
            )
        return out


def _declared_names(project_dir: Path) -> set[str]:
    try:
        data = read_json(project_dir / PACKAGE_JSON)
    except FileSystemError:
        return set()
    if not isinstance(data, dict):
        return set()
    names: set[str] = set()
    for section in ("dependencies", "devDependencies"):
        if isinstance(data.get(section), dict):
            names.update(data[section])
    return names


def _installed_version(name: str, project_dir: Path) -> str:
    path = project_dir / NODE_MODULES / name / PACKAGE_JSON
    try:
        data = read_json(path)
    except FileSystemError as e:
        raise PackageManagerError(f"Installed package {name} has no metadata: {e}") from e
    return str(data.get("version") or "")
