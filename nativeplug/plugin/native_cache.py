"""
Incremental Native-Build Cache.

This module decides whether a plugin's native assets must be re-integrated
into a platform's native project.

Key features:
- Content digests (sha256 of file bytes) for every file of a plugin's
  per-platform native folder, keyed by relative path
- One ledger per platform, persisted atomically next to the native project
- Missing or corrupt ledgers are treated as empty
- Integration runs only when the digest set changed, and the ledger is
  updated only after a successful integration
"""

import asyncio
import hashlib
import logging
from enum import Enum
from pathlib import Path
from typing import Callable

from nativeplug.fs import FileSystemError, enumerate_files, read_json, write_json
from nativeplug.plugin.classifier import PluginRecord
from nativeplug.plugin.hooks import NativeIntegrationHook
from nativeplug.project import PlatformTarget, ProjectContext

logger = logging.getLogger(__name__)

PLUGINS_BUILD_DATA_FILENAME = ".ns-plugins-build-data.json"
_CHUNK_SIZE = 1024 * 1024

FileHashes = dict[str, str]
Ledger = dict[str, FileHashes]


class NativeCacheError(Exception):
    """Base exception for native-build cache errors."""

    pass


class LedgerReadError(NativeCacheError):
    """Raised when a ledger file exists but cannot be used."""

    pass


class PrepareOutcome(Enum):
    """Result of preparing one plugin for one platform."""

    NO_NATIVE_CODE = "no-native-code"
    SKIPPED = "skipped"
    INTEGRATED = "integrated"
    FAILED = "failed"


def ledger_path(target: PlatformTarget) -> Path:
    return target.project_root / PLUGINS_BUILD_DATA_FILENAME


def hash_file(file_path: Path) -> str:
    """Digest of a file's bytes (timestamps and permissions play no part)."""
    digest = hashlib.sha256()
    with open(file_path, "rb") as f:
        for chunk in iter(lambda: f.read(_CHUNK_SIZE), b""):
            digest.update(chunk)
    return digest.hexdigest()


def generate_hashes(root: Path) -> FileHashes:
    """
    Digest every file below ``root``.

    Returns:
        relative posix path -> hex digest (empty if root does not exist)
    """
    return {
        path.relative_to(root).as_posix(): hash_file(path)
        for path in enumerate_files(root)
    }


def has_changes(old: FileHashes, new: FileHashes) -> bool:
    """True if any file was added, removed or changed."""
    return old != new


def read_ledger(path: Path) -> Ledger:
    """
    Load a platform ledger.

    Raises:
        LedgerReadError: If the file exists but is unreadable or malformed
    """
    if not path.exists():
        return {}

    try:
        data = read_json(path)
    except FileSystemError as e:
        raise LedgerReadError(str(e)) from e

    if not isinstance(data, dict):
        raise LedgerReadError(f"Ledger {path} must contain a JSON object")

    ledger: Ledger = {}
    for name, hashes in data.items():
        if isinstance(hashes, dict) and all(
            isinstance(v, str) for v in hashes.values()
        ):
            ledger[name] = dict(hashes)
        else:
            logger.warning("Ignoring malformed ledger entry for %s in %s", name, path)
    return ledger


def load_ledger(path: Path) -> Ledger:
    """Load a ledger, treating unreadable files as empty."""
    try:
        return read_ledger(path)
    except LedgerReadError as e:
        logger.warning("Discarding native build ledger: %s", e)
        return {}


class NativeBuildCache:
    """
    Gates native integration on content changes.

    The cache owns the per-platform ledgers; nothing else reads or writes
    them. Ledger updates are serialized per ledger file.
    """

    def __init__(self, hook_factory: Callable[[PlatformTarget], NativeIntegrationHook]):
        """
        Initialize NativeBuildCache.

        Args:
            hook_factory: Returns the native-integration hook for a platform
        """
        self._hook_factory = hook_factory
        self._locks: dict[Path, asyncio.Lock] = {}

    def _lock_for(self, path: Path) -> asyncio.Lock:
        key = path.resolve()
        if key not in self._locks:
            self._locks[key] = asyncio.Lock()
        return self._locks[key]

    def get_plugin_hashes(self, plugin_name: str, target: PlatformTarget) -> FileHashes | None:
        """Digest set recorded by the last successful integration, if any."""
        return load_ledger(ledger_path(target)).get(plugin_name)

    async def prepare_native_code(
        self,
        plugin: PluginRecord,
        target: PlatformTarget,
        project: ProjectContext,
    ) -> PrepareOutcome:
        """
        Integrate a plugin's native code for one platform if it changed.

        Args:
            plugin: Classified plugin
            target: Platform to prepare
            project: Owning project

        Returns:
            PrepareOutcome
        """
        native_dir = plugin.native_folder_path(target.platform)
        if not native_dir.is_dir():
            return PrepareOutcome.NO_NATIVE_CODE

        current = await asyncio.to_thread(generate_hashes, native_dir)
        path = ledger_path(target)

        async with self._lock_for(path):
            previous = load_ledger(path).get(plugin.name)
            if previous is not None and not has_changes(previous, current):
                logger.debug(
                    "Native code of %s for %s is up to date",
                    plugin.name,
                    target.platform.value,
                )
                return PrepareOutcome.SKIPPED

            hook = self._hook_factory(target)
            try:
                await hook.integrate(plugin, project)
            except Exception as e:
                logger.error(
                    "Failed to prepare native code of %s for %s: %s",
                    plugin.name,
                    target.platform.value,
                    e,
                )
                return PrepareOutcome.FAILED

            # Re-read so entries written since the first read are kept
            ledger = load_ledger(path)
            ledger[plugin.name] = current
            try:
                write_json(path, ledger)
            except FileSystemError as e:
                raise NativeCacheError(f"Failed to persist native build ledger: {e}") from e

        logger.info(
            "Prepared native code of %s for %s", plugin.name, target.platform.value
        )
        return PrepareOutcome.INTEGRATED
