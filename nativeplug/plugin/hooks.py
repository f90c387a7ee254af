"""
Native Integration Hooks.

This module provides the per-platform native-integration collaborator.

Key features:
- NativeIntegrationHook protocol (integrate / remove)
- Script-backed default implementation: hook discovery in the project's
  hooks/ directory, environment variable injection, subprocess execution
  with timeout and exit code handling
"""

import asyncio
import logging
import os
import stat
import subprocess
import sys
from enum import Enum
from pathlib import Path
from typing import Protocol

from nativeplug.plugin.classifier import PluginRecord
from nativeplug.project import Platform, ProjectContext

logger = logging.getLogger(__name__)

HOOKS_DIR = "hooks"


class HookError(Exception):
    """Raised when a native-integration hook fails."""

    pass


class HookType(Enum):
    """Hook type enumeration."""

    PREPARE_NATIVE = "prepare-native"
    REMOVE_NATIVE = "remove-native"


class NativeIntegrationHook(Protocol):
    async def integrate(self, plugin: PluginRecord, project: ProjectContext) -> None: ...

    async def remove(self, plugin: PluginRecord, project: ProjectContext) -> None: ...


class ScriptIntegrationHook:
    """
    Runs project-provided scripts to merge or remove plugin native code.

    Scripts are looked up in ``hooks/<platform>/`` first, then ``hooks/``.
    A missing script means the platform needs no extra work.
    """

    def __init__(self, platform: Platform, timeout: int = 300):
        self.platform = Platform.parse(platform)
        self.timeout = timeout

    async def integrate(self, plugin: PluginRecord, project: ProjectContext) -> None:
        await asyncio.to_thread(
            execute_hook, project, self.platform, HookType.PREPARE_NATIVE, plugin,
            self.timeout,
        )

    async def remove(self, plugin: PluginRecord, project: ProjectContext) -> None:
        await asyncio.to_thread(
            execute_hook, project, self.platform, HookType.REMOVE_NATIVE, plugin,
            self.timeout,
        )


def build_hook_env(
    project: ProjectContext, platform: Platform, plugin: PluginRecord
) -> dict[str, str]:
    """Environment variables describing the plugin to a hook script."""
    env = {
        "NATIVEPLUG_PROJECT_DIR": str(project.project_dir),
        "NATIVEPLUG_PLATFORM": platform.value,
        "NATIVEPLUG_PLUGIN_NAME": plugin.name,
        "NATIVEPLUG_PLUGIN_VERSION": plugin.version,
        "NATIVEPLUG_PLUGIN_DIR": str(plugin.full_path),
        "NATIVEPLUG_NATIVE_DIR": str(plugin.native_folder_path(platform)),
    }
    for key, value in plugin.variables.items():
        env[f"NATIVEPLUG_VAR_{_env_name(key)}"] = str(value)
    return env


def execute_hook(
    project: ProjectContext,
    platform: Platform,
    hook_type: HookType,
    plugin: PluginRecord,
    timeout: int = 300,
) -> bool:
    """
    Execute a native-integration hook for a plugin.

    Args:
        project: Project the plugin belongs to
        platform: Platform being integrated
        hook_type: Type of hook to execute
        plugin: Plugin being integrated or removed
        timeout: Timeout in seconds

    Returns:
        True if a script ran, False if none was found

    Raises:
        HookError: If hook execution fails
    """
    hook_path = find_hook(project.project_dir, platform, hook_type)
    if hook_path is None:
        logger.debug("No %s hook for %s", hook_type.value, platform.value)
        return False

    env = os.environ.copy()
    env.update(build_hook_env(project, platform, plugin))
    env["NATIVEPLUG_HOOK_TYPE"] = hook_type.value

    cmd = (
        [sys.executable, str(hook_path)]
        if hook_path.suffix == ".py"
        else [str(hook_path)]
    )

    try:
        result = subprocess.run(
            cmd,
            cwd=project.project_dir,
            env=env,
            capture_output=True,
            text=True,
            timeout=timeout,
            check=False,
        )
    except subprocess.TimeoutExpired as e:
        raise HookError(
            f"Hook {hook_type.value} timed out after {timeout} seconds"
        ) from e
    except OSError as e:
        raise HookError(f"Failed to execute hook {hook_type.value}: {e}") from e

    if result.returncode != 0:
        raise HookError(
            f"Hook {hook_type.value} failed for {plugin.name} on {platform.value} "
            f"with exit code {result.returncode}:\n"
            f"stdout: {result.stdout}\n"
            f"stderr: {result.stderr}"
        )
    return True


def find_hook(project_dir: Path, platform: Platform, hook_type: HookType) -> Path | None:
    """
    Find a hook script.

    Looks in ``hooks/<platform>/`` and then ``hooks/`` for
    ``<hook>.sh``, ``<hook>.bat``, ``<hook>.ps1`` or ``<hook>.py``.
    """
    hooks_dir = Path(project_dir) / HOOKS_DIR
    for directory in (hooks_dir / platform.value, hooks_dir):
        if not directory.is_dir():
            continue

        for ext in (".sh", ".bat", ".ps1", ".py"):
            hook_path = directory / f"{hook_type.value}{ext}"
            if not hook_path.is_file():
                continue
            if ext == ".sh":
                try:
                    hook_path.chmod(hook_path.stat().st_mode | stat.S_IEXEC)
                except OSError:
                    pass  # Ignore chmod errors on Windows
            return hook_path

    return None


def _env_name(key: str) -> str:
    return "".join(c if c.isalnum() else "_" for c in str(key)).upper()
