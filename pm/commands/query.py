"""
plugin list / plugin init-config commands.
"""

import asyncio
from typing import Any

from nativeplug.config import write_default_config
from pm.cli import build_service, project_from_args


def list_command(args: Any) -> int:
    """List plugins declared in the project's dependencies."""
    project = project_from_args(args)
    service = build_service(project, args)

    plugins = asyncio.run(service.get_all_installed_plugins(project))
    if not plugins:
        print("No plugins installed.")
        return 0

    print(f"{'Name':<40} {'Version':<12} Platforms")
    print("-" * 70)
    for plugin in plugins:
        platforms = ", ".join(sorted(plugin.per_platform_min_version or {})) or "-"
        print(f"{plugin.name:<40} {plugin.version:<12} {platforms}")
    return 0


def init_config_command(args: Any) -> int:
    """Write a commented options file with default values."""
    path = write_default_config(project_from_args(args).project_dir)
    print(f"Wrote {path}")
    return 0
