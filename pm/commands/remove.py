"""
plugin remove command.

Remove a plugin's native code from every installed platform and uninstall it.
"""

import asyncio
import sys
from typing import Any

from nativeplug.plugin.service import PlatformOutcome
from pm.cli import build_service, project_from_args


def remove_command(args: Any) -> int:
    """
    Execute remove command.

    Returns:
        Exit code (0 for success, non-zero for error)
    """
    if not args.name:
        print("Error: No plugin specified", file=sys.stderr)
        print("Usage: plugin remove <name>", file=sys.stderr)
        return 1

    return asyncio.run(remove_async(args))


async def remove_async(args: Any) -> int:
    """Async remove implementation."""
    project = project_from_args(args)
    service = build_service(project, args)

    result = await service.remove(args.name, project)

    for platform_result in result.platforms:
        platform = platform_result.platform.value
        if platform_result.outcome is PlatformOutcome.REMOVED:
            print(f"Successfully removed plugin {result.name} for {platform}.")
        else:
            print(
                f"Warning: Failed to remove plugin {result.name} for {platform}: "
                f"{platform_result.error}",
                file=sys.stderr,
            )

    if not result.uninstalled:
        print(f"Warning: Failed to uninstall package {result.name}", file=sys.stderr)
    elif not result.platforms:
        print(f"Successfully removed plugin {result.name}")
    return 0
