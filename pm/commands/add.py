"""
plugin add command.

Install a plugin from the npm registry or a local .tgz package.
"""

import asyncio
import sys
from typing import Any

from pm.cli import build_service, project_from_args


def add_command(args: Any) -> int:
    """
    Execute add command.

    Args:
        args: Parsed command-line arguments

    Returns:
        Exit code (0 for success, non-zero for error)
    """
    if not args.specifier:
        print("Error: No plugin specified", file=sys.stderr)
        print("Usage: plugin add <specifier>", file=sys.stderr)
        return 1

    return asyncio.run(add_async(args))


async def add_async(args: Any) -> int:
    """Async add implementation."""
    project = project_from_args(args)
    service = build_service(project, args)

    result = await service.add(args.specifier, project)

    print(f"Successfully installed plugin {result.plugin.name}.")
    for platform, compatible in result.compatibility.items():
        status = "compatible" if compatible else "not compatible (see warnings)"
        print(f"  {platform.value}: {status}")
    return 0
