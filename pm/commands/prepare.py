"""
plugin prepare command.

Integrate changed plugin native code into the installed platforms.
"""

import asyncio
from typing import Any

from nativeplug.plugin.native_cache import PrepareOutcome
from pm.cli import build_service, project_from_args


def prepare_command(args: Any) -> int:
    """
    Execute prepare command.

    Returns:
        Exit code (0 for success, non-zero for error)
    """
    return asyncio.run(prepare_async(args))


async def prepare_async(args: Any) -> int:
    """Async prepare implementation."""
    project = project_from_args(args)
    service = build_service(project, args)

    results = await service.prepare_all(project, args.platforms or None)

    for result in results:
        if result.outcome is PrepareOutcome.NO_NATIVE_CODE and not args.verbose:
            continue
        print(f"{result.plugin} [{result.platform.value}]: {result.outcome.value}")

    failed = sum(1 for r in results if r.outcome is PrepareOutcome.FAILED)
    if args.verbose:
        print(f"\nPrepared: {len(results) - failed}, Failed: {failed}")
    return 0
