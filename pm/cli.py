"""
plugin CLI - plugin management for mobile application projects.

Usage:
    plugin add <specifier>       Install plugin (registry name or .tgz path)
    plugin remove <name>         Remove plugin
    plugin prepare [platform...] Integrate changed native code
    plugin list                  List installed plugins
    plugin init-config           Write nativeplug.toml with defaults
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import Any

from nativeplug.config import ConfigError, Options, load_options
from nativeplug.plugin.native_cache import NativeCacheError
from nativeplug.plugin.package_json import ManifestError
from nativeplug.plugin.package_manager import NpmPackageManager
from nativeplug.plugin.service import PluginError, PluginsService
from nativeplug.project import ProjectContext, ProjectError


def _add_package_manager_flags(parser: argparse.ArgumentParser, default: Any) -> None:
    """Options forwarded to the package manager."""
    parser.add_argument(
        "--force", action="store_true", default=default, help="Always run npm install"
    )
    parser.add_argument(
        "--ignore-scripts",
        action="store_true",
        default=default,
        help="Do not run npm lifecycle scripts",
    )
    parser.add_argument(
        "--disable-npm-install",
        action="store_true",
        default=default,
        help="Do not run a project-wide npm install",
    )
    parser.add_argument(
        "--framework-path", default=default, help="Local framework package"
    )
    parser.add_argument("--path", default=default, help="Project path override for npm")


def create_parser() -> argparse.ArgumentParser:
    """Create argument parser with one subcommand per operation."""
    parser = argparse.ArgumentParser(
        prog="plugin",
        description="Manage native plugins of a mobile application project",
    )
    parser.add_argument(
        "--project", default=None, help="Project directory (default: current)"
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Verbose output")
    _add_package_manager_flags(parser, None)

    # Same flags after the subcommand; SUPPRESS keeps values given before it
    shared = argparse.ArgumentParser(add_help=False)
    _add_package_manager_flags(shared, argparse.SUPPRESS)

    commands = parser.add_subparsers(dest="command")

    add = commands.add_parser("add", parents=[shared], help="Install plugin")
    add.add_argument("specifier", nargs="?", help="Plugin name, name@version or .tgz path")

    remove = commands.add_parser("remove", parents=[shared], help="Remove plugin")
    remove.add_argument("name", nargs="?", help="Plugin name")

    prepare = commands.add_parser(
        "prepare", parents=[shared], help="Prepare plugin native code"
    )
    prepare.add_argument("platforms", nargs="*", help="Platforms (default: all installed)")

    commands.add_parser("list", parents=[shared], help="List installed plugins")
    commands.add_parser("init-config", help="Write nativeplug.toml with defaults")

    return parser


def option_overrides(args: Any) -> dict[str, Any]:
    """Options given on the command line (unset flags are None)."""
    return {
        "disable_npm_install": getattr(args, "disable_npm_install", None),
        "framework_path": getattr(args, "framework_path", None),
        "ignore_scripts": getattr(args, "ignore_scripts", None),
        "path": getattr(args, "path", None),
        "force": getattr(args, "force", None),
    }


def project_from_args(args: Any) -> ProjectContext:
    return ProjectContext.from_dir(Path(args.project or "."))


def build_service(project: ProjectContext, args: Any) -> PluginsService:
    """Create a PluginsService with npm and options from file and flags."""
    options: Options = load_options(project.project_dir, option_overrides(args))
    return PluginsService(NpmPackageManager(), options=options)


def setup_logging(verbose: bool) -> None:
    """Send library log records to stderr."""
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))

    logger = logging.getLogger("nativeplug")
    logger.handlers.clear()
    logger.addHandler(handler)
    logger.setLevel(logging.DEBUG if verbose else logging.WARNING)


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the plugin CLI."""
    parser = create_parser()
    args = parser.parse_args(argv)
    setup_logging(args.verbose)

    if args.command is None:
        parser.print_help()
        return 0

    try:
        if args.command == "add":
            from pm.commands.add import add_command

            return add_command(args)

        elif args.command == "remove":
            from pm.commands.remove import remove_command

            return remove_command(args)

        elif args.command == "prepare":
            from pm.commands.prepare import prepare_command

            return prepare_command(args)

        elif args.command == "list":
            from pm.commands.query import list_command

            return list_command(args)

        elif args.command == "init-config":
            from pm.commands.query import init_config_command

            return init_config_command(args)

    except (PluginError, ConfigError, ManifestError, NativeCacheError, ProjectError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("\nInterrupted", file=sys.stderr)
        return 130
    except Exception as e:
        print(f"Unexpected error: {e}", file=sys.stderr)
        if args.verbose:
            import traceback

            traceback.print_exc()
        return 1

    parser.print_help()
    return 1


if __name__ == "__main__":
    sys.exit(main())
