"""
Plugin Options - TOML-based configuration of plugin operations.

Options are resolved in three layers: schema defaults, the ``[plugins]``
table of ``<project>/nativeplug.toml``, then explicit overrides (CLI flags).

Example usage:
    from nativeplug.config import load_options

    options = load_options(project_dir, {"ignore_scripts": True})
    service = PluginsService(..., options=options)
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Any

from nativeplug.config.schema import (
    OPTIONS_SCHEMA,
    ValidationError,
    generate_default_options,
    validate_options,
)
from nativeplug.config.toml_handler import (
    TOMLError,
    generate_toml_from_schema,
    read_toml,
    write_toml,
)
from nativeplug.plugin.package_manager import InstallOptions

CONFIG_FILENAME = "nativeplug.toml"
CONFIG_SECTION = "plugins"


class ConfigError(Exception):
    """Base exception for config API errors."""

    pass


@dataclass(frozen=True)
class Options:
    """Resolved process options."""

    disable_npm_install: bool = False
    framework_path: str = ""
    ignore_scripts: bool = False
    path: str = ""
    force: bool = False
    hook_timeout: int = 300

    def install_options(self, save: bool = True) -> InstallOptions:
        """Package manager options for plugin installs."""
        return InstallOptions(
            save=save,
            disable_npm_install=self.disable_npm_install,
            framework_path=self.framework_path or None,
            ignore_scripts=self.ignore_scripts,
            path=self.path or None,
        )


def config_path(project_dir: Path) -> Path:
    return Path(project_dir) / CONFIG_FILENAME


def load_options(project_dir: Path, overrides: dict[str, Any] | None = None) -> Options:
    """
    Resolve options for a project.

    Args:
        project_dir: Project root
        overrides: Values that win over the config file (None values ignored)

    Returns:
        Options

    Raises:
        ConfigError: If the config file is invalid or an override is invalid
    """
    values = generate_default_options(OPTIONS_SCHEMA)

    path = config_path(project_dir)
    if path.exists():
        try:
            data = read_toml(path)
        except TOMLError as e:
            raise ConfigError(str(e)) from e

        section = data.get(CONFIG_SECTION, {})
        if not isinstance(section, dict):
            raise ConfigError(f"[{CONFIG_SECTION}] in {path} must be a table")
        try:
            validate_options(section, OPTIONS_SCHEMA)
        except ValidationError as e:
            raise ConfigError(f"Invalid config file {path}: {e}") from e
        values.update(section)

    explicit = {k: v for k, v in (overrides or {}).items() if v is not None}
    try:
        validate_options(explicit, OPTIONS_SCHEMA)
    except ValidationError as e:
        raise ConfigError(str(e)) from e
    values.update(explicit)

    return Options(**values)


def write_default_config(project_dir: Path) -> Path:
    """
    Write a commented config file with default values.

    Raises:
        ConfigError: If the file already exists or cannot be written
    """
    path = config_path(project_dir)
    if path.exists():
        raise ConfigError(f"Config file already exists: {path}")

    content = generate_toml_from_schema(
        CONFIG_SECTION, OPTIONS_SCHEMA, generate_default_options(OPTIONS_SCHEMA)
    )
    try:
        write_toml(path, content)
    except TOMLError as e:
        raise ConfigError(str(e)) from e
    return path


__all__ = [
    "CONFIG_FILENAME",
    "ConfigError",
    "Options",
    "config_path",
    "load_options",
    "write_default_config",
]
