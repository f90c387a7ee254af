"""
TOML File I/O Handler.

This module provides TOML parsing and writing for the options file.

Key features:
- Parse TOML files using tomllib
- Write TOML files using tomlkit, atomically
- Generate TOML from the option schema with descriptive comments
"""

import tomllib
from pathlib import Path
from typing import Any

import tomlkit

from nativeplug.config.schema import OptionField
from nativeplug.fs import FileSystemError, atomic_write_text


class TOMLError(Exception):
    """Base exception for TOML-related errors."""

    pass


def read_toml(file_path: Path) -> dict[str, Any]:
    """
    Read and parse a TOML file.

    Raises:
        TOMLError: If file cannot be read or parsed
    """
    try:
        with open(file_path, "rb") as f:
            return tomllib.load(f)
    except FileNotFoundError as e:
        raise TOMLError(f"TOML file not found: {file_path}") from e
    except tomllib.TOMLDecodeError as e:
        raise TOMLError(f"Failed to parse TOML file {file_path}: {e}") from e
    except OSError as e:
        raise TOMLError(f"Failed to read TOML file {file_path}: {e}") from e


def write_toml(file_path: Path, content: str | dict[str, Any]) -> None:
    """
    Write a TOML document.

    Args:
        file_path: Path to the TOML file
        content: Rendered TOML text, or data to render with tomlkit

    Raises:
        TOMLError: If file cannot be written
    """
    text = content if isinstance(content, str) else tomlkit.dumps(content)
    try:
        atomic_write_text(file_path, text)
    except FileSystemError as e:
        raise TOMLError(f"Failed to write TOML file {file_path}: {e}") from e


def generate_toml_from_schema(
    section: str, schema: dict[str, OptionField], values: dict[str, Any]
) -> str:
    """
    Render a schema section with one comment per option.

    Args:
        section: Table name
        schema: Option schema
        values: Option values (defaults used for missing ones)

    Returns:
        TOML string with comments
    """
    doc = tomlkit.document()
    doc.add(tomlkit.comment("Plugin management options"))
    doc.add(tomlkit.nl())

    table = tomlkit.table()
    for name, field in schema.items():
        if field.description:
            table.add(tomlkit.comment(field.description))

        constraints = []
        if field.min is not None:
            constraints.append(f"min: {field.min}")
        if field.max is not None:
            constraints.append(f"max: {field.max}")
        if constraints:
            table.add(tomlkit.comment(f"Constraints: {', '.join(constraints)}"))

        table.add(name, values.get(name, field.default))
        table.add(tomlkit.nl())

    doc.add(section, table)
    return tomlkit.dumps(doc)
