"""
Option Schema.

This module declares the process options that drive plugin operations and
validates values read from the config file or the command line.

Key features:
- Typed option fields with defaults, descriptions and numeric bounds
- Validation with per-field error messages
- Default values generated from the schema
"""

from dataclasses import dataclass
from typing import Any


class SchemaError(Exception):
    """Base exception for schema-related errors."""

    pass


class ValidationError(SchemaError):
    """Raised when option validation fails."""

    pass


@dataclass
class OptionField:
    """
    Represents an option with type and constraints.

    Attributes:
        type_: The expected type of the option value
        default: Default value
        description: Human-readable description (written to the config file)
        min: Minimum value (numbers only)
        max: Maximum value (numbers only)
    """

    type_: type
    default: Any
    description: str = ""
    min: Any = None
    max: Any = None

    def __post_init__(self):
        if not isinstance(self.default, self.type_):
            raise SchemaError(
                f"Default value {self.default!r} does not match type {self.type_.__name__}"
            )
        if (self.min is not None or self.max is not None) and self.type_ not in (
            int,
            float,
        ):
            raise SchemaError(
                f"min/max constraints only supported for int, float. Got {self.type_.__name__}"
            )

    def validate(self, value: Any) -> None:
        """
        Validate a value against this field's constraints.

        Raises:
            ValidationError: If validation fails
        """
        # bool is an int subclass; keep the two apart
        if not isinstance(value, self.type_) or (
            self.type_ is int and isinstance(value, bool)
        ):
            raise ValidationError(
                f"Expected type {self.type_.__name__}, got {type(value).__name__}"
            )

        if self.min is not None and value < self.min:
            raise ValidationError(f"Value {value} is less than minimum {self.min}")
        if self.max is not None and value > self.max:
            raise ValidationError(f"Value {value} is greater than maximum {self.max}")


OPTIONS_SCHEMA: dict[str, OptionField] = {
    "disable_npm_install": OptionField(
        bool, False, "Do not run a project-wide npm install before adding plugins"
    ),
    "framework_path": OptionField(
        str, "", "Local path to the runtime framework package"
    ),
    "ignore_scripts": OptionField(
        bool, False, "Do not run npm lifecycle scripts of installed packages"
    ),
    "path": OptionField(str, "", "Project path override forwarded to npm"),
    "force": OptionField(
        bool, False, "Always run npm install, even if all dependencies are present"
    ),
    "hook_timeout": OptionField(
        int, 300, "Timeout in seconds for native integration hook scripts", min=1
    ),
}


def validate_options(options: dict[str, Any], schema: dict[str, OptionField]) -> None:
    """
    Validate a (possibly partial) option dictionary against a schema.

    Raises:
        ValidationError: If a key is unknown or a value is invalid
    """
    for key in options:
        if key not in schema:
            raise ValidationError(f"Unknown option: {key}")

    for name, value in options.items():
        try:
            schema[name].validate(value)
        except ValidationError as e:
            raise ValidationError(f"Option '{name}': {e}") from e


def generate_default_options(schema: dict[str, OptionField]) -> dict[str, Any]:
    """Default value of every option in the schema."""
    return {name: field.default for name, field in schema.items()}
