"""
Registry Configuration Schema.

This module declares the accepted keys of a ``[[registry]]`` table and
validates parsed entries against them.

Key features:
- Typed field definitions with constraints (min/max/choices)
- Per-transport field sets layered on a common base
- Required fields and rejection of unknown keys
"""

from dataclasses import dataclass
from typing import Any

SOURCE_TYPES = ["git", "http", "ftp", "sftp", "local", "network"]


class SchemaError(Exception):
    """Base exception for schema-related errors."""

    pass


class ValidationError(SchemaError):
    """Raised when value validation fails."""

    pass


@dataclass
class ConfigField:
    """
    Represents a configuration field with type and constraints.

    Attributes:
        type_: The expected type (or tuple of types) of the field value
        default: Default value for the field (None means no default)
        description: Human-readable description
        min: Minimum value (for numbers) or minimum length (for strings)
        max: Maximum value (for numbers) or maximum length (for strings)
        choices: List of allowed values (optional)
        required: Whether the key must be present
        secret: Whether the value must be masked when displayed
    """

    type_: type | tuple[type, ...]
    default: Any = None
    description: str = ""
    min: Any = None
    max: Any = None
    choices: list[Any] | None = None
    required: bool = False
    secret: bool = False

    def __post_init__(self):
        """Validate field definition."""
        if self.default is not None and not isinstance(self.default, self.type_):
            raise SchemaError(
                f"Default value {self.default!r} does not match type {self._type_name()}"
            )
        if self.choices is not None and self.default is not None:
            if self.default not in self.choices:
                raise SchemaError(
                    f"Default value {self.default!r} not in choices {self.choices}"
                )

    def _type_name(self) -> str:
        if isinstance(self.type_, tuple):
            return " | ".join(t.__name__ for t in self.type_)
        return self.type_.__name__

    def validate(self, value: Any) -> None:
        """
        Validate a value against this field's constraints.

        Args:
            value: The value to validate

        Raises:
            ValidationError: If validation fails
        """
        # bool is an int subclass; never accept it for numeric fields
        if isinstance(value, bool) and self.type_ in (int, float, (int, float)):
            raise ValidationError(f"Expected type {self._type_name()}, got bool")
        if not isinstance(value, self.type_):
            raise ValidationError(
                f"Expected type {self._type_name()}, got {type(value).__name__}"
            )

        if self.choices is not None and value not in self.choices:
            raise ValidationError(
                f"Value {value!r} not in allowed choices {self.choices}"
            )

        if isinstance(value, (int, float)) and not isinstance(value, bool):
            if self.min is not None and value < self.min:
                raise ValidationError(f"Value {value} is less than minimum {self.min}")
            if self.max is not None and value > self.max:
                raise ValidationError(
                    f"Value {value} is greater than maximum {self.max}"
                )

        if isinstance(value, str):
            if self.min is not None and len(value) < self.min:
                raise ValidationError(
                    f"String length {len(value)} is less than minimum {self.min}"
                )
            if self.max is not None and len(value) > self.max:
                raise ValidationError(
                    f"String length {len(value)} is greater than maximum {self.max}"
                )


COMMON_FIELDS: dict[str, ConfigField] = {
    "name": ConfigField(str, None, "Registry name used in the lock file", min=1, required=True),
    "type": ConfigField(str, "git", "Transport type", choices=SOURCE_TYPES),
    "description": ConfigField(str, "", "Human readable description"),
    "cache_ttl": ConfigField(int, 3600, "Seconds a fetched module index stays cached", min=0),
}

TRANSPORT_FIELDS: dict[str, dict[str, ConfigField]] = {
    "git": {
        "url": ConfigField(str, None, "Repository URL", min=1, required=True),
        "branch": ConfigField(str, "main", "Branch or ref to read from"),
        "private": ConfigField(bool, False, "Never retry private repositories anonymously"),
        "personal_token": ConfigField(str, None, "Access token", secret=True),
        "token": ConfigField(str, None, "Access token (alias)", secret=True),
    },
    "http": {
        "base_url": ConfigField(str, None, "Base URL of the registry", min=1, required=True),
        "username": ConfigField(str, None, "Basic auth user"),
        "password": ConfigField(str, None, "Basic auth password", secret=True),
        "timeout": ConfigField(int, 30, "Request timeout in seconds", min=1),
    },
    "ftp": {
        "host": ConfigField(str, None, "FTP host"),
        "port": ConfigField(int, 21, "FTP port", min=1, max=65535),
        "username": ConfigField(str, None, "FTP user"),
        "password": ConfigField(str, None, "FTP password", secret=True),
        "base_path": ConfigField(str, "/", "Registry root on the server"),
        "passive": ConfigField(bool, True, "Use passive mode"),
        "ssl": ConfigField(bool, False, "Use explicit FTPS"),
    },
    "sftp": {
        "host": ConfigField(str, None, "SFTP host", min=1, required=True),
        "port": ConfigField(int, 22, "SSH port", min=1, max=65535),
        "username": ConfigField(str, None, "SSH user"),
        "password": ConfigField(str, None, "SSH password", secret=True),
        "key_path": ConfigField(str, None, "Private key file"),
        "key_passphrase": ConfigField(str, None, "Private key passphrase", secret=True),
        "base_path": ConfigField(str, "/", "Registry root on the server"),
        "strict_host_key": ConfigField(bool, True, "Reject host keys missing from known_hosts"),
    },
    "local": {
        "path": ConfigField(str, None, "Registry directory", min=1, required=True),
    },
    "network": {
        "path": ConfigField(str, None, "smb:// URL or UNC path", min=1, required=True),
    },
}


def schema_for(source_type: str) -> dict[str, ConfigField]:
    """
    Get the full field set for a transport type.

    Args:
        source_type: One of SOURCE_TYPES

    Returns:
        Schema dictionary (field_name -> ConfigField)
    """
    schema = dict(COMMON_FIELDS)
    schema.update(TRANSPORT_FIELDS.get(source_type, {}))
    return schema


def validate_config(config: dict[str, Any], schema: dict[str, ConfigField]) -> None:
    """
    Validate a configuration dictionary against a schema.

    Args:
        config: The configuration dictionary to validate
        schema: The schema dictionary (field_name -> ConfigField)

    Raises:
        ValidationError: If validation fails
    """
    for key in config:
        if key not in schema:
            raise ValidationError(f"Unknown configuration field: {key}")

    for field_name, field in schema.items():
        if field_name not in config:
            if field.required:
                raise ValidationError(f"Missing required field: {field_name}")
            continue

        try:
            field.validate(config[field_name])
        except ValidationError as e:
            raise ValidationError(f"Field '{field_name}': {e}") from e


def apply_defaults(config: dict[str, Any], schema: dict[str, ConfigField]) -> dict[str, Any]:
    """
    Fill in defaults for absent optional fields.

    Args:
        config: Validated configuration
        schema: The schema dictionary (field_name -> ConfigField)

    Returns:
        A new dictionary with defaults applied
    """
    result = {
        name: field.default
        for name, field in schema.items()
        if field.default is not None
    }
    result.update(config)
    return result


def mask_secrets(config: dict[str, Any]) -> dict[str, Any]:
    """Return a copy of a registry config safe to log or print."""
    schema = schema_for(config.get("type", "git"))
    return {
        key: ("***" if key in schema and schema[key].secret and value else value)
        for key, value in config.items()
    }
