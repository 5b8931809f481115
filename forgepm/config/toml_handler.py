"""
TOML File I/O Handler.

This module reads and writes the registry list (``config/source_list.toml``).

Key features:
- Parse TOML files using tomllib
- Write TOML files using tomlkit (preserves comments and formatting)
- Generate a commented registry list from the schema
"""

import tomllib
from pathlib import Path
from typing import Any

import tomlkit

from forgepm.config.schema import ConfigField, schema_for


class TOMLError(Exception):
    """Base exception for TOML-related errors."""

    pass


def read_toml(file_path: Path) -> dict[str, Any]:
    """
    Read and parse a TOML file.

    Args:
        file_path: Path to the TOML file

    Returns:
        Parsed TOML data as dictionary

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


def write_toml(file_path: Path, data: dict[str, Any] | tomlkit.TOMLDocument) -> None:
    """
    Write data to a TOML file using tomlkit.

    Args:
        file_path: Path to the TOML file
        data: Data or tomlkit document to write

    Raises:
        TOMLError: If file cannot be written
    """
    try:
        file_path.parent.mkdir(parents=True, exist_ok=True)

        with open(file_path, "w", encoding="utf-8") as f:
            tomlkit.dump(data, f)
    except (OSError, TypeError, ValueError) as e:
        raise TOMLError(f"Failed to write TOML file {file_path}: {e}") from e


def _registry_table(registry: dict[str, Any]) -> tomlkit.items.Table:
    """Build one ``[[registry]]`` table with field descriptions as comments."""
    schema = schema_for(registry.get("type", "git"))
    table = tomlkit.table()

    for field_name, value in registry.items():
        field: ConfigField | None = schema.get(field_name)
        if field is not None and field.description:
            table.add(tomlkit.comment(field.description))
        if field is not None and field.choices is not None:
            table.add(tomlkit.comment(f"Choices: {', '.join(field.choices)}"))
        table.add(field_name, value)

    return table


def generate_source_list(
    registries: list[dict[str, Any]],
    cache_ttl: int = 3600,
    use_default_registry: bool = True,
) -> tomlkit.TOMLDocument:
    """
    Generate a source_list.toml document with descriptive comments.

    Args:
        registries: Registry tables to include
        cache_ttl: Global manifest cache TTL in seconds
        use_default_registry: Whether the official registry is appended

    Returns:
        tomlkit document, ready for write_toml or tomlkit.dumps
    """
    doc = tomlkit.document()
    doc.add(tomlkit.comment("Module registries for the Forge package manager"))
    doc.add(tomlkit.comment("Credentials may be left out and supplied through the environment"))
    doc.add(tomlkit.nl())

    doc.add(tomlkit.comment("Seconds a fetched module index stays cached"))
    doc.add("cache_ttl", cache_ttl)
    doc.add(tomlkit.comment("Append the official forge-engine registry when not listed"))
    doc.add("use_default_registry", use_default_registry)
    doc.add(tomlkit.nl())

    tables = tomlkit.aot()
    for registry in registries:
        tables.append(_registry_table(registry))
    if registries:
        doc.add("registry", tables)

    return doc
