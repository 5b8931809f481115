"""
Forge Registry Configuration - TOML-based registry list.

This module provides:
- Registry entries parsed from ``config/source_list.toml``
- Schema validation per transport type
- The always-available official registry
- Generation of a commented starter file

Example usage:
    from forgepm.config import load_source_list

    settings = load_source_list(Path("config/source_list.toml"))
    for registry in settings.registries:
        print(registry.name, registry.type)
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from forgepm.config.schema import (
    ValidationError,
    apply_defaults,
    mask_secrets,
    schema_for,
    validate_config,
)
from forgepm.config.toml_handler import TOMLError, generate_source_list, read_toml, write_toml

DEFAULT_CACHE_TTL = 3600

DEFAULT_REGISTRY: dict[str, Any] = {
    "name": "forge-engine-modules",
    "type": "git",
    "url": "https://github.com/forge-engine/modules",
    "branch": "main",
    "description": "Forge Kernel Official Modules",
}


class ConfigError(Exception):
    """Base exception for registry configuration errors."""

    pass


@dataclass
class RegistryConfig:
    """
    A configured module registry.

    Attributes:
        name: Registry name, recorded in the lock file
        type: Transport type (git, http, ftp, sftp, local, network)
        description: Human-readable description
        cache_ttl: Module index cache lifetime in seconds
        options: Transport-specific settings (url, host, path, credentials...)
    """

    name: str
    type: str = "git"
    description: str = ""
    cache_ttl: int = DEFAULT_CACHE_TTL
    options: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RegistryConfig":
        """
        Validate a raw registry table and build a RegistryConfig.

        Raises:
            ConfigError: If the table does not match its transport schema
        """
        source_type = data.get("type", "git")
        schema = schema_for(source_type)
        try:
            validate_config(data, schema)
        except ValidationError as e:
            name = data.get("name", "<unnamed>")
            raise ConfigError(f"Invalid registry '{name}': {e}") from e

        values = apply_defaults(data, schema)
        return cls(
            name=values.pop("name"),
            type=values.pop("type"),
            description=values.pop("description", ""),
            cache_ttl=values.pop("cache_ttl", DEFAULT_CACHE_TTL),
            options=values,
        )

    def to_dict(self) -> dict[str, Any]:
        """Flatten back into the table shape consumed by the source factory."""
        return {
            "name": self.name,
            "type": self.type,
            "description": self.description,
            "cache_ttl": self.cache_ttl,
            **self.options,
        }

    def masked(self) -> dict[str, Any]:
        """Table with credentials hidden, for logs and diagnostics."""
        return mask_secrets(self.to_dict())

    @property
    def location(self) -> str:
        """Primary location of the registry (URL, host or path)."""
        for key in ("url", "base_url", "path", "host"):
            if self.options.get(key):
                return str(self.options[key])
        return ""


@dataclass
class SourceList:
    """Parsed contents of the registry list file."""

    registries: list[RegistryConfig]
    cache_ttl: int = DEFAULT_CACHE_TTL


def load_source_list(file_path: Path) -> SourceList:
    """
    Load the registry list, falling back to the official registry.

    A missing file is not an error: the official registry is used alone.

    Args:
        file_path: Path to source_list.toml

    Returns:
        SourceList with every configured registry

    Raises:
        ConfigError: If the file is malformed or a registry is invalid
    """
    data: dict[str, Any] = {}
    if file_path.exists():
        try:
            data = read_toml(file_path)
        except TOMLError as e:
            raise ConfigError(str(e)) from e

    cache_ttl = data.get("cache_ttl", DEFAULT_CACHE_TTL)
    if not isinstance(cache_ttl, int) or isinstance(cache_ttl, bool) or cache_ttl < 0:
        raise ConfigError(f"cache_ttl must be a non-negative integer, got {cache_ttl!r}")

    raw_registries = data.get("registry", [])
    if not isinstance(raw_registries, list):
        raise ConfigError("'registry' must be an array of tables ([[registry]])")

    registries = []
    seen: set[str] = set()
    for raw in raw_registries:
        if not isinstance(raw, dict):
            raise ConfigError("Each [[registry]] entry must be a table")
        raw = {"cache_ttl": cache_ttl, **raw}
        registry = RegistryConfig.from_dict(raw)
        if registry.name in seen:
            raise ConfigError(f"Duplicate registry name: {registry.name}")
        seen.add(registry.name)
        registries.append(registry)

    if data.get("use_default_registry", True) and DEFAULT_REGISTRY["name"] not in seen:
        registries.append(
            RegistryConfig.from_dict({"cache_ttl": cache_ttl, **DEFAULT_REGISTRY})
        )

    return SourceList(registries=registries, cache_ttl=cache_ttl)


def init_source_list(file_path: Path) -> bool:
    """
    Write a starter source_list.toml unless one exists.

    Returns:
        True if the file was created
    """
    if file_path.exists():
        return False
    document = generate_source_list([dict(DEFAULT_REGISTRY)])
    try:
        write_toml(file_path, document)
    except TOMLError as e:
        raise ConfigError(f"Failed to write {file_path}: {e}") from e
    return True


__all__ = [
    "DEFAULT_REGISTRY",
    "ConfigError",
    "RegistryConfig",
    "SourceList",
    "init_source_list",
    "load_source_list",
]
