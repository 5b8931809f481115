"""
Registry Module Index.

This module parses and validates a registry's ``modules.json``.

Key features:
- Typed module and version entries
- Required integrity hashes (SHA-256 hex)
- Version ordering for registries that omit ``latest``
"""

import re
from dataclasses import dataclass, field
from functools import cmp_to_key
from typing import Any

from forgepm.package.errors import ManifestInvalid

_SHA256 = re.compile(r"^[0-9a-fA-F]{64}$")
_MODULE_NAME = re.compile(r"^[a-z0-9][a-z0-9._-]*$")


@dataclass
class VersionEntry:
    """
    One published version of a module.

    Attributes:
        version: Version string
        url: Module path inside the registry
        integrity: SHA-256 hex digest of the archive
        description: Version description
    """

    version: str
    url: str
    integrity: str
    description: str = ""


@dataclass
class ModuleEntry:
    """
    A module listed in a registry index.

    Attributes:
        name: Module name
        latest: Version installed when none is requested
        versions: Published versions keyed by version string
    """

    name: str
    latest: str
    versions: dict[str, VersionEntry] = field(default_factory=dict)

    @property
    def description(self) -> str:
        entry = self.versions.get(self.latest)
        return entry.description if entry else ""

    def resolve(self, version: str | None) -> VersionEntry | None:
        """Pick the requested version, or ``latest`` when None or "latest"."""
        if version is None or version == "latest":
            version = self.latest
        return self.versions.get(version)


def _identifiers(text: str) -> tuple:
    return tuple(
        (0, int(part), "") if part.isdigit() else (1, 0, part)
        for part in re.split(r"[.\-]", text)
        if part
    )


def _version_key(version: str) -> tuple[tuple, tuple]:
    """Split into (release, pre-release) identifier keys; build metadata is ignored."""
    release, _, prerelease = version.lstrip("vV").split("+", 1)[0].partition("-")
    return _identifiers(release), _identifiers(prerelease)


def compare_versions(v1: str, v2: str) -> int:
    """
    Compare two version strings.

    Numeric components compare numerically and sort before textual ones.
    A pre-release (``1.0.0-beta``) sorts below its release (``1.0.0``).

    Returns:
        -1 if v1 < v2, 0 if equal, 1 if v1 > v2
    """
    (r1, p1), (r2, p2) = _version_key(v1), _version_key(v2)
    # Pad shorter release with zeros
    width = max(len(r1), len(r2))
    r1 += ((0, 0, ""),) * (width - len(r1))
    r2 += ((0, 0, ""),) * (width - len(r2))
    if r1 != r2:
        return (r1 > r2) - (r1 < r2)
    if p1 == p2:
        return 0
    if not p1 or not p2:
        return -1 if p1 else 1
    return (p1 > p2) - (p1 < p2)


def sort_versions(versions: list[str]) -> list[str]:
    """Sort versions in ascending order."""
    return sorted(versions, key=cmp_to_key(compare_versions))


def parse_version_entry(module: str, version: str, data: Any) -> VersionEntry:
    """
    Validate one version entry.

    Raises:
        ManifestInvalid: If the entry is malformed
    """
    if not isinstance(data, dict):
        raise ManifestInvalid(f"Version entry {module}@{version} must be an object")

    integrity = data.get("integrity")
    if not isinstance(integrity, str) or not _SHA256.match(integrity):
        raise ManifestInvalid(
            f"Version entry {module}@{version} has no valid SHA-256 integrity hash"
        )

    url = data.get("url", f"{module}/{version}")
    if not isinstance(url, str) or not url.strip("/"):
        raise ManifestInvalid(f"Version entry {module}@{version} has an invalid url: {url!r}")

    description = data.get("description", "")
    if not isinstance(description, str):
        raise ManifestInvalid(f"'description' of {module}@{version} must be a string")

    return VersionEntry(
        version=version, url=url, integrity=integrity.lower(), description=description
    )


def parse_module_entry(name: str, data: Any) -> ModuleEntry:
    """
    Validate a module entry from a registry index.

    Args:
        name: Module name (index key)
        data: Raw entry

    Returns:
        ModuleEntry

    Raises:
        ManifestInvalid: If the entry is malformed
    """
    if not _MODULE_NAME.match(name):
        raise ManifestInvalid(f"Invalid module name in registry index: {name!r}")
    if not isinstance(data, dict):
        raise ManifestInvalid(f"Module entry '{name}' must be an object")

    raw_versions = data.get("versions")
    if not isinstance(raw_versions, dict) or not raw_versions:
        raise ManifestInvalid(f"Module entry '{name}' has no versions")

    versions = {
        str(version): parse_version_entry(name, str(version), entry)
        for version, entry in raw_versions.items()
    }

    latest = data.get("latest")
    if latest is None:
        latest = sort_versions(list(versions))[-1]
    if not isinstance(latest, str):
        raise ManifestInvalid(f"'latest' of module '{name}' must be a string")

    return ModuleEntry(name=name, latest=latest, versions=versions)


def parse_registry_index(data: Any) -> dict[str, Any]:
    """
    Check the top-level shape of a registry index.

    Module entries are validated individually when used, so one bad entry
    does not hide the rest of the registry.

    Raises:
        ManifestInvalid: If the index is not an object of objects
    """
    if not isinstance(data, dict):
        raise ManifestInvalid("Registry index must be a JSON object")
    for name, entry in data.items():
        if not isinstance(entry, dict):
            raise ManifestInvalid(f"Registry index entry '{name}' must be an object")
    return data
