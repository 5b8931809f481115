"""
Project State Files.

This module reads and writes the declaration file (``forge.json``), the
lock file (``forge-lock.json``) and the trusted-sources store.

Key features:
- Read-modify-write of declaration and lock inside one exclusive flock
- Writes through a temp file and os.replace, so readers never see a torn file
- Both files are written together or not at all
"""

import fcntl
import json
import os
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from forgepm.package.errors import DeclarationWriteFailed, ManifestInvalid

DECLARATION_FILE = "forge.json"
LOCK_FILE = "forge-lock.json"
STATE_LOCK_FILE = ".forge-state.lock"


def default_declaration() -> dict[str, Any]:
    return {
        "name": "Forge Framework",
        "engine": {"name": "forge-engine", "version": "latest"},
        "modules": {},
    }


def read_json(path: Path, default: dict[str, Any]) -> dict[str, Any]:
    """
    Read a JSON object file.

    Args:
        path: File to read
        default: Returned when the file does not exist

    Raises:
        ManifestInvalid: If the file exists but is not a JSON object
    """
    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except FileNotFoundError:
        return default
    except json.JSONDecodeError as e:
        raise ManifestInvalid(f"Failed to parse {path}: {e}") from e
    except OSError as e:
        raise ManifestInvalid(f"Failed to read {path}: {e}") from e

    if not isinstance(data, dict):
        raise ManifestInvalid(f"{path} must contain a JSON object")
    return data


def write_json_atomic(path: Path, data: dict[str, Any]) -> None:
    """
    Write a JSON file through a temp sibling and os.replace.

    Raises:
        DeclarationWriteFailed: If the file cannot be written
    """
    temp_file = path.parent / f".{path.name}.tmp"
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(temp_file, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=4)
            f.write("\n")
            f.flush()
            os.fsync(f.fileno())
        os.replace(temp_file, path)
    except OSError as e:
        if temp_file.exists():
            temp_file.unlink()
        raise DeclarationWriteFailed(f"Failed to write {path}: {e}") from e


@dataclass
class LockEntry:
    """
    What was installed for one module and from where.

    Attributes:
        version: Resolved version
        registry: Registry name
        url: Resolved archive location
        integrity: SHA-256 of the installed archive
        path: Module path inside the registry
        source_type: Transport type of the registry
    """

    version: str
    registry: str
    url: str
    integrity: str
    path: str = ""
    source_type: str = ""

    @classmethod
    def from_dict(cls, name: str, data: Any) -> "LockEntry":
        if not isinstance(data, dict):
            raise ManifestInvalid(f"Lock entry for '{name}' must be an object")
        missing = [key for key in ("version", "registry", "integrity") if not data.get(key)]
        if missing:
            raise ManifestInvalid(
                f"Lock entry for '{name}' is missing: {', '.join(missing)}"
            )
        return cls(
            version=str(data["version"]),
            registry=str(data["registry"]),
            url=str(data.get("url", "")),
            integrity=str(data["integrity"]).lower(),
            path=str(data.get("path") or f"{name}/{data['version']}"),
            source_type=str(data.get("source_type", "")),
        )

    def to_dict(self) -> dict[str, str]:
        return {
            "version": self.version,
            "registry": self.registry,
            "url": self.url,
            "integrity": self.integrity,
            "path": self.path,
            "source_type": self.source_type,
        }


@dataclass
class StateSnapshot:
    """Declaration and lock contents being modified inside a transaction."""

    declaration: dict[str, Any]
    lock: dict[str, Any]
    changed: bool = field(default=False)

    @property
    def declared_modules(self) -> dict[str, str]:
        return self.declaration.setdefault("modules", {})

    @property
    def locked_modules(self) -> dict[str, Any]:
        return self.lock.setdefault("modules", {})

    def record_install(self, name: str, requested: str, entry: LockEntry) -> None:
        self.declared_modules[name] = requested
        self.locked_modules[name] = entry.to_dict()
        self.changed = True

    def forget(self, name: str) -> bool:
        removed = self.declared_modules.pop(name, None) is not None
        removed = self.locked_modules.pop(name, None) is not None or removed
        self.changed = self.changed or removed
        return removed


class ProjectState:
    """Declaration and lock files of one project."""

    def __init__(self, project_root: Path):
        self.project_root = Path(project_root)
        self.declaration_path = self.project_root / DECLARATION_FILE
        self.lock_path = self.project_root / LOCK_FILE
        self.state_lock_path = self.project_root / STATE_LOCK_FILE

    def read_declaration(self) -> dict[str, Any]:
        return read_json(self.declaration_path, default_declaration())

    def read_lock(self) -> dict[str, Any]:
        return read_json(self.lock_path, {"modules": {}})

    def lock_entry(self, name: str) -> LockEntry | None:
        data = self.read_lock().get("modules", {}).get(name)
        if data is None:
            return None
        return LockEntry.from_dict(name, data)

    def lock_entries(self) -> dict[str, LockEntry]:
        modules = self.read_lock().get("modules", {})
        return {name: LockEntry.from_dict(name, data) for name, data in modules.items()}

    def declared_modules(self) -> dict[str, str]:
        return dict(self.read_declaration().get("modules", {}))

    @contextmanager
    def _exclusive(self) -> Iterator[None]:
        self.project_root.mkdir(parents=True, exist_ok=True)
        with open(self.state_lock_path, "a+", encoding="utf-8") as lf:
            fcntl.flock(lf.fileno(), fcntl.LOCK_EX)
            try:
                yield
            finally:
                fcntl.flock(lf.fileno(), fcntl.LOCK_UN)

    @contextmanager
    def transaction(self) -> Iterator[StateSnapshot]:
        """
        Read-modify-write both state files under an exclusive lock.

        Both files are re-read after the lock is taken. They are written only
        if the block completes without raising and the snapshot changed.

        Raises:
            DeclarationWriteFailed: If writing either file fails
        """
        with self._exclusive():
            snapshot = StateSnapshot(
                declaration=self.read_declaration(), lock=self.read_lock()
            )
            yield snapshot
            if snapshot.changed:
                previous_declaration = (
                    self.declaration_path.read_bytes()
                    if self.declaration_path.exists()
                    else None
                )
                write_json_atomic(self.declaration_path, snapshot.declaration)
                try:
                    write_json_atomic(self.lock_path, snapshot.lock)
                except DeclarationWriteFailed:
                    # Put the declaration back so both files stay consistent
                    if previous_declaration is None:
                        self.declaration_path.unlink(missing_ok=True)
                    else:
                        self.declaration_path.write_bytes(previous_declaration)
                    raise


class TrustStore:
    """Registries whose post-install actions run without confirmation."""

    def __init__(self, path: Path):
        self.path = Path(path)

    def _load(self) -> dict[str, Any]:
        try:
            return read_json(self.path, {"trusted_sources": []})
        except ManifestInvalid:
            return {"trusted_sources": []}

    def sources(self) -> list[str]:
        trusted = self._load().get("trusted_sources", [])
        return [name for name in trusted if isinstance(name, str)]

    def is_trusted(self, registry: str) -> bool:
        return registry in self.sources()

    def trust(self, registry: str) -> None:
        sources = self.sources()
        if registry not in sources:
            sources.append(registry)
            write_json_atomic(self.path, {"trusted_sources": sources})
