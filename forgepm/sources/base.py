"""
Source Adapter Base.

This module defines the contract every registry transport implements.

Key features:
- Uniform fetch/download operations built on three transport primitives
- Archive path layout shared by all transports
- Path sanitization against traversal
- Downloads staged in a ``.part`` file, never leaving partial archives
"""

from __future__ import annotations

import hashlib
import json
import logging
import os
from abc import ABC, abstractmethod
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any, BinaryIO

logger = logging.getLogger(__name__)

INDEX_FILE = "modules.json"
MANIFEST_REQUIRED_FIELDS = ("name", "version", "type")


class SourceError(Exception):
    """Raised by transport primitives when a file cannot be retrieved."""

    pass


def sanitize_path(path: str) -> str:
    """
    Strip traversal sequences and duplicate separators from a relative path.

    Args:
        path: Untrusted relative path

    Returns:
        Path without ``../``, ``..\\``, ``//`` or ``\\\\`` and without
        leading or trailing separators
    """
    for token in ("../", "..\\", "//", "\\\\"):
        path = path.replace(token, "")
    return path.strip("/\\")


def archive_path(source_path: str, version: str | None = None) -> str:
    """
    Relative location of a module archive inside a registry.

    When no version is given it is taken from the last segment of
    ``source_path``.

    Example:
        archive_path("demo-module/1.2.0") -> "modules/demo-module/1.2.0/1.2.0.zip"
    """
    if version is None:
        version = source_path.strip("/").split("/")[-1]
    module_path = sanitize_path(source_path)
    return f"modules/{module_path}/{sanitize_path(version)}.zip"


def file_sha256(path: Path) -> str:
    """Compute the SHA-256 hex digest of a file."""
    digest = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(65536), b""):
            digest.update(chunk)
    return digest.hexdigest()


@contextmanager
def partial_file(destination: Path) -> Iterator[BinaryIO]:
    """
    Open a ``.part`` sibling of ``destination`` for writing.

    On clean exit the part file is renamed over ``destination``; on any
    exception it is removed and the exception propagates.
    """
    destination.parent.mkdir(parents=True, exist_ok=True)
    part = destination.with_name(destination.name + ".part")
    try:
        with open(part, "wb") as f:
            yield f
        os.replace(part, destination)
    finally:
        if part.exists():
            part.unlink()


def is_valid_manifest(data: Any) -> bool:
    """Check a per-module manifest carries name, version and type."""
    return isinstance(data, dict) and all(key in data for key in MANIFEST_REQUIRED_FIELDS)


class Source(ABC):
    """
    Base class for registry transports.

    Subclasses implement ``locate``, ``read_bytes``, ``copy_to`` and
    ``validate_connection``; the public fetch/download operations are
    built on top of them and never raise for I/O failures.
    """

    type: str = ""
    # Exception types raised by the transport library for I/O failures
    transport_errors: tuple[type[Exception], ...] = ()

    def __init__(self, config: dict[str, Any]):
        self.config = config
        self.name: str = config.get("name", "")

    @abstractmethod
    def locate(self, relative: str) -> str:
        """URL or path of a file relative to the registry root."""

    @abstractmethod
    def read_bytes(self, relative: str) -> bytes:
        """
        Read a registry file.

        Raises:
            SourceError: If the file is missing or unreadable
        """

    @abstractmethod
    def copy_to(self, relative: str, f: BinaryIO) -> None:
        """
        Copy a registry file into an open binary file.

        Raises:
            SourceError: If the file is missing or unreadable
        """

    @abstractmethod
    def validate_connection(self) -> bool:
        """Cheap reachability check."""

    def close(self) -> None:
        """Release connections held by the transport."""

    def __enter__(self) -> "Source":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def _io_errors(self) -> tuple[type[Exception], ...]:
        return (SourceError, OSError, *self.transport_errors)

    def manifest_path(self, path: str) -> str:
        return f"{sanitize_path(path)}/{INDEX_FILE}"

    @property
    def index_location(self) -> str:
        return self.locate(INDEX_FILE)

    def archive_location(self, source_path: str, version: str | None = None) -> str:
        return self.locate(archive_path(source_path, version))

    def supports_versioning(self) -> bool:
        return True

    def _read_json(self, relative: str) -> Any:
        try:
            raw = self.read_bytes(relative)
        except self._io_errors() as e:
            logger.debug("[%s] cannot read %s: %s", self.name, relative, e)
            return None
        try:
            return json.loads(raw)
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            logger.debug("[%s] invalid JSON in %s: %s", self.name, relative, e)
            return None

    def fetch_manifest(self, path: str) -> dict[str, Any] | None:
        """
        Fetch and validate a per-module manifest.

        Args:
            path: Module path inside the registry

        Returns:
            Manifest dictionary, or None if unavailable or invalid
        """
        data = self._read_json(self.manifest_path(path))
        if not is_valid_manifest(data):
            return None
        return data

    def fetch_modules_json(self) -> dict[str, Any] | None:
        """
        Fetch the registry module index.

        Returns:
            Parsed modules.json, or None if unavailable or not a JSON object
        """
        data = self._read_json(INDEX_FILE)
        if not isinstance(data, dict):
            return None
        logger.debug("[%s] module index lists %d modules", self.name, len(data))
        return data

    def download_module(
        self, source_path: str, destination: Path, version: str | None = None
    ) -> str | None:
        """
        Download a module archive.

        Args:
            source_path: Module path inside the registry (index ``url`` field)
            destination: Where to write the archive
            version: Version to fetch; defaults to the last path segment

        Returns:
            SHA-256 hex digest of the written file, or None on failure (in
            which case no file is left at ``destination``)
        """
        destination = Path(destination)
        relative = archive_path(source_path, version)
        try:
            with partial_file(destination) as f:
                self.copy_to(relative, f)
        except self._io_errors() as e:
            logger.info(
                "[%s] download of %s failed: %s", self.name, self.locate(relative), e
            )
            return None
        return file_sha256(destination)
