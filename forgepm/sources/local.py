"""
Local Filesystem Sources.

``LocalSource`` reads a registry directory on the local machine.
``LocalNetworkSource`` does the same for a network share given as an
``smb://`` URL or UNC path, which is expected to be mounted at the
equivalent POSIX path.
"""

import os
import shutil
from pathlib import Path
from typing import Any, BinaryIO

from forgepm.sources.base import Source, SourceError


def normalize_share_path(path: str) -> str:
    """
    Convert an smb:// URL or UNC path to a POSIX path.

    Example:
        normalize_share_path("smb://nas/share/forge") -> "/nas/share/forge"
        normalize_share_path("\\\\nas\\share\\forge") -> "/nas/share/forge"
    """
    if path.startswith("smb://"):
        path = "/" + path[len("smb://"):]
    elif path.startswith("\\\\"):
        path = "/" + path[2:]
    path = path.replace("\\", "/")
    while "//" in path:
        path = path.replace("//", "/")
    return path


class LocalSource(Source):
    """Registry in a local directory."""

    type = "local"

    def __init__(self, config: dict[str, Any]):
        super().__init__(config)
        self.base_path = Path(self._base_from_config(config))

    def _base_from_config(self, config: dict[str, Any]) -> str:
        return (config.get("path") or "").rstrip("/\\") or "."

    def locate(self, relative: str) -> str:
        return str(self.base_path / relative)

    def _resolve(self, relative: str) -> Path:
        """Resolve a registry file, refusing anything outside the base directory."""
        real_base = os.path.realpath(self.base_path)
        real_path = os.path.realpath(self.base_path / relative)
        if os.path.commonpath([real_base, real_path]) != real_base:
            raise SourceError(f"Path escapes registry directory: {relative}")
        path = Path(real_path)
        if not path.is_file():
            raise SourceError(f"File not found: {path}")
        return path

    def read_bytes(self, relative: str) -> bytes:
        return self._resolve(relative).read_bytes()

    def copy_to(self, relative: str, f: BinaryIO) -> None:
        with open(self._resolve(relative), "rb") as src:
            shutil.copyfileobj(src, f)

    def validate_connection(self) -> bool:
        return self.base_path.is_dir() and os.access(self.base_path, os.R_OK)


class LocalNetworkSource(LocalSource):
    """Registry on a mounted network share."""

    type = "network"

    def _base_from_config(self, config: dict[str, Any]) -> str:
        return normalize_share_path(config.get("path") or "").rstrip("/") or "/"
