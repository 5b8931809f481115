"""
Archive and Module Index Caches.

Archives are cached as ``<ModuleFolder>-<version>.zip`` and only trusted
while their SHA-256 matches the expected integrity value. Registry indexes
are cached as ``<md5(url)>.cache`` and expire by file age.
"""

import hashlib
import json
import logging
import os
import time
from pathlib import Path
from typing import Any

from forgepm.package.archive import module_folder_name
from forgepm.sources.base import file_sha256

logger = logging.getLogger(__name__)


class ArchiveCache:
    """Downloaded module archives."""

    def __init__(self, cache_dir: Path):
        self.cache_dir = Path(cache_dir)

    def path_for(self, module: str, version: str) -> Path:
        return self.cache_dir / f"{module_folder_name(module)}-{version}.zip"

    def verified(
        self, module: str, version: str, integrity: str, discard: bool = True
    ) -> Path | None:
        """
        Return the cached archive if it matches ``integrity``.

        Args:
            module: Module name
            version: Module version
            integrity: Expected SHA-256 hex digest
            discard: Delete a cached archive with a different hash

        Returns:
            Path to the archive, or None if absent or mismatched
        """
        path = self.path_for(module, version)
        if not path.is_file():
            return None
        actual = file_sha256(path)
        if actual == integrity.lower():
            return path
        if not discard:
            return None
        logger.info(
            "Cached archive %s does not match integrity (%s != %s), discarding",
            path,
            actual,
            integrity,
        )
        path.unlink()
        return None

    def discard(self, module: str, version: str) -> bool:
        path = self.path_for(module, version)
        if path.exists():
            path.unlink()
            return True
        return False


class ManifestCache:
    """Registry module indexes keyed by the md5 of their location."""

    SUFFIX = ".cache"

    def __init__(self, cache_dir: Path, ttl: int = 3600):
        self.cache_dir = Path(cache_dir)
        self.ttl = ttl

    def path_for(self, url: str) -> Path:
        digest = hashlib.md5(url.encode("utf-8")).hexdigest()
        return self.cache_dir / f"{digest}{self.SUFFIX}"

    def _expired(self, path: Path, ttl: int) -> bool:
        return time.time() - path.stat().st_mtime > ttl

    def get(self, url: str, ttl: int | None = None) -> dict[str, Any] | None:
        """
        Get a cached index if still fresh.

        Args:
            url: Index location
            ttl: Lifetime in seconds (defaults to the cache's TTL)

        Returns:
            Cached data, or None if missing, expired or corrupt
        """
        path = self.path_for(url)
        if not path.is_file():
            return None
        if self._expired(path, self.ttl if ttl is None else ttl):
            return None
        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.debug("Dropping unreadable index cache %s: %s", path, e)
            path.unlink(missing_ok=True)
            return None
        if not isinstance(data, dict):
            path.unlink(missing_ok=True)
            return None
        return data

    def put(self, url: str, data: dict[str, Any]) -> None:
        path = self.path_for(url)
        temp_file = path.parent / f".{path.name}.tmp"
        try:
            self.cache_dir.mkdir(parents=True, exist_ok=True)
            with open(temp_file, "w", encoding="utf-8") as f:
                json.dump(data, f)
            os.replace(temp_file, path)
        except OSError as e:
            # Index cache write failures are not fatal
            logger.warning("Could not write index cache %s: %s", path, e)
            temp_file.unlink(missing_ok=True)

    def purge_expired(self) -> int:
        """
        Delete expired index caches.

        Returns:
            Number of files removed
        """
        if not self.cache_dir.is_dir():
            return 0
        removed = 0
        for path in self.cache_dir.glob(f"*{self.SUFFIX}"):
            if self._expired(path, self.ttl):
                path.unlink(missing_ok=True)
                removed += 1
        return removed
