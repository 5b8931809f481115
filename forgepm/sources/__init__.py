"""
Forge Registry Sources - pluggable transports for module registries.

This module handles:
- Git hosting raw access, HTTP, FTP, SFTP, local and network-share registries
- Module index and manifest retrieval
- Archive downloads with SHA-256 digests
"""

from forgepm.sources.base import Source, SourceError, archive_path, file_sha256, sanitize_path
from forgepm.sources.factory import create_source

__all__ = [
    "Source",
    "SourceError",
    "archive_path",
    "create_source",
    "file_sha256",
    "sanitize_path",
]
