"""
Module Archive Extraction.

Archives are extracted into a temporary sibling of the install directory
and renamed into place, so an interrupted install never leaves an empty
or half-written module directory behind.
"""

import logging
import os
import re
import shutil
import tempfile
import zipfile
from pathlib import Path

from forgepm.package.errors import ExtractionFailed

logger = logging.getLogger(__name__)


def module_folder_name(name: str) -> str:
    """
    Install directory name for a module.

    Example:
        module_folder_name("demo-module") -> "DemoModule"
    """
    parts = re.sub(r"[^a-z0-9]+", "-", name.lower()).split("-")
    return "".join(part[:1].upper() + part[1:] for part in parts if part)


def _safe_members(archive: zipfile.ZipFile, target: Path) -> list[zipfile.ZipInfo]:
    """Reject members that would land outside ``target``."""
    root = os.path.realpath(target)
    members = []
    for info in archive.infolist():
        name = info.filename.replace("\\", "/")
        destination = os.path.realpath(os.path.join(root, name))
        if name.startswith("/") or os.path.commonpath([root, destination]) != root:
            raise ExtractionFailed(f"Archive member escapes target directory: {info.filename}")
        members.append(info)
    return members


def extract_archive(archive_path: Path, target: Path) -> None:
    """
    Extract a zip archive into an existing directory.

    Raises:
        ExtractionFailed: If the archive is invalid or unsafe
    """
    try:
        with zipfile.ZipFile(archive_path) as archive:
            members = _safe_members(archive, target)
            if archive.testzip() is not None:
                raise ExtractionFailed(f"Corrupt member in archive {archive_path}")
            archive.extractall(target, members=members)
    except zipfile.BadZipFile as e:
        raise ExtractionFailed(f"Invalid archive {archive_path}: {e}") from e
    except OSError as e:
        raise ExtractionFailed(f"Failed to extract {archive_path}: {e}") from e


def stage_archive(archive_path: Path, install_dir: Path) -> Path:
    """
    Extract an archive into a temporary sibling of ``install_dir``.

    Returns:
        The staging directory; the caller swaps it into place or discards it

    Raises:
        ExtractionFailed: If extraction fails (the staging directory is removed)
    """
    install_dir.parent.mkdir(parents=True, exist_ok=True)
    staging = Path(
        tempfile.mkdtemp(prefix=f".{install_dir.name}.staging-", dir=install_dir.parent)
    )
    try:
        extract_archive(archive_path, staging)
    except ExtractionFailed:
        shutil.rmtree(staging, ignore_errors=True)
        raise
    return staging


def swap_into_place(staging: Path, install_dir: Path) -> Path | None:
    """
    Replace ``install_dir`` with ``staging`` using renames.

    The previous directory is moved aside; if the final rename fails it is
    moved back.

    Returns:
        The moved-aside previous directory (for rollback_swap or
        discard_backup), or None if there was none

    Raises:
        ExtractionFailed: If the directories cannot be swapped
    """
    backup: Path | None = None
    try:
        if install_dir.exists():
            backup = install_dir.with_name(f".{install_dir.name}.old-{os.getpid()}")
            if backup.exists():
                shutil.rmtree(backup)
            os.rename(install_dir, backup)
        os.rename(staging, install_dir)
    except OSError as e:
        if backup is not None and backup.exists() and not install_dir.exists():
            os.rename(backup, install_dir)
        raise ExtractionFailed(f"Failed to move module into {install_dir}: {e}") from e

    return backup


def rollback_swap(install_dir: Path, backup: Path | None) -> None:
    """Undo swap_into_place: drop the new directory and restore the previous one."""
    shutil.rmtree(install_dir, ignore_errors=True)
    if backup is not None and backup.exists():
        os.rename(backup, install_dir)


def discard_backup(backup: Path | None) -> None:
    if backup is not None:
        shutil.rmtree(backup, ignore_errors=True)


def discard_staging(staging: Path) -> None:
    shutil.rmtree(staging, ignore_errors=True)
