"""
Module Tree Comparison.

This module compares an installed module directory with a newly extracted
version and classifies every file.

Key features:
- Each relative path lands in exactly one of added/removed/modified/unchanged
- Legacy packaging layouts mapped onto the current ``src/`` layout
- Text files compared by SHA-256 with a bounded diff; binaries by size
"""

import codecs
import mimetypes
import re
from dataclasses import dataclass, field
from pathlib import Path

from forgepm.compare.diff import CONTEXT_LINES, MAX_DIFF_LINES, DiffLine, diff_files
from forgepm.sources.base import file_sha256

TEXT_MIME_TYPES = {
    "text/plain",
    "text/html",
    "text/css",
    "text/javascript",
    "application/javascript",
    "application/json",
    "application/xml",
    "text/xml",
    "text/csv",
    "application/php",
    "application/x-httpd-php",
}
SNIFF_BYTES = 8192

_SRC_DIRS = (
    "Contracts|Resources|Commands|Services|Controllers|Models|Events"
    "|Middlewares|Tests|Dto|Seeders|Migrations"
)
_PRIVATE_DIR = re.compile(rf"^private({_SRC_DIRS})/", re.I)
_PRIVATE_MODULE_FILE = re.compile(r"^private([A-Z][a-zA-Z]*Module\.php)$", re.I)
_BARE_DIR = re.compile(rf"^({_SRC_DIRS})/")
_BARE_MODULE_FILE = re.compile(r"^([A-Z][a-zA-Z]*Module\.php)$")


def normalize_module_path(path: str) -> str:
    """
    Map a relative path onto the current module layout.

    Separators become ``/``, legacy ``private<Dir>/`` prefixes and bare
    top-level source directories move under ``src/``.

    Example:
        normalize_module_path("privateServices/Mailer.php") -> "src/Services/Mailer.php"
    """
    normalized = path.replace("\\", "/").lstrip("/")
    normalized = _PRIVATE_DIR.sub(r"src/\1/", normalized)
    normalized = _PRIVATE_MODULE_FILE.sub(r"src/\1", normalized)
    if not normalized.startswith("src/"):
        if _BARE_DIR.match(normalized) or _BARE_MODULE_FILE.match(normalized):
            normalized = "src/" + normalized
    return re.sub(r"/+", "/", normalized)


def is_binary_file(path: Path) -> bool:
    """
    Decide whether a file must be compared by size only.

    A NUL byte in the first block marks a binary. Otherwise files whose
    guessed type is textual are text, and anything else is text only if
    its first block decodes as UTF-8.
    """
    with open(path, "rb") as f:
        sample = f.read(SNIFF_BYTES)
    if b"\x00" in sample:
        return True

    mime_type, _ = mimetypes.guess_type(path.name)
    if mime_type is not None and (mime_type in TEXT_MIME_TYPES or mime_type.startswith("text/")):
        return False

    try:
        codecs.getincrementaldecoder("utf-8")().decode(sample, final=False)
    except UnicodeDecodeError:
        return True
    return False


def list_module_files(root: Path) -> dict[str, Path]:
    """
    Map normalized relative paths to files under ``root``.

    When two files normalize to the same key, the file already living at
    that path owns the key and the other keeps its raw relative path.
    """
    files: dict[str, Path] = {}
    if not root.is_dir():
        return files
    for path in sorted(root.rglob("*")):
        if not path.is_file():
            continue
        raw = path.relative_to(root).as_posix()
        key = normalize_module_path(raw)
        if key in files:
            if raw == key:
                displaced = files.pop(key)
                files[displaced.relative_to(root).as_posix()] = displaced
            else:
                key = raw
        files[key] = path
    return files


@dataclass
class ModifiedFile:
    """
    A file present in both trees with different content.

    Attributes:
        path: Normalized relative path
        existing_path: File in the installed tree
        new_path: File in the new tree
        old_size: Installed size in bytes
        new_size: New size in bytes
        binary: Whether the file was compared by size only
        diff: Bounded line diff (empty for binaries)
    """

    path: str
    existing_path: Path
    new_path: Path
    old_size: int
    new_size: int
    binary: bool
    diff: list[DiffLine] = field(default_factory=list)

    @property
    def size_change(self) -> int:
        return self.new_size - self.old_size


@dataclass
class ComparisonResult:
    """Classification of every file across the installed and new trees."""

    added: list[str] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)
    modified: list[ModifiedFile] = field(default_factory=list)
    unchanged: list[str] = field(default_factory=list)
    total_existing: int = 0
    total_new: int = 0

    @property
    def summary(self) -> dict[str, int]:
        return {
            "total_new": self.total_new,
            "total_existing": self.total_existing,
            "unchanged": len(self.unchanged),
            "modified": len(self.modified),
            "added": len(self.added),
            "removed": len(self.removed),
        }

    @property
    def has_changes(self) -> bool:
        return bool(self.added or self.removed or self.modified)

    def modified_file(self, path: str) -> ModifiedFile | None:
        for entry in self.modified:
            if entry.path == path:
                return entry
        return None


def compare_files(
    key: str,
    existing: Path,
    new: Path,
    context: int = CONTEXT_LINES,
    max_lines: int = MAX_DIFF_LINES,
) -> ModifiedFile | None:
    """
    Compare one file pair.

    Returns:
        ModifiedFile when the files differ, None when unchanged
    """
    old_size = existing.stat().st_size
    new_size = new.stat().st_size
    binary = is_binary_file(existing) or is_binary_file(new)

    if binary:
        if old_size == new_size:
            return None
        return ModifiedFile(key, existing, new, old_size, new_size, binary=True)

    if old_size == new_size and file_sha256(existing) == file_sha256(new):
        return None
    return ModifiedFile(
        key,
        existing,
        new,
        old_size,
        new_size,
        binary=False,
        diff=diff_files(existing, new, context, max_lines),
    )


def compare_trees(
    existing_dir: Path,
    new_dir: Path,
    context: int = CONTEXT_LINES,
    max_lines: int = MAX_DIFF_LINES,
) -> ComparisonResult:
    """
    Compare an installed module tree with a new one.

    Args:
        existing_dir: Installed module directory
        new_dir: Newly extracted module directory
        context: Diff context lines
        max_lines: Diff line cap per file

    Returns:
        ComparisonResult covering the union of both trees
    """
    existing_files = list_module_files(Path(existing_dir))
    new_files = list_module_files(Path(new_dir))
    result = ComparisonResult(
        total_existing=len(existing_files), total_new=len(new_files)
    )

    for key in sorted(existing_files.keys() | new_files.keys()):
        if key not in existing_files:
            result.added.append(key)
        elif key not in new_files:
            result.removed.append(key)
        else:
            modified = compare_files(
                key, existing_files[key], new_files[key], context, max_lines
            )
            if modified is None:
                result.unchanged.append(key)
            else:
                result.modified.append(modified)

    return result
