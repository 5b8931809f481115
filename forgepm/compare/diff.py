"""
Line Diff Engine.

This module renders a bounded, context-windowed change list between two
texts from an LCS alignment.

Key features:
- Removed/added lines with their line numbers
- Context window around each change
- Long unchanged spans between changes collapsed into one marker
- Hard cap on the number of emitted lines
"""

from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from forgepm.compare.lcs import longest_common_subsequence

CONTEXT_LINES = 3
MAX_DIFF_LINES = 50
GAP_MARKER = "..."


class DiffKind(Enum):
    """Diff line kind enumeration."""

    CONTEXT = "context"
    ADDED = "added"
    REMOVED = "removed"
    INFO = "info"


@dataclass(frozen=True)
class DiffLine:
    """
    One rendered diff line.

    Attributes:
        kind: Line kind
        line: 1-based line number (old file for context/removed, new file
            for added, None for info markers)
        old: Old content, if any
        new: New content, if any
        message: Marker text for info lines
    """

    kind: DiffKind
    line: int | None
    old: str | None = None
    new: str | None = None
    message: str | None = None


def _align(old: Sequence[str], new: Sequence[str]) -> list[tuple[str, int | None, int | None]]:
    """Edit script as (op, old_index, new_index) with op in equal/removed/added."""
    script: list[tuple[str, int | None, int | None]] = []
    i = j = 0
    for mi, mj in longest_common_subsequence(old, new):
        script.extend(("removed", k, None) for k in range(i, mi))
        script.extend(("added", None, k) for k in range(j, mj))
        script.append(("equal", mi, mj))
        i, j = mi + 1, mj + 1
    script.extend(("removed", k, None) for k in range(i, len(old)))
    script.extend(("added", None, k) for k in range(j, len(new)))
    return script


def compute_diff(
    old: Sequence[str],
    new: Sequence[str],
    context: int = CONTEXT_LINES,
    max_lines: int = MAX_DIFF_LINES,
) -> list[DiffLine]:
    """
    Compute a bounded line diff.

    Args:
        old: Old lines
        new: New lines
        context: Unchanged lines shown on each side of a change
        max_lines: Maximum number of DiffLine entries returned

    Returns:
        Diff lines; empty when the inputs are identical
    """
    script = _align(old, new)
    change_positions = [pos for pos, (op, _, _) in enumerate(script) if op != "equal"]
    if not change_positions:
        return []

    first_change, last_change = change_positions[0], change_positions[-1]
    result: list[DiffLine] = []

    def emit_equal(pos: int) -> None:
        _, oi, _ = script[pos]
        result.append(DiffLine(DiffKind.CONTEXT, oi + 1, old=old[oi], new=old[oi]))

    pos = 0
    while pos < len(script):
        op, oi, ni = script[pos]
        if op == "removed":
            result.append(DiffLine(DiffKind.REMOVED, oi + 1, old=old[oi]))
            pos += 1
            continue
        if op == "added":
            result.append(DiffLine(DiffKind.ADDED, ni + 1, new=new[ni]))
            pos += 1
            continue

        run_end = pos
        while run_end < len(script) and script[run_end][0] == "equal":
            run_end += 1
        run = range(pos, run_end)

        if pos < first_change:
            shown = list(run)[-context:] if context else []
            for p in shown:
                emit_equal(p)
        elif pos > last_change:
            for p in list(run)[:context]:
                emit_equal(p)
        elif len(run) > 2 * context + 1:
            for p in list(run)[:context]:
                emit_equal(p)
            result.append(DiffLine(DiffKind.INFO, None, message=GAP_MARKER))
            for p in list(run)[len(run) - context:]:
                emit_equal(p)
        else:
            for p in run:
                emit_equal(p)

        pos = run_end

    return result[:max_lines]


def split_lines(text: str) -> list[str]:
    """Split text into lines on ``\\n`` (a trailing newline yields a final empty line)."""
    return text.split("\n")


def read_text(path: Path) -> str:
    """Read a file as UTF-8, replacing undecodable bytes."""
    return Path(path).read_bytes().decode("utf-8", errors="replace")


def diff_files(
    old_path: Path,
    new_path: Path,
    context: int = CONTEXT_LINES,
    max_lines: int = MAX_DIFF_LINES,
) -> list[DiffLine]:
    """
    Diff two text files.

    Returns:
        Diff lines; empty when contents are identical
    """
    old_text = read_text(old_path)
    new_text = read_text(new_path)
    if old_text == new_text:
        return []
    return compute_diff(split_lines(old_text), split_lines(new_text), context, max_lines)
