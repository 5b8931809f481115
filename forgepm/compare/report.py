"""
Comparison report rendering.

Turns a ComparisonResult into the lines shown to the operator before an
upgrade: a table of changed files, summary counts and per-file diff
previews.
"""

from forgepm.compare.comparison import ComparisonResult, ModifiedFile
from forgepm.compare.diff import DiffKind

MAX_FILES_TO_SHOW = 20
MAX_LINE_WIDTH = 80
PATH_WIDTH = 48


def format_bytes(size: int) -> str:
    """Human readable byte count (B, KB, MB, GB)."""
    value = float(abs(size))
    for unit in ("B", "KB", "MB"):
        if value < 1024:
            break
        value /= 1024
    else:
        unit = "GB"
    sign = "-" if size < 0 else ""
    if unit == "B":
        return f"{sign}{int(value)} B"
    return f"{sign}{value:.2f} {unit}"


def format_size_change(delta: int) -> str:
    if delta == 0:
        return "0 B"
    return ("+" if delta > 0 else "") + format_bytes(delta)


def truncate_line(line: str, width: int = MAX_LINE_WIDTH) -> str:
    if len(line) <= width:
        return line
    return line[: width - 3] + "..."


def _fit(text: str, width: int) -> str:
    if len(text) > width:
        text = "..." + text[-(width - 3):]
    return text.ljust(width)


def format_comparison(result: ComparisonResult) -> list[str]:
    """
    Render the changed-files table and summary.

    Args:
        result: Tree comparison

    Returns:
        Output lines
    """
    if not result.has_changes:
        return ["No changes detected between installed and new version."]

    rows: list[tuple[str, str, str]] = []
    for entry in result.modified:
        kind = "binary" if entry.binary else "modified"
        rows.append((kind, entry.path, format_size_change(entry.size_change)))
    rows.extend(("added", path, "new") for path in result.added)
    rows.extend(("removed", path, "deleted") for path in result.removed)

    widths = (10, PATH_WIDTH, 14)
    border = "─" * (widths[0] + 2), "─" * (widths[1] + 2), "─" * (widths[2] + 2)
    lines = [
        "┌" + "┬".join(border) + "┐",
        "│ " + " │ ".join(_fit(h, w) for h, w in zip(("Status", "File", "Size change"), widths)) + " │",
        "├" + "┼".join(border) + "┤",
    ]
    for row in rows[:MAX_FILES_TO_SHOW]:
        lines.append("│ " + " │ ".join(_fit(c, w) for c, w in zip(row, widths)) + " │")
    lines.append("└" + "┴".join(border) + "┘")

    if len(rows) > MAX_FILES_TO_SHOW:
        lines.append(f"... and {len(rows) - MAX_FILES_TO_SHOW} more changed files")

    summary = result.summary
    lines.extend(
        [
            "",
            f"Total files in new version: {summary['total_new']}",
            f"Total files in existing version: {summary['total_existing']}",
            f"Unchanged: {summary['unchanged']}, Modified: {summary['modified']}, "
            f"Added: {summary['added']}, Removed: {summary['removed']}",
        ]
    )
    return lines


def format_diff_preview(entry: ModifiedFile) -> list[str]:
    """
    Render one modified file's diff.

    Args:
        entry: Modified file

    Returns:
        Output lines
    """
    header = f"{entry.path} ({format_size_change(entry.size_change)})"
    if entry.binary:
        return [
            header,
            f"  Binary file: {format_bytes(entry.old_size)} -> {format_bytes(entry.new_size)}",
        ]

    lines = [header]
    for diff_line in entry.diff:
        if diff_line.kind is DiffKind.INFO:
            lines.append(f"    {diff_line.message}")
        elif diff_line.kind is DiffKind.REMOVED:
            lines.append(truncate_line(f"  - Line {diff_line.line}: {diff_line.old}"))
        elif diff_line.kind is DiffKind.ADDED:
            lines.append(truncate_line(f"  + Line {diff_line.line}: {diff_line.new}"))
        else:
            lines.append(truncate_line(f"    Line {diff_line.line}: {diff_line.old}"))
    return lines
