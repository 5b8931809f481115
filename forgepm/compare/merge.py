"""
Three-way Merge Engine.

Carries an operator's edits to a module file into the newly shipped
version of that file.

The merge base is the file as originally shipped. Regions changed only by
the operator keep the operator's lines, regions changed only by the new
version take the new lines, and regions changed by both are written as
conflicts with git-style markers and reported. Without a base every
differing region is a conflict.
"""

from collections.abc import Sequence
from dataclasses import dataclass, field
from pathlib import Path

from forgepm.compare.diff import read_text, split_lines
from forgepm.compare.lcs import longest_common_subsequence

LOCAL_LABEL = "local"
INCOMING_LABEL = "incoming"


@dataclass
class MergeConflict:
    """
    A region both sides changed.

    Attributes:
        line: 1-based line of the opening marker in the merged output
        local: Operator's lines for the region
        incoming: New version's lines for the region
        base: Originally shipped lines, or None when no base was available
    """

    line: int
    local: list[str]
    incoming: list[str]
    base: list[str] | None = None


@dataclass
class MergeResult:
    """Merged lines plus the conflicts written into them."""

    lines: list[str] = field(default_factory=list)
    conflicts: list[MergeConflict] = field(default_factory=list)

    @property
    def has_conflicts(self) -> bool:
        return bool(self.conflicts)

    @property
    def text(self) -> str:
        return "\n".join(self.lines)


def _anchors(
    base: Sequence[str] | None, local: Sequence[str], incoming: Sequence[str]
) -> list[tuple[int, int, int]]:
    """Lines common to all inputs as (base, local, incoming) index triples."""
    if base is None:
        return [(-1, li, ii) for li, ii in longest_common_subsequence(local, incoming)]

    local_by_base = dict(longest_common_subsequence(base, local))
    incoming_by_base = dict(longest_common_subsequence(base, incoming))
    return [
        (bi, local_by_base[bi], incoming_by_base[bi])
        for bi in sorted(local_by_base)
        if bi in incoming_by_base
    ]


def merge3(
    base: Sequence[str] | None,
    local: Sequence[str],
    incoming: Sequence[str],
    local_label: str = LOCAL_LABEL,
    incoming_label: str = INCOMING_LABEL,
) -> MergeResult:
    """
    Merge the operator's version of a file into the new version.

    Args:
        base: Lines as originally shipped, or None if unavailable
        local: Operator's current lines
        incoming: Newly shipped lines
        local_label: Label on the ``<<<<<<<`` marker
        incoming_label: Label on the ``>>>>>>>`` marker

    Returns:
        MergeResult with merged lines and any conflicts
    """
    result = MergeResult()
    base_len = len(base) if base is not None else 0
    sentinel = (base_len, len(local), len(incoming))

    pb = pl = pi = 0
    for bi, li, ii in [*_anchors(base, local, incoming), sentinel]:
        local_chunk = list(local[pl:li])
        incoming_chunk = list(incoming[pi:ii])
        base_chunk = list(base[pb:bi]) if base is not None else None

        if local_chunk == incoming_chunk:
            result.lines.extend(local_chunk)
        elif base_chunk is not None and local_chunk == base_chunk:
            result.lines.extend(incoming_chunk)
        elif base_chunk is not None and incoming_chunk == base_chunk:
            result.lines.extend(local_chunk)
        else:
            result.conflicts.append(
                MergeConflict(
                    line=len(result.lines) + 1,
                    local=local_chunk,
                    incoming=incoming_chunk,
                    base=base_chunk,
                )
            )
            result.lines.append(f"<<<<<<< {local_label}")
            result.lines.extend(local_chunk)
            result.lines.append("=======")
            result.lines.extend(incoming_chunk)
            result.lines.append(f">>>>>>> {incoming_label}")

        if (bi, li, ii) != sentinel:
            result.lines.append(local[li])
        pb, pl, pi = bi + 1, li + 1, ii + 1

    return result


def merge_files(
    base_path: Path | None,
    local_path: Path,
    incoming_path: Path,
    local_label: str = LOCAL_LABEL,
    incoming_label: str = INCOMING_LABEL,
) -> MergeResult:
    """
    Three-way merge of files on disk.

    Args:
        base_path: Originally shipped file, or None if unavailable
        local_path: Operator's current file
        incoming_path: Newly shipped file

    Returns:
        MergeResult
    """
    base = split_lines(read_text(base_path)) if base_path is not None else None
    return merge3(
        base,
        split_lines(read_text(local_path)),
        split_lines(read_text(incoming_path)),
        local_label,
        incoming_label,
    )
