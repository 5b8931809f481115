"""
Forge Module Comparison - diff and merge support for upgrades.

This module handles:
- LCS-based line diffs with context windows
- Installed vs. new module tree classification
- Three-way merges of operator-edited files
"""

from forgepm.compare.comparison import ComparisonResult, ModifiedFile, compare_trees
from forgepm.compare.diff import DiffKind, DiffLine, compute_diff, diff_files
from forgepm.compare.merge import MergeConflict, MergeResult, merge3, merge_files

__all__ = [
    "ComparisonResult",
    "DiffKind",
    "DiffLine",
    "MergeConflict",
    "MergeResult",
    "ModifiedFile",
    "compare_trees",
    "compute_diff",
    "diff_files",
    "merge3",
    "merge_files",
]
