"""
pm upgrade command (-U).

Upgrade installed modules, optionally carrying locally modified files
forward into the new version.
"""

import sys
from typing import Any

from forgepm.compare.comparison import ComparisonResult, normalize_module_path
from forgepm.compare.report import format_diff_preview
from forgepm.console import Console
from forgepm.package import PackageError
from forgepm.package.manager import PreserveSelector
from pm.commands.install import parse_target


def parse_selection(answer: str, count: int) -> list[int]:
    """
    Parse a file selection like ``"1, 3"`` or ``"all"``.

    Args:
        answer: Operator input
        count: Number of selectable entries

    Returns:
        Zero-based indices, in input order, without duplicates
    """
    answer = answer.strip().lower()
    if answer == "all":
        return list(range(count))
    indices: list[int] = []
    for part in answer.replace(",", " ").split():
        if not part.isdigit():
            continue
        index = int(part) - 1
        if 0 <= index < count and index not in indices:
            indices.append(index)
    return indices


def interactive_selector(console: Console) -> PreserveSelector:
    """Ask the operator which modified files to carry forward."""

    def select(comparison: ComparisonResult) -> list[str]:
        if not console.confirm("Preserve modifications?", default=True):
            return []
        for number, entry in enumerate(comparison.modified, start=1):
            console.line()
            console.line(f"[{number}] " + "\n".join(format_diff_preview(entry)))
        console.line()
        answer = console.ask(
            "Files to preserve (numbers separated by commas, 'all', or empty for none): "
        )
        return [
            comparison.modified[index].path
            for index in parse_selection(answer, len(comparison.modified))
        ]

    return select


def selector_from_args(args: Any, console: Console) -> PreserveSelector | None:
    """
    Build the preservation policy for an upgrade.

    ``--preserve-all`` merges every modified file, ``--preserve PATH`` the
    named ones. Without either, the operator is asked unless ``--noconfirm``
    is set, in which case the module is replaced wholesale.
    """
    if args.preserve_all:
        return lambda comparison: [entry.path for entry in comparison.modified]

    if args.preserve:
        requested = list(args.preserve)

        def select(comparison: ComparisonResult) -> list[str]:
            selected = []
            for path in requested:
                if comparison.modified_file(path) is None:
                    path = normalize_module_path(path)
                selected.append(path)
            return selected

        return select

    if args.noconfirm:
        return None
    return interactive_selector(console)


def upgrade_command(args: Any) -> int:
    """
    Execute upgrade command.

    Args:
        args: Parsed command-line arguments

    Returns:
        Exit code (0 for success, non-zero for error)
    """
    from pm.cli import build_package_manager

    console = Console(interactive=not args.noconfirm)
    upgraded = 0
    fail_count = 0

    with build_package_manager(args, console=console) as pm:
        targets = args.targets or [module.name for module in pm.installed_modules() if module.locked]
        if not targets:
            print("No installed modules to upgrade")
            return 0

        selector = selector_from_args(args, console)
        for target in targets:
            name, version = parse_target(target)
            try:
                result = pm.upgrade(name, version, preserve=selector)
            except PackageError as e:
                print(f"Failed to upgrade {target}: {e}", file=sys.stderr)
                fail_count += 1
                continue
            if result is not None:
                upgraded += 1
                for path, count in result.conflicts.items():
                    print(f"  {path}: {count} conflict(s) to resolve")

    if args.verbose:
        print(f"\nUpgraded: {upgraded}, Failed: {fail_count}")

    return 0 if fail_count == 0 else 1
