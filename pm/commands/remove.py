"""
pm remove command (-R).
"""

import sys
from typing import Any

from forgepm.package import PackageError


def remove_command(args: Any) -> int:
    """
    Execute remove command.

    Args:
        args: Parsed command-line arguments

    Returns:
        Exit code (0 for success, non-zero for error)
    """
    from pm.cli import build_package_manager

    if not args.targets:
        print("Error: No targets specified", file=sys.stderr)
        print("Usage: pm -R <module>", file=sys.stderr)
        return 1

    fail_count = 0
    with build_package_manager(args) as pm:
        for name in args.targets:
            try:
                pm.remove(name)
            except PackageError as e:
                print(f"Failed to remove {name}: {e}", file=sys.stderr)
                fail_count += 1

    return 0 if fail_count == 0 else 1
