"""
pm install command (-S).

Install modules from the configured registries or from the lock file.
"""

import sys
from typing import Any

from forgepm.package import PackageError


def install_command(args: Any) -> int:
    """
    Execute install command.

    Args:
        args: Parsed command-line arguments

    Returns:
        Exit code (0 for success, non-zero for error)
    """
    from pm.cli import build_package_manager

    if args.clean:
        with build_package_manager(args) as pm:
            removed = pm.clean_cache()
        print(f"Removed {removed} expired index cache file(s)")
        return 0

    if args.from_lock:
        with build_package_manager(args) as pm:
            results = pm.install_from_lock()
        if args.verbose:
            print(f"\nInstalled from lock: {len(results)}")
        return 0

    if not args.targets:
        print("Error: No targets specified", file=sys.stderr)
        print("Usage: pm -S <module>[@version]", file=sys.stderr)
        return 1

    success_count = 0
    fail_count = 0

    with build_package_manager(args) as pm:
        for target in args.targets:
            name, version = parse_target(target)
            try:
                pm.install(name, version, force_cache=args.force_cache)
                success_count += 1
            except PackageError as e:
                print(f"Failed to install {target}: {e}", file=sys.stderr)
                fail_count += 1

    # Summary
    if args.verbose:
        print(f"\nInstalled: {success_count}, Failed: {fail_count}")

    return 0 if fail_count == 0 else 1


def parse_target(target: str) -> tuple[str, str | None]:
    """
    Parse module target.

    Args:
        target: Module name or name@version

    Returns:
        Tuple of (name, version)
    """
    if "@" in target:
        name, version = target.split("@", 1)
        return name, version or None
    return target, None
