"""
pm query commands (-Q, -Ql, -Qk, -Ss, -Si).
"""

import sys
from typing import Any

from forgepm.package.index import sort_versions


def query_command(args: Any) -> int:
    """
    Query installed modules.

    Args:
        args: Parsed command-line arguments

    Returns:
        Exit code (0 for success, non-zero for error)
    """
    from pm.cli import build_package_manager

    with build_package_manager(args) as pm:
        if args.check:
            status = pm.check_registries()
            for name, reachable in status.items():
                print(f"{name}: {'ok' if reachable else 'unreachable'}")
            return 0 if all(status.values()) else 1

        if args.list:
            if not args.targets:
                print("Error: No targets specified", file=sys.stderr)
                print("Usage: pm -Ql <module>", file=sys.stderr)
                return 1
            fail_count = 0
            for name in args.targets:
                module_dir = pm.install_dir(name)
                if not module_dir.is_dir():
                    print(f"Module {name} is not installed", file=sys.stderr)
                    fail_count += 1
                    continue
                for path in sorted(module_dir.rglob("*")):
                    if path.is_file():
                        print(f"{name} {path.relative_to(pm.context.project_root)}")
            return 0 if fail_count == 0 else 1

        modules = pm.installed_modules()
        if args.targets:
            modules = [module for module in modules if module.name in args.targets]
        if not modules:
            print("No modules installed")
            return 0
        for module in modules:
            version = module.locked.version if module.locked else module.declared
            notes = []
            if module.locked:
                notes.append(f"from {module.locked.registry}")
            if not module.present:
                notes.append("missing")
            if module.locked is None:
                notes.append("not locked")
            suffix = f" ({', '.join(notes)})" if notes else ""
            print(f"{module.name} {version}{suffix}")
    return 0


def sync_query_command(args: Any) -> int:
    """
    Query the registries (-Ss, -Si).

    Args:
        args: Parsed command-line arguments

    Returns:
        Exit code (0 for success, non-zero for error)
    """
    from pm.cli import build_package_manager

    with build_package_manager(args) as pm:
        if args.info:
            if not args.targets:
                print("Error: No targets specified", file=sys.stderr)
                print("Usage: pm -Si <module>", file=sys.stderr)
                return 1
            for name in args.targets:
                registry, module = pm.module_info(name)
                print(f"Name        : {module.name}")
                print(f"Registry    : {registry.name} ({registry.type})")
                print(f"Latest      : {module.latest}")
                print(f"Versions    : {', '.join(sort_versions(list(module.versions)))}")
                print(f"Description : {module.description}")
                print()
            return 0

        queries = [query.lower() for query in args.targets]
        for registry, module in pm.list_available():
            text = f"{module.name} {module.description}".lower()
            if queries and not any(query in text for query in queries):
                continue
            print(f"{registry.name}/{module.name} {module.latest}")
            if module.description:
                print(f"    {module.description}")
    return 0
