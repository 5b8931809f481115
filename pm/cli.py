"""
pm CLI - Forge Package Manager.

Pacman-style interface for managing Forge modules.

Usage:
    pm -S <module>[@version]     Install module
    pm -S --from-lock            Install modules exactly as locked
    pm -R <module>               Remove module
    pm -U [module[@version]]     Upgrade module(s)
    pm -Q                        List installed modules
    pm -Ql <module>              List module files
    pm -Qk                       Check registry connections
    pm -Ss [query]               Search registries
    pm -Si <module>              Show module info
    pm -Sc                       Clean expired index caches
"""

import argparse
import logging
import sys
from pathlib import Path

from forgepm.config import ConfigError, init_source_list
from forgepm.console import Console
from forgepm.context import SOURCE_LIST_FILE, ForgeContext
from forgepm.package import PackageError, PackageManager


class PMError(Exception):
    """Base exception for pm errors."""

    pass


def create_parser() -> argparse.ArgumentParser:
    """Create argument parser with pacman-style flags."""
    parser = argparse.ArgumentParser(
        prog="pm",
        description="Forge Package Manager - Pacman-style module manager",
        add_help=False,
    )

    # Operation flags (mutually exclusive)
    ops = parser.add_mutually_exclusive_group()
    ops.add_argument("-S", "--sync", action="store_true", help="Install module")
    ops.add_argument("-R", "--remove", action="store_true", help="Remove module")
    ops.add_argument("-U", "--upgrade", action="store_true", help="Upgrade module(s)")
    ops.add_argument("-Q", "--query", action="store_true", help="Query installed")
    ops.add_argument("-h", "--help", action="store_true", help="Show help")

    # Sub-flags
    parser.add_argument("-l", "--list", action="store_true", help="List files (-Ql)")
    parser.add_argument("-k", "--check", action="store_true", help="Check registries (-Qk)")
    parser.add_argument("-s", "--search", action="store_true", help="Search (-Ss)")
    parser.add_argument("-i", "--info", action="store_true", help="Show info (-Si)")
    parser.add_argument("-c", "--clean", action="store_true", help="Clean caches (-Sc)")

    # Install / upgrade options
    parser.add_argument(
        "--force-cache", action="store_true", help="Ignore cached archives on -S"
    )
    parser.add_argument(
        "--from-lock", action="store_true", help="Install from forge-lock.json on -S"
    )
    parser.add_argument(
        "--preserve",
        action="append",
        default=[],
        metavar="PATH",
        help="Merge local changes of PATH into the new version on -U",
    )
    parser.add_argument(
        "--preserve-all", action="store_true", help="Merge every locally modified file on -U"
    )

    # Common options
    parser.add_argument("--root", default=".", help="Project root directory")
    parser.add_argument(
        "--init-config", action="store_true", help="Write a starter config/source_list.toml"
    )
    parser.add_argument(
        "--noconfirm", action="store_true", help="Skip confirmation prompts"
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Verbose output")

    # Positional arguments
    parser.add_argument("targets", nargs="*", help="Module names or queries")

    return parser


def print_help():
    """Print help message."""
    help_text = """
pm - Forge Package Manager

Usage:
    pm -S <module>[@version]     Install module
    pm -S --from-lock            Install modules exactly as locked
    pm -R <module>               Remove module
    pm -U [module[@version]]     Upgrade module(s)
    pm -Q                        List installed modules
    pm -Ql <module>              List module files
    pm -Qk                       Check registry connections
    pm -Ss [query]               Search registries
    pm -Si <module>              Show module info
    pm -Sc                       Clean expired index caches

Options:
    --force-cache                Ignore cached archives on -S
    --from-lock                  Install from forge-lock.json on -S
    --preserve PATH              Merge local changes of PATH on -U (repeatable)
    --preserve-all               Merge every locally modified file on -U
    --root DIR                   Project root directory (default: .)
    --init-config                Write a starter config/source_list.toml
    --noconfirm                  Skip confirmation prompts
    -v, --verbose                Verbose output
    -h, --help                   Show this help
"""
    print(help_text.strip())


def setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )


def build_package_manager(args: argparse.Namespace, console: Console | None = None) -> PackageManager:
    """
    Create a PackageManager for the project selected by ``--root``.

    Raises:
        ConfigError: If the registry list is invalid
    """
    context = ForgeContext.load(Path(args.root), assume_yes=args.noconfirm)
    console = console or Console(interactive=not args.noconfirm)
    return PackageManager(context, console=console)


def init_config(args: argparse.Namespace) -> int:
    path = Path(args.root) / SOURCE_LIST_FILE
    if init_source_list(path):
        print(f"Created {path}")
    else:
        print(f"{path} already exists")
    return 0


def main(argv: list[str] | None = None) -> int:
    """Main entry point for pm CLI."""
    parser = create_parser()
    args = parser.parse_args(argv)
    setup_logging(args.verbose)

    try:
        if args.init_config:
            return init_config(args)

        # Show help
        if args.help or (
            not args.sync
            and not args.remove
            and not args.upgrade
            and not args.query
        ):
            print_help()
            return 0

        # Route to appropriate command
        if args.sync:
            if args.search or args.info:
                # -Ss / -Si: Registry queries
                from pm.commands.query import sync_query_command

                return sync_query_command(args)

            # -S: Install
            from pm.commands.install import install_command

            return install_command(args)

        elif args.remove:
            # -R: Remove
            from pm.commands.remove import remove_command

            return remove_command(args)

        elif args.upgrade:
            # -U: Upgrade
            from pm.commands.upgrade import upgrade_command

            return upgrade_command(args)

        elif args.query:
            # -Q: Query
            from pm.commands.query import query_command

            return query_command(args)

    except (PMError, PackageError, ConfigError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("\nInterrupted", file=sys.stderr)
        return 130
    except Exception as e:
        print(f"Unexpected error: {e}", file=sys.stderr)
        if args.verbose:
            import traceback

            traceback.print_exc()
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
