"""
Module Post-Install / Post-Uninstall Actions.

This module provides the typed action contract and its execution.

Key features:
- Shell-style command strings, run as written
- ``{command, args}`` objects, run as Forge console commands
  (``php forge.php <command> <args>`` by default)
- Default reader for the ``postInstall`` / ``postUninstall`` sections of a
  module's own forge.json
- Environment variable injection
- Subprocess execution with timeout
"""

import json
import os
import shlex
import subprocess
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

from forgepm.context import FORGE_CONSOLE
from forgepm.package.errors import PostActionFailed


class HookType(Enum):
    """Hook type enumeration."""

    POST_INSTALL = "postInstall"
    POST_UNINSTALL = "postUninstall"


@dataclass
class HookAction:
    """
    A command to run after a module is installed or before it is removed.

    Attributes:
        command: Executable name or path, or the Forge console command
            when ``console`` is set
        args: Arguments passed to the command
        console: Run through the Forge console launcher
    """

    command: str
    args: list[str] = field(default_factory=list)
    console: bool = False

    @classmethod
    def parse(cls, raw: Any) -> "HookAction":
        """
        Build an action from a command string or a ``{command, args}`` object.

        Raises:
            PostActionFailed: If the entry is malformed
        """
        if isinstance(raw, str):
            try:
                argv = shlex.split(raw)
            except ValueError as e:
                raise PostActionFailed(f"Cannot parse command {raw!r}: {e}") from e
            if not argv:
                raise PostActionFailed("Empty command")
            return cls(command=argv[0], args=argv[1:])
        if isinstance(raw, dict) and isinstance(raw.get("command"), str):
            args = raw.get("args", [])
            if not isinstance(args, list):
                raise PostActionFailed(f"'args' of {raw['command']!r} must be a list")
            return cls(command=raw["command"], args=[str(arg) for arg in args], console=True)
        raise PostActionFailed(f"Invalid action entry: {raw!r}")

    def argv_for(self, launcher: Sequence[str] = FORGE_CONSOLE) -> list[str]:
        """Full argument vector, prefixed with ``launcher`` for console commands."""
        prefix = list(launcher) if self.console else []
        return [*prefix, self.command, *self.args]

    @property
    def argv(self) -> list[str]:
        return self.argv_for()

    def __str__(self) -> str:
        return shlex.join(self.argv)


@dataclass
class ModuleActions:
    """Actions a module declares for its lifecycle."""

    post_install: list[HookAction] = field(default_factory=list)
    post_uninstall: list[HookAction] = field(default_factory=list)

    def for_hook(self, hook_type: HookType) -> list[HookAction]:
        if hook_type is HookType.POST_INSTALL:
            return self.post_install
        return self.post_uninstall


ActionReader = Callable[[Path], ModuleActions]


def read_module_actions(module_dir: Path) -> ModuleActions:
    """
    Read actions from a module's forge.json.

    Expected shape::

        {"postInstall": {"commands": ["php forge.php migrate"]},
         "postUninstall": {"commands": [{"command": "cache:clear", "args": ["--all"]}]}}

    A missing or unreadable file means no actions.

    Raises:
        PostActionFailed: If an action entry is malformed
    """
    manifest = Path(module_dir) / "forge.json"
    try:
        with open(manifest, encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError):
        return ModuleActions()
    if not isinstance(data, dict):
        return ModuleActions()

    def commands(hook_type: HookType) -> list[HookAction]:
        section = data.get(hook_type.value)
        if not isinstance(section, dict):
            return []
        raw = section.get("commands", [])
        if not isinstance(raw, list):
            raise PostActionFailed(f"{hook_type.value}.commands must be a list in {manifest}")
        return [HookAction.parse(entry) for entry in raw]

    return ModuleActions(
        post_install=commands(HookType.POST_INSTALL),
        post_uninstall=commands(HookType.POST_UNINSTALL),
    )


def run_action(
    action: HookAction,
    module_name: str,
    module_dir: Path,
    hook_type: HookType,
    cwd: Path,
    env_vars: Mapping[str, str] | None = None,
    timeout: int = 300,
    launcher: Sequence[str] = FORGE_CONSOLE,
) -> subprocess.CompletedProcess:
    """
    Execute one action.

    Args:
        action: Action to run
        module_name: Module the action belongs to
        module_dir: Installed module directory
        hook_type: Hook being run
        cwd: Working directory (the project root)
        env_vars: Base environment (defaults to os.environ)
        timeout: Timeout in seconds
        launcher: Command prefix for Forge console actions

    Returns:
        Completed process

    Raises:
        PostActionFailed: If the command fails, times out or cannot start
    """
    env = dict(os.environ if env_vars is None else env_vars)
    env["FORGE_MODULE_NAME"] = module_name
    env["FORGE_MODULE_DIR"] = str(module_dir)
    env["FORGE_HOOK_TYPE"] = hook_type.value

    try:
        result = subprocess.run(
            action.argv_for(launcher),
            cwd=cwd,
            env=env,
            capture_output=True,
            text=True,
            timeout=timeout,
            check=False,
        )
    except subprocess.TimeoutExpired as e:
        raise PostActionFailed(
            f"{hook_type.value} action '{action}' timed out after {timeout} seconds"
        ) from e
    except OSError as e:
        raise PostActionFailed(f"Failed to execute {hook_type.value} action '{action}': {e}") from e

    if result.returncode != 0:
        raise PostActionFailed(
            f"{hook_type.value} action '{action}' failed with exit code {result.returncode}:\n"
            f"stdout: {result.stdout}\n"
            f"stderr: {result.stderr}"
        )
    return result
