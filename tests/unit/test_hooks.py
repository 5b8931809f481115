"""
Tests for module post-install / post-uninstall actions.

This test suite covers:
1. Action parsing (strings and {command, args} objects)
2. Reading actions from a module's forge.json
3. Execution with injected environment variables
4. Failures and timeouts
"""

import json
import sys
import tempfile
from pathlib import Path

import pytest

from forgepm.package.errors import PostActionFailed
from forgepm.package.hooks import HookAction, HookType, read_module_actions, run_action


class TestHookAction:
    """Test action parsing."""

    def test_parse_string(self):
        """Command strings should be split like a shell would."""
        action = HookAction.parse("php forge.php migrate --module='Demo Module'")

        assert action.command == "php"
        assert action.args == ["forge.php", "migrate", "--module=Demo Module"]
        assert str(action) == "php forge.php migrate '--module=Demo Module'"

    def test_parse_object(self):
        """{command, args} objects should be Forge console commands."""
        action = HookAction.parse({"command": "migrate", "args": ["--module=demo", 1]})

        assert action.console
        assert action.argv == ["php", "forge.php", "migrate", "--module=demo", "1"]
        assert str(action) == "php forge.php migrate --module=demo 1"

    def test_string_commands_are_not_prefixed(self):
        """Command strings should run exactly as written."""
        action = HookAction.parse("composer dump-autoload")

        assert not action.console
        assert action.argv_for(["python3", "console.py"]) == ["composer", "dump-autoload"]

    def test_custom_launcher(self):
        """Console commands should use the given launcher."""
        action = HookAction.parse({"command": "cache:clear"})

        assert action.argv_for(["php8.3", "bin/forge"]) == ["php8.3", "bin/forge", "cache:clear"]

    @pytest.mark.parametrize("raw", ["", "   ", 42, {"args": []}, {"command": "x", "args": "y"}, "'unclosed"])
    def test_invalid_entries(self, raw):
        """Malformed entries should raise PostActionFailed."""
        with pytest.raises(PostActionFailed):
            HookAction.parse(raw)


class TestReadModuleActions:
    """Test reading actions from a module's manifest."""

    def test_reads_both_hooks(self):
        """postInstall and postUninstall commands should be read."""
        with tempfile.TemporaryDirectory() as tmpdir:
            module_dir = Path(tmpdir)
            (module_dir / "forge.json").write_text(
                json.dumps(
                    {
                        "name": "demo-module",
                        "postInstall": {"commands": ["php forge.php migrate"]},
                        "postUninstall": {"commands": [{"command": "module:cleanup", "args": ["demo-module"]}]},
                    }
                )
            )

            actions = read_module_actions(module_dir)

            assert [str(a) for a in actions.for_hook(HookType.POST_INSTALL)] == ["php forge.php migrate"]
            assert actions.for_hook(HookType.POST_UNINSTALL)[0].argv == [
                "php",
                "forge.php",
                "module:cleanup",
                "demo-module",
            ]

    def test_missing_manifest(self):
        """A module without forge.json should have no actions."""
        with tempfile.TemporaryDirectory() as tmpdir:
            actions = read_module_actions(Path(tmpdir))

            assert actions.post_install == []
            assert actions.post_uninstall == []

    def test_commands_must_be_a_list(self):
        """A non-list commands section should be rejected."""
        with tempfile.TemporaryDirectory() as tmpdir:
            module_dir = Path(tmpdir)
            (module_dir / "forge.json").write_text(json.dumps({"postInstall": {"commands": "x"}}))

            with pytest.raises(PostActionFailed, match="must be a list"):
                read_module_actions(module_dir)


class TestRunAction:
    """Test action execution."""

    def test_environment_is_injected(self):
        """Actions should see the module name, directory and hook type."""
        with tempfile.TemporaryDirectory() as tmpdir:
            root = Path(tmpdir)
            output = root / "env.json"
            script = (
                "import json, os, sys; "
                "json.dump({k: os.environ[k] for k in "
                "('FORGE_MODULE_NAME', 'FORGE_MODULE_DIR', 'FORGE_HOOK_TYPE', 'EXTRA')}, "
                "open(sys.argv[1], 'w'))"
            )
            action = HookAction(sys.executable, ["-c", script, str(output)])

            run_action(
                action,
                "demo-module",
                root / "modules" / "DemoModule",
                HookType.POST_INSTALL,
                cwd=root,
                env_vars={"EXTRA": "1"},
            )

            env = json.loads(output.read_text())
            assert env == {
                "FORGE_MODULE_NAME": "demo-module",
                "FORGE_MODULE_DIR": str(root / "modules" / "DemoModule"),
                "FORGE_HOOK_TYPE": "postInstall",
                "EXTRA": "1",
            }

    def test_runs_in_project_root(self):
        """Actions should run with the project root as working directory."""
        with tempfile.TemporaryDirectory() as tmpdir:
            root = Path(tmpdir)
            action = HookAction(
                sys.executable, ["-c", "open('marker.txt', 'w').write('ok')"]
            )

            run_action(action, "demo", root, HookType.POST_INSTALL, cwd=root)

            assert (root / "marker.txt").read_text() == "ok"

    def test_console_command_goes_through_launcher(self):
        """{command, args} actions should run as '<launcher> <command> <args>'."""
        with tempfile.TemporaryDirectory() as tmpdir:
            root = Path(tmpdir)
            console = root / "forge.py"
            console.write_text(
                "import json, sys\njson.dump(sys.argv[1:], open('argv.json', 'w'))\n"
            )
            action = HookAction.parse({"command": "migrate", "args": ["--module=demo"]})

            run_action(
                action,
                "demo-module",
                root,
                HookType.POST_INSTALL,
                cwd=root,
                launcher=[sys.executable, str(console)],
            )

            assert json.loads((root / "argv.json").read_text()) == ["migrate", "--module=demo"]

    def test_non_zero_exit(self):
        """A failing command should raise with its exit code and output."""
        with tempfile.TemporaryDirectory() as tmpdir:
            action = HookAction(
                sys.executable, ["-c", "import sys; print('oops', file=sys.stderr); sys.exit(3)"]
            )

            with pytest.raises(PostActionFailed, match="exit code 3") as exc_info:
                run_action(action, "demo", Path(tmpdir), HookType.POST_UNINSTALL, cwd=Path(tmpdir))
            assert "oops" in str(exc_info.value)

    def test_timeout(self):
        """A command exceeding its timeout should raise."""
        with tempfile.TemporaryDirectory() as tmpdir:
            action = HookAction(sys.executable, ["-c", "import time; time.sleep(10)"])

            with pytest.raises(PostActionFailed, match="timed out"):
                run_action(
                    action, "demo", Path(tmpdir), HookType.POST_INSTALL, cwd=Path(tmpdir), timeout=1
                )

    def test_missing_executable(self):
        """A command that cannot start should raise."""
        with tempfile.TemporaryDirectory() as tmpdir:
            action = HookAction("/nonexistent/forge-command")

            with pytest.raises(PostActionFailed, match="Failed to execute"):
                run_action(action, "demo", Path(tmpdir), HookType.POST_INSTALL, cwd=Path(tmpdir))
