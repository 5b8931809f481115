"""
Tests for the pm command line.

This test suite covers:
1. Pacman-style flag parsing
2. Target and selection parsing
3. End-to-end commands against a local directory registry
"""

import hashlib
import json
import tempfile
import zipfile
from argparse import Namespace
from pathlib import Path

import pytest

from forgepm.compare.comparison import ComparisonResult, ModifiedFile
from forgepm.console import Console
from pm.cli import create_parser, main
from pm.commands.install import parse_target
from pm.commands.upgrade import parse_selection, selector_from_args

VERSIONS = {
    "1.0.0": {"src/DemoModule.php": "<?php\nclass DemoModule {}\n", "config/app.php": "a\nb\nc\n"},
    "1.1.0": {"src/DemoModule.php": "<?php\nclass DemoModule {}\n", "config/app.php": "a\nb\nC\n"},
}


def build_project(root: Path) -> Path:
    """Create a registry with demo-module and a project configured to use only it."""
    registry = root / "registry"
    versions = {}
    for version, files in VERSIONS.items():
        archive = registry / "modules" / "demo-module" / version / f"{version}.zip"
        archive.parent.mkdir(parents=True)
        with zipfile.ZipFile(archive, "w") as zf:
            for name, content in files.items():
                zf.writestr(name, content)
        versions[version] = {
            "integrity": hashlib.sha256(archive.read_bytes()).hexdigest(),
            "description": "Demonstration module",
        }
    (registry / "modules.json").write_text(
        json.dumps({"demo-module": {"latest": "1.1.0", "versions": versions}})
    )

    project = root / "project"
    config = project / "config" / "source_list.toml"
    config.parent.mkdir(parents=True)
    config.write_text(
        "use_default_registry = false\n\n"
        f'[[registry]]\nname = "local"\ntype = "local"\npath = "{registry}"\n'
    )
    return project


@pytest.fixture
def project():
    with tempfile.TemporaryDirectory() as tmpdir:
        yield build_project(Path(tmpdir))


def pm(project: Path, *argv: str) -> int:
    return main(["--root", str(project), "--noconfirm", *argv])


class TestParser:
    """Test pacman-style flag parsing."""

    @pytest.mark.parametrize(
        "argv,flags",
        [
            (["-S", "demo"], {"sync"}),
            (["-Ss", "demo"], {"sync", "search"}),
            (["-Si", "demo"], {"sync", "info"}),
            (["-Sc"], {"sync", "clean"}),
            (["-Ql", "demo"], {"query", "list"}),
            (["-Qk"], {"query", "check"}),
            (["-R", "demo"], {"remove"}),
            (["-U"], {"upgrade"}),
        ],
    )
    def test_combined_flags(self, argv, flags):
        """Combined short flags should set the operation and its sub-flag."""
        args = create_parser().parse_args(argv)

        names = ("sync", "remove", "upgrade", "query", "search", "info", "clean", "list", "check")
        assert {name for name in names if getattr(args, name)} == flags

    def test_operations_are_exclusive(self):
        """Two operations at once should be rejected."""
        with pytest.raises(SystemExit):
            create_parser().parse_args(["-S", "-R", "demo"])

    def test_preserve_is_repeatable(self):
        """--preserve should collect every path."""
        args = create_parser().parse_args(["-U", "--preserve", "a.php", "--preserve", "b.php"])

        assert args.preserve == ["a.php", "b.php"]


class TestTargetParsing:
    """Test target and selection parsing."""

    @pytest.mark.parametrize(
        "target,expected",
        [
            ("demo-module", ("demo-module", None)),
            ("demo-module@1.2.0", ("demo-module", "1.2.0")),
            ("demo-module@", ("demo-module", None)),
            ("demo-module@latest", ("demo-module", "latest")),
        ],
    )
    def test_parse_target(self, target, expected):
        assert parse_target(target) == expected

    @pytest.mark.parametrize(
        "answer,expected",
        [
            ("1, 3", [0, 2]),
            ("all", [0, 1, 2]),
            (" ALL ", [0, 1, 2]),
            ("2 2 9 x", [1]),
            ("", []),
        ],
    )
    def test_parse_selection(self, answer, expected):
        assert parse_selection(answer, 3) == expected


class TestPreserveSelection:
    """Test building the preservation policy from arguments."""

    @staticmethod
    def comparison() -> ComparisonResult:
        entry = ModifiedFile(
            path="src/Services/Mailer.php",
            existing_path=Path("/a"),
            new_path=Path("/b"),
            old_size=1,
            new_size=2,
            binary=False,
        )
        return ComparisonResult(modified=[entry])

    def args(self, **overrides) -> Namespace:
        values = {"preserve_all": False, "preserve": [], "noconfirm": False}
        values.update(overrides)
        return Namespace(**values)

    def test_preserve_all(self):
        selector = selector_from_args(self.args(preserve_all=True), Console(interactive=False))

        assert selector(self.comparison()) == ["src/Services/Mailer.php"]

    def test_legacy_paths_are_normalized(self):
        """Paths given in the legacy layout should match their normalized entry."""
        selector = selector_from_args(
            self.args(preserve=["privateServices/Mailer.php"]), Console(interactive=False)
        )

        assert selector(self.comparison()) == ["src/Services/Mailer.php"]

    def test_noconfirm_replaces(self):
        """Without a policy --noconfirm should replace the module wholesale."""
        assert selector_from_args(self.args(noconfirm=True), Console(interactive=False)) is None


class TestCommands:
    """Test commands end to end."""

    def test_help(self, capsys):
        """Without an operation the help text should be shown."""
        assert main([]) == 0

        assert "pm - Forge Package Manager" in capsys.readouterr().out

    def test_init_config(self, capsys):
        """--init-config should write a starter registry list once."""
        with tempfile.TemporaryDirectory() as tmpdir:
            assert main(["--root", tmpdir, "--init-config"]) == 0
            assert (Path(tmpdir) / "config" / "source_list.toml").exists()
            assert main(["--root", tmpdir, "--init-config"]) == 0

        assert "already exists" in capsys.readouterr().out

    def test_install_query_and_remove(self, project, capsys):
        """A module should be installable, listed and removable."""
        assert pm(project, "-S", "demo-module@1.0.0") == 0
        assert (project / "modules" / "DemoModule" / "config" / "app.php").exists()

        assert pm(project, "-Q") == 0
        assert "demo-module 1.0.0 (from local)" in capsys.readouterr().out

        assert pm(project, "-Ql", "demo-module") == 0
        assert "demo-module modules/DemoModule/config/app.php" in capsys.readouterr().out

        assert pm(project, "-R", "demo-module") == 0
        assert not (project / "modules" / "DemoModule").exists()

        assert pm(project, "-Q") == 0
        assert "No modules installed" in capsys.readouterr().out

    def test_install_failure(self, project, capsys):
        """An unknown module should fail with exit code 1."""
        assert pm(project, "-S", "nope") == 1

        assert "Failed to install nope" in capsys.readouterr().err

    def test_install_without_targets(self, project, capsys):
        assert pm(project, "-S") == 1

        assert "No targets specified" in capsys.readouterr().err

    def test_install_from_lock(self, project):
        """-S --from-lock should restore the locked version."""
        assert pm(project, "-S", "demo-module@1.0.0") == 0
        module_file = project / "modules" / "DemoModule" / "config" / "app.php"
        module_file.unlink()

        assert pm(project, "-S", "--from-lock") == 0
        assert module_file.read_text() == "a\nb\nc\n"

    def test_upgrade_preserving_edits(self, project):
        """-U --preserve-all should merge local edits into the new version."""
        assert pm(project, "-S", "demo-module@1.0.0") == 0
        config = project / "modules" / "DemoModule" / "config" / "app.php"
        config.write_text("A\nb\nc\n")

        assert pm(project, "-U", "--preserve-all") == 0

        assert config.read_text() == "A\nb\nC\n"
        lock = json.loads((project / "forge-lock.json").read_text())
        assert lock["modules"]["demo-module"]["version"] == "1.1.0"

    def test_upgrade_nothing_installed(self, project, capsys):
        assert pm(project, "-U") == 0

        assert "No installed modules to upgrade" in capsys.readouterr().out

    def test_search_and_info(self, project, capsys):
        """-Ss and -Si should describe registry modules."""
        assert pm(project, "-Ss", "demonstration") == 0
        out = capsys.readouterr().out
        assert "local/demo-module 1.1.0" in out
        assert "Demonstration module" in out

        assert pm(project, "-Ss", "nothing-matches") == 0
        assert "demo-module" not in capsys.readouterr().out

        assert pm(project, "-Si", "demo-module") == 0
        out = capsys.readouterr().out
        assert "Registry    : local (local)" in out
        assert "Versions    : 1.0.0, 1.1.0" in out

    def test_check_registries(self, project, capsys):
        assert pm(project, "-Qk") == 0

        assert "local: ok" in capsys.readouterr().out

    def test_clean_cache(self, project, capsys):
        assert pm(project, "-Sc") == 0

        assert "Removed 0 expired index cache file(s)" in capsys.readouterr().out

    def test_invalid_config(self, project, capsys):
        """An invalid registry list should exit with an error."""
        (project / "config" / "source_list.toml").write_text("[[registry]]\nname = 1\n")

        assert pm(project, "-Q") == 1

        assert "Error:" in capsys.readouterr().err
