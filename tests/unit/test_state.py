"""
Tests for package state, registry index parsing, caches and archives.

This test suite covers:
1. Registry index validation and version resolution
2. Declaration/lock transactions
3. Trusted sources store
4. Archive and module index caches
5. Archive extraction, staging and swap
"""

import hashlib
import json
import os
import tempfile
import time
import zipfile
from pathlib import Path
from unittest.mock import patch

import pytest

from forgepm.package.archive import (
    discard_backup,
    extract_archive,
    module_folder_name,
    rollback_swap,
    stage_archive,
    swap_into_place,
)
from forgepm.package.cache import ArchiveCache, ManifestCache
from forgepm.package.errors import DeclarationWriteFailed, ExtractionFailed, ManifestInvalid
from forgepm.package.index import (
    compare_versions,
    parse_module_entry,
    parse_registry_index,
    sort_versions,
)
from forgepm.package.state import LockEntry, ProjectState, TrustStore

SHA = "a" * 64


def make_zip(path: Path, files: dict[str, str]) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    with zipfile.ZipFile(path, "w") as archive:
        for name, content in files.items():
            archive.writestr(name, content)
    return path


def lock_entry(version: str = "1.0.0") -> LockEntry:
    return LockEntry(
        version=version,
        registry="local",
        url=f"/srv/modules/demo-module/{version}/{version}.zip",
        integrity=SHA,
        path=f"demo-module/{version}",
        source_type="local",
    )


class TestRegistryIndex:
    """Test module index parsing."""

    def test_parse_module_entry(self):
        """A valid entry should parse with defaults applied."""
        module = parse_module_entry(
            "demo-module",
            {
                "latest": "1.1.0",
                "versions": {
                    "1.0.0": {"integrity": SHA.upper(), "description": "First"},
                    "1.1.0": {"integrity": SHA, "url": "demo/1.1.0", "description": "Second"},
                },
            },
        )

        assert module.latest == "1.1.0"
        assert module.description == "Second"
        assert module.versions["1.0.0"].integrity == SHA
        assert module.versions["1.0.0"].url == "demo-module/1.0.0"
        assert module.versions["1.1.0"].url == "demo/1.1.0"

    def test_resolve_versions(self):
        """None and 'latest' should resolve to the latest version."""
        module = parse_module_entry(
            "demo-module",
            {"latest": "1.0.0", "versions": {"1.0.0": {"integrity": SHA}, "0.9.0": {"integrity": SHA}}},
        )

        assert module.resolve(None).version == "1.0.0"
        assert module.resolve("latest").version == "1.0.0"
        assert module.resolve("0.9.0").version == "0.9.0"
        assert module.resolve("2.0.0") is None

    def test_latest_defaults_to_highest(self):
        """A missing 'latest' should default to the highest version."""
        module = parse_module_entry(
            "demo-module",
            {"versions": {"1.9.0": {"integrity": SHA}, "1.10.0": {"integrity": SHA}}},
        )

        assert module.latest == "1.10.0"

    @pytest.mark.parametrize(
        "entry",
        [
            "not an object",
            {"versions": {}},
            {"versions": {"1.0.0": {}}},
            {"versions": {"1.0.0": {"integrity": "abc"}}},
            {"versions": {"1.0.0": {"integrity": SHA, "url": ""}}},
            {"latest": 1, "versions": {"1.0.0": {"integrity": SHA}}},
        ],
    )
    def test_invalid_entries(self, entry):
        """Malformed entries should raise ManifestInvalid."""
        with pytest.raises(ManifestInvalid):
            parse_module_entry("demo-module", entry)

    def test_invalid_module_name(self):
        """Module names must be lowercase identifiers."""
        with pytest.raises(ManifestInvalid, match="Invalid module name"):
            parse_module_entry("../evil", {"versions": {"1.0.0": {"integrity": SHA}}})

    def test_index_shape(self):
        """The index must be an object of objects."""
        parse_registry_index({"a": {}})
        with pytest.raises(ManifestInvalid):
            parse_registry_index([])
        with pytest.raises(ManifestInvalid):
            parse_registry_index({"a": "b"})

    def test_version_ordering(self):
        """Versions should compare numerically."""
        assert compare_versions("1.10.0", "1.9.0") == 1
        assert compare_versions("1.0", "1.0.0") == 0
        assert compare_versions("v2.0.0", "1.0.0") == 1
        assert sort_versions(["1.10.0", "1.2.0", "1.9.1"]) == ["1.2.0", "1.9.1", "1.10.0"]

    def test_prerelease_sorts_below_release(self):
        """A pre-release should sort below its release and above the previous one."""
        assert compare_versions("1.0.0-beta", "1.0.0") == -1
        assert compare_versions("1.0.0", "1.0.0-rc.1") == 1
        assert compare_versions("1.0.0+build.5", "1.0.0") == 0
        assert sort_versions(["1.0.0", "1.0.0-rc.1", "0.9.0", "1.0.0-beta", "1.0.0-beta.2"]) == [
            "0.9.0",
            "1.0.0-beta",
            "1.0.0-beta.2",
            "1.0.0-rc.1",
            "1.0.0",
        ]

    def test_latest_inferred_skips_prerelease(self):
        """Without 'latest' the highest release should win over its pre-release."""
        entry = parse_module_entry(
            "demo-module",
            {"versions": {"1.0.0-beta": {"integrity": SHA}, "1.0.0": {"integrity": SHA}}},
        )

        assert entry.latest == "1.0.0"


class TestProjectState:
    """Test declaration and lock file handling."""

    def test_defaults_when_missing(self):
        """Missing state files should read as empty."""
        with tempfile.TemporaryDirectory() as tmpdir:
            state = ProjectState(Path(tmpdir))

            assert state.declared_modules() == {}
            assert state.lock_entries() == {}
            assert state.lock_entry("demo-module") is None

    def test_record_install_writes_both_files(self):
        """An install should update the declaration and lock together."""
        with tempfile.TemporaryDirectory() as tmpdir:
            root = Path(tmpdir)
            state = ProjectState(root)

            with state.transaction() as snapshot:
                snapshot.record_install("demo-module", "1.0.0", lock_entry())

            declaration = json.loads((root / "forge.json").read_text())
            lock = json.loads((root / "forge-lock.json").read_text())
            assert declaration["modules"] == {"demo-module": "1.0.0"}
            assert declaration["engine"]["name"] == "forge-engine"
            assert lock["modules"]["demo-module"]["integrity"] == SHA
            assert lock["modules"]["demo-module"]["source_type"] == "local"
            assert state.lock_entry("demo-module") == lock_entry()

    def test_existing_declaration_keys_are_preserved(self):
        """Unrelated declaration keys should survive a transaction."""
        with tempfile.TemporaryDirectory() as tmpdir:
            root = Path(tmpdir)
            (root / "forge.json").write_text(
                json.dumps({"name": "My App", "modules": {"other": "2.0.0"}})
            )
            state = ProjectState(root)

            with state.transaction() as snapshot:
                snapshot.record_install("demo-module", "1.0.0", lock_entry())

            declaration = json.loads((root / "forge.json").read_text())
            assert declaration["name"] == "My App"
            assert declaration["modules"] == {"other": "2.0.0", "demo-module": "1.0.0"}

    def test_forget_removes_both_entries(self):
        """Removing a module should drop it from both files."""
        with tempfile.TemporaryDirectory() as tmpdir:
            state = ProjectState(Path(tmpdir))
            with state.transaction() as snapshot:
                snapshot.record_install("demo-module", "1.0.0", lock_entry())

            with state.transaction() as snapshot:
                assert snapshot.forget("demo-module")

            assert state.declared_modules() == {}
            assert state.lock_entries() == {}

    def test_failed_block_writes_nothing(self):
        """An exception inside the transaction should leave the files untouched."""
        with tempfile.TemporaryDirectory() as tmpdir:
            root = Path(tmpdir)
            state = ProjectState(root)

            with pytest.raises(RuntimeError):
                with state.transaction() as snapshot:
                    snapshot.record_install("demo-module", "1.0.0", lock_entry())
                    raise RuntimeError("boom")

            assert not (root / "forge.json").exists()
            assert not (root / "forge-lock.json").exists()

    def test_lock_write_failure_restores_declaration(self):
        """If the lock cannot be written the declaration should be restored."""
        with tempfile.TemporaryDirectory() as tmpdir:
            root = Path(tmpdir)
            original = json.dumps({"name": "App", "modules": {}})
            (root / "forge.json").write_text(original)
            state = ProjectState(root)

            from forgepm.package import state as state_module

            real_write = state_module.write_json_atomic

            def failing_write(path, data):
                if path.name == "forge-lock.json":
                    raise DeclarationWriteFailed("disk full")
                real_write(path, data)

            with patch.object(state_module, "write_json_atomic", side_effect=failing_write):
                with pytest.raises(DeclarationWriteFailed):
                    with state.transaction() as snapshot:
                        snapshot.record_install("demo-module", "1.0.0", lock_entry())

            assert (root / "forge.json").read_text() == original
            assert not (root / "forge-lock.json").exists()

    def test_corrupt_lock_file(self):
        """An unparsable lock file should raise ManifestInvalid."""
        with tempfile.TemporaryDirectory() as tmpdir:
            root = Path(tmpdir)
            (root / "forge-lock.json").write_text("{not json")

            with pytest.raises(ManifestInvalid):
                ProjectState(root).lock_entries()

    def test_lock_entry_requires_fields(self):
        """Lock entries without version, registry or integrity are invalid."""
        with pytest.raises(ManifestInvalid, match="missing"):
            LockEntry.from_dict("demo-module", {"version": "1.0.0"})

    def test_lock_entry_path_defaults(self):
        """A lock entry without a path should default to name/version."""
        entry = LockEntry.from_dict(
            "demo-module", {"version": "1.0.0", "registry": "r", "integrity": SHA.upper()}
        )
        assert entry.path == "demo-module/1.0.0"
        assert entry.integrity == SHA


class TestTrustStore:
    """Test the trusted sources store."""

    def test_trust_persists(self):
        """Trusted registries should be stored and reloaded."""
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "storage" / "trusted_sources.json"
            store = TrustStore(path)

            assert not store.is_trusted("official")
            store.trust("official")
            store.trust("official")

            assert TrustStore(path).sources() == ["official"]
            assert json.loads(path.read_text()) == {"trusted_sources": ["official"]}

    def test_corrupt_store_trusts_nothing(self):
        """A corrupt store should be treated as empty."""
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "trusted_sources.json"
            path.write_text("garbage")

            assert TrustStore(path).sources() == []


class TestCaches:
    """Test archive and module index caches."""

    def test_archive_cache_verification(self):
        """Cached archives should only be used while their hash matches."""
        with tempfile.TemporaryDirectory() as tmpdir:
            cache = ArchiveCache(Path(tmpdir))
            path = cache.path_for("demo-module", "1.0.0")
            path.write_bytes(b"archive")
            digest = hashlib.sha256(b"archive").hexdigest()

            assert path.name == "DemoModule-1.0.0.zip"
            assert cache.verified("demo-module", "1.0.0", digest) == path
            assert cache.verified("demo-module", "1.0.0", SHA) is None
            assert not path.exists()

    def test_archive_cache_discard(self):
        """discard should report whether a cached archive existed."""
        with tempfile.TemporaryDirectory() as tmpdir:
            cache = ArchiveCache(Path(tmpdir))
            cache.path_for("demo-module", "1.0.0").write_bytes(b"x")

            assert cache.discard("demo-module", "1.0.0")
            assert not cache.discard("demo-module", "1.0.0")

    def test_manifest_cache_round_trip_and_ttl(self):
        """Cached indexes should expire after their TTL."""
        with tempfile.TemporaryDirectory() as tmpdir:
            cache = ManifestCache(Path(tmpdir) / "cache", ttl=60)
            cache.put("https://example.com/modules.json", {"a": {}})

            assert cache.get("https://example.com/modules.json") == {"a": {}}
            assert cache.get("https://example.com/other.json") is None

            path = cache.path_for("https://example.com/modules.json")
            old = time.time() - 120
            os.utime(path, (old, old))

            assert cache.get("https://example.com/modules.json") is None
            assert cache.get("https://example.com/modules.json", ttl=600) == {"a": {}}

    def test_manifest_cache_purge(self):
        """purge_expired should delete only expired entries."""
        with tempfile.TemporaryDirectory() as tmpdir:
            cache = ManifestCache(Path(tmpdir), ttl=60)
            cache.put("fresh", {})
            cache.put("stale", {})
            old = time.time() - 120
            os.utime(cache.path_for("stale"), (old, old))

            assert cache.purge_expired() == 1
            assert cache.get("fresh") == {}

    def test_corrupt_manifest_cache(self):
        """A corrupt cache file should be dropped."""
        with tempfile.TemporaryDirectory() as tmpdir:
            cache = ManifestCache(Path(tmpdir))
            cache.path_for("x").write_text("{broken")

            assert cache.get("x") is None
            assert not cache.path_for("x").exists()


class TestArchive:
    """Test archive extraction and directory swap."""

    def test_module_folder_name(self):
        """Module names should map to PascalCase folder names."""
        assert module_folder_name("demo-module") == "DemoModule"
        assert module_folder_name("forge-package-manager") == "ForgePackageManager"
        assert module_folder_name("auth") == "Auth"

    def test_extract(self):
        """Archives should extract into the target directory."""
        with tempfile.TemporaryDirectory() as tmpdir:
            root = Path(tmpdir)
            archive = make_zip(root / "a.zip", {"src/DemoModule.php": "<?php\n"})
            target = root / "out"
            target.mkdir()

            extract_archive(archive, target)

            assert (target / "src" / "DemoModule.php").read_text() == "<?php\n"

    def test_zip_slip_is_rejected(self):
        """Members escaping the target should be rejected."""
        with tempfile.TemporaryDirectory() as tmpdir:
            root = Path(tmpdir)
            archive = make_zip(root / "evil.zip", {"../escape.txt": "x"})
            target = root / "out"
            target.mkdir()

            with pytest.raises(ExtractionFailed, match="escapes"):
                extract_archive(archive, target)
            assert not (root / "escape.txt").exists()

    def test_invalid_archive(self):
        """A non-zip file should raise ExtractionFailed."""
        with tempfile.TemporaryDirectory() as tmpdir:
            root = Path(tmpdir)
            (root / "bad.zip").write_bytes(b"not a zip")

            with pytest.raises(ExtractionFailed):
                extract_archive(root / "bad.zip", root)

    def test_failed_stage_leaves_nothing(self):
        """A failed extraction should leave no staging directory behind."""
        with tempfile.TemporaryDirectory() as tmpdir:
            root = Path(tmpdir)
            (root / "bad.zip").write_bytes(b"not a zip")
            modules = root / "modules"

            with pytest.raises(ExtractionFailed):
                stage_archive(root / "bad.zip", modules / "DemoModule")

            assert list(modules.iterdir()) == []

    def test_swap_and_rollback(self):
        """A swap should be reversible until the backup is discarded."""
        with tempfile.TemporaryDirectory() as tmpdir:
            root = Path(tmpdir)
            install_dir = root / "modules" / "DemoModule"
            install_dir.mkdir(parents=True)
            (install_dir / "version.txt").write_text("old")
            archive = make_zip(root / "new.zip", {"version.txt": "new"})

            staging = stage_archive(archive, install_dir)
            backup = swap_into_place(staging, install_dir)

            assert (install_dir / "version.txt").read_text() == "new"
            assert backup is not None and backup.exists()

            rollback_swap(install_dir, backup)
            assert (install_dir / "version.txt").read_text() == "old"
            assert not backup.exists()

    def test_swap_without_previous(self):
        """A first install should have no backup."""
        with tempfile.TemporaryDirectory() as tmpdir:
            root = Path(tmpdir)
            install_dir = root / "modules" / "DemoModule"
            archive = make_zip(root / "new.zip", {"a.txt": "a"})

            backup = swap_into_place(stage_archive(archive, install_dir), install_dir)
            discard_backup(backup)

            assert backup is None
            assert (install_dir / "a.txt").exists()
            assert [p.name for p in install_dir.parent.iterdir()] == ["DemoModule"]
