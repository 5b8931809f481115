"""
Forge Package Manager.

This module orchestrates module installation, upgrade and removal.

Key features:
- Module resolution across registries with a TTL-gated index cache
- Integrity-checked archive cache and downloads
- Staged extraction swapped into place by rename
- Three-way merge of operator-edited files on upgrade
- Declaration and lock files updated together under a file lock
- Post-install / post-uninstall actions with trust confirmation
- Reinstallation from the lock file without re-resolving versions
"""

import logging
import os
import shutil
import tempfile
from collections.abc import Callable, Iterable, Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path

from forgepm.compare.comparison import ComparisonResult, compare_trees, list_module_files
from forgepm.compare.merge import merge_files
from forgepm.compare.report import format_comparison
from forgepm.config import RegistryConfig
from forgepm.console import Console
from forgepm.context import ForgeContext
from forgepm.package.archive import (
    discard_backup,
    discard_staging,
    extract_archive,
    module_folder_name,
    rollback_swap,
    stage_archive,
    swap_into_place,
)
from forgepm.package.cache import ArchiveCache, ManifestCache
from forgepm.package.errors import (
    DownloadFailed,
    ExtractionFailed,
    IntegrityMismatch,
    ManifestInvalid,
    ModuleResolutionError,
    PackageError,
    PostActionFailed,
    RegistryUnreachable,
)
from forgepm.package.hooks import ActionReader, HookAction, HookType, read_module_actions, run_action
from forgepm.package.index import (
    ModuleEntry,
    parse_module_entry,
    parse_registry_index,
    sort_versions,
)
from forgepm.package.state import LockEntry, ProjectState, TrustStore
from forgepm.sources.base import Source
from forgepm.sources.factory import create_source

logger = logging.getLogger(__name__)

SELF_MODULE_NAME = "forge-package-manager"

PreserveSelector = Callable[[ComparisonResult], Iterable[str]]
ActionApprover = Callable[[str, str, list[HookAction]], list[HookAction]]
SourceFactory = Callable[[RegistryConfig, Mapping[str, str]], Source]


@dataclass
class ResolvedModule:
    """A module version pinned to a registry and integrity hash."""

    name: str
    version: str
    registry: RegistryConfig
    path: str
    integrity: str


@dataclass
class InstallResult:
    """
    Outcome of one module installation.

    Attributes:
        name: Module name
        version: Installed version
        registry: Registry it came from
        integrity: SHA-256 of the installed archive
        path: Install directory
        from_cache: Whether the archive came from the local cache
        previous_version: Version installed before, if any
        merged: Files whose operator edits were carried forward
        conflicts: Conflict count per merged file
        warnings: Non-fatal problems (failed post-install actions...)
    """

    name: str
    version: str
    registry: str
    integrity: str
    path: Path
    from_cache: bool = False
    previous_version: str | None = None
    merged: list[str] = field(default_factory=list)
    conflicts: dict[str, int] = field(default_factory=dict)
    warnings: list[str] = field(default_factory=list)


@dataclass
class RemoveResult:
    """Outcome of one module removal."""

    name: str
    removed: bool
    warnings: list[str] = field(default_factory=list)


@dataclass
class InstalledModule:
    """A module known to the project's declaration or lock file."""

    name: str
    declared: str | None
    locked: LockEntry | None
    path: Path

    @property
    def present(self) -> bool:
        return self.path.is_dir()


class PackageManager:
    """
    Installs and removes Forge modules for one project.

    Example:
        context = ForgeContext.load(Path("."))
        with PackageManager(context) as pm:
            pm.install("demo-module")
    """

    def __init__(
        self,
        context: ForgeContext,
        console: Console | None = None,
        action_reader: ActionReader = read_module_actions,
        approve_actions: ActionApprover | None = None,
        source_factory: SourceFactory = create_source,
    ):
        """
        Initialize the package manager.

        Args:
            context: Project context
            console: Output writer (defaults to stdout/stderr)
            action_reader: Reads a module's post-install/uninstall actions
            approve_actions: Filters actions from untrusted registries;
                defaults to prompting through the console
            source_factory: Builds a Source for a registry
        """
        self.context = context
        self.console = console or Console(interactive=not context.assume_yes)
        self.action_reader = action_reader
        self.approve_actions = approve_actions or self._prompt_for_actions
        self.source_factory = source_factory

        self.state = ProjectState(context.project_root)
        self.archives = ArchiveCache(context.cache_path)
        self.index_cache = ManifestCache(context.cache_path, context.cache_ttl)
        self.trust = TrustStore(context.trust_file)
        self._sources: dict[str, Source] = {}

    def __enter__(self) -> "PackageManager":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def close(self) -> None:
        for source in self._sources.values():
            source.close()
        self._sources.clear()

    # Registries

    def source_for(self, registry: RegistryConfig) -> Source:
        if registry.name not in self._sources:
            self._sources[registry.name] = self.source_factory(registry, self.context.env)
        return self._sources[registry.name]

    def fetch_index(self, registry: RegistryConfig) -> dict | None:
        """
        Get a registry's module index, cache first.

        Returns:
            The index, or None if the registry is unreachable

        Raises:
            ManifestInvalid: If the index is malformed
        """
        source = self.source_for(registry)
        location = source.index_location
        cached = self.index_cache.get(location, registry.cache_ttl)
        if cached is not None:
            logger.debug("Using cached module index for %s", registry.name)
            return cached

        data = source.fetch_modules_json()
        if data is None:
            return None
        try:
            parse_registry_index(data)
        except ManifestInvalid as e:
            raise ManifestInvalid(f"Registry '{registry.name}' ({location}): {e}") from e
        self.index_cache.put(location, data)
        return data

    def _find_module(self, name: str) -> tuple[RegistryConfig, ModuleEntry]:
        """First registry listing ``name``, in configuration order."""
        if not self.context.registries:
            raise RegistryUnreachable("No registries configured")

        unreachable: list[str] = []
        invalid: list[str] = []
        for registry in self.context.registries:
            try:
                index = self.fetch_index(registry)
            except ManifestInvalid as e:
                self.console.warning(str(e))
                invalid.append(registry.name)
                continue
            if index is None:
                self.console.warning(
                    f"Registry '{registry.name}' is unreachable ({registry.location})"
                )
                unreachable.append(registry.name)
                continue
            if name in index:
                try:
                    return registry, parse_module_entry(name, index[name])
                except ManifestInvalid as e:
                    raise ManifestInvalid(
                        f"Registry '{registry.name}' entry for '{name}': {e}"
                    ) from e

        if len(unreachable) == len(self.context.registries):
            raise RegistryUnreachable(
                f"Could not reach any registry: {', '.join(unreachable)}"
            )
        if invalid and len(unreachable) + len(invalid) == len(self.context.registries):
            raise ManifestInvalid(
                f"No valid module index available (invalid: {', '.join(invalid)})"
            )
        raise ModuleResolutionError(f"Module '{name}' not found in any registry")

    def resolve(self, name: str, version: str | None = None) -> ResolvedModule:
        """
        Resolve a module version against the registries.

        Args:
            name: Module name
            version: Requested version; None or "latest" picks the registry's latest

        Returns:
            ResolvedModule

        Raises:
            RegistryUnreachable: If no registry could be reached
            ManifestInvalid: If the index or module entry is malformed
            ModuleResolutionError: If the module or version does not exist
        """
        registry, module = self._find_module(name)
        entry = module.resolve(version)
        if entry is None:
            available = ", ".join(sort_versions(list(module.versions)))
            raise ModuleResolutionError(
                f"Version '{version or module.latest}' of module '{name}' not found in "
                f"registry '{registry.name}' (available: {available})"
            )
        return ResolvedModule(
            name=name,
            version=entry.version,
            registry=registry,
            path=entry.url,
            integrity=entry.integrity,
        )

    def module_info(self, name: str) -> tuple[RegistryConfig, ModuleEntry]:
        """Registry and index entry for a module."""
        return self._find_module(name)

    def list_available(self, registry_name: str | None = None) -> list[tuple[RegistryConfig, ModuleEntry]]:
        """
        List modules offered by the registries.

        Unreachable registries and malformed entries are reported as warnings
        and skipped.
        """
        modules = []
        for registry in self.context.registries:
            if registry_name is not None and registry.name != registry_name:
                continue
            try:
                index = self.fetch_index(registry)
            except ManifestInvalid as e:
                self.console.warning(str(e))
                continue
            if index is None:
                self.console.warning(f"Registry '{registry.name}' is unreachable")
                continue
            for name in sorted(index):
                try:
                    modules.append((registry, parse_module_entry(name, index[name])))
                except ManifestInvalid as e:
                    self.console.warning(f"Skipping '{name}' from '{registry.name}': {e}")
        return modules

    def check_registries(self) -> dict[str, bool]:
        """Check every registry's reachability."""
        return {
            registry.name: self.source_for(registry).validate_connection()
            for registry in self.context.registries
        }

    def clean_cache(self) -> int:
        """Delete expired module index caches."""
        return self.index_cache.purge_expired()

    # Installation

    def install_dir(self, name: str) -> Path:
        return self.context.modules_path / module_folder_name(name)

    def obtain_archive(self, resolved: ResolvedModule, force_cache: bool = False) -> tuple[Path, bool]:
        """
        Get a verified archive, from cache or by downloading.

        Returns:
            Tuple of (archive path, whether it came from the cache)

        Raises:
            DownloadFailed: If the download fails
            IntegrityMismatch: If the downloaded archive hash is wrong
        """
        name, version = resolved.name, resolved.version
        if force_cache and self.archives.discard(name, version):
            self.console.info(f"Cache bypassed, deleted cached module {name} version {version}.")

        had_cache = self.archives.path_for(name, version).is_file()
        cached = self.archives.verified(name, version, resolved.integrity)
        if cached is not None:
            self.console.info(f"Using cached module {name} version {version}.")
            return cached, True
        if had_cache:
            self.console.warning(
                f"Cached archive of {name} version {version} failed the integrity check; re-downloading."
            )

        source = self.source_for(resolved.registry)
        url = source.archive_location(resolved.path, version)
        destination = self.archives.path_for(name, version)
        self.console.info(f"Downloading module {name} version {version} from {url}...")

        digest = source.download_module(resolved.path, destination, version)
        if digest is None:
            raise DownloadFailed(f"Failed to download module {name} version {version} from {url}")
        if digest != resolved.integrity:
            destination.unlink(missing_ok=True)
            raise IntegrityMismatch(
                f"Integrity mismatch for module {name} version {version} from {url}: "
                f"expected {resolved.integrity}, got {digest}"
            )
        return destination, False

    def install(
        self,
        name: str,
        version: str | None = None,
        force_cache: bool = False,
        preserve: PreserveSelector | None = None,
    ) -> InstallResult:
        """
        Resolve and install a module.

        Args:
            name: Module name
            version: Version to install (default: registry latest)
            force_cache: Delete any cached archive and download again
            preserve: Selector choosing which locally modified files to merge
                into the new version; None replaces the module wholesale

        Returns:
            InstallResult

        Raises:
            PackageError: If any stage before post-install actions fails
        """
        self.console.info(
            f"Installing module: {name}" + (f" version {version}" if version else " (latest)")
        )
        resolved = self.resolve(name, version)
        return self._install_resolved(resolved, force_cache=force_cache, preserve=preserve)

    def upgrade(
        self,
        name: str,
        version: str | None = None,
        preserve: PreserveSelector | None = None,
    ) -> InstallResult | None:
        """
        Upgrade an installed module.

        Returns:
            InstallResult, or None if the module is already at the resolved version
        """
        resolved = self.resolve(name, version)
        current = self.state.lock_entry(name)
        if (
            current is not None
            and current.version == resolved.version
            and current.integrity == resolved.integrity
            and self.install_dir(name).is_dir()
        ):
            self.console.info(f"Module {name} is up to date ({current.version}).")
            return None
        self.console.info(
            f"Upgrading module {name}: "
            f"{current.version if current else 'not installed'} -> {resolved.version}"
        )
        return self._install_resolved(resolved, preserve=preserve)

    def install_from_lock(self) -> list[InstallResult]:
        """
        Reinstall every module exactly as recorded in forge-lock.json.

        Registry indexes are not consulted. Every module is attempted even if
        an earlier one fails.

        Returns:
            Results of the successful installs

        Raises:
            PackageError: After all modules were attempted, if any failed
        """
        entries = self.state.lock_entries()
        if not entries:
            self.console.info("No modules recorded in forge-lock.json.")
            return []

        results: list[InstallResult] = []
        failures: list[str] = []
        for name, entry in entries.items():
            self.console.info(f"Installing module from lock: {name} version {entry.version}")
            registry = self.context.registry(entry.registry)
            if registry is None:
                message = f"registry '{entry.registry}' is not configured"
                self.console.error(f"Failed to install {name}: {message}")
                failures.append(f"{name} ({message})")
                continue
            resolved = ResolvedModule(
                name=name,
                version=entry.version,
                registry=registry,
                path=entry.path,
                integrity=entry.integrity,
            )
            try:
                results.append(self._install_resolved(resolved))
            except PackageError as e:
                self.console.error(f"Failed to install {name}: {e}")
                failures.append(f"{name} ({e})")

        if failures:
            raise PackageError(
                f"{len(failures)} of {len(entries)} modules failed to install from lock: "
                + "; ".join(failures)
            )
        return results

    def _install_resolved(
        self,
        resolved: ResolvedModule,
        force_cache: bool = False,
        preserve: PreserveSelector | None = None,
    ) -> InstallResult:
        name, version = resolved.name, resolved.version
        install_dir = self.install_dir(name)
        previous = self.state.lock_entry(name)

        if (
            previous is not None
            and previous.version == version
            and previous.integrity == resolved.integrity
            and install_dir.is_dir()
        ):
            self.console.warning(f"Module {name} version {version} is already installed; reinstalling.")

        archive, from_cache = self.obtain_archive(resolved, force_cache)
        source = self.source_for(resolved.registry)
        result = InstallResult(
            name=name,
            version=version,
            registry=resolved.registry.name,
            integrity=resolved.integrity,
            path=install_dir,
            from_cache=from_cache,
            previous_version=previous.version if previous else None,
        )

        self.console.info(f"Extracting module {name} version {version}...")
        staging = stage_archive(archive, install_dir)
        try:
            if preserve is not None and install_dir.is_dir():
                self._carry_forward_edits(result, install_dir, staging, previous, preserve)
            backup = swap_into_place(staging, install_dir)
        except BaseException:
            discard_staging(staging)
            raise

        lock_entry = LockEntry(
            version=version,
            registry=resolved.registry.name,
            url=source.archive_location(resolved.path, version),
            integrity=resolved.integrity,
            path=resolved.path,
            source_type=resolved.registry.type,
        )
        try:
            with self.state.transaction() as snapshot:
                snapshot.record_install(name, version, lock_entry)
        except PackageError:
            rollback_swap(install_dir, backup)
            raise
        discard_backup(backup)

        self.console.success(f"Module {name} version {version} installed successfully.")
        result.warnings.extend(
            self._run_actions(name, install_dir, HookType.POST_INSTALL, resolved.registry.name)
        )
        return result

    # Upgrade reconciliation

    @contextmanager
    def _original_tree(self, name: str, previous: LockEntry | None) -> Iterator[Path | None]:
        """
        Extract the archive the installed module came from.

        The archive cache is left untouched when its slot holds a different
        archive of the same version (a republished version); the original is
        then downloaded to a temporary file.

        Yields None when that archive is unavailable or fails verification.
        """
        if previous is None:
            yield None
            return

        with tempfile.TemporaryDirectory(prefix="forge-base-") as tmpdir:
            workdir = Path(tmpdir)
            archive = self.archives.verified(
                name, previous.version, previous.integrity, discard=False
            )
            if archive is None:
                registry = self.context.registry(previous.registry)
                if registry is not None:
                    cached = self.archives.path_for(name, previous.version)
                    destination = workdir / "original.zip" if cached.exists() else cached
                    digest = self.source_for(registry).download_module(
                        previous.path, destination, previous.version
                    )
                    if digest == previous.integrity:
                        archive = destination
                    elif digest is not None:
                        destination.unlink(missing_ok=True)

            if archive is None:
                yield None
                return

            tree = workdir / "tree"
            tree.mkdir()
            try:
                extract_archive(archive, tree)
            except ExtractionFailed as e:
                logger.debug("Cannot extract original archive %s: %s", archive, e)
                yield None
                return
            yield tree

    def _carry_forward_edits(
        self,
        result: InstallResult,
        install_dir: Path,
        staging: Path,
        previous: LockEntry | None,
        preserve: PreserveSelector,
    ) -> None:
        comparison = compare_trees(install_dir, staging)
        for line in format_comparison(comparison):
            self.console.line(line)
        if not comparison.modified:
            self.console.info("No locally modified files to preserve.")
            return

        selected = list(dict.fromkeys(preserve(comparison)))
        if not selected:
            return

        with self._original_tree(result.name, previous) as base_dir:
            base_files = list_module_files(base_dir) if base_dir is not None else {}
            if base_dir is None:
                self.console.warning(
                    f"Original files of {result.name}"
                    + (f" version {previous.version}" if previous else "")
                    + " are unavailable; every difference in preserved files is reported as a conflict."
                )

            for path in selected:
                entry = comparison.modified_file(path)
                if entry is None:
                    self.console.warning(f"{path} is not a modified file; skipping.")
                    continue
                if entry.binary:
                    shutil.copy2(entry.existing_path, entry.new_path)
                    self.console.info(f"Kept your version of binary file {path}.")
                    result.merged.append(path)
                    continue

                base_file = base_files.get(path)
                merge = merge_files(base_file, entry.existing_path, entry.new_path)
                entry.new_path.write_text(merge.text, encoding="utf-8")
                result.merged.append(path)
                if merge.has_conflicts:
                    result.conflicts[path] = len(merge.conflicts)
                    message = (
                        f"{path}: {len(merge.conflicts)} conflict(s) between your changes "
                        "and the new version; resolve the <<<<<<< markers"
                    )
                    self.console.warning(message)
                    result.warnings.append(message)
                else:
                    self.console.success(f"Merged your changes into {path}.")

    # Removal

    def remove(self, name: str) -> RemoveResult:
        """
        Remove a module.

        Post-uninstall actions run before any file is deleted. A module that
        is not on disk only has its stale declaration and lock entries
        removed.

        Returns:
            RemoveResult

        Raises:
            PackageError: If the module directory or state files cannot be updated
        """
        self.console.info(f"Removing module: {name}")
        if name == SELF_MODULE_NAME:
            self.console.warning(
                "You are removing the package manager itself; modules cannot be managed until it is reinstalled."
            )

        install_dir = self.install_dir(name)
        result = RemoveResult(name=name, removed=False)

        if not install_dir.is_dir():
            message = f"Module '{name}' is not installed at {install_dir}; cleaning up stale entries."
            self.console.warning(message)
            result.warnings.append(message)
            with self.state.transaction() as snapshot:
                snapshot.forget(name)
            return result

        entry = self.state.lock_entry(name)
        registry_name = entry.registry if entry else ""
        result.warnings.extend(
            self._run_actions(name, install_dir, HookType.POST_UNINSTALL, registry_name)
        )

        doomed = install_dir.with_name(f".{install_dir.name}.removing-{os.getpid()}")
        try:
            os.rename(install_dir, doomed)
        except OSError as e:
            raise PackageError(f"Failed to remove module directory {install_dir}: {e}") from e
        shutil.rmtree(doomed, ignore_errors=True)
        result.removed = True

        with self.state.transaction() as snapshot:
            snapshot.forget(name)

        self.console.success(f"Module {name} removed successfully.")
        return result

    def installed_modules(self) -> list[InstalledModule]:
        """Modules listed in the declaration or lock file."""
        declared = self.state.declared_modules()
        locked = self.state.lock_entries()
        return [
            InstalledModule(
                name=name,
                declared=declared.get(name),
                locked=locked.get(name),
                path=self.install_dir(name),
            )
            for name in sorted(declared.keys() | locked.keys())
        ]

    # Actions

    def _prompt_for_actions(
        self, module: str, registry: str, actions: list[HookAction]
    ) -> list[HookAction]:
        """Ask per action: [Y]es, [N]o, [A]ll, [R]eject all."""
        self.console.warning(
            f"Module '{module}' from untrusted source '{registry}' wants to run "
            f"{len(actions)} command(s)."
        )
        approved = []
        for index, action in enumerate(actions):
            answer = self.console.ask(
                f"Run '{action}'? [Y]es/[N]o/[A]ll/[R]eject all: ", "n"
            ).lower()
            if answer.startswith("a"):
                approved.extend(actions[index:])
                break
            if answer.startswith("r"):
                break
            if answer.startswith("y"):
                approved.append(action)
            else:
                self.console.info(f"Skipping command: {action}")
        return approved

    def _run_actions(
        self, name: str, module_dir: Path, hook_type: HookType, registry: str
    ) -> list[str]:
        """Run a module's actions; failures become warnings."""
        warnings: list[str] = []
        try:
            actions = self.action_reader(module_dir).for_hook(hook_type)
        except PostActionFailed as e:
            warnings.append(str(e))
            self.console.warning(str(e))
            return warnings
        if not actions:
            return warnings

        trusted = self.context.assume_yes or (registry and self.trust.is_trusted(registry))
        if trusted:
            approved = actions
        else:
            approved = self.approve_actions(name, registry, actions)

        for action in approved:
            self.console.info(f"Running {hook_type.value} command: {action}")
            try:
                run_action(
                    action,
                    name,
                    module_dir,
                    hook_type,
                    cwd=self.context.project_root,
                    env_vars=self.context.env,
                    timeout=self.context.hook_timeout,
                    launcher=self.context.console_launcher,
                )
            except PostActionFailed as e:
                warnings.append(str(e))
                self.console.warning(str(e))
            else:
                self.console.success(f"Command '{action}' executed successfully.")

        if not trusted and approved and registry and self.console.interactive:
            if self.console.confirm(f"Trust source '{registry}' for future installs?", default=False):
                self.trust.trust(registry)
                self.console.success(f"Source '{registry}' added to trusted sources.")
        return warnings
