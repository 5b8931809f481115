"""
Per-invocation installer context.

ForgeContext gathers every path and setting the package manager needs and
is built once per CLI run. Nothing here is process-global, so tests can
create as many independent contexts as they like.
"""

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

from forgepm.config import RegistryConfig, SourceList, load_source_list

logger = logging.getLogger(__name__)

SOURCE_LIST_FILE = Path("config") / "source_list.toml"
MODULES_DIR = Path("modules")
CACHE_DIR = Path("storage") / "framework" / "cache" / "modules"
TRUST_FILE = Path("storage") / "framework" / "trusted_sources.json"
FORGE_CONSOLE = ("php", "forge.php")


@dataclass
class ForgeContext:
    """
    Installer settings for one project.

    Attributes:
        project_root: Directory holding forge.json and forge-lock.json
        registries: Configured registries in lookup order
        cache_ttl: Default module index cache lifetime in seconds
        env: Environment used for credential fallbacks and hook execution
        hook_timeout: Seconds a post-install/uninstall action may run
        console_launcher: Command prefix for Forge console actions
        assume_yes: Approve prompts without asking (``--noconfirm``)
    """

    project_root: Path
    registries: list[RegistryConfig] = field(default_factory=list)
    cache_ttl: int = 3600
    env: Mapping[str, str] = field(default_factory=lambda: dict(os.environ))
    hook_timeout: int = 300
    console_launcher: tuple[str, ...] = FORGE_CONSOLE
    assume_yes: bool = False

    @classmethod
    def load(
        cls,
        project_root: Path,
        env: Mapping[str, str] | None = None,
        assume_yes: bool = False,
    ) -> "ForgeContext":
        """
        Build a context from a project's config/source_list.toml.

        Args:
            project_root: Project directory
            env: Environment mapping (defaults to os.environ)
            assume_yes: Skip interactive prompts

        Returns:
            ForgeContext for the project

        Raises:
            ConfigError: If the registry list is invalid
        """
        project_root = Path(project_root).resolve()
        source_list: SourceList = load_source_list(project_root / SOURCE_LIST_FILE)
        logger.debug(
            "Loaded registries: %s",
            [registry.masked() for registry in source_list.registries],
        )
        return cls(
            project_root=project_root,
            registries=source_list.registries,
            cache_ttl=source_list.cache_ttl,
            env=dict(os.environ) if env is None else env,
            assume_yes=assume_yes,
        )

    @property
    def modules_path(self) -> Path:
        return self.project_root / MODULES_DIR

    @property
    def cache_path(self) -> Path:
        return self.project_root / CACHE_DIR

    @property
    def trust_file(self) -> Path:
        return self.project_root / TRUST_FILE

    @property
    def source_list_file(self) -> Path:
        return self.project_root / SOURCE_LIST_FILE

    def registry(self, name: str) -> RegistryConfig | None:
        """Look up a configured registry by name."""
        for registry in self.registries:
            if registry.name == name:
                return registry
        return None
