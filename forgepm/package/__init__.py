"""
Forge Package - module lifecycle on top of registry sources.

This module contains:
- PackageManager: install, upgrade, remove and reinstall-from-lock
- Project state: forge.json / forge-lock.json under a file lock
- Archive and module index caches
- Post-install / post-uninstall actions
"""

from forgepm.package.errors import (
    DeclarationWriteFailed,
    DownloadFailed,
    ExtractionFailed,
    IntegrityMismatch,
    ManifestInvalid,
    ModuleResolutionError,
    PackageError,
    PostActionFailed,
    RegistryUnreachable,
)
from forgepm.package.manager import (
    InstalledModule,
    InstallResult,
    PackageManager,
    RemoveResult,
    ResolvedModule,
)

__all__ = [
    "DeclarationWriteFailed",
    "DownloadFailed",
    "ExtractionFailed",
    "InstallResult",
    "InstalledModule",
    "IntegrityMismatch",
    "ManifestInvalid",
    "ModuleResolutionError",
    "PackageError",
    "PackageManager",
    "PostActionFailed",
    "RegistryUnreachable",
    "RemoveResult",
    "ResolvedModule",
]
