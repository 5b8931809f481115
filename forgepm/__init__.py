"""
Forge Package Manager - module installer for Forge applications.

This is the main package that exports the public API of the installer.
"""

__version__ = "0.1.0"

from forgepm.console import Console
from forgepm.context import ForgeContext
from forgepm.package.errors import PackageError
from forgepm.package.manager import InstallResult, PackageManager, RemoveResult

__all__ = [
    "__version__",
    "Console",
    "ForgeContext",
    "InstallResult",
    "PackageError",
    "PackageManager",
    "RemoveResult",
]
