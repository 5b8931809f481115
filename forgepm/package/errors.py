"""
Package manager error types.

Every error except PostActionFailed aborts the current module operation
and leaves the declaration file, lock file and installed tree untouched.
"""


class PackageError(Exception):
    """Base exception for package manager errors."""

    pass


class RegistryUnreachable(PackageError):
    """Raised when no configured registry could be reached."""

    pass


class ManifestInvalid(PackageError):
    """Raised when a registry index is malformed or missing required fields."""

    pass


class ModuleResolutionError(PackageError):
    """Raised when a module or version is absent from every reachable registry."""

    pass


class DownloadFailed(PackageError):
    """Raised when an archive could not be downloaded."""

    pass


class IntegrityMismatch(PackageError):
    """Raised when an archive's SHA-256 does not match the expected value."""

    pass


class ExtractionFailed(PackageError):
    """Raised when an archive cannot be extracted."""

    pass


class DeclarationWriteFailed(PackageError):
    """Raised when forge.json or forge-lock.json cannot be written."""

    pass


class PostActionFailed(PackageError):
    """Raised when a post-install or post-uninstall action fails."""

    pass
