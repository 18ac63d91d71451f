# blossom/packages/errors.py
from __future__ import annotations

__all__ = [
    "PackageError",
    "PackageNotFoundError",
    "MissingDependencyError",
    "UnknownDependentError",
    "PackageFetchError",
    "ManifestError",
]



class PackageError(RuntimeError):
    """Base class for package loader errors."""
    
    def __init__(
        self,
        message: str,
        *,
        packageName: str | None = None
    ) -> None:
        super().__init__(message)
        self.packageName: str | None = packageName



class PackageNotFoundError(PackageError):
    """Raised when a package name is not present in the manifest."""



class MissingDependencyError(PackageError):
    """
    Raised when a package declares a dependency the manifest does not know.
    The manifest is expected to be self-consistent, so this is fatal.
    """
    
    def __init__(self, packageName: str, dependency: str) -> None:
        super().__init__(
            f"Could not find required dependency '{dependency}' for package '{packageName}'",
            packageName=packageName,
        )
        self.dependency = dependency



class UnknownDependentError(PackageError):
    """Raised when a package lists a dependent the manifest does not know."""
    
    def __init__(self, packageName: str, dependent: str) -> None:
        super().__init__(
            f"Can't find dependent '{dependent}' for '{packageName}'",
            packageName=packageName,
        )
        self.dependent = dependent



class PackageFetchError(PackageError):
    """Raised by fetchers when a package's source could not be retrieved."""
    
    def __init__(
        self,
        message: str,
        *,
        packageName: str | None = None,
        status: int | None = None,
    ) -> None:
        super().__init__(message, packageName=packageName)
        self.status = status



class ManifestError(PackageError):
    """Raised when a manifest cannot be read or fails validation."""
