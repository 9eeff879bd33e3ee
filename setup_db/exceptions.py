"""
Defines custom exceptions for the application to allow for more specific error handling.
"""


class SetupDbError(Exception):
    """Base exception for all application-specific errors."""


class NotFound(SetupDbError):
    """Raised when a package version or an archive entry cannot be found."""


class PackageNotFoundError(NotFound):
    """Raised when the version listing of a package is empty or unusable."""


class ArtifactNotFoundError(NotFound):
    """Raised when a package archive holds no loadable library entry."""


class RemoteFetchError(SetupDbError):
    """Raised when a request to the package index fails."""

    def __init__(self, url: str, status: int | None, message: str | None = None):
        self.url = url
        self.status = status
        if message is None:
            message = (
                f"HTTP {status} for {url}"
                if status is not None
                else f"Request to {url} failed"
            )
        super().__init__(message)


class RetriesExhaustedError(RemoteFetchError):
    """Raised when a transient failure persists after every retry attempt."""

    def __init__(
        self, url: str, status: int | None, attempts: int, reason: str | None = None
    ):
        self.attempts = attempts
        detail = f"HTTP {status}" if status is not None else (reason or "no response")
        super().__init__(
            url, status, f"Giving up on {url} after {attempts} attempts ({detail})"
        )


class ManifestParseError(SetupDbError):
    """Raised when a nuspec document is malformed or lacks its id/version."""


class ArchiveFormatError(SetupDbError):
    """Raised when downloaded package bytes are not a readable zip archive."""


class UnsafeCacheNameError(SetupDbError):
    """Raised when a file name would be written outside the package cache."""


class DependencyCycleError(SetupDbError):
    """Raised when packages wait on each other in a cycle."""


class ConfigurationError(SetupDbError):
    """Raised for issues related to configuration loading or validation."""


class ResolutionError(SetupDbError):
    """
    Raised when a package cannot be resolved.

    Wraps the underlying failure and records which package identity failed.
    """

    def __init__(self, name: str, version: str | None, cause: BaseException):
        self.name = name
        self.version = version
        self.cause = cause
        label = f"{name} {version}" if version else f"{name} (latest)"
        super().__init__(f"Failed to resolve {label}: {cause}")
