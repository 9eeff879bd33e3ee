"""
Immutable data structures describing packages, manifests and resolution results.
"""

from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class PackageRef:
    """A package identity to resolve. A missing version means "latest"."""

    name: str
    version: str | None = None

    @property
    def key(self) -> tuple[str, str | None]:
        """Case-insensitive identity used for de-duplication."""
        return self.name.lower(), self.version.lower() if self.version else None

    def __str__(self) -> str:
        return f"{self.name} {self.version}" if self.version else self.name


@dataclass(frozen=True)
class DependencyDecl:
    """A single `<dependency>` element. `version` is the raw declared string."""

    id: str
    version: str | None = None


@dataclass(frozen=True)
class DependencyGroup:
    """Dependencies scoped to an optional target framework."""

    target_framework: str | None = None
    dependencies: tuple[DependencyDecl, ...] = ()


@dataclass(frozen=True)
class Manifest:
    """Parsed contents of a nuspec document."""

    id: str
    version: str
    reference_files: tuple[str, ...] = ()
    dependency_groups: tuple[DependencyGroup, ...] = ()

    def effective_reference_files(self, name: str | None = None) -> tuple[str, ...]:
        """Declared reference files, or `{name}.dll` (default: the id) when none are."""
        return self.reference_files or (f"{name or self.id}.dll",)


@dataclass(frozen=True)
class IndexEntry:
    """One version row from the registration index."""

    version: str
    package_content: str | None = None


@dataclass(frozen=True)
class ResolvedPackage:
    """Result of resolving one package."""

    name: str
    version: str
    primary_artifact_path: Path
