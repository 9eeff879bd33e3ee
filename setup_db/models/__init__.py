"""
Data Models Layer.

This package contains the data structures used throughout the application:
the pydantic configuration model, package/manifest records and statistics.
"""

from .config import ResolverConfig
from .package import (
    DependencyDecl,
    DependencyGroup,
    IndexEntry,
    Manifest,
    PackageRef,
    ResolvedPackage,
)
from .stats import ResolutionStats

__all__ = [
    "DependencyDecl",
    "DependencyGroup",
    "IndexEntry",
    "Manifest",
    "PackageRef",
    "ResolutionStats",
    "ResolvedPackage",
    "ResolverConfig",
]
