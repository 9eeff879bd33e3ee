"""
Decides which declared dependencies are worth resolving.

Packages that belong to the host runtime (the `System.*` family and the
framework meta-packages) are never downloaded, and dependency groups aimed
at .NET Standard are skipped as a whole because they mostly pull polyfills.
"""

from collections.abc import Iterable

from setup_db.models.config import ResolverConfig
from setup_db.models.package import DependencyDecl, DependencyGroup, Manifest


def is_excluded_group(group: DependencyGroup, framework_prefix: str) -> bool:
    """A group is dropped only when it declares a framework with the prefix."""
    return bool(
        framework_prefix
        and group.target_framework
        and group.target_framework.startswith(framework_prefix)
    )


def is_platform_package(
    package_id: str, id_prefixes: Iterable[str], ids: Iterable[str]
) -> bool:
    """Whether the id names a host runtime package (case-insensitive)."""
    lowered = package_id.lower()
    if any(lowered.startswith(prefix.lower()) for prefix in id_prefixes):
        return True
    return lowered in {i.lower() for i in ids}


def retained_dependencies(
    manifest: Manifest, config: ResolverConfig
) -> list[DependencyDecl]:
    """
    Collects the dependencies to resolve from every kept group.

    Each package id appears once; when several groups declare it, the first
    declaration in document order wins.
    """
    retained: dict[str, DependencyDecl] = {}
    for group in manifest.dependency_groups:
        if is_excluded_group(group, config.excluded_framework_prefix):
            continue
        for dep in group.dependencies:
            if is_platform_package(
                dep.id, config.excluded_id_prefixes, config.excluded_ids
            ):
                continue
            retained.setdefault(dep.id.lower(), dep)
    return list(retained.values())
