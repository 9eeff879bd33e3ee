"""
Recursive, concurrent resolution of a package and its dependency graph into
the local package cache.
"""

import asyncio
import logging
from collections import defaultdict
from functools import partial
from typing import Dict, List, Optional, Set, Tuple

from setup_db.api.versions import pinned_version
from setup_db.codec.archive import extract_primary_binary
from setup_db.codec.manifest import parse_manifest
from setup_db.exceptions import DependencyCycleError, ResolutionError, SetupDbError
from setup_db.models.config import ResolverConfig
from setup_db.models.package import (
    DependencyDecl,
    Manifest,
    PackageRef,
    ResolvedPackage,
)
from setup_db.models.stats import ResolutionStats
from setup_db.storage.cache import LocalCache

from .filters import retained_dependencies

log = logging.getLogger(__name__)

Key = Tuple[str, Optional[str]]


class DependencyResolver:
    """
    Resolves packages into the cache, downloading whatever is missing.

    Every package identity is resolved at most once per resolver: concurrent
    callers for the same (name, version), as happens in diamond-shaped
    graphs, share one in-flight task instead of downloading and writing the
    same files twice.
    """

    def __init__(
        self,
        index,
        cache: LocalCache,
        config: ResolverConfig,
        stats: Optional[ResolutionStats] = None,
    ):
        """
        Args:
            index: The RemoteIndex (or any object with the same coroutines).
            cache: The package cache to read from and populate.
            config: Filtering and archive selection settings.
            stats: Optional statistics collector shared with the caller.
        """
        self.index = index
        self.cache = cache
        self.config = config
        self.stats = stats or ResolutionStats()

        self._inflight: Dict[Key, asyncio.Task] = {}
        self._inflight_lock = asyncio.Lock()
        # Wait-for graph: package -> packages its resolution is awaiting
        self._waiting_on: Dict[Key, Set[Key]] = defaultdict(set)
        self._waiter_count: Dict[Key, int] = defaultdict(int)

    async def resolve(self, name: str, version: Optional[str] = None) -> ResolvedPackage:
        """
        Resolves a package and, recursively, its dependencies.

        Args:
            name: The package id.
            version: Exact version to use, or None for the latest one.

        Returns:
            The resolved package with the path of its primary library.

        Raises:
            ResolutionError: If the package or any retained dependency fails,
            with the failing identity and the underlying cause.
        """
        return await self._resolve(PackageRef(name, version), waiter=None)

    def _reaches(self, start: Key, target: Key) -> bool:
        """Whether `start` is (transitively) waiting on `target`."""
        stack, seen = [start], set()
        while stack:
            key = stack.pop()
            if key == target:
                return True
            if key in seen:
                continue
            seen.add(key)
            stack.extend(self._waiting_on.get(key, ()))
        return False

    def _on_task_done(self, key: Key, task: asyncio.Task) -> None:
        # Failed resolutions are forgotten so a later call can retry them
        if task.cancelled() or task.exception() is not None:
            if self._inflight.get(key) is task:
                del self._inflight[key]

    async def _resolve(self, ref: PackageRef, waiter: Optional[Key]) -> ResolvedPackage:
        key = ref.key
        async with self._inflight_lock:
            if waiter is not None:
                if self._reaches(key, waiter):
                    raise ResolutionError(
                        ref.name,
                        ref.version,
                        DependencyCycleError(
                            f"{ref} depends on a package that is waiting for it."
                        ),
                    )
                self._waiting_on[waiter].add(key)

            task = self._inflight.get(key)
            if task is None:
                task = asyncio.create_task(self._resolve_package(ref))
                task.add_done_callback(partial(self._on_task_done, key))
                self._inflight[key] = task
            else:
                log.debug(f"Joining in-flight resolution of {ref}")
            self._waiter_count[key] += 1

        try:
            # Cancelling one waiter must not cancel work other callers share
            return await asyncio.shield(task)
        except asyncio.CancelledError:
            if self._waiter_count[key] == 1 and not task.done():
                # Nobody else needs it: abort the download work as well
                if self._inflight.get(key) is task:
                    del self._inflight[key]
                task.cancel()
            raise
        finally:
            self._waiter_count[key] -= 1
            if waiter is not None:
                self._waiting_on[waiter].discard(key)

    async def _load_manifest(self, ref: PackageRef) -> Tuple[Manifest, Optional[str]]:
        """Returns the parsed manifest and the direct archive URL, if one is known."""
        if await self.cache.has_manifest(ref.name, ref.version):
            data = await self.cache.read_manifest(ref.name, ref.version)
            self.stats.manifests_from_cache += 1
            return parse_manifest(data), None

        version, download_url = ref.version, None
        if version is None:
            log.info(f"Requesting latest version of {ref.name}")
            entry = await self.index.latest_version(ref.name)
            self.stats.versions_looked_up += 1
            version, download_url = entry.version, entry.package_content

        log.info(f"Downloading nuspec for package {ref.name} {version}")
        data = await self.index.fetch_manifest(ref.name, version)
        self.stats.manifests_downloaded += 1
        self.stats.bytes_downloaded += len(data)
        manifest = parse_manifest(data)

        await self.cache.write_manifest(ref.name, ref.version, data)
        if ref.version is None:
            await self.cache.write_manifest(ref.name, version, data)
        return manifest, download_url

    async def _materialize(
        self,
        ref: PackageRef,
        version: str,
        references: Tuple[str, ...],
        download_url: Optional[str],
    ) -> None:
        """Downloads the archive and extracts its library if any reference is missing."""
        missing = [f for f in references if not await self.cache.has_artifact(f)]
        if not missing:
            return

        log.info(f"Downloading package {ref.name} {version}")
        archive = await self.index.fetch_archive(ref.name, version, download_url)
        self.stats.archives_downloaded += 1
        self.stats.bytes_downloaded += len(archive)

        entry_name, payload = extract_primary_binary(
            archive, self.config.library_prefixes
        )
        await self.cache.write_artifact(entry_name, payload)
        self.stats.artifacts_written += 1

        # Callers load the primary reference path, whatever the entry was called
        primary = references[0]
        if primary != entry_name and primary in missing:
            await self.cache.write_artifact(primary, payload)
            self.stats.artifacts_written += 1

    async def _resolve_package(self, ref: PackageRef) -> ResolvedPackage:
        log.info(f"Resolving package {ref}")
        version = ref.version
        try:
            manifest, download_url = await self._load_manifest(ref)
            version = manifest.version
            references = manifest.effective_reference_files(ref.name)
            await self._materialize(ref, version, references, download_url)
            primary_path = self.cache.artifact_path(references[0])
            dependencies = retained_dependencies(manifest, self.config)
        except (SetupDbError, OSError) as e:
            raise ResolutionError(ref.name, version, e) from e

        await self._resolve_dependencies(ref.key, dependencies)

        self.stats.packages_resolved += 1
        self.stats.resolved.append(f"{ref.name} {version}")
        return ResolvedPackage(ref.name, version, primary_path)

    async def _resolve_dependencies(
        self, parent: Key, dependencies: List[DependencyDecl]
    ) -> None:
        """
        Resolves dependencies concurrently and waits for all of them.

        The first failure cancels the remaining sibling waits and is raised.
        """
        if not dependencies:
            return

        tasks = [
            asyncio.create_task(
                self._resolve(PackageRef(dep.id, pinned_version(dep.version)), parent)
            )
            for dep in dependencies
        ]
        try:
            await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
        finally:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)

        for task in tasks:
            if not task.cancelled() and task.exception() is not None:
                raise task.exception()
