"""
A flat, directory-backed store for package manifests and extracted libraries.

Presence of a file is the only signal the resolver relies on, so every write
goes through a temporary file and an atomic rename: a crash or a concurrent
writer can never leave a half-written file under its final name.
"""

import asyncio
import logging
import os
import uuid
from pathlib import Path

import aiofiles
import aiofiles.os

from setup_db.utils.path import create_dir, safe_cache_name

log = logging.getLogger(__name__)

MANIFEST_SUFFIX = ".nuspec"


class LocalCache:
    """
    Stores `{name}.{version}.nuspec` manifests and library files by file name.

    An unpinned ("latest") request is keyed by an empty version, which gives
    the `{name}..nuspec` file name.
    """

    def __init__(self, cache_dir_path: Path | str):
        """
        Args:
            cache_dir_path: Directory holding the cache. Created on first write.
        """
        self.cache_dir = Path(cache_dir_path)

    def manifest_path(self, name: str, version: str | None) -> Path:
        file_name = f"{name}.{version or ''}{MANIFEST_SUFFIX}"
        return self.cache_dir / safe_cache_name(file_name)

    def artifact_path(self, file_name: str) -> Path:
        return self.cache_dir / safe_cache_name(file_name)

    async def _exists(self, path: Path) -> bool:
        return await asyncio.to_thread(os.path.isfile, path)

    async def _write_atomic(self, path: Path, data: bytes) -> None:
        await asyncio.to_thread(create_dir, self.cache_dir)
        tmp_path = path.with_name(f".{path.name}.{uuid.uuid4().hex}.tmp")
        try:
            async with aiofiles.open(tmp_path, "wb") as f:
                await f.write(data)
            await aiofiles.os.replace(tmp_path, path)
        except OSError:
            try:
                await aiofiles.os.remove(tmp_path)
            except FileNotFoundError:
                pass
            raise

    async def has_manifest(self, name: str, version: str | None) -> bool:
        return await self._exists(self.manifest_path(name, version))

    async def read_manifest(self, name: str, version: str | None) -> bytes:
        async with aiofiles.open(self.manifest_path(name, version), "rb") as f:
            return await f.read()

    async def write_manifest(self, name: str, version: str | None, data: bytes) -> Path:
        path = self.manifest_path(name, version)
        await self._write_atomic(path, data)
        log.debug(f"Cached manifest {path.name}")
        return path

    async def has_artifact(self, file_name: str) -> bool:
        return await self._exists(self.artifact_path(file_name))

    async def write_artifact(self, file_name: str, data: bytes) -> Path:
        path = self.artifact_path(file_name)
        await self._write_atomic(path, data)
        log.debug(f"Cached artifact {path.name} ({len(data)} bytes)")
        return path

    def list_manifests(self) -> list[tuple[str, str]]:
        """
        Lists cached manifests as (name, version) pairs, sorted by name.

        Version is an empty string for manifests cached for an unpinned request.
        """
        if not self.cache_dir.is_dir():
            return []
        entries = []
        for path in self.cache_dir.glob(f"*{MANIFEST_SUFFIX}"):
            stem = path.name[: -len(MANIFEST_SUFFIX)]
            if stem.endswith("."):
                entries.append((stem[:-1], ""))
                continue
            # Package ids contain dots too; the version starts at the first
            # dot-separated component that begins with a digit.
            parts = stem.split(".")
            for i in range(1, len(parts)):
                if parts[i][:1].isdigit():
                    entries.append((".".join(parts[:i]), ".".join(parts[i:])))
                    break
        return sorted(entries, key=lambda e: (e[0].lower(), e[1]))
