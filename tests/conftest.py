"""Pytest configuration and fixtures."""

import asyncio
import io
import zipfile

import pytest

from setup_db.api.versions import select_latest
from setup_db.core.resolver import DependencyResolver
from setup_db.exceptions import PackageNotFoundError, RemoteFetchError
from setup_db.models.config import ResolverConfig
from setup_db.models.package import IndexEntry
from setup_db.storage.cache import LocalCache

NUSPEC_NS_2010 = "http://schemas.microsoft.com/packaging/2010/07/nuspec.xsd"
NUSPEC_NS_2013 = "http://schemas.microsoft.com/packaging/2013/05/nuspec.xsd"


def build_nuspec(
    package_id,
    version,
    references=(),
    groups=(),
    flat_dependencies=(),
    namespace=NUSPEC_NS_2013,
):
    """
    Builds nuspec bytes.

    `groups` is a sequence of (target_framework or None, [(id, version or None)]).
    """

    def dep(dep_id, dep_version):
        if dep_version is None:
            return f'<dependency id="{dep_id}" />'
        return f'<dependency id="{dep_id}" version="{dep_version}" />'

    deps_xml = ""
    if groups or flat_dependencies:
        inner = "".join(dep(*d) for d in flat_dependencies)
        for framework, members in groups:
            attr = f' targetFramework="{framework}"' if framework else ""
            inner += f"<group{attr}>" + "".join(dep(*d) for d in members) + "</group>"
        deps_xml = f"<dependencies>{inner}</dependencies>"

    refs_xml = ""
    if references:
        refs_xml = (
            "<references>"
            + "".join(f'<reference file="{r}" />' for r in references)
            + "</references>"
        )

    xmlns = f' xmlns="{namespace}"' if namespace else ""
    return (
        '<?xml version="1.0" encoding="utf-8"?>'
        f"<package{xmlns}><metadata>"
        f"<id>{package_id}</id><version>{version}</version>"
        f"<authors>tests</authors>{deps_xml}{refs_xml}"
        "</metadata></package>"
    ).encode("utf-8")


def build_nupkg(entries):
    """Builds a zip archive from an ordered {path: bytes} mapping."""
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as zf:
        for path, data in entries.items():
            zf.writestr(path, data)
    return buffer.getvalue()


def build_corrupt_nupkg(path, data=b"A" * 1024):
    """Builds a deflated single-entry archive whose compressed stream is invalid."""
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as zf:
        zf.writestr(path, data)
    archive = bytearray(buffer.getvalue())
    # Local file header: 30 fixed bytes, then the entry name and extra field
    name_len = int.from_bytes(archive[26:28], "little")
    extra_len = int.from_bytes(archive[28:30], "little")
    # 0xFF opens a deflate block of the reserved type 3
    archive[30 + name_len + extra_len] = 0xFF
    return bytes(archive)


class FakeIndex:
    """In-memory stand-in for RemoteIndex that records every call."""

    def __init__(self, delay=0.01):
        self.delay = delay
        self.packages = {}
        self.calls = []
        self.blocked = set()
        self.cancelled = []

    def add(
        self,
        name,
        version,
        references=(),
        groups=(),
        archive_entries=None,
    ):
        if archive_entries is None:
            archive_entries = {
                f"lib/netstandard2.0/{name}.dll": f"binary:{name}:{version}".encode()
            }
        self.packages.setdefault(name.lower(), {})[version] = (
            build_nuspec(name, version, references=references, groups=groups),
            build_nupkg(archive_entries),
        )

    def calls_for(self, method, name):
        return [c for c in self.calls if c[0] == method and c[1].lower() == name.lower()]

    async def _enter(self, method, name, *args):
        self.calls.append((method, name, *args))
        if name.lower() in self.blocked:
            try:
                await asyncio.Event().wait()
            except asyncio.CancelledError:
                self.cancelled.append(name)
                raise
        await asyncio.sleep(self.delay)

    async def latest_version(self, name):
        await self._enter("latest_version", name)
        versions = self.packages.get(name.lower(), {})
        latest = select_latest(
            IndexEntry(v, f"https://fake/{name.lower()}/{v}.nupkg") for v in versions
        )
        if latest is None:
            raise PackageNotFoundError(f"Cannot find latest version of package '{name}'.")
        return latest

    async def fetch_manifest(self, name, version):
        await self._enter("fetch_manifest", name, version)
        try:
            return self.packages[name.lower()][version][0]
        except KeyError:
            raise RemoteFetchError(f"https://fake/{name}/{version}.nuspec", 404) from None

    async def fetch_archive(self, name, version, download_url=None):
        await self._enter("fetch_archive", name, version, download_url)
        try:
            return self.packages[name.lower()][version][1]
        except KeyError:
            raise RemoteFetchError(f"https://fake/{name}/{version}.nupkg", 404) from None

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        return None


@pytest.fixture
def config(tmp_path):
    """Default configuration with the cache under the test's temp directory."""
    return ResolverConfig(pkg_path=str(tmp_path / ".pkg"), base_delay=0)


@pytest.fixture
def fake_index():
    return FakeIndex()


@pytest.fixture
def cache(config):
    return LocalCache(config.pkg_path)


@pytest.fixture
def resolver(fake_index, cache, config):
    return DependencyResolver(fake_index, cache, config)
