"""Tests for recursive, concurrent dependency resolution."""

import asyncio
from pathlib import Path

import pytest

from conftest import FakeIndex, build_corrupt_nupkg, build_nupkg, build_nuspec
from setup_db.core.resolver import DependencyResolver
from setup_db.exceptions import (
    ArchiveFormatError,
    ArtifactNotFoundError,
    DependencyCycleError,
    ManifestParseError,
    PackageNotFoundError,
    ResolutionError,
    UnsafeCacheNameError,
)
from setup_db.models.config import ResolverConfig
from setup_db.storage.cache import LocalCache


class TestEndToEnd:
    """Resolution of a single package from an empty cache."""

    def test_latest_version_is_selected(self, resolver, fake_index):
        for version in ["1.0.0", "1.2.0", "1.1.0-beta"]:
            fake_index.add("Foo", version)

        resolved = asyncio.run(resolver.resolve("Foo"))

        assert resolved.version == "1.2.0"
        assert fake_index.calls_for("fetch_manifest", "Foo") == [
            ("fetch_manifest", "Foo", "1.2.0")
        ]
        assert fake_index.calls_for("fetch_archive", "Foo") == [
            ("fetch_archive", "Foo", "1.2.0", "https://fake/foo/1.2.0.nupkg")
        ]

    def test_nested_dependency_and_relative_path(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        index = FakeIndex()
        index.add("Foo", "1.2.0", references=["Foo.dll"], groups=[(None, [("Bar", None)])])
        index.add("Bar", "2.0.0")
        config = ResolverConfig(pkg_path=".pkg", base_delay=0)
        resolver = DependencyResolver(index, LocalCache(config.pkg_path), config)

        resolved = asyncio.run(resolver.resolve("Foo"))

        assert resolved.primary_artifact_path == Path(".pkg/Foo.dll")
        assert index.calls_for("latest_version", "Bar") == [("latest_version", "Bar")]
        assert (tmp_path / ".pkg" / "Foo.dll").read_bytes() == b"binary:Foo:1.2.0"
        assert (tmp_path / ".pkg" / "Bar.dll").read_bytes() == b"binary:Bar:2.0.0"
        assert sorted(resolver.stats.resolved) == ["Bar 2.0.0", "Foo 1.2.0"]
        assert resolver.stats.network_calls == 6

    def test_missing_references_fall_back_to_package_name(
        self, resolver, fake_index, cache
    ):
        fake_index.add(
            "Foo",
            "1.0.0",
            archive_entries={"lib/netstandard2.0/Foo.Core.dll": b"core"},
        )

        resolved = asyncio.run(resolver.resolve("Foo"))

        assert resolved.primary_artifact_path == cache.cache_dir / "Foo.dll"
        assert resolved.primary_artifact_path.read_bytes() == b"core"
        assert (cache.cache_dir / "Foo.Core.dll").read_bytes() == b"core"

    def test_archive_without_portable_library(self, resolver, fake_index):
        fake_index.add("Foo", "1.2.0", archive_entries={"lib/net45/Foo.dll": b""})

        with pytest.raises(ResolutionError) as exc_info:
            asyncio.run(resolver.resolve("Foo", "1.2.0"))

        assert isinstance(exc_info.value.cause, ArtifactNotFoundError)
        assert (exc_info.value.name, exc_info.value.version) == ("Foo", "1.2.0")
        assert "Foo 1.2.0" in str(exc_info.value)

    def test_manifests_are_cached_under_request_and_resolved_version(
        self, resolver, fake_index, cache
    ):
        fake_index.add("Foo", "1.2.0")

        asyncio.run(resolver.resolve("Foo"))

        assert (cache.cache_dir / "Foo..nuspec").is_file()
        assert (cache.cache_dir / "Foo.1.2.0.nuspec").is_file()

    def test_malformed_manifest_is_not_cached(self, resolver, fake_index, cache):
        fake_index.packages["foo"] = {"1.0.0": (b"<package>", build_nupkg({}))}

        with pytest.raises(ResolutionError) as exc_info:
            asyncio.run(resolver.resolve("Foo", "1.0.0"))

        assert isinstance(exc_info.value.cause, ManifestParseError)
        assert not (cache.cache_dir / "Foo.1.0.0.nuspec").exists()

    def test_corrupt_archive_is_reported_for_the_package(self, resolver, fake_index):
        fake_index.packages["foo"] = {
            "1.0.0": (
                build_nuspec("Foo", "1.0.0"),
                build_corrupt_nupkg("lib/netstandard2.0/Foo.dll"),
            )
        }

        with pytest.raises(ResolutionError) as exc_info:
            asyncio.run(resolver.resolve("Foo", "1.0.0"))

        assert isinstance(exc_info.value.cause, ArchiveFormatError)
        assert (exc_info.value.name, exc_info.value.version) == ("Foo", "1.0.0")

    def test_unsafe_reference_name(self, resolver, fake_index):
        fake_index.add("Foo", "1.0.0", references=["../evil.dll"])

        with pytest.raises(ResolutionError) as exc_info:
            asyncio.run(resolver.resolve("Foo", "1.0.0"))

        assert isinstance(exc_info.value.cause, UnsafeCacheNameError)
        assert fake_index.calls_for("fetch_archive", "Foo") == []


class TestCaching:
    def test_warm_cache_makes_no_requests(self, fake_index, cache, config):
        fake_index.add("Foo", "1.0.0", groups=[(None, [("Bar", None), ("Baz", "2.0.0")])])
        fake_index.add("Bar", "1.5.0")
        fake_index.add("Baz", "2.0.0")
        asyncio.run(DependencyResolver(fake_index, cache, config).resolve("Foo"))
        fake_index.calls.clear()

        resolver = DependencyResolver(fake_index, cache, config)
        resolved = asyncio.run(resolver.resolve("Foo"))

        assert fake_index.calls == []
        assert resolved.version == "1.0.0"
        assert resolver.stats.manifests_from_cache == 3
        assert resolver.stats.network_calls == 0

    def test_prepopulated_pinned_package(self, resolver, fake_index, cache):
        cache.cache_dir.mkdir(parents=True)
        (cache.cache_dir / "Foo.1.0.0.nuspec").write_bytes(build_nuspec("Foo", "1.0.0"))
        (cache.cache_dir / "Foo.dll").write_bytes(b"local build")

        resolved = asyncio.run(resolver.resolve("Foo", "1.0.0"))

        assert fake_index.calls == []
        assert resolved.primary_artifact_path.read_bytes() == b"local build"

    def test_existing_artifact_skips_archive_download(self, resolver, fake_index, cache):
        fake_index.add("Foo", "1.0.0")
        cache.cache_dir.mkdir(parents=True)
        (cache.cache_dir / "Foo.dll").write_bytes(b"local build")

        asyncio.run(resolver.resolve("Foo", "1.0.0"))

        assert fake_index.calls_for("fetch_manifest", "Foo")
        assert fake_index.calls_for("fetch_archive", "Foo") == []
        assert (cache.cache_dir / "Foo.dll").read_bytes() == b"local build"


class TestGraph:
    def test_diamond_resolves_shared_dependency_once(self, resolver, fake_index):
        fake_index.add("A", "1.0.0", groups=[(None, [("B", None), ("C", None)])])
        fake_index.add("B", "1.0.0", groups=[(None, [("D", None)])])
        fake_index.add("C", "1.0.0", groups=[(None, [("D", None)])])
        fake_index.add("D", "1.0.0")

        asyncio.run(resolver.resolve("A"))

        assert len(fake_index.calls_for("latest_version", "D")) == 1
        assert len(fake_index.calls_for("fetch_manifest", "D")) == 1
        assert len(fake_index.calls_for("fetch_archive", "D")) == 1
        assert resolver.stats.packages_resolved == 4

    def test_concurrent_roots_share_work(self, resolver, fake_index):
        fake_index.add("Foo", "1.0.0")

        async def run():
            return await asyncio.gather(
                resolver.resolve("Foo"), resolver.resolve("foo")
            )

        first, second = asyncio.run(run())

        assert first == second
        assert len(fake_index.calls_for("fetch_manifest", "Foo")) == 1
        assert len(fake_index.calls_for("fetch_archive", "Foo")) == 1

    def test_concurrent_roots_sharing_a_dependency(self, resolver, fake_index):
        fake_index.add("B", "1.0.0", groups=[(None, [("D", None)])])
        fake_index.add("C", "1.0.0", groups=[(None, [("D", None)])])
        fake_index.add("D", "1.0.0")

        async def run():
            return await asyncio.gather(resolver.resolve("B"), resolver.resolve("C"))

        b, c = asyncio.run(run())

        assert (b.name, c.name) == ("B", "C")
        assert len(fake_index.calls_for("latest_version", "D")) == 1
        assert len(fake_index.calls_for("fetch_manifest", "D")) == 1
        assert len(fake_index.calls_for("fetch_archive", "D")) == 1
        assert resolver.stats.packages_resolved == 3

    def test_platform_packages_are_never_requested(self, resolver, fake_index):
        fake_index.add(
            "Foo",
            "1.0.0",
            groups=[
                (".NETStandard2.0", [("Polyfill", None)]),
                (
                    "net6.0",
                    [
                        ("System.Memory", "4.5.5"),
                        ("NETStandard.Library", "2.0.3"),
                        ("Bar", "1.0.0"),
                    ],
                ),
            ],
        )
        fake_index.add("Bar", "1.0.0")

        asyncio.run(resolver.resolve("Foo"))

        requested = {call[1] for call in fake_index.calls}
        assert requested == {"Foo", "Bar"}

    def test_version_range_pins_lower_bound(self, resolver, fake_index):
        fake_index.add("Foo", "1.0.0", groups=[(None, [("Bar", "[1.0.0, 2.0.0)")])])
        fake_index.add("Bar", "1.0.0")
        fake_index.add("Bar", "1.5.0")

        asyncio.run(resolver.resolve("Foo"))

        assert fake_index.calls_for("latest_version", "Bar") == []
        assert fake_index.calls_for("fetch_manifest", "Bar") == [
            ("fetch_manifest", "Bar", "1.0.0")
        ]

    def test_exclusive_lower_bound_resolves_latest(self, resolver, fake_index):
        fake_index.add("Foo", "1.0.0", groups=[(None, [("Bar", "(1.0.0, )")])])
        fake_index.add("Bar", "1.0.0")
        fake_index.add("Bar", "1.5.0")

        asyncio.run(resolver.resolve("Foo"))

        assert fake_index.calls_for("fetch_manifest", "Bar") == [
            ("fetch_manifest", "Bar", "1.5.0")
        ]


class TestFailures:
    def test_failing_dependency_fails_parent(self, resolver, fake_index):
        fake_index.add("Foo", "1.0.0", groups=[(None, [("Missing", None)])])

        with pytest.raises(ResolutionError) as exc_info:
            asyncio.run(resolver.resolve("Foo"))

        assert exc_info.value.name == "Missing"
        assert isinstance(exc_info.value.cause, PackageNotFoundError)
        assert resolver.stats.resolved == []

    def test_failed_resolution_can_be_retried(self, resolver, fake_index):
        fake_index.add("Foo", "1.0.0", groups=[(None, [("Late", None)])])

        async def run():
            with pytest.raises(ResolutionError):
                await resolver.resolve("Foo")
            fake_index.add("Late", "3.0.0")
            return await resolver.resolve("Foo")

        resolved = asyncio.run(run())

        assert resolved.version == "1.0.0"
        assert "Late 3.0.0" in resolver.stats.resolved

    def test_first_failure_cancels_siblings(self, resolver, fake_index):
        fake_index.add("Foo", "1.0.0", groups=[(None, [("Slow", None), ("Bad", None)])])
        fake_index.add("Slow", "1.0.0")
        fake_index.blocked.add("slow")

        async def run():
            with pytest.raises(ResolutionError) as exc_info:
                await resolver.resolve("Foo")
            for _ in range(5):
                await asyncio.sleep(0)
            return exc_info.value

        error = asyncio.run(run())

        assert error.name == "Bad"
        assert fake_index.cancelled == ["Slow"]

    def test_dependency_cycle_is_reported(self, resolver, fake_index):
        fake_index.add("A", "1.0.0", groups=[(None, [("B", None)])])
        fake_index.add("B", "1.0.0", groups=[(None, [("A", None)])])

        with pytest.raises(ResolutionError) as exc_info:
            asyncio.run(asyncio.wait_for(resolver.resolve("A"), timeout=5))

        assert isinstance(exc_info.value.cause, DependencyCycleError)

    def test_self_dependency_is_reported(self, resolver, fake_index):
        fake_index.add("A", "1.0.0", groups=[(None, [("A", "1.0.0")])])

        with pytest.raises(ResolutionError) as exc_info:
            asyncio.run(asyncio.wait_for(resolver.resolve("A", "1.0.0"), timeout=5))

        assert isinstance(exc_info.value.cause, DependencyCycleError)
