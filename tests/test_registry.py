from __future__ import annotations

from pathlib import Path
import urllib.error

import pytest

from semver_checks.exceptions import FetchError, ResolutionError
from semver_checks.registry import (
    SOURCE_MARKER,
    PackageIndex,
    RegistryCache,
    Release,
    ReleaseFile,
    choose_baseline_version,
)
from tests.project_helpers import FakeRegistry, sdist_bytes, write_package


def _release(version: str, *, yanked: bool = False) -> Release:
    return Release(
        version=version,
        files=(ReleaseFile(f"pkg-{version}.tar.gz", "https://files.invalid/x", "sdist", "", yanked),),
    )


RELEASES = [
    _release("1.0.0"),
    _release("1.1.0"),
    _release("1.2.0", yanked=True),
    _release("2.0.0rc1"),
    Release(version="not-a-version", files=()),
]


def test_latest_prefers_final_non_yanked_release() -> None:
    assert choose_baseline_version(RELEASES, None) == "1.1.0"


def test_latest_is_bounded_by_current_version() -> None:
    assert choose_baseline_version(RELEASES, "1.0.5") == "1.0.0"
    assert choose_baseline_version(RELEASES, "1.2.0") == "1.1.0"


def test_prerelease_is_used_when_nothing_else_exists() -> None:
    assert choose_baseline_version([_release("0.1.0a1")], None) == "0.1.0a1"


def test_no_candidate_is_a_resolution_error() -> None:
    with pytest.raises(ResolutionError):
        choose_baseline_version(RELEASES, "0.9.0")
    with pytest.raises(ResolutionError):
        choose_baseline_version([], None)


def test_index_lists_releases(registry: FakeRegistry) -> None:
    registry.publish("demo", "1.0.0", b"one")
    registry.publish("demo", "1.1.0", b"two", yanked=True)
    index = PackageIndex(base_url=registry.base_url, urlopen_fn=registry.urlopen)
    releases = {release.version: release for release in index.releases("Demo")}
    assert set(releases) == {"1.0.0", "1.1.0"}
    assert releases["1.1.0"].yanked
    assert not releases["1.0.0"].yanked


def test_unknown_package_is_a_resolution_error(registry: FakeRegistry) -> None:
    index = PackageIndex(base_url=registry.base_url, urlopen_fn=registry.urlopen)
    with pytest.raises(ResolutionError, match="not found"):
        index.releases("missing")


def test_network_failures_are_fetch_errors() -> None:
    def _offline(request, timeout=None):
        raise urllib.error.URLError("offline")

    def _server_error(request, timeout=None):
        raise urllib.error.HTTPError(request.full_url, 503, "Unavailable", None, None)

    with pytest.raises(FetchError, match="offline"):
        PackageIndex(urlopen_fn=_offline).releases("demo")
    with pytest.raises(FetchError, match="503"):
        PackageIndex(urlopen_fn=_server_error).releases("demo")


def test_cache_downloads_once_and_reuses_the_entry(tmp_path: Path, registry: FakeRegistry) -> None:
    source = write_package(tmp_path / "src-tree", "demo", "1.0.0", modules={"demo/__init__.py": "X = 1\n"})
    registry.publish("demo", "1.0.0", sdist_bytes(source, "demo", "1.0.0"))
    cache = RegistryCache(tmp_path / "cache", PackageIndex(base_url=registry.base_url, urlopen_fn=registry.urlopen))

    first = cache.fetch("demo", "1.0.0")
    assert (first / "pyproject.toml").is_file()
    assert (first / "src" / "demo" / "__init__.py").is_file()
    assert (cache.entry_path("demo", "1.0.0") / SOURCE_MARKER).is_file()
    requests = len(registry.requests)

    assert cache.fetch("demo", "1.0.0") == first
    assert len(registry.requests) == requests
    assert [path.name for path in (tmp_path / "cache").iterdir()] == ["demo-1.0.0"]


def test_digest_mismatch_leaves_no_entry(tmp_path: Path, registry: FakeRegistry) -> None:
    source = write_package(tmp_path / "src-tree", "demo", "1.0.0")
    registry.publish("demo", "1.0.0", sdist_bytes(source, "demo", "1.0.0"), sha256="0" * 64)
    cache = RegistryCache(tmp_path / "cache", PackageIndex(base_url=registry.base_url, urlopen_fn=registry.urlopen))
    with pytest.raises(FetchError, match="sha256"):
        cache.fetch("demo", "1.0.0")
    assert cache.cached("demo", "1.0.0") is None
    assert not cache.entry_path("demo", "1.0.0").exists()


def test_unpublished_version_is_a_resolution_error(tmp_path: Path, registry: FakeRegistry) -> None:
    registry.publish("demo", "1.0.0", b"body")
    cache = RegistryCache(tmp_path / "cache", PackageIndex(base_url=registry.base_url, urlopen_fn=registry.urlopen))
    with pytest.raises(ResolutionError):
        cache.fetch("demo", "9.9.9")


def test_corrupt_archive_leaves_nothing_behind(tmp_path: Path, registry: FakeRegistry) -> None:
    registry.publish("demo", "1.0.0", b"not a tarball")
    cache = RegistryCache(tmp_path / "cache", PackageIndex(base_url=registry.base_url, urlopen_fn=registry.urlopen))
    with pytest.raises(FetchError, match="unable to extract"):
        cache.fetch("demo", "1.0.0")
    assert not cache.entry_path("demo", "1.0.0").exists()
    assert list((tmp_path / "cache").glob(".demo-*")) == []

    source = write_package(tmp_path / "src-tree", "demo", "1.0.0")
    registry.releases.clear()
    registry.publish("demo", "1.0.0", sdist_bytes(source, "demo", "1.0.0"))
    assert (cache.fetch("demo", "1.0.0") / "pyproject.toml").is_file()
