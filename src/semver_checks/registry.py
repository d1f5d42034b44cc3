"""Registry client and the on-disk cache of published package sources."""

from __future__ import annotations

from dataclasses import dataclass
import hashlib
import io
import json
import os
from pathlib import Path
import shutil
import tarfile
import tempfile
from typing import Callable, Mapping, Sequence
import urllib.error
import urllib.parse
import urllib.request
import zipfile

from packaging.version import InvalidVersion, Version

from semver_checks.config import DEFAULT_REGISTRY_URL
from semver_checks.exceptions import FetchError, ResolutionError
from semver_checks.util import normalize_name, registry_fingerprint

SOURCE_MARKER = ".semver-checks-source.json"
_TAR_SUFFIXES = (".tar.gz", ".tgz", ".tar.bz2", ".tar.xz", ".tar")
_ZIP_SUFFIXES = (".zip", ".whl")
_USER_AGENT = "semver-checks"


@dataclass(frozen=True)
class ReleaseFile:
    filename: str
    url: str
    packagetype: str
    sha256: str
    yanked: bool = False

    @property
    def is_sdist(self) -> bool:
        return self.packagetype == "sdist"

    @property
    def is_pure_wheel(self) -> bool:
        return self.filename.endswith("-none-any.whl")


@dataclass(frozen=True)
class Release:
    version: str
    files: tuple[ReleaseFile, ...]

    @property
    def yanked(self) -> bool:
        return bool(self.files) and all(item.yanked for item in self.files)


def parse_version(text: str) -> Version:
    try:
        return Version(text)
    except InvalidVersion as exc:
        raise ResolutionError(f"invalid version {text!r}: {exc}") from exc


def _release_files(raw: object) -> tuple[ReleaseFile, ...]:
    if not isinstance(raw, list):
        return ()
    files: list[ReleaseFile] = []
    for entry in raw:
        if not isinstance(entry, Mapping):
            continue
        digests = entry.get("digests")
        files.append(
            ReleaseFile(
                filename=str(entry.get("filename", "")),
                url=str(entry.get("url", "")),
                packagetype=str(entry.get("packagetype", "")),
                sha256=str(digests.get("sha256", "")) if isinstance(digests, Mapping) else "",
                yanked=bool(entry.get("yanked", False)),
            )
        )
    return tuple(files)


@dataclass(frozen=True)
class PackageIndex:
    """Client for a PyPI-compatible JSON API."""

    base_url: str = DEFAULT_REGISTRY_URL
    urlopen_fn: Callable[..., object] = urllib.request.urlopen
    timeout: float = 30.0

    def _project_url(self, name: str, *parts: str) -> str:
        segments = [urllib.parse.quote(normalize_name(name)), *(urllib.parse.quote(p) for p in parts)]
        return "/".join([self.base_url.rstrip("/"), *segments, "json"])

    def _read(self, url: str, *, missing: str) -> bytes:
        req = urllib.request.Request(url, headers={"User-Agent": _USER_AGENT})
        try:
            with self.urlopen_fn(req, timeout=self.timeout) as response:
                return response.read()
        except urllib.error.HTTPError as exc:
            if exc.code == 404:
                raise ResolutionError(missing) from exc
            raise FetchError(f"registry request {url} failed: HTTP {exc.code}") from exc
        except (urllib.error.URLError, OSError) as exc:
            raise FetchError(f"registry request {url} failed: {exc}") from exc

    def _read_json(self, url: str, *, missing: str) -> Mapping[str, object]:
        body = self._read(url, missing=missing)
        try:
            payload = json.loads(body.decode("utf-8"))
        except (UnicodeError, json.JSONDecodeError) as exc:
            raise FetchError(f"registry returned unreadable JSON for {url}: {exc}") from exc
        if not isinstance(payload, Mapping):
            raise FetchError(f"registry returned a non-object payload for {url}")
        return payload

    def releases(self, name: str) -> list[Release]:
        payload = self._read_json(
            self._project_url(name),
            missing=f"package {name!r} not found in registry {self.base_url}",
        )
        raw = payload.get("releases")
        if not isinstance(raw, Mapping):
            return []
        releases = [Release(version=str(version), files=_release_files(files)) for version, files in raw.items()]
        return [release for release in releases if release.files]

    def release_files(self, name: str, version: str) -> tuple[ReleaseFile, ...]:
        payload = self._read_json(
            self._project_url(name, version),
            missing=f"version {version} of package {name!r} not found in registry {self.base_url}",
        )
        return _release_files(payload.get("urls"))

    def download(self, item: ReleaseFile) -> bytes:
        body = self._read(item.url, missing=f"distribution file {item.filename} not found")
        if item.sha256 and hashlib.sha256(body).hexdigest() != item.sha256:
            raise FetchError(f"sha256 mismatch for {item.filename}")
        return body


def choose_baseline_version(releases: Sequence[Release], current: str | None) -> str:
    """Highest suitable published version to compare ``current`` against.

    Pre-releases and yanked releases are avoided when a final release exists.
    Versions above ``current`` are never chosen, so an unpublished change that
    kept the previous version number is compared against that release.
    """
    parsed: list[tuple[Version, Release]] = []
    for release in releases:
        try:
            parsed.append((Version(release.version), release))
        except InvalidVersion:
            continue
    current_version = parse_version(current) if current is not None else None
    if current_version is not None:
        parsed = [(version, release) for version, release in parsed if version <= current_version]
    parsed.sort(key=lambda item: item[0])
    if not parsed:
        bound = f" at or below {current}" if current is not None else ""
        raise ResolutionError(f"no published versions{bound} are available")
    for version, release in reversed(parsed):
        if not version.is_prerelease and not release.yanked:
            return release.version
    if current_version is None:
        for version, release in reversed(parsed):
            if not release.yanked:
                return release.version
    return parsed[-1][1].version


def _pick_distribution(files: Sequence[ReleaseFile]) -> ReleaseFile | None:
    for predicate in (
        lambda item: item.is_sdist,
        lambda item: item.is_pure_wheel,
        lambda item: item.filename.endswith(".whl"),
    ):
        for item in files:
            if predicate(item):
                return item
    return None


def _extract(item: ReleaseFile, body: bytes, destination: Path) -> None:
    name = item.filename.lower()
    try:
        if name.endswith(_TAR_SUFFIXES):
            with tarfile.open(fileobj=io.BytesIO(body)) as archive:
                archive.extractall(destination, filter="data")
        elif name.endswith(_ZIP_SUFFIXES):
            with zipfile.ZipFile(io.BytesIO(body)) as archive:
                archive.extractall(destination)
        else:
            raise ResolutionError(f"unsupported distribution format: {item.filename}")
    except (tarfile.TarError, zipfile.BadZipFile, OSError) as exc:
        raise FetchError(f"unable to extract {item.filename}: {exc}") from exc


def _source_root(extracted: Path) -> str:
    children = [child for child in extracted.iterdir() if child.name != SOURCE_MARKER]
    if len(children) == 1 and children[0].is_dir():
        return children[0].name
    return "."


def _read_marker(entry: Path) -> Path | None:
    marker = entry / SOURCE_MARKER
    if not marker.is_file():
        return None
    try:
        payload = json.loads(marker.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError):
        return None
    if not isinstance(payload, Mapping):
        return None
    return entry / str(payload.get("source_root", "."))


@dataclass(frozen=True)
class RegistryCache:
    """Published sources unpacked under ``<root>/<name>-<version>``."""

    root: Path
    index: PackageIndex

    def entry_path(self, name: str, version: str) -> Path:
        return self.root / registry_fingerprint(name, version)

    def cached(self, name: str, version: str) -> Path | None:
        return _read_marker(self.entry_path(name, version))

    def fetch(self, name: str, version: str) -> Path:
        existing = self.cached(name, version)
        if existing is not None:
            return existing
        entry = self.entry_path(name, version)
        if entry.exists():
            # Left behind without a marker: not a published entry.
            shutil.rmtree(entry)
        item = _pick_distribution(self.index.release_files(name, version))
        if item is None:
            raise ResolutionError(f"no downloadable distribution for {name} {version}")
        body = self.index.download(item)

        self.root.mkdir(parents=True, exist_ok=True)
        staging = Path(tempfile.mkdtemp(prefix=f".{entry.name}.", dir=self.root))
        try:
            _extract(item, body, staging)
            source_root = _source_root(staging)
            (staging / SOURCE_MARKER).write_text(
                json.dumps(
                    {"name": name, "version": version, "filename": item.filename, "source_root": source_root},
                    indent=2,
                )
                + "\n",
                encoding="utf-8",
            )
            try:
                os.replace(staging, entry)
            except OSError:
                published = _read_marker(entry)
                if published is None:
                    raise
                shutil.rmtree(staging, ignore_errors=True)
                return published
        except OSError as exc:
            shutil.rmtree(staging, ignore_errors=True)
            raise FetchError(f"unable to populate registry cache entry {entry}: {exc}") from exc
        except BaseException:
            shutil.rmtree(staging, ignore_errors=True)
            raise
        return entry / source_root
