"""Where the baseline API snapshot of a package comes from.

A :data:`BaselineSpec` names the strategy; :func:`make_loader` turns it into a
:class:`BaselineLoader` that produces a snapshot document path for each
package of the run.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
import subprocess
from typing import Protocol

from semver_checks.dump import SnapshotCommand
from semver_checks.exceptions import ConfigurationError, ResolutionError
from semver_checks.git_cache import GitRevisionCache, RunCommand
from semver_checks.invariants import never
from semver_checks.manifest import Package, ProjectMetadata, load_metadata
from semver_checks.registry import PackageIndex, RegistryCache, choose_baseline_version, parse_version
from semver_checks.status import Reporter
from semver_checks.util import git_fingerprint, normalize_name, registry_fingerprint, slugify

SNAPSHOT_DIR = "snapshots"


@dataclass(frozen=True)
class PublishedVersion:
    version: str


@dataclass(frozen=True)
class SourceRevision:
    revision: str
    source_root: Path | None = None


@dataclass(frozen=True)
class LocalSource:
    root: Path


@dataclass(frozen=True)
class PrebuiltSnapshot:
    path: Path


@dataclass(frozen=True)
class LatestPublished:
    pass


BaselineSpec = PublishedVersion | SourceRevision | LocalSource | PrebuiltSnapshot | LatestPublished


def baseline_from_options(
    *,
    version: str | None = None,
    rev: str | None = None,
    root: Path | None = None,
    snapshot: Path | None = None,
) -> BaselineSpec:
    chosen: list[BaselineSpec] = []
    if version is not None:
        chosen.append(PublishedVersion(version))
    if rev is not None:
        # With a revision, the root names the repository to read it from.
        chosen.append(SourceRevision(rev, source_root=root))
    elif root is not None:
        chosen.append(LocalSource(root))
    if snapshot is not None:
        chosen.append(PrebuiltSnapshot(snapshot))
    if len(chosen) > 1:
        raise ConfigurationError(
            "only one of --baseline-version, --baseline-rev (optionally with --baseline-root), "
            "--baseline-root and --baseline-snapshot may be given"
        )
    return chosen[0] if chosen else LatestPublished()


class BaselineLoader(Protocol):
    def load_snapshot(
        self,
        reporter: Reporter,
        command: SnapshotCommand,
        name: str,
        version: str | None,
    ) -> Path: ...


def _dump(
    reporter: Reporter,
    command: SnapshotCommand,
    package: Package,
    output: Path,
    label: str,
) -> Path:
    reporter.status("Parsing", f"{package.name} {package.display_version()} ({label})")
    return command.dump(package.root, output, reporter=reporter)


def _locate(meta: ProjectMetadata, name: str, *, where: str) -> Package:
    package = meta.package_named(name)
    if package is None:
        raise ResolutionError(f"package {name!r} not found in {where}")
    return package


@dataclass(frozen=True)
class RegistryBaseline:
    cache: RegistryCache
    snapshot_dir: Path
    version: str | None = None

    def load_snapshot(
        self,
        reporter: Reporter,
        command: SnapshotCommand,
        name: str,
        version: str | None,
    ) -> Path:
        chosen = self.version
        if chosen is None:
            chosen = choose_baseline_version(self.cache.index.releases(name), version)
        if self.cache.cached(name, chosen) is None:
            reporter.status("Downloading", f"{name} v{chosen} (baseline)")
        source = self.cache.fetch(name, chosen)
        package = Package(name=name, version=chosen, manifest_path=source / "pyproject.toml")
        output = self.snapshot_dir / f"{registry_fingerprint(name, chosen)}.json"
        return _dump(reporter, command, package, output, "baseline")


@dataclass(frozen=True)
class GitBaseline:
    cache: GitRevisionCache
    source: Path
    revision: str
    snapshot_dir: Path

    def load_snapshot(
        self,
        reporter: Reporter,
        command: SnapshotCommand,
        name: str,
        version: str | None,
    ) -> Path:
        if self.cache.cached(self.revision) is None:
            reporter.status("Cloning", f"{self.revision}")
        checkout = self.cache.checkout(self.source, self.revision)
        where = f"revision {self.revision}"
        try:
            meta = load_metadata(checkout)
        except ConfigurationError as exc:
            raise ResolutionError(f"package {name!r} not found in {where}: {exc}") from exc
        package = _locate(meta, name, where=where)
        output = self.snapshot_dir / f"{git_fingerprint(self.revision)}-{normalize_name(name)}.json"
        return _dump(reporter, command, package, output, f"baseline at {self.revision}")


@dataclass(frozen=True)
class PathBaseline:
    meta: ProjectMetadata
    snapshot_dir: Path

    @classmethod
    def from_root(cls, root: Path, snapshot_dir: Path) -> PathBaseline:
        return cls(meta=load_metadata(root), snapshot_dir=snapshot_dir)

    def load_snapshot(
        self,
        reporter: Reporter,
        command: SnapshotCommand,
        name: str,
        version: str | None,
    ) -> Path:
        root = self.meta.workspace_root
        package = _locate(self.meta, name, where=str(root))
        output = self.snapshot_dir / f"path-{slugify(str(root))}-{normalize_name(name)}.json"
        return _dump(reporter, command, package, output, "baseline")


@dataclass(frozen=True)
class SnapshotBaseline:
    path: Path

    def load_snapshot(
        self,
        reporter: Reporter,
        command: SnapshotCommand,
        name: str,
        version: str | None,
    ) -> Path:
        return self.path


def make_loader(
    spec: BaselineSpec,
    *,
    scope_dir: Path | None,
    workspace_root: Path | None,
    index: PackageIndex | None = None,
    run_git: RunCommand = subprocess.run,
) -> BaselineLoader:
    """Build the loader for ``spec``; ``scope_dir`` holds caches and generated snapshots."""
    if isinstance(spec, PrebuiltSnapshot):
        return SnapshotBaseline(spec.path)
    if scope_dir is None or workspace_root is None:
        never("baseline needs a project", spec=repr(spec))
    snapshot_dir = scope_dir / SNAPSHOT_DIR
    if isinstance(spec, PublishedVersion):
        parse_version(spec.version)
        return RegistryBaseline(
            cache=RegistryCache(scope_dir, index or PackageIndex()),
            snapshot_dir=snapshot_dir,
            version=spec.version,
        )
    if isinstance(spec, LatestPublished):
        return RegistryBaseline(
            cache=RegistryCache(scope_dir, index or PackageIndex()),
            snapshot_dir=snapshot_dir,
        )
    if isinstance(spec, SourceRevision):
        return GitBaseline(
            cache=GitRevisionCache(scope_dir, run=run_git),
            source=spec.source_root or workspace_root,
            revision=spec.revision,
            snapshot_dir=snapshot_dir,
        )
    if isinstance(spec, LocalSource):
        return PathBaseline.from_root(spec.root, snapshot_dir)
    never("unknown baseline kind", spec=repr(spec))
