"""Release check orchestration.

:class:`Check` wires the pieces together: it resolves which packages take
part and, package by package, produces a current then a baseline snapshot
and runs the rule catalog over the pair. The verdicts are aggregated last.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
import subprocess
import time
from typing import Callable, Iterator, Mapping

from semver_checks import config as config_module
from semver_checks.baseline import BaselineSpec, LatestPublished, PrebuiltSnapshot, SNAPSHOT_DIR, make_loader
from semver_checks.check_release import run_check_release
from semver_checks.dump import SnapshotCommand
from semver_checks.exceptions import ConfigurationError
from semver_checks.git_cache import RunCommand
from semver_checks.manifest import load_metadata
from semver_checks.query import SemverQuery, all_queries
from semver_checks.registry import PackageIndex
from semver_checks.report import CheckVerdict, Report, aggregate
from semver_checks.scope import ProjectScope, resolve_scope
from semver_checks.snapshot import load_snapshot
from semver_checks.status import Reporter, StatusSink, Verbosity, discard_events
from semver_checks.util import SCOPE, normalize_name

UNKNOWN_PACKAGE = "<unknown>"


@dataclass(frozen=True)
class ManifestSource:
    path: Path


@dataclass(frozen=True)
class CurrentDir:
    pass


CurrentSpec = ManifestSource | PrebuiltSnapshot | CurrentDir


@dataclass(frozen=True)
class CheckConfig:
    current: CurrentSpec = field(default_factory=CurrentDir)
    scope: ProjectScope = field(default_factory=ProjectScope)
    baseline: BaselineSpec = field(default_factory=LatestPublished)
    verbosity: Verbosity = Verbosity.NORMAL

    def __post_init__(self) -> None:
        if isinstance(self.current, PrebuiltSnapshot) and not isinstance(self.baseline, PrebuiltSnapshot):
            raise ConfigurationError("a prebuilt current snapshot requires a prebuilt baseline snapshot")

    def manifest_path(self, cwd: Path) -> Path:
        if isinstance(self.current, ManifestSource):
            return self.current.path
        return cwd / config_module.PYPROJECT_NAME


@dataclass(frozen=True)
class CheckDeps:
    """Collaborators a run talks to; tests substitute fakes here."""

    sink: StatusSink = discard_events
    catalog: Callable[[], Mapping[str, SemverQuery]] = all_queries
    snapshot_command: SnapshotCommand | None = None
    index: PackageIndex | None = None
    run_git: RunCommand = subprocess.run
    cwd: Callable[[], Path] = Path.cwd
    clock: Callable[[], float] = time.perf_counter


class Check:
    def __init__(self, config: CheckConfig, *, deps: CheckDeps | None = None) -> None:
        self.config = config
        self.deps = deps or CheckDeps()

    def _command(self, reporter: Reporter) -> SnapshotCommand:
        if self.deps.snapshot_command is not None:
            return self.deps.snapshot_command
        return SnapshotCommand(deps=False, silence=not reporter.is_verbose())

    def _snapshot_pairs(self, reporter: Reporter, command: SnapshotCommand) -> Iterator[tuple[str, Path, Path]]:
        """(package name, baseline document, current document) for each package in scope, one at a time."""
        current = self.config.current
        if isinstance(current, PrebuiltSnapshot):
            loader = make_loader(self.config.baseline, scope_dir=None, workspace_root=None)
            baseline_path = loader.load_snapshot(reporter, command, UNKNOWN_PACKAGE, None)
            yield UNKNOWN_PACKAGE, baseline_path, current.path
            return

        meta = load_metadata(self.config.manifest_path(self.deps.cwd()))
        scope = self.config.scope
        configured = config_module.excluded_packages(meta.settings)
        if configured:
            scope = ProjectScope(
                scope.selection,
                packages=scope.packages,
                excluded=tuple(config_module.merge_names(configured, list(scope.excluded))),
            )
        scope_dir = meta.target_directory / SCOPE
        index = self.deps.index or PackageIndex(base_url=config_module.registry_url(meta.settings))
        loader = make_loader(
            self.config.baseline,
            scope_dir=scope_dir,
            workspace_root=meta.workspace_root,
            index=index,
            run_git=self.deps.run_git,
        )
        for package in resolve_scope(meta, scope, reporter):
            reporter.status("Parsing", f"{package.name} {package.display_version()} (current)")
            current_path = command.dump(
                package.root,
                scope_dir / SNAPSHOT_DIR / f"current-{normalize_name(package.name)}.json",
                reporter=reporter,
            )
            baseline_path = loader.load_snapshot(reporter, command, package.name, package.version)
            yield package.name, baseline_path, current_path

    def check_release(self) -> Report:
        catalog = self.deps.catalog()
        reporter = Reporter(sink=self.deps.sink, verbosity=self.config.verbosity)
        command = self._command(reporter)
        verdicts: list[CheckVerdict] = []
        for name, baseline_path, current_path in self._snapshot_pairs(reporter, command):
            baseline = load_snapshot(baseline_path)
            current = load_snapshot(current_path)
            package_name = current.package if name == UNKNOWN_PACKAGE else name
            verdicts.append(
                run_check_release(
                    reporter,
                    package_name,
                    current,
                    baseline,
                    catalog=catalog,
                    clock=self.deps.clock,
                )
            )
        return aggregate(verdicts)
