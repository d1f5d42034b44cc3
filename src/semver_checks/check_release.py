"""Running the rule catalog over one package's pair of snapshots."""

from __future__ import annotations

from enum import StrEnum
import time
from typing import Callable, Mapping

from packaging.version import InvalidVersion, Version

from semver_checks.query import RequiredSemverUpdate, SemverQuery, all_queries
from semver_checks.report import CheckVerdict, Finding
from semver_checks.snapshot import ApiSnapshot
from semver_checks.status import Reporter, Verbosity


class ActualSemverUpdate(StrEnum):
    MAJOR = "major"
    MINOR = "minor"
    PATCH = "patch"
    NOT_CHANGED = "not_changed"

    def satisfies(self, required: RequiredSemverUpdate) -> bool:
        """Whether a release of this kind is already allowed to make ``required`` changes."""
        if self is ActualSemverUpdate.MAJOR:
            return True
        if self is ActualSemverUpdate.MINOR:
            return required is not RequiredSemverUpdate.MAJOR
        if self is ActualSemverUpdate.PATCH:
            return required is RequiredSemverUpdate.PATCH
        return False


def _release(version: Version) -> tuple[int, int, int]:
    padded = (*version.release, 0, 0, 0)
    return padded[0], padded[1], padded[2]


def classify_change(baseline: Version, current: Version) -> ActualSemverUpdate:
    """Kind of release ``current`` is relative to ``baseline``.

    Below 1.0 the leading zero shifts the meaning of each component down by
    one: a minor bump is breaking and a patch bump may add features.
    """
    old_major, old_minor, old_micro = _release(baseline)
    new_major, new_minor, new_micro = _release(current)
    if new_major != old_major:
        return ActualSemverUpdate.MAJOR
    if new_major == 0:
        if new_minor != old_minor:
            return ActualSemverUpdate.MAJOR
        if new_micro != old_micro:
            return ActualSemverUpdate.MINOR
        return ActualSemverUpdate.NOT_CHANGED
    if new_minor != old_minor:
        return ActualSemverUpdate.MINOR
    if new_micro != old_micro:
        return ActualSemverUpdate.PATCH
    return ActualSemverUpdate.NOT_CHANGED


def version_change(reporter: Reporter, baseline: str | None, current: str | None) -> ActualSemverUpdate:
    if baseline is None or current is None:
        reporter.warn("package version is unknown, checking as if it has not changed")
        return ActualSemverUpdate.NOT_CHANGED
    try:
        return classify_change(Version(baseline), Version(current))
    except InvalidVersion as exc:
        reporter.warn(f"{exc}, checking as if the version has not changed")
        return ActualSemverUpdate.NOT_CHANGED


def _display(version: str | None) -> str:
    return f"v{version}" if version is not None else "(unknown version)"


def _report_failures(reporter: Reporter, failures: list[tuple[SemverQuery, list[Finding]]]) -> None:
    for query, findings in failures:
        reporter.detail(f"\n--- failure {query.id}: {query.human_readable_name} ---\n")
        reporter.detail(f"Description:\n{query.error_message}")
        if query.reference_link:
            reporter.detail(f"{'ref:':>6} {query.reference_link}")
        if query.per_result_error_template is not None:
            reporter.detail("\nFailed in:")
            for finding in findings:
                reporter.detail(f"  {finding.message}")


def run_check_release(
    reporter: Reporter,
    package_name: str,
    current: ApiSnapshot,
    baseline: ApiSnapshot,
    *,
    catalog: Mapping[str, SemverQuery] | None = None,
    clock: Callable[[], float] = time.perf_counter,
) -> CheckVerdict:
    queries = all_queries() if catalog is None else catalog
    change = version_change(reporter, baseline.version, current.version)
    to_run = [query for query in queries.values() if not change.satisfies(query.required_update)]
    skipped = len(queries) - len(to_run)

    label = "no change" if change is ActualSemverUpdate.NOT_CHANGED else f"{change.value} change"
    reporter.status(
        "Checking",
        f"{package_name} {_display(baseline.version)} -> {_display(current.version)} ({label})",
    )
    reporter.verbose("Starting", f"{len(to_run)} checks, {skipped} unnecessary")

    started = clock()
    findings: list[Finding] = []
    failures: list[tuple[SemverQuery, list[Finding]]] = []
    for query in to_run:
        query_started = clock()
        results = query.evaluate(current, baseline)
        elapsed = clock() - query_started
        reporter.verbose(
            "FAIL" if results else "PASS",
            f"[{elapsed:>8.3f}s] {query.required_update.value:^6} {query.id}",
        )
        if not results:
            continue
        produced = [
            Finding(
                rule_id=query.id,
                required_update=query.required_update,
                message=query.render(result) or query.error_message,
                values=result,
            )
            for result in results
        ]
        findings.extend(produced)
        failures.append((query, produced))
    total = clock() - started

    passed = len(to_run) - len(failures)
    reporter.status(
        "Finished",
        f"[{total:>8.3f}s] {len(to_run)} checks: {passed} passed, {len(failures)} failed, {skipped} skipped",
    )
    verdict = CheckVerdict(package=package_name, findings=tuple(findings), skipped_rules=skipped)
    if failures:
        _report_failures(reporter, failures)
        counts = {
            update: sum(1 for query, _ in failures if query.required_update is update)
            for update in RequiredSemverUpdate
        }
        required = verdict.required_update() or RequiredSemverUpdate.PATCH
        reporter.status(
            "Final",
            f"[{total:>8.3f}s] semver requires new {required.value} version: "
            f"{counts[RequiredSemverUpdate.MAJOR]} major and "
            f"{counts[RequiredSemverUpdate.MINOR]} minor checks failed",
            level=Verbosity.QUIET,
        )
    return verdict
