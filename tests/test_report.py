from __future__ import annotations

from semver_checks.query import RequiredSemverUpdate
from semver_checks.report import CheckVerdict, Finding, aggregate


def _finding(update: RequiredSemverUpdate) -> Finding:
    return Finding(rule_id="rule", required_update=update, message="m")


def test_empty_aggregate_is_successful() -> None:
    report = aggregate([])
    assert report.success
    assert report.verdicts == ()


def test_any_failing_verdict_fails_the_report() -> None:
    failing = CheckVerdict("b", findings=(_finding(RequiredSemverUpdate.MINOR),))
    report = aggregate([CheckVerdict("a"), failing])
    assert not report.success
    assert [verdict.package for verdict in report.verdicts] == ["a", "b"]
    assert report.findings() == list(failing.findings)


def test_required_update_is_the_strictest_finding() -> None:
    verdict = CheckVerdict(
        "a",
        findings=(_finding(RequiredSemverUpdate.MINOR), _finding(RequiredSemverUpdate.MAJOR)),
    )
    assert verdict.required_update() is RequiredSemverUpdate.MAJOR
    assert CheckVerdict("a").required_update() is None
