"""Per-package verdicts and the overall report of a release check."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Mapping

from semver_checks.query import RequiredSemverUpdate


@dataclass(frozen=True)
class Finding:
    rule_id: str
    required_update: RequiredSemverUpdate
    message: str
    values: Mapping[str, object] = field(default_factory=dict)


@dataclass(frozen=True)
class CheckVerdict:
    package: str
    findings: tuple[Finding, ...] = ()
    skipped_rules: int = 0

    @property
    def success(self) -> bool:
        return not self.findings

    def required_update(self) -> RequiredSemverUpdate | None:
        """Strictest update any finding calls for."""
        updates = {finding.required_update for finding in self.findings}
        for update in (RequiredSemverUpdate.MAJOR, RequiredSemverUpdate.MINOR, RequiredSemverUpdate.PATCH):
            if update in updates:
                return update
        return None


@dataclass(frozen=True)
class Report:
    success: bool
    verdicts: tuple[CheckVerdict, ...] = ()

    def findings(self) -> list[Finding]:
        return [finding for verdict in self.verdicts for finding in verdict.findings]


def aggregate(verdicts: Iterable[CheckVerdict]) -> Report:
    collected = tuple(verdicts)
    return Report(success=all(verdict.success for verdict in collected), verdicts=collected)
