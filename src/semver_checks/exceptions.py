"""Error taxonomy for a release check.

Every failure that aborts a run derives from :class:`SemverChecksError`, so
callers can tell "the tool could not run" apart from "the tool ran and found
violations" (the latter is reported through :class:`~semver_checks.report.Report`,
never raised).
"""

from __future__ import annotations

from typing import Mapping


class SemverChecksError(RuntimeError):
    """Base class for fatal errors raised by a release check."""


class ConfigurationError(SemverChecksError):
    """Invalid or conflicting configuration, detected before any fetch work."""


class ResolutionError(SemverChecksError):
    """A named package, version or revision cannot be resolved."""


class FetchError(SemverChecksError):
    """A network or source-control operation failed."""


class GenerationError(SemverChecksError):
    """The snapshot generator failed or produced no document."""


class FormatError(SemverChecksError):
    """A snapshot document is malformed."""


class InternalError(SemverChecksError):
    """A defect in the tool itself, such as an inconsistent rule definition.

    Raising this aborts the whole run regardless of how many packages were
    already checked.
    """

    def __init__(self, message: str, *, env: Mapping[str, object] | None = None):
        super().__init__(message)
        self.env = dict(env or {})

    @property
    def env_payload(self) -> dict[str, str]:
        return {str(key): str(value) for key, value in self.env.items()}
