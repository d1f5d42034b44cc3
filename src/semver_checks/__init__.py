"""semver-checks package root."""

from semver_checks.check import Check, CheckConfig
from semver_checks.exceptions import (
    ConfigurationError,
    FetchError,
    FormatError,
    GenerationError,
    InternalError,
    ResolutionError,
    SemverChecksError,
)
from semver_checks.invariants import never
from semver_checks.report import Report

__all__ = [
    "__version__",
    "Check",
    "CheckConfig",
    "ConfigurationError",
    "FetchError",
    "FormatError",
    "GenerationError",
    "InternalError",
    "Report",
    "ResolutionError",
    "SemverChecksError",
    "never",
]

__version__ = "0.1.0"
