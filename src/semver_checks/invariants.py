"""Invariant markers."""

from __future__ import annotations

from typing import NoReturn

from semver_checks.exceptions import InternalError


def never(reason: str = "", **env: object) -> NoReturn:
    """Mark a code path as unreachable.

    The optional env payload is attached to the raised error for diagnostics;
    it is not evaluated otherwise.
    """
    raise InternalError(reason or "never() marker reached", env=env)
