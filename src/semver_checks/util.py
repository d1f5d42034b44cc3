"""Deterministic, filesystem-safe names for cache entries."""

from __future__ import annotations

import hashlib
import re

SCOPE = "semver-checks"

_UNSAFE_RE = re.compile(r"[^A-Za-z0-9._-]+")
_NAME_RE = re.compile(r"[-_.]+")
_SLUG_PREFIX_LIMIT = 40
_DIGEST_LENGTH = 16


def slugify(value: str) -> str:
    """Filesystem-safe slug for an arbitrary identifier such as a git revision.

    The readable prefix is lossy, so a digest of the raw value is appended to
    keep distinct inputs from aliasing (``a/b`` and ``a_b`` differ).
    """
    prefix = _UNSAFE_RE.sub("_", value).strip("._-")[:_SLUG_PREFIX_LIMIT]
    digest = hashlib.sha256(value.encode("utf-8")).hexdigest()[:_DIGEST_LENGTH]
    return f"{prefix}-{digest}" if prefix else digest


def normalize_name(name: str) -> str:
    """PEP 503 normalized project name."""
    return _NAME_RE.sub("-", name).lower()


def git_fingerprint(revision: str) -> str:
    return f"git-{slugify(revision)}"


def registry_fingerprint(name: str, version: str) -> str:
    safe_version = _UNSAFE_RE.sub("_", version)
    if safe_version != version:
        safe_version = slugify(version)
    return f"{normalize_name(name)}-{safe_version}"
