"""Checkouts of the project's own history, cached per revision."""

from __future__ import annotations

from dataclasses import dataclass
import json
import os
from pathlib import Path
import shutil
import subprocess
import tempfile
from typing import Callable, Mapping

from semver_checks.exceptions import FetchError
from semver_checks.util import git_fingerprint

CHECKOUT_MARKER = ".semver-checks-checkout.json"

RunCommand = Callable[..., subprocess.CompletedProcess[str]]


def _read_marker(entry: Path) -> Mapping[str, object] | None:
    marker = entry / CHECKOUT_MARKER
    if not marker.is_file():
        return None
    try:
        payload = json.loads(marker.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError):
        return None
    return payload if isinstance(payload, Mapping) else None


@dataclass(frozen=True)
class GitRevisionCache:
    """Checkouts published under ``<cache_root>/git-<slug>``.

    An entry is built in a temporary sibling directory and renamed into place
    only once complete, so a directory carrying the marker file is always a
    full checkout.
    """

    cache_root: Path
    run: RunCommand = subprocess.run

    def _git(self, args: list[str], *, cwd: Path) -> str:
        try:
            proc = self.run(
                ["git", *args],
                cwd=cwd,
                check=False,
                capture_output=True,
                text=True,
            )
        except OSError as exc:
            raise FetchError(f"unable to run git: {exc}") from exc
        if proc.returncode != 0:
            message = proc.stderr.strip() or proc.stdout.strip() or f"git {args[0]} failed"
            raise FetchError(message)
        return proc.stdout.strip()

    def entry_path(self, revision: str) -> Path:
        return self.cache_root / git_fingerprint(revision)

    def cached(self, revision: str) -> Path | None:
        entry = self.entry_path(revision)
        payload = _read_marker(entry)
        if payload is None:
            return None
        return entry / str(payload.get("subdirectory", "."))

    def resolve(self, source: Path, revision: str) -> str:
        try:
            return self._git(["rev-parse", "--verify", "--quiet", f"{revision}^{{commit}}"], cwd=source)
        except FetchError as exc:
            raise FetchError(f"revision {revision!r} not found in {source}") from exc

    def checkout(self, source: Path, revision: str) -> Path:
        """Path equivalent to ``source`` inside a checkout of ``revision``."""
        existing = self.cached(revision)
        if existing is not None:
            return existing
        toplevel = Path(self._git(["rev-parse", "--show-toplevel"], cwd=source)).resolve()
        subdirectory = source.resolve().relative_to(toplevel).as_posix() or "."
        commit = self.resolve(source, revision)

        entry = self.entry_path(revision)
        if entry.exists():
            shutil.rmtree(entry)
        self.cache_root.mkdir(parents=True, exist_ok=True)
        staging = Path(tempfile.mkdtemp(prefix=f".{entry.name}.", dir=self.cache_root))
        try:
            self._git(["clone", "--quiet", "--no-checkout", str(toplevel), str(staging)], cwd=self.cache_root)
            self._git(["checkout", "--quiet", "--detach", commit], cwd=staging)
            (staging / CHECKOUT_MARKER).write_text(
                json.dumps(
                    {"revision": revision, "commit": commit, "subdirectory": subdirectory},
                    indent=2,
                )
                + "\n",
                encoding="utf-8",
            )
            try:
                os.replace(staging, entry)
            except OSError:
                if _read_marker(entry) is None:
                    raise
                shutil.rmtree(staging, ignore_errors=True)
        except OSError as exc:
            shutil.rmtree(staging, ignore_errors=True)
            raise FetchError(f"unable to publish checkout of {revision!r}: {exc}") from exc
        except BaseException:
            shutil.rmtree(staging, ignore_errors=True)
            raise
        return entry / subdirectory
