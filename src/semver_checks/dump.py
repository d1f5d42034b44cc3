"""Adapter around the snapshot generator subprocess."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
import subprocess
import sys
from typing import Callable

from semver_checks.exceptions import GenerationError
from semver_checks.status import Reporter

GENERATOR_MODULE = "semver_checks.snapshot_dump"

RunCommand = Callable[..., subprocess.CompletedProcess[str]]


@dataclass(frozen=True)
class SnapshotCommand:
    """How to invoke the generator: ``deps`` widens the snapshot, ``silence`` hides its output."""

    deps: bool = False
    silence: bool = True
    python: str = sys.executable
    run: RunCommand = subprocess.run

    def argv(self, package_root: Path, output: Path) -> list[str]:
        argv = [
            self.python,
            "-m",
            GENERATOR_MODULE,
            "--root",
            str(package_root),
            "--out",
            str(output),
        ]
        if self.deps:
            argv.append("--deps")
        if self.silence:
            argv.append("--quiet")
        return argv

    def dump(self, package_root: Path, output: Path, *, reporter: Reporter | None = None) -> Path:
        output.parent.mkdir(parents=True, exist_ok=True)
        if output.exists():
            output.unlink()
        try:
            proc = self.run(
                self.argv(package_root, output),
                check=False,
                capture_output=True,
                text=True,
            )
        except OSError as exc:
            raise GenerationError(f"unable to run snapshot generator: {exc}") from exc
        if reporter is not None and not self.silence:
            for line in (proc.stderr or "").splitlines():
                reporter.detail(line, level=reporter.verbosity)
        if proc.returncode != 0:
            message = (proc.stderr or "").strip() or (proc.stdout or "").strip() or "no output"
            raise GenerationError(
                f"snapshot generation failed for {package_root} (exit {proc.returncode}): {message}"
            )
        if not output.is_file():
            raise GenerationError(f"snapshot generator wrote no document for {package_root}")
        return output
