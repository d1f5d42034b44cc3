from __future__ import annotations

from dataclasses import dataclass, field
import hashlib
import io
import json
from pathlib import Path
import subprocess
import tarfile
from typing import Mapping, Sequence
import urllib.error

from semver_checks import snapshot_dump
from semver_checks.dump import SnapshotCommand
from semver_checks.snapshot import ApiSnapshot


def write_package(
    root: Path,
    name: str,
    version: str | None = "1.0.0",
    *,
    modules: Mapping[str, str] | None = None,
    classifiers: Sequence[str] = (),
    extra: str = "",
) -> Path:
    """Write a src-layout package; ``modules`` maps paths under ``src/`` to source text."""
    root.mkdir(parents=True, exist_ok=True)
    lines = ["[project]", f'name = "{name}"']
    if version is None:
        lines.append('dynamic = ["version"]')
    else:
        lines.append(f'version = "{version}"')
    if classifiers:
        lines.append("classifiers = [" + ", ".join(json.dumps(item) for item in classifiers) + "]")
    (root / "pyproject.toml").write_text("\n".join(lines) + "\n" + extra, encoding="utf-8")
    for relative, source in (modules or {}).items():
        path = root / "src" / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(source, encoding="utf-8")
    return root


def write_workspace(
    root: Path,
    members: Sequence[str],
    *,
    exclude: Sequence[str] = (),
    project: tuple[str, str] | None = None,
    extra: str = "",
) -> Path:
    root.mkdir(parents=True, exist_ok=True)
    lines: list[str] = []
    if project is not None:
        lines.extend(["[project]", f'name = "{project[0]}"', f'version = "{project[1]}"', ""])
    lines.append("[tool.uv.workspace]")
    lines.append("members = [" + ", ".join(json.dumps(item) for item in members) + "]")
    if exclude:
        lines.append("exclude = [" + ", ".join(json.dumps(item) for item in exclude) + "]")
    (root / "pyproject.toml").write_text("\n".join(lines) + "\n" + extra, encoding="utf-8")
    return root


def api(version: str | None, modules: Mapping[str, str], *, package: str = "pkg") -> ApiSnapshot:
    """Snapshot built from in-memory module sources keyed by dotted module path."""
    items = []
    for module_path, source in modules.items():
        items.append(
            snapshot_dump.module_item(
                source,
                module_path=module_path,
                file=module_path.replace(".", "/") + ".py",
                is_package="." not in module_path,
            )
        )
    return ApiSnapshot(package=package, version=version, modules=items)


def git(root: Path, *args: str) -> str:
    proc = subprocess.run(["git", *args], cwd=root, check=True, capture_output=True, text=True)
    return proc.stdout.strip()


def init_repo(root: Path) -> None:
    root.mkdir(parents=True, exist_ok=True)
    git(root, "init", "--quiet")
    git(root, "config", "user.email", "test@example.com")
    git(root, "config", "user.name", "Test User")
    git(root, "config", "commit.gpgsign", "false")


def commit_all(root: Path, message: str) -> str:
    git(root, "add", "--all")
    git(root, "commit", "--quiet", "-m", message)
    return git(root, "rev-parse", "HEAD")


def in_process_run(
    argv: list[str],
    *,
    check: bool,
    capture_output: bool = False,
    text: bool = False,
) -> subprocess.CompletedProcess[str]:
    """Run the snapshot generator in this interpreter instead of a child process."""
    code = snapshot_dump.main(list(argv[3:]))
    return subprocess.CompletedProcess(argv, code, stdout="", stderr="")


IN_PROCESS_COMMAND = SnapshotCommand(run=in_process_run)


def sdist_bytes(source: Path, name: str, version: str) -> bytes:
    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode="w:gz") as archive:
        archive.add(source, arcname=f"{name}-{version}")
    return buffer.getvalue()


class FakeResponse:
    def __init__(self, body: bytes) -> None:
        self._body = body

    def __enter__(self) -> FakeResponse:
        return self

    def __exit__(self, *exc_info: object) -> bool:
        return False

    def read(self) -> bytes:
        return self._body


@dataclass
class FakeRegistry:
    base_url: str = "https://index.invalid/pypi"
    routes: dict[str, bytes] = field(default_factory=dict)
    releases: dict[str, dict[str, list[dict[str, object]]]] = field(default_factory=dict)
    requests: list[str] = field(default_factory=list)

    def urlopen(self, request, timeout: float | None = None) -> FakeResponse:
        url = request.full_url if hasattr(request, "full_url") else str(request)
        self.requests.append(url)
        if url not in self.routes:
            raise urllib.error.HTTPError(url, 404, "Not Found", None, None)
        return FakeResponse(self.routes[url])

    def publish(
        self,
        name: str,
        version: str,
        body: bytes,
        *,
        filename: str | None = None,
        packagetype: str = "sdist",
        yanked: bool = False,
        sha256: str | None = None,
    ) -> None:
        filename = filename or f"{name}-{version}.tar.gz"
        file_url = f"https://files.invalid/{filename}"
        entry = {
            "filename": filename,
            "url": file_url,
            "packagetype": packagetype,
            "digests": {"sha256": sha256 or hashlib.sha256(body).hexdigest()},
            "yanked": yanked,
        }
        self.routes[file_url] = body
        self.releases.setdefault(name, {}).setdefault(version, []).append(entry)
        self.routes[f"{self.base_url}/{name}/json"] = json.dumps(
            {"info": {"name": name}, "releases": self.releases[name]}
        ).encode("utf-8")
        self.routes[f"{self.base_url}/{name}/{version}/json"] = json.dumps(
            {"info": {"name": name, "version": version}, "urls": self.releases[name][version]}
        ).encode("utf-8")
