"""Project graph loading from ``pyproject.toml`` manifests.

A project is either a single package or a workspace whose root manifest
declares ``[tool.uv.workspace]`` member globs. The package whose manifest the
run was pointed at is the default root, mirroring how a build tool treats the
manifest it was invoked on.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping
import tomllib

from semver_checks import config as config_module
from semver_checks.config import PYPROJECT_NAME, TomlTable
from semver_checks.exceptions import ConfigurationError
from semver_checks.util import normalize_name

PRIVATE_CLASSIFIER = "Private :: Do Not Upload"


@dataclass(frozen=True)
class Package:
    name: str
    version: str | None
    manifest_path: Path
    publish: bool = True

    @property
    def root(self) -> Path:
        return self.manifest_path.parent

    @property
    def id(self) -> str:
        return str(self.root)

    def display_version(self) -> str:
        return f"v{self.version}" if self.version is not None else "(dynamic version)"


@dataclass(frozen=True)
class ProjectMetadata:
    workspace_root: Path
    target_directory: Path
    packages: tuple[Package, ...]
    workspace_members: frozenset[str]
    root: str | None
    settings: TomlTable = field(default_factory=dict, compare=False)

    def package_named(self, name: str) -> Package | None:
        wanted = normalize_name(name)
        for package in self.packages:
            if normalize_name(package.name) == wanted:
                return package
        return None


def manifest_root(path: Path) -> Path:
    if path.name == PYPROJECT_NAME or path.is_file():
        return path.parent
    return path


def read_manifest(path: Path) -> TomlTable:
    try:
        raw = path.read_text(encoding="utf-8")
    except FileNotFoundError as exc:
        raise ConfigurationError(f"no {PYPROJECT_NAME} found at {path}") from exc
    except OSError as exc:
        raise ConfigurationError(f"unable to read {path}: {exc}") from exc
    try:
        data = tomllib.loads(raw)
    except tomllib.TOMLDecodeError as exc:
        raise ConfigurationError(f"malformed manifest {path}: {exc}") from exc
    return data


def _workspace_table(data: Mapping[str, object]) -> Mapping[str, object] | None:
    tool = data.get("tool")
    if not isinstance(tool, Mapping):
        return None
    uv = tool.get("uv")
    if not isinstance(uv, Mapping):
        return None
    workspace = uv.get("workspace")
    return workspace if isinstance(workspace, Mapping) else None


def _pattern_list(table: Mapping[str, object], key: str, *, manifest: Path) -> list[str]:
    raw = table.get(key, [])
    if not isinstance(raw, list) or any(not isinstance(item, str) for item in raw):
        raise ConfigurationError(f"{manifest}: tool.uv.workspace.{key} must be a list of strings")
    return list(raw)


def package_from_manifest(manifest_path: Path, data: Mapping[str, object]) -> Package:
    project = data.get("project")
    if not isinstance(project, Mapping):
        raise ConfigurationError(f"{manifest_path}: missing [project] table")
    name = project.get("name")
    if not isinstance(name, str) or not name.strip():
        raise ConfigurationError(f"{manifest_path}: [project] name must be a non-empty string")
    version = project.get("version")
    dynamic = project.get("dynamic", [])
    if version is None:
        if not isinstance(dynamic, list) or "version" not in dynamic:
            raise ConfigurationError(
                f"{manifest_path}: [project] must set version or list it in dynamic"
            )
    elif not isinstance(version, str):
        raise ConfigurationError(f"{manifest_path}: [project] version must be a string")
    classifiers = project.get("classifiers", [])
    publish = not (isinstance(classifiers, list) and PRIVATE_CLASSIFIER in classifiers)
    return Package(
        name=name.strip(),
        version=version,
        manifest_path=manifest_path,
        publish=publish,
    )


def _member_roots(workspace_root: Path, table: Mapping[str, object], *, manifest: Path) -> list[Path]:
    excluded: set[Path] = set()
    for pattern in _pattern_list(table, "exclude", manifest=manifest):
        excluded.update(path.resolve() for path in workspace_root.glob(pattern))
    roots: list[Path] = []
    seen: set[Path] = set()
    for pattern in _pattern_list(table, "members", manifest=manifest):
        for candidate in sorted(workspace_root.glob(pattern)):
            if not candidate.is_dir():
                continue
            resolved = candidate.resolve()
            if resolved in excluded or resolved in seen:
                continue
            if not (candidate / PYPROJECT_NAME).is_file():
                raise ConfigurationError(
                    f"workspace member {candidate} matched by {pattern!r} has no {PYPROJECT_NAME}"
                )
            seen.add(resolved)
            roots.append(resolved)
    return roots


def _is_member(workspace_root: Path, table: Mapping[str, object], candidate: Path, *, manifest: Path) -> bool:
    if candidate == workspace_root:
        return True
    return candidate in _member_roots(workspace_root, table, manifest=manifest)


def find_workspace_root(package_root: Path) -> Path:
    """Closest ancestor whose manifest declares a workspace including ``package_root``."""
    package_root = package_root.resolve()
    for candidate in (package_root, *package_root.parents):
        manifest = candidate / PYPROJECT_NAME
        if not manifest.is_file():
            continue
        table = _workspace_table(read_manifest(manifest))
        if table is None:
            continue
        if _is_member(candidate, table, package_root, manifest=manifest):
            return candidate
    return package_root


def load_metadata(path: Path) -> ProjectMetadata:
    """Load the project graph reachable from the manifest (or directory) at ``path``."""
    invoked_root = manifest_root(path).resolve()
    invoked_manifest = invoked_root / PYPROJECT_NAME
    invoked_data = read_manifest(invoked_manifest)
    workspace_root = find_workspace_root(invoked_root)
    workspace_manifest = workspace_root / PYPROJECT_NAME
    workspace_data = (
        invoked_data if workspace_root == invoked_root else read_manifest(workspace_manifest)
    )

    packages: list[Package] = []
    if isinstance(workspace_data.get("project"), Mapping):
        packages.append(package_from_manifest(workspace_manifest, workspace_data))
    table = _workspace_table(workspace_data)
    if table is not None:
        for member_root in _member_roots(workspace_root, table, manifest=workspace_manifest):
            if member_root == workspace_root:
                continue
            member_manifest = member_root / PYPROJECT_NAME
            packages.append(package_from_manifest(member_manifest, read_manifest(member_manifest)))
    if not packages:
        raise ConfigurationError(f"{workspace_manifest}: no packages found in project")

    root: str | None = None
    if isinstance(invoked_data.get("project"), Mapping):
        root = str(invoked_root)

    settings = config_module.load_config(workspace_root)
    return ProjectMetadata(
        workspace_root=workspace_root,
        target_directory=config_module.target_directory(workspace_root, settings),
        packages=tuple(packages),
        workspace_members=frozenset(package.id for package in packages),
        root=root,
        settings=settings,
    )
