from __future__ import annotations

from pathlib import Path

import pytest

from semver_checks.exceptions import ConfigurationError
from semver_checks.manifest import PRIVATE_CLASSIFIER, load_metadata
from tests.project_helpers import write_package, write_workspace


def test_single_package_project(tmp_path: Path) -> None:
    root = write_package(tmp_path / "pkg", "pkg", "1.2.0")
    meta = load_metadata(root / "pyproject.toml")
    assert [package.name for package in meta.packages] == ["pkg"]
    package = meta.packages[0]
    assert meta.root == package.id
    assert package.version == "1.2.0"
    assert package.publish
    assert meta.workspace_members == frozenset({package.id})
    assert meta.target_directory == root.resolve() / "build"


def test_directory_path_is_accepted(tmp_path: Path) -> None:
    root = write_package(tmp_path / "pkg", "pkg")
    assert load_metadata(root).packages[0].name == "pkg"


def test_workspace_members_follow_globs_and_excludes(tmp_path: Path) -> None:
    root = write_workspace(tmp_path / "ws", ["packages/*"], exclude=["packages/legacy"])
    write_package(root / "packages" / "beta", "beta")
    write_package(root / "packages" / "alpha", "alpha")
    (root / "packages" / "legacy").mkdir()
    meta = load_metadata(root / "pyproject.toml")
    assert [package.name for package in meta.packages] == ["alpha", "beta"]
    assert meta.root is None
    assert meta.workspace_root == root.resolve()


def test_workspace_root_project_is_listed_first(tmp_path: Path) -> None:
    root = write_workspace(tmp_path / "ws", ["packages/*"], project=("app", "2.0.0"))
    write_package(root / "packages" / "lib", "lib")
    meta = load_metadata(root)
    assert [package.name for package in meta.packages] == ["app", "lib"]
    assert meta.root == str(root.resolve())


def test_member_manifest_loads_its_workspace(tmp_path: Path) -> None:
    root = write_workspace(tmp_path / "ws", ["packages/*"])
    write_package(root / "packages" / "alpha", "alpha")
    member = write_package(root / "packages" / "beta", "beta")
    meta = load_metadata(member / "pyproject.toml")
    assert meta.workspace_root == root.resolve()
    assert [package.name for package in meta.packages] == ["alpha", "beta"]
    assert meta.root == str(member.resolve())


def test_dynamic_version_and_private_classifier(tmp_path: Path) -> None:
    root = write_package(tmp_path / "pkg", "pkg", None, classifiers=[PRIVATE_CLASSIFIER])
    package = load_metadata(root).packages[0]
    assert package.version is None
    assert package.display_version() == "(dynamic version)"
    assert not package.publish


def test_missing_manifest_is_a_configuration_error(tmp_path: Path) -> None:
    with pytest.raises(ConfigurationError):
        load_metadata(tmp_path / "nothing" / "pyproject.toml")


def test_malformed_manifest_is_a_configuration_error(tmp_path: Path) -> None:
    (tmp_path / "pyproject.toml").write_text("[project\nname = ", encoding="utf-8")
    with pytest.raises(ConfigurationError, match="malformed"):
        load_metadata(tmp_path)


def test_member_without_manifest_is_a_configuration_error(tmp_path: Path) -> None:
    root = write_workspace(tmp_path / "ws", ["packages/*"])
    (root / "packages" / "empty").mkdir(parents=True)
    with pytest.raises(ConfigurationError, match="has no pyproject.toml"):
        load_metadata(root)


def test_member_without_name_is_a_configuration_error(tmp_path: Path) -> None:
    root = write_workspace(tmp_path / "ws", ["packages/*"])
    member = root / "packages" / "anon"
    member.mkdir(parents=True)
    (member / "pyproject.toml").write_text('[project]\nversion = "1.0.0"\n', encoding="utf-8")
    with pytest.raises(ConfigurationError, match="name"):
        load_metadata(root)


def test_package_named_uses_normalized_names(tmp_path: Path) -> None:
    root = write_package(tmp_path / "pkg", "Demo_Lib")
    meta = load_metadata(root)
    assert meta.package_named("demo-lib") is meta.packages[0]
    assert meta.package_named("other") is None
