from __future__ import annotations

import json
from pathlib import Path

import pytest

from semver_checks.exceptions import FormatError
from semver_checks.snapshot import load_snapshot, parse_snapshot, write_snapshot
from tests.project_helpers import api


def test_written_snapshot_loads_back(tmp_path: Path) -> None:
    snapshot = api("1.0.0", {"pkg": "def run(a, *, b=1):\n    pass\n"})
    path = tmp_path / "out" / "pkg.json"
    write_snapshot(path, snapshot)
    assert load_snapshot(path) == snapshot


def test_unreadable_snapshot_is_a_format_error(tmp_path: Path) -> None:
    with pytest.raises(FormatError, match="unable to read"):
        load_snapshot(tmp_path / "missing.json")


def test_invalid_json_is_a_format_error(tmp_path: Path) -> None:
    path = tmp_path / "broken.json"
    path.write_text("{not json", encoding="utf-8")
    with pytest.raises(FormatError, match="not valid JSON"):
        load_snapshot(path)


def test_unsupported_format_version_is_rejected() -> None:
    with pytest.raises(FormatError, match="format_version"):
        parse_snapshot({"format_version": 99, "package": "pkg"})


def test_unknown_fields_are_rejected() -> None:
    with pytest.raises(FormatError, match="invalid snapshot"):
        parse_snapshot({"package": "pkg", "modules": [], "surprise": True})


def test_resolve_class_follows_reexports() -> None:
    snapshot = api(
        "1.0.0",
        {
            "pkg": "from pkg.core import Base as Base\n",
            "pkg.core": "class Base:\n    pass\n",
        },
    )
    module = snapshot.module("pkg")
    assert module is not None
    resolved = snapshot.resolve_class(module, "Base")
    assert resolved is not None and resolved.qualname == "pkg.core.Base"
    assert snapshot.resolve_class(module, "collections.abc.Mapping") is None


def test_document_is_plain_json(tmp_path: Path) -> None:
    path = tmp_path / "pkg.json"
    write_snapshot(path, api("1.0.0", {"pkg": "X = 1\n"}))
    payload = json.loads(path.read_text(encoding="utf-8"))
    assert payload["package"] == "pkg"
    assert payload["modules"][0]["constants"][0]["name"] == "X"
