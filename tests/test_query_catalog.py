from __future__ import annotations

from pathlib import Path

import pytest

from semver_checks import query
from semver_checks.exceptions import InternalError
from semver_checks.query import RequiredSemverUpdate, all_queries, get_query, load_catalog

VALID_RULE = """\
id: {rule_id}
human_readable_name: function removed
description: A public function was removed.
required_update: major
check: missing_item
arguments:
  kind: function
error_message: A public function was removed.
per_result_error_template: "{{module}}.{{name}} in {{file}}:{{line}}"
"""


def _write_rule(directory: Path, rule_id: str, text: str | None = None) -> Path:
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / f"{rule_id}.yaml"
    path.write_text(text if text is not None else VALID_RULE.format(rule_id=rule_id), encoding="utf-8")
    return path


def test_shipped_catalog_is_valid_and_ordered() -> None:
    catalog = all_queries()
    assert list(catalog) == sorted(catalog)
    assert len(catalog) == 21
    for rule_id, rule in catalog.items():
        assert rule.id == rule_id
        assert rule.primitive.name == rule.check


def test_shipped_catalog_required_updates() -> None:
    minor = {rule_id for rule_id, rule in all_queries().items() if rule.required_update is RequiredSemverUpdate.MINOR}
    assert minor == {"function_marked_deprecated", "class_marked_deprecated"}


def test_get_query_is_a_pure_lookup() -> None:
    rule = get_query("function_missing")
    assert rule is not None
    assert rule is get_query("function_missing")
    assert get_query("no_such_rule") is None


def test_catalog_is_read_only() -> None:
    with pytest.raises(TypeError):
        all_queries()["extra"] = None  # type: ignore[index]


def test_catalog_is_loaded_once(tmp_path: Path) -> None:
    _write_rule(tmp_path, "gone")
    first = load_catalog(tmp_path)
    (tmp_path / "gone.yaml").unlink()
    assert load_catalog(tmp_path) is first


def test_render_formats_the_per_result_template(tmp_path: Path) -> None:
    _write_rule(tmp_path, "gone")
    rule = load_catalog(tmp_path)["gone"]
    message = rule.render({"module": "pkg", "name": "run", "file": "pkg/__init__.py", "line": 3, "kind": "function"})
    assert message == "pkg.run in pkg/__init__.py:3"


@pytest.mark.parametrize(
    ("text", "match"),
    [
        (VALID_RULE.format(rule_id="bad").replace("description: A public function was removed.\n", ""), "description"),
        (VALID_RULE.format(rule_id="bad").replace("required_update: major", "required_update: huge"), "required_update"),
        (VALID_RULE.format(rule_id="other"), "does not match"),
        (VALID_RULE.format(rule_id="bad").replace("check: missing_item", "check: telepathy"), "unknown check"),
        (VALID_RULE.format(rule_id="bad").replace("kind: function", "kind: lambda"), "must be one of"),
        (VALID_RULE.format(rule_id="bad").replace("{line}", "{column}"), "column"),
        (VALID_RULE.format(rule_id="bad") + "severity: high\n", "unknown fields"),
        ("id: [unterminated\n", "unreadable"),
        ("- just\n- a list\n", "mapping"),
    ],
)
def test_defective_rule_is_an_internal_error(tmp_path: Path, text: str, match: str) -> None:
    _write_rule(tmp_path, "good")
    _write_rule(tmp_path, "bad", text)
    with pytest.raises(InternalError, match=match):
        load_catalog(tmp_path)


def test_empty_rule_directory_is_an_internal_error(tmp_path: Path) -> None:
    with pytest.raises(InternalError, match="no rule definitions"):
        load_catalog(tmp_path)


def test_template_fields() -> None:
    assert query.template_fields("{module}.{name!r} at {values[0]} {obj.attr:>4}") == {"module", "name", "values", "obj"}
