from __future__ import annotations

from pathlib import Path

from typer.testing import CliRunner

from semver_checks import cli
from semver_checks.check import CheckDeps
from semver_checks.snapshot import write_snapshot
from tests.project_helpers import IN_PROCESS_COMMAND, api, write_package

runner = CliRunner()

WITH_FOO = {"demo/__init__.py": "def foo(x: int) -> int:\n    return x\n"}


def _deps(root: Path) -> CheckDeps:
    return CheckDeps(snapshot_command=IN_PROCESS_COMMAND, cwd=lambda: root)


def test_list_prints_the_rule_table() -> None:
    result = runner.invoke(cli.app, ["--list"])
    assert result.exit_code == 0
    lines = result.output.splitlines()
    assert lines[0].split() == ["id", "type", "description"]
    assert any(line.startswith("function_missing") and " major " in line for line in lines)
    assert "--explain <id>" in result.output


def test_explain_prints_reference_and_link() -> None:
    result = runner.invoke(cli.app, ["--explain", "module_missing"])
    assert result.exit_code == 0
    assert "ImportError" in result.output
    assert "See also https://docs.python.org/3/reference/import.html" in result.output


def test_explain_falls_back_to_the_description() -> None:
    result = runner.invoke(cli.app, ["--explain", "class_missing"])
    assert result.exit_code == 0
    assert result.output.strip() == "A public class is no longer available in its module."


def test_explain_unknown_id_lists_available_ids() -> None:
    result = runner.invoke(cli.app, ["--explain", "nope"])
    assert result.exit_code == cli.EXIT_ERROR
    assert "Unknown id `nope`" in result.output
    assert "function_missing" in result.output


def test_subcommand_is_required() -> None:
    result = runner.invoke(cli.app, [])
    assert result.exit_code == cli.EXIT_ERROR
    assert "subcommand required" in result.output


def test_check_release_passes(tmp_path: Path) -> None:
    current = write_package(tmp_path / "current", "demo", "1.0.0", modules=WITH_FOO)
    baseline = write_package(tmp_path / "baseline", "demo", "1.0.0", modules=WITH_FOO)
    result = runner.invoke(
        cli.app,
        ["check-release", "--baseline-root", str(baseline)],
        obj=_deps(current),
    )
    assert result.exit_code == cli.EXIT_OK, result.output
    assert "     Parsing demo v1.0.0 (current)" in result.output
    assert "Checking demo v1.0.0 -> v1.0.0 (no change)" in result.output


def test_check_release_reports_violations(tmp_path: Path) -> None:
    current = write_package(tmp_path / "current", "demo", "1.0.0", modules={"demo/__init__.py": ""})
    baseline = write_package(tmp_path / "baseline", "demo", "1.0.0", modules=WITH_FOO)
    result = runner.invoke(
        cli.app,
        [
            "check-release",
            "--manifest-path",
            str(current / "pyproject.toml"),
            "--baseline-root",
            str(baseline),
            "-v",
        ],
        obj=_deps(tmp_path),
    )
    assert result.exit_code == cli.EXIT_VIOLATIONS
    assert "FAIL" in result.output
    assert "function demo.foo, previously in src/demo/__init__.py:1" in result.output
    assert "semver requires new major version" in result.output


def test_quiet_check_release_only_prints_the_verdict(tmp_path: Path) -> None:
    current = write_package(tmp_path / "current", "demo", "1.0.0", modules={"demo/__init__.py": ""})
    baseline = write_package(tmp_path / "baseline", "demo", "1.0.0", modules=WITH_FOO)
    result = runner.invoke(
        cli.app,
        ["check-release", "--baseline-root", str(baseline), "-q"],
        obj=_deps(current),
    )
    assert result.exit_code == cli.EXIT_VIOLATIONS
    assert "Parsing" not in result.output
    assert "Final" in result.output


def test_prebuilt_snapshots(tmp_path: Path) -> None:
    baseline = tmp_path / "baseline.json"
    current = tmp_path / "current.json"
    write_snapshot(baseline, api("1.0.0", {"demo": "X = 1\n"}, package="demo"))
    write_snapshot(current, api("1.0.0", {"demo": "X = 1\n"}, package="demo"))
    result = runner.invoke(
        cli.app,
        ["check-release", "--current-snapshot", str(current), "--baseline-snapshot", str(baseline)],
    )
    assert result.exit_code == cli.EXIT_OK, result.output


def test_conflicting_options_are_fatal(tmp_path: Path) -> None:
    cases = [
        ["check-release", "--baseline-version", "1.0.0", "--baseline-rev", "main"],
        ["check-release", "--current-snapshot", str(tmp_path / "c.json")],
        ["check-release", "-p", "demo", "--workspace"],
    ]
    for argv in cases:
        result = runner.invoke(cli.app, argv, obj=_deps(tmp_path))
        assert result.exit_code == cli.EXIT_ERROR, argv
        assert "error:" in result.output


def test_missing_manifest_is_fatal(tmp_path: Path) -> None:
    result = runner.invoke(cli.app, ["check-release"], obj=_deps(tmp_path))
    assert result.exit_code == cli.EXIT_ERROR
    assert "no pyproject.toml found" in result.output


def test_malformed_snapshot_is_fatal(tmp_path: Path) -> None:
    broken = tmp_path / "broken.json"
    broken.write_text("{", encoding="utf-8")
    result = runner.invoke(
        cli.app,
        ["check-release", "--current-snapshot", str(broken), "--baseline-snapshot", str(broken)],
    )
    assert result.exit_code == cli.EXIT_ERROR
    assert "not valid JSON" in result.output
