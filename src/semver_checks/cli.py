from __future__ import annotations

from dataclasses import replace
from pathlib import Path
from typing import List, Optional

import typer

from semver_checks.baseline import PrebuiltSnapshot, baseline_from_options
from semver_checks.check import Check, CheckConfig, CheckDeps, CurrentDir, CurrentSpec, ManifestSource
from semver_checks.exceptions import ConfigurationError, InternalError, SemverChecksError
from semver_checks.query import all_queries, get_query
from semver_checks.scope import ProjectScope
from semver_checks.status import StatusEvent, StatusKind, Verbosity

app = typer.Typer(add_completion=False)

EXIT_OK = 0
EXIT_VIOLATIONS = 1
EXIT_ERROR = 2

_HEADER_WIDTH = 12
_HEADER_COLORS = {
    "FAIL": typer.colors.RED,
    "Final": typer.colors.RED,
    "Skipping": typer.colors.YELLOW,
}


def render_event(event: StatusEvent) -> None:
    if event.kind is StatusKind.DETAIL:
        typer.echo(event.message, err=True)
        return
    if event.kind is StatusKind.STATUS:
        color = _HEADER_COLORS.get(event.header, typer.colors.GREEN)
        header = typer.style(f"{event.header:>{_HEADER_WIDTH}}", fg=color, bold=True)
        typer.echo(f"{header} {event.message}", err=True)
        return
    color = {
        StatusKind.NOTE: typer.colors.CYAN,
        StatusKind.WARNING: typer.colors.YELLOW,
        StatusKind.ERROR: typer.colors.RED,
    }[event.kind]
    typer.echo(f"{typer.style(event.header, fg=color, bold=True)}: {event.message}", err=True)


def _fail(message: str) -> typer.Exit:
    render_event(StatusEvent(StatusKind.ERROR, "error", message, Verbosity.QUIET))
    return typer.Exit(code=EXIT_ERROR)


def _list_rules() -> None:
    rows = [("id", "type", "description"), ("==", "====", "===========")]
    rows.extend(
        (query.id, query.required_update.value, query.description) for query in all_queries().values()
    )
    widths = [max(len(row[column]) for row in rows) for column in range(3)]
    for row in rows:
        typer.echo(" ".join(cell.ljust(width) for cell, width in zip(row, widths)).rstrip())
    render_event(StatusEvent(StatusKind.NOTE, "note", "Use `--explain <id>` to see more details"))


def _explain_rule(rule_id: str) -> None:
    query = get_query(rule_id)
    if query is None:
        available = "\n  ".join(all_queries())
        raise _fail(f"Unknown id `{rule_id}`, available ids:\n  {available}")
    typer.echo(query.reference or query.description)
    if query.reference_link:
        typer.echo("")
        typer.echo(f"See also {query.reference_link}")


@app.callback(invoke_without_command=True)
def main_callback(
    ctx: typer.Context,
    list_rules: bool = typer.Option(False, "--list", help="List all rules."),
    explain: Optional[str] = typer.Option(None, "--explain", help="Explain a rule by id."),
) -> None:
    """Check a Python package for semver violations before publishing it."""
    try:
        if list_rules:
            _list_rules()
            raise typer.Exit(code=EXIT_OK)
        if explain is not None:
            _explain_rule(explain)
            raise typer.Exit(code=EXIT_OK)
    except InternalError as exc:
        raise _fail(str(exc)) from exc
    if ctx.invoked_subcommand is None:
        raise _fail("subcommand required")


def _verbosity(verbose: int, quiet: bool) -> Verbosity:
    if quiet:
        return Verbosity.QUIET
    return Verbosity(min(Verbosity.NORMAL + verbose, Verbosity.DEBUG))


def _scope(packages: list[str], workspace: bool, exclude: list[str]) -> ProjectScope:
    if packages and workspace:
        raise ConfigurationError("--package cannot be combined with --workspace")
    if packages:
        return ProjectScope.only(packages, excluded=exclude)
    if workspace:
        return ProjectScope.workspace(excluded=exclude)
    return ProjectScope(excluded=tuple(exclude))


def _current(manifest_path: Optional[Path], current_snapshot: Optional[Path]) -> CurrentSpec:
    if current_snapshot is not None:
        if manifest_path is not None:
            raise ConfigurationError("--current-snapshot cannot be combined with --manifest-path")
        return PrebuiltSnapshot(current_snapshot)
    if manifest_path is not None:
        return ManifestSource(manifest_path)
    return CurrentDir()


@app.command("check-release")
def check_release(
    ctx: typer.Context,
    manifest_path: Optional[Path] = typer.Option(None, "--manifest-path", help="Path to pyproject.toml."),
    package: Optional[List[str]] = typer.Option(None, "-p", "--package", help="Package to check."),
    workspace: bool = typer.Option(False, "--workspace", "--all", help="Check all workspace members."),
    exclude: Optional[List[str]] = typer.Option(None, "--exclude", help="Package to leave out."),
    current_snapshot: Optional[Path] = typer.Option(
        None,
        "--current-snapshot",
        help="Prebuilt snapshot of the current version; requires --baseline-snapshot.",
    ),
    baseline_version: Optional[str] = typer.Option(None, "--baseline-version", help="Published version to compare against."),
    baseline_rev: Optional[str] = typer.Option(None, "--baseline-rev", help="Git revision to compare against."),
    baseline_root: Optional[Path] = typer.Option(
        None,
        "--baseline-root",
        help="Source tree to compare against; with --baseline-rev, the repository holding the revision.",
    ),
    baseline_snapshot: Optional[Path] = typer.Option(None, "--baseline-snapshot", help="Prebuilt baseline snapshot."),
    verbose: int = typer.Option(0, "-v", "--verbose", count=True, help="More output; repeat for more."),
    quiet: bool = typer.Option(False, "-q", "--quiet", help="Only report warnings, errors and the verdict."),
) -> None:
    """Compare the current package against a baseline and report semver violations."""
    try:
        config = CheckConfig(
            current=_current(manifest_path, current_snapshot),
            scope=_scope(list(package or []), workspace, list(exclude or [])),
            baseline=baseline_from_options(
                version=baseline_version,
                rev=baseline_rev,
                root=baseline_root,
                snapshot=baseline_snapshot,
            ),
            verbosity=_verbosity(verbose, quiet),
        )
        deps = ctx.obj if isinstance(ctx.obj, CheckDeps) else CheckDeps()
        report = Check(config, deps=replace(deps, sink=render_event)).check_release()
    except InternalError as exc:
        if exc.env and verbose:
            for key, value in sorted(exc.env_payload.items()):
                typer.echo(f"  {key}={value}", err=True)
        raise _fail(f"internal error: {exc}") from exc
    except SemverChecksError as exc:
        raise _fail(str(exc)) from exc
    raise typer.Exit(code=EXIT_OK if report.success else EXIT_VIOLATIONS)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
