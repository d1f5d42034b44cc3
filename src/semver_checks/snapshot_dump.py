"""Snapshot generator, run as ``python -m semver_checks.snapshot_dump``.

Parses every public module of a package source tree with :mod:`ast` (nothing
is imported or executed) and writes an :class:`~semver_checks.snapshot.ApiSnapshot`
JSON document describing the package's public interface.
"""

from __future__ import annotations

import argparse
import ast
from email.parser import HeaderParser
from pathlib import Path
import sys
from typing import Iterable, Mapping, Sequence
import tomllib

from semver_checks import config as config_module
from semver_checks.snapshot import (
    ApiSnapshot,
    ClassItem,
    ConstantItem,
    FunctionItem,
    ModuleItem,
    ParameterItem,
    ParameterKind,
    ReexportItem,
    write_snapshot,
)

_EXCLUDED_DIRS = frozenset(
    {"tests", "test", "testing", "docs", "doc", "examples", "benchmarks", "scripts", "build", "dist"}
)
_EXCLUDED_MODULES = frozenset({"setup", "conftest", "noxfile", "fabfile", "tasks"})
_ENUM_BASES = frozenset({"Enum", "IntEnum", "StrEnum", "Flag", "IntFlag", "ReprEnum"})


class SnapshotDumpError(Exception):
    pass


def _is_public(name: str) -> bool:
    return not name.startswith("_")


def _is_dunder(name: str) -> bool:
    return len(name) > 4 and name.startswith("__") and name.endswith("__")


def _unparse(node: ast.AST | None) -> str | None:
    if node is None:
        return None
    return ast.unparse(node)


def _decorator_name(node: ast.expr) -> str:
    target = node.func if isinstance(node, ast.Call) else node
    return ast.unparse(target)


def _is_deprecated(decorators: Iterable[ast.expr]) -> bool:
    return any(_decorator_name(node).rpartition(".")[2] == "deprecated" for node in decorators)


def _parameters(args: ast.arguments) -> list[ParameterItem]:
    positional = [*args.posonlyargs, *args.args]
    first_default = len(positional) - len(args.defaults)
    params: list[ParameterItem] = []
    for index, arg in enumerate(positional):
        kind = (
            ParameterKind.POSITIONAL_ONLY
            if index < len(args.posonlyargs)
            else ParameterKind.POSITIONAL_OR_KEYWORD
        )
        params.append(
            ParameterItem(
                name=arg.arg,
                kind=kind,
                annotation=_unparse(arg.annotation),
                has_default=index >= first_default,
            )
        )
    if args.vararg is not None:
        params.append(
            ParameterItem(
                name=args.vararg.arg,
                kind=ParameterKind.VAR_POSITIONAL,
                annotation=_unparse(args.vararg.annotation),
            )
        )
    for arg, default in zip(args.kwonlyargs, args.kw_defaults):
        params.append(
            ParameterItem(
                name=arg.arg,
                kind=ParameterKind.KEYWORD_ONLY,
                annotation=_unparse(arg.annotation),
                has_default=default is not None,
            )
        )
    if args.kwarg is not None:
        params.append(
            ParameterItem(
                name=args.kwarg.arg,
                kind=ParameterKind.VAR_KEYWORD,
                annotation=_unparse(args.kwarg.annotation),
            )
        )
    return params


def _function_item(node: ast.FunctionDef | ast.AsyncFunctionDef, *, qualname: str) -> FunctionItem:
    return FunctionItem(
        name=node.name,
        qualname=qualname,
        is_async=isinstance(node, ast.AsyncFunctionDef),
        parameters=_parameters(node.args),
        returns=_unparse(node.returns),
        decorators=[_decorator_name(decorator) for decorator in node.decorator_list],
        deprecated=_is_deprecated(node.decorator_list),
        line=node.lineno,
    )


def _assigned_names(node: ast.stmt) -> list[str]:
    if isinstance(node, ast.Assign):
        return [target.id for target in node.targets if isinstance(target, ast.Name)]
    if isinstance(node, ast.AnnAssign) and isinstance(node.target, ast.Name):
        return [node.target.id]
    return []


def _self_attributes(init: ast.FunctionDef | ast.AsyncFunctionDef) -> list[str]:
    if not init.args.args:
        return []
    self_name = init.args.args[0].arg
    names: list[str] = []
    for node in ast.walk(init):
        targets: list[ast.expr] = []
        if isinstance(node, ast.Assign):
            targets = list(node.targets)
        elif isinstance(node, ast.AnnAssign):
            targets = [node.target]
        for target in targets:
            if (
                isinstance(target, ast.Attribute)
                and isinstance(target.value, ast.Name)
                and target.value.id == self_name
                and _is_public(target.attr)
                and target.attr not in names
            ):
                names.append(target.attr)
    return names


def _class_item(node: ast.ClassDef, *, module_path: str) -> ClassItem:
    qualname = f"{module_path}.{node.name}"
    methods: dict[str, FunctionItem] = {}
    attributes: list[str] = []
    for statement in node.body:
        if isinstance(statement, (ast.FunctionDef, ast.AsyncFunctionDef)):
            if _is_public(statement.name) or _is_dunder(statement.name):
                methods[statement.name] = _function_item(
                    statement, qualname=f"{qualname}.{statement.name}"
                )
            if statement.name == "__init__":
                attributes.extend(
                    name for name in _self_attributes(statement) if name not in attributes
                )
            continue
        for name in _assigned_names(statement):
            if _is_public(name) and name not in attributes:
                attributes.append(name)
    bases = [ast.unparse(base) for base in node.bases]
    return ClassItem(
        name=node.name,
        qualname=qualname,
        bases=bases,
        methods=list(methods.values()),
        attributes=attributes,
        is_enum=any(base.rpartition(".")[2] in _ENUM_BASES for base in bases),
        deprecated=_is_deprecated(node.decorator_list),
        line=node.lineno,
    )


def _literal_names(node: ast.expr | None) -> list[str] | None:
    if not isinstance(node, (ast.List, ast.Tuple)):
        return None
    names: list[str] = []
    for element in node.elts:
        if not isinstance(element, ast.Constant) or not isinstance(element.value, str):
            return None
        names.append(element.value)
    return names


def _top_level_statements(body: Sequence[ast.stmt]) -> Iterable[ast.stmt]:
    """Module statements, descending into ``if`` and ``try`` blocks."""
    for statement in body:
        if isinstance(statement, ast.If):
            yield from _top_level_statements(statement.body)
            yield from _top_level_statements(statement.orelse)
        elif isinstance(statement, ast.Try):
            yield from _top_level_statements(statement.body)
            for handler in statement.handlers:
                yield from _top_level_statements(handler.body)
            yield from _top_level_statements(statement.orelse)
            yield from _top_level_statements(statement.finalbody)
        else:
            yield statement


def _resolve_import(module_path: str, *, is_package: bool, node: ast.ImportFrom) -> str:
    if node.level == 0:
        return node.module or ""
    parts = module_path.split(".")
    if not is_package:
        parts = parts[:-1]
    if node.level > 1:
        parts = parts[: len(parts) - (node.level - 1)]
    if node.module:
        parts.append(node.module)
    return ".".join(parts)


def module_item(source: str, *, module_path: str, file: str, is_package: bool) -> ModuleItem:
    tree = ast.parse(source, filename=file)
    definitions: dict[str, FunctionItem | ClassItem | ConstantItem] = {}
    imports: dict[str, tuple[str, bool]] = {}
    exported: list[str] | None = None

    for statement in _top_level_statements(tree.body):
        if isinstance(statement, (ast.FunctionDef, ast.AsyncFunctionDef)):
            definitions[statement.name] = _function_item(
                statement, qualname=f"{module_path}.{statement.name}"
            )
        elif isinstance(statement, ast.ClassDef):
            definitions[statement.name] = _class_item(statement, module_path=module_path)
        elif isinstance(statement, ast.Import):
            for alias in statement.names:
                local = alias.asname or alias.name.partition(".")[0]
                imports[local] = (alias.name, alias.asname == alias.name)
        elif isinstance(statement, ast.ImportFrom):
            origin = _resolve_import(module_path, is_package=is_package, node=statement)
            for alias in statement.names:
                if alias.name == "*":
                    continue
                local = alias.asname or alias.name
                target = f"{origin}.{alias.name}" if origin else alias.name
                imports[local] = (target, alias.asname == alias.name)
        elif isinstance(statement, ast.AugAssign):
            if isinstance(statement.target, ast.Name) and statement.target.id == "__all__":
                extra = _literal_names(statement.value)
                if extra is not None:
                    exported = [*(exported or []), *extra]
        else:
            names = _assigned_names(statement)
            if "__all__" in names:
                value = statement.value if isinstance(statement, (ast.Assign, ast.AnnAssign)) else None
                exported = _literal_names(value)
                continue
            annotation = (
                _unparse(statement.annotation) if isinstance(statement, ast.AnnAssign) else None
            )
            for name in names:
                definitions[name] = ConstantItem(name=name, annotation=annotation, line=statement.lineno)

    if exported is not None:
        public = set(exported)
        reexports = [
            ReexportItem(name=name, target=imports[name][0])
            for name in exported
            if name in imports and name not in definitions
        ]
    else:
        public = {name for name in definitions if _is_public(name)}
        reexports = [
            ReexportItem(name=name, target=target)
            for name, (target, explicit) in imports.items()
            if explicit and _is_public(name) and name not in definitions
        ]

    functions: list[FunctionItem] = []
    classes: list[ClassItem] = []
    constants: list[ConstantItem] = []
    for name, item in definitions.items():
        if name not in public:
            continue
        if isinstance(item, FunctionItem):
            functions.append(item)
        elif isinstance(item, ClassItem):
            classes.append(item)
        else:
            constants.append(item)
    return ModuleItem(
        path=module_path,
        file=file,
        functions=functions,
        classes=classes,
        constants=constants,
        reexports=reexports,
    )


def _search_root(root: Path) -> Path:
    src = root / "src"
    return src if src.is_dir() else root


def discover_import_packages(root: Path, *, override: Sequence[str] = ()) -> list[Path]:
    search_root = _search_root(root)
    if override:
        found: list[Path] = []
        for name in override:
            package_dir = search_root / name.replace(".", "/")
            module_file = search_root / f"{name.replace('.', '/')}.py"
            if (package_dir / "__init__.py").is_file():
                found.append(package_dir)
            elif module_file.is_file():
                found.append(module_file)
            else:
                raise SnapshotDumpError(f"configured package {name!r} not found under {search_root}")
        return found
    found = []
    for entry in sorted(search_root.iterdir()):
        name = entry.stem if entry.is_file() else entry.name
        if not name.isidentifier() or not _is_public(name):
            continue
        if entry.is_dir():
            if entry.name in _EXCLUDED_DIRS or not (entry / "__init__.py").is_file():
                continue
            found.append(entry)
        elif entry.suffix == ".py" and entry.stem not in _EXCLUDED_MODULES:
            found.append(entry)
    return found


def iter_module_files(import_root: Path) -> Iterable[tuple[str, Path, bool]]:
    """(dotted module path, file, is_package) for every public module under ``import_root``."""
    if import_root.is_file():
        yield import_root.stem, import_root, False
        return
    base = import_root.parent
    for path in sorted(import_root.rglob("*.py")):
        relative = path.relative_to(base).with_suffix("")
        parts = list(relative.parts)
        is_package = parts[-1] == "__init__"
        if is_package:
            parts = parts[:-1]
        if any(not _is_public(part) for part in parts):
            continue
        package_dirs = [base.joinpath(*relative.parts[:depth]) for depth in range(1, len(relative.parts))]
        if any(not (directory / "__init__.py").is_file() for directory in package_dirs):
            continue
        yield ".".join(parts), path, is_package


def _metadata_headers(root: Path) -> Mapping[str, str]:
    candidates = [root / "PKG-INFO", *sorted(root.glob("*.dist-info/METADATA"))]
    for candidate in candidates:
        if candidate.is_file():
            headers = HeaderParser().parsestr(candidate.read_text(encoding="utf-8"))
            return {key: value for key, value in headers.items()}
    return {}


def package_identity(root: Path) -> tuple[str, str | None, list[str], list[str]]:
    """(name, version, declared dependencies, configured import packages)."""
    manifest = root / config_module.PYPROJECT_NAME
    name: str | None = None
    version: str | None = None
    dependencies: list[str] = []
    override: list[str] = []
    if manifest.is_file():
        try:
            data = tomllib.loads(manifest.read_text(encoding="utf-8"))
        except tomllib.TOMLDecodeError as exc:
            raise SnapshotDumpError(f"malformed {manifest}: {exc}") from exc
        project = data.get("project", {})
        if isinstance(project, dict):
            raw_name = project.get("name")
            raw_version = project.get("version")
            name = raw_name if isinstance(raw_name, str) else None
            version = raw_version if isinstance(raw_version, str) else None
            raw_dependencies = project.get("dependencies", [])
            if isinstance(raw_dependencies, list):
                dependencies = [str(item) for item in raw_dependencies]
        tool = data.get("tool", {})
        section = tool.get(config_module.TOOL_SECTION, {}) if isinstance(tool, dict) else {}
        override = config_module.snapshot_packages(section if isinstance(section, dict) else None)
    headers = _metadata_headers(root)
    name = name or headers.get("Name")
    version = version or headers.get("Version")
    if not name:
        raise SnapshotDumpError(f"cannot determine the package name under {root}")
    return name, version, dependencies, override


def build_snapshot(root: Path, *, include_dependencies: bool = False, echo=None) -> ApiSnapshot:
    name, version, dependencies, override = package_identity(root)
    modules: list[ModuleItem] = []
    for import_root in discover_import_packages(root, override=override):
        for module_path, path, is_package in iter_module_files(import_root):
            if echo is not None:
                echo(f"Documenting {module_path}")
            try:
                source = path.read_text(encoding="utf-8")
                modules.append(
                    module_item(
                        source,
                        module_path=module_path,
                        file=path.relative_to(root).as_posix(),
                        is_package=is_package,
                    )
                )
            except (SyntaxError, UnicodeDecodeError) as exc:
                raise SnapshotDumpError(f"{path}: {exc}") from exc
    return ApiSnapshot(
        package=name,
        version=version,
        modules=modules,
        dependencies=dependencies if include_dependencies else [],
    )


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Write the public API snapshot of a package.")
    parser.add_argument("--root", type=Path, required=True, help="Package source root.")
    parser.add_argument("--out", type=Path, required=True, help="Snapshot JSON output path.")
    parser.add_argument("--deps", action="store_true", help="Record declared dependencies.")
    parser.add_argument("--quiet", action="store_true", help="Suppress progress output.")
    args = parser.parse_args(argv)

    def _echo(line: str) -> None:
        print(line, file=sys.stderr)

    try:
        snapshot = build_snapshot(
            args.root,
            include_dependencies=args.deps,
            echo=None if args.quiet else _echo,
        )
    except (SnapshotDumpError, OSError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1
    write_snapshot(args.out, snapshot)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
