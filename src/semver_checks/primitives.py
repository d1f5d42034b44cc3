"""Comparison primitives the rule catalog is built from.

Each primitive is a pure function of ``(current, baseline, arguments)`` that
yields one result mapping per violation. A rule names its primitive, binds
its arguments, and formats the result fields into messages, so every field a
rule template refers to must be listed in the primitive's ``fields``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Iterator, Mapping

from semver_checks.snapshot import ApiSnapshot, ClassItem, FunctionItem, ModuleItem, ParameterKind

Result = dict[str, object]
PrimitiveFn = Callable[[ApiSnapshot, ApiSnapshot, Mapping[str, object]], Iterator[Result]]

_LOCATION_FIELDS = frozenset({"module", "file", "line"})
_IGNORED_BASES = frozenset({"object", "Generic", "Protocol"})


@dataclass(frozen=True)
class Primitive:
    name: str
    fn: PrimitiveFn
    fields: frozenset[str]
    arguments: Mapping[str, tuple[object, ...]] = field(default_factory=dict)
    required: frozenset[str] = frozenset()

    def validate(self, arguments: Mapping[str, object]) -> None:
        unknown = sorted(set(arguments) - set(self.arguments))
        if unknown:
            raise ValueError(f"{self.name}: unknown arguments {', '.join(unknown)}")
        missing = sorted(self.required - set(arguments))
        if missing:
            raise ValueError(f"{self.name}: missing arguments {', '.join(missing)}")
        for key, value in arguments.items():
            allowed = self.arguments[key]
            if value not in allowed:
                choices = ", ".join(repr(choice) for choice in allowed)
                raise ValueError(f"{self.name}: argument {key}={value!r} must be one of {choices}")

    def run(self, current: ApiSnapshot, baseline: ApiSnapshot, arguments: Mapping[str, object]) -> list[Result]:
        return list(self.fn(current, baseline, arguments))


PRIMITIVES: dict[str, Primitive] = {}


def primitive(
    name: str,
    *,
    fields: tuple[str, ...],
    arguments: Mapping[str, tuple[object, ...]] | None = None,
    required: tuple[str, ...] = (),
) -> Callable[[PrimitiveFn], PrimitiveFn]:
    def register(fn: PrimitiveFn) -> PrimitiveFn:
        PRIMITIVES[name] = Primitive(
            name=name,
            fn=fn,
            fields=_LOCATION_FIELDS | frozenset(fields),
            arguments=dict(arguments or {}),
            required=frozenset(required),
        )
        return fn

    return register


def get_primitive(name: str) -> Primitive | None:
    return PRIMITIVES.get(name)


def _shared_modules(current: ApiSnapshot, baseline: ApiSnapshot) -> Iterator[tuple[ModuleItem, ModuleItem]]:
    for old_module in baseline.modules:
        new_module = current.module(old_module.path)
        if new_module is not None:
            yield old_module, new_module


def _shared_classes(
    current: ApiSnapshot, baseline: ApiSnapshot
) -> Iterator[tuple[ModuleItem, ClassItem, ModuleItem, ClassItem]]:
    for old_module, new_module in _shared_modules(current, baseline):
        for old_class in old_module.classes:
            new_class = new_module.class_(old_class.name)
            if new_class is not None:
                yield old_module, old_class, new_module, new_class


def _shared_callables(
    current: ApiSnapshot, baseline: ApiSnapshot, scope: object
) -> Iterator[tuple[ModuleItem, FunctionItem, ModuleItem, FunctionItem, str]]:
    if scope == "method":
        for old_module, old_class, new_module, new_class in _shared_classes(current, baseline):
            for old in old_class.methods:
                new = new_class.method(old.name)
                if new is not None:
                    yield old_module, old, new_module, new, f"{old_class.name}.{old.name}"
        return
    for old_module, new_module in _shared_modules(current, baseline):
        for old in old_module.functions:
            new = new_module.function(old.name)
            if new is not None:
                yield old_module, old, new_module, new, old.name


def _ancestors(snapshot: ApiSnapshot, module: ModuleItem, class_item: ClassItem) -> list[ClassItem]:
    """Classes ``class_item`` inherits from that are defined in ``snapshot``, nearest first."""
    found: list[ClassItem] = []
    seen = {class_item.qualname}
    pending = [(module, base) for base in class_item.bases]
    while pending:
        owner_module, reference = pending.pop(0)
        resolved = snapshot.resolve_class(owner_module, _strip_subscript(reference))
        if resolved is None or resolved.qualname in seen:
            continue
        seen.add(resolved.qualname)
        found.append(resolved)
        resolved_module = snapshot.module(resolved.qualname.rpartition(".")[0]) or owner_module
        pending.extend((resolved_module, base) for base in resolved.bases)
    return found


def _strip_subscript(reference: str) -> str:
    return reference.partition("[")[0].strip()


def _base_name(reference: str) -> str:
    return _strip_subscript(reference).rpartition(".")[2]


def _is_checked_method(name: str) -> bool:
    # __init__ is covered by the parameter rules.
    if name == "__init__":
        return False
    if name.startswith("__") and name.endswith("__"):
        return True
    return not name.startswith("_")


def _has_member(snapshot: ApiSnapshot, module: ModuleItem, class_item: ClassItem, name: str) -> bool:
    for candidate in (class_item, *_ancestors(snapshot, module, class_item)):
        if candidate.method(name) is not None or name in candidate.attributes:
            return True
    return False


@primitive(
    "missing_item",
    fields=("name", "kind"),
    arguments={"kind": ("module", "function", "class", "constant")},
    required=("kind",),
)
def missing_item(current: ApiSnapshot, baseline: ApiSnapshot, arguments: Mapping[str, object]) -> Iterator[Result]:
    kind = arguments["kind"]
    if kind == "module":
        for old_module in baseline.modules:
            if current.module(old_module.path) is None:
                yield {
                    "module": old_module.path,
                    "name": old_module.path,
                    "kind": kind,
                    "file": old_module.file,
                    "line": 0,
                }
        return
    for old_module, new_module in _shared_modules(current, baseline):
        items = {
            "function": old_module.functions,
            "class": old_module.classes,
            "constant": old_module.constants,
        }[str(kind)]
        for item in items:
            if new_module.kind_of(item.name) is None:
                yield {
                    "module": old_module.path,
                    "name": item.name,
                    "kind": kind,
                    "file": old_module.file,
                    "line": item.line,
                }


@primitive("item_kind_changed", fields=("name", "old_kind", "new_kind"))
def item_kind_changed(current: ApiSnapshot, baseline: ApiSnapshot, arguments: Mapping[str, object]) -> Iterator[Result]:
    for old_module, new_module in _shared_modules(current, baseline):
        items = [*old_module.functions, *old_module.classes, *old_module.constants]
        for item in sorted(items, key=lambda entry: entry.line):
            old_kind = old_module.kind_of(item.name)
            new_kind = new_module.kind_of(item.name)
            if new_kind is None or new_kind == "reexport" or new_kind == old_kind:
                continue
            yield {
                "module": old_module.path,
                "name": item.name,
                "old_kind": old_kind,
                "new_kind": new_kind,
                "file": old_module.file,
                "line": item.line,
            }


@primitive("missing_method", fields=("class_name", "name"))
def missing_method(current: ApiSnapshot, baseline: ApiSnapshot, arguments: Mapping[str, object]) -> Iterator[Result]:
    for old_module, old_class, new_module, new_class in _shared_classes(current, baseline):
        for method in old_class.methods:
            if not _is_checked_method(method.name):
                continue
            if _has_member(current, new_module, new_class, method.name):
                continue
            yield {
                "module": old_module.path,
                "class_name": old_class.name,
                "name": method.name,
                "file": old_module.file,
                "line": method.line,
            }


_SCOPE_ARGUMENT = {"scope": ("function", "method")}
_PARAMETER_FIELDS = ("function", "parameter")


@primitive("parameter_removed", fields=_PARAMETER_FIELDS, arguments=_SCOPE_ARGUMENT, required=("scope",))
def parameter_removed(current: ApiSnapshot, baseline: ApiSnapshot, arguments: Mapping[str, object]) -> Iterator[Result]:
    for old_module, old, _new_module, new, label in _shared_callables(current, baseline, arguments["scope"]):
        old_positional = old.positional()
        new_positional = new.positional()
        for parameter in old.parameters:
            if parameter.is_variadic:
                continue
            if parameter.kind is ParameterKind.POSITIONAL_ONLY:
                # Callers bind these by position only.
                removed = (
                    old_positional.index(parameter) >= len(new_positional)
                    and not new.accepts_var_positional()
                )
            else:
                removed = new.parameter(parameter.name) is None and not new.accepts_var_keyword()
            if removed:
                yield {
                    "module": old_module.path,
                    "function": label,
                    "parameter": parameter.name,
                    "file": old_module.file,
                    "line": old.line,
                }


@primitive("required_parameter_added", fields=_PARAMETER_FIELDS, arguments=_SCOPE_ARGUMENT, required=("scope",))
def required_parameter_added(
    current: ApiSnapshot, baseline: ApiSnapshot, arguments: Mapping[str, object]
) -> Iterator[Result]:
    for _old_module, old, new_module, new, label in _shared_callables(current, baseline, arguments["scope"]):
        old_positional = old.positional()
        new_positional = new.positional()
        for parameter in new.parameters:
            if parameter.is_variadic or parameter.has_default:
                continue
            if parameter.is_positional:
                position = new_positional.index(parameter)
                # A positional-only slot never had a name callers could use.
                if position < len(old_positional) and (
                    parameter.kind is ParameterKind.POSITIONAL_ONLY
                    or old_positional[position].kind is ParameterKind.POSITIONAL_ONLY
                ):
                    continue
            if old.parameter(parameter.name) is not None:
                continue
            yield {
                "module": new_module.path,
                "function": label,
                "parameter": parameter.name,
                "file": new_module.file,
                "line": new.line,
            }


@primitive(
    "parameter_kind_changed",
    fields=(*_PARAMETER_FIELDS, "old_kind", "new_kind"),
    arguments=_SCOPE_ARGUMENT,
    required=("scope",),
)
def parameter_kind_changed(
    current: ApiSnapshot, baseline: ApiSnapshot, arguments: Mapping[str, object]
) -> Iterator[Result]:
    """Parameters that can no longer be passed the way callers used to pass them.

    Positional-only parameters of the baseline are left to ``parameter_removed``,
    which already compares them by position.
    """
    for old_module, old, _new_module, new, label in _shared_callables(current, baseline, arguments["scope"]):
        for parameter in old.parameters:
            if parameter.kind not in (ParameterKind.POSITIONAL_OR_KEYWORD, ParameterKind.KEYWORD_ONLY):
                continue
            replacement = new.parameter(parameter.name)
            if replacement is None or replacement.kind is parameter.kind:
                continue
            lost_position = (
                parameter.kind is ParameterKind.POSITIONAL_OR_KEYWORD
                and replacement.kind is ParameterKind.KEYWORD_ONLY
                and not new.accepts_var_positional()
            )
            lost_keyword = replacement.kind is ParameterKind.POSITIONAL_ONLY and not new.accepts_var_keyword()
            if not (lost_position or lost_keyword):
                continue
            yield {
                "module": old_module.path,
                "function": label,
                "parameter": parameter.name,
                "old_kind": parameter.kind.value.replace("_", " "),
                "new_kind": replacement.kind.value.replace("_", " "),
                "file": old_module.file,
                "line": old.line,
            }


@primitive(
    "positional_parameter_moved",
    fields=(*_PARAMETER_FIELDS, "old_position", "new_position"),
    arguments=_SCOPE_ARGUMENT,
)
def positional_parameter_moved(
    current: ApiSnapshot, baseline: ApiSnapshot, arguments: Mapping[str, object]
) -> Iterator[Result]:
    scope = arguments.get("scope", "function")
    for old_module, old, _new_module, new, label in _shared_callables(current, baseline, scope):
        new_names = [parameter.name for parameter in new.positional()]
        for old_position, parameter in enumerate(old.positional()):
            if parameter.name not in new_names:
                continue
            new_position = new_names.index(parameter.name)
            if new_position != old_position:
                yield {
                    "module": old_module.path,
                    "function": label,
                    "parameter": parameter.name,
                    "old_position": old_position,
                    "new_position": new_position,
                    "file": old_module.file,
                    "line": old.line,
                }


@primitive("parameter_default_removed", fields=_PARAMETER_FIELDS, arguments=_SCOPE_ARGUMENT)
def parameter_default_removed(
    current: ApiSnapshot, baseline: ApiSnapshot, arguments: Mapping[str, object]
) -> Iterator[Result]:
    scope = arguments.get("scope", "function")
    for old_module, old, _new_module, new, label in _shared_callables(current, baseline, scope):
        for parameter in old.parameters:
            if not parameter.has_default:
                continue
            replacement = new.parameter(parameter.name)
            if replacement is None or replacement.is_variadic or replacement.has_default:
                continue
            yield {
                "module": old_module.path,
                "function": label,
                "parameter": parameter.name,
                "file": old_module.file,
                "line": old.line,
            }


@primitive("async_changed", fields=("function", "old_style", "new_style"), arguments=_SCOPE_ARGUMENT)
def async_changed(current: ApiSnapshot, baseline: ApiSnapshot, arguments: Mapping[str, object]) -> Iterator[Result]:
    scope = arguments.get("scope", "function")
    for old_module, old, _new_module, new, label in _shared_callables(current, baseline, scope):
        if old.is_async == new.is_async:
            continue
        yield {
            "module": old_module.path,
            "function": label,
            "old_style": "async" if old.is_async else "sync",
            "new_style": "async" if new.is_async else "sync",
            "file": old_module.file,
            "line": old.line,
        }


@primitive("class_base_removed", fields=("class_name", "base"))
def class_base_removed(current: ApiSnapshot, baseline: ApiSnapshot, arguments: Mapping[str, object]) -> Iterator[Result]:
    for old_module, old_class, new_module, new_class in _shared_classes(current, baseline):
        kept = {_base_name(base) for base in new_class.bases}
        kept.update(ancestor.name for ancestor in _ancestors(current, new_module, new_class))
        for base in old_class.bases:
            name = _base_name(base)
            if name in _IGNORED_BASES or name in kept:
                continue
            yield {
                "module": old_module.path,
                "class_name": old_class.name,
                "base": base,
                "file": old_module.file,
                "line": old_class.line,
            }


@primitive(
    "class_attribute_missing",
    fields=("class_name", "name"),
    arguments={"enum": (True, False)},
    required=("enum",),
)
def class_attribute_missing(
    current: ApiSnapshot, baseline: ApiSnapshot, arguments: Mapping[str, object]
) -> Iterator[Result]:
    enum = arguments["enum"]
    for old_module, old_class, new_module, new_class in _shared_classes(current, baseline):
        if old_class.is_enum != enum:
            continue
        for name in old_class.attributes:
            if _has_member(current, new_module, new_class, name):
                continue
            yield {
                "module": old_module.path,
                "class_name": old_class.name,
                "name": name,
                "file": old_module.file,
                "line": old_class.line,
            }


@primitive(
    "deprecation_added",
    fields=("name", "kind"),
    arguments={"kind": ("function", "class")},
    required=("kind",),
)
def deprecation_added(current: ApiSnapshot, baseline: ApiSnapshot, arguments: Mapping[str, object]) -> Iterator[Result]:
    kind = arguments["kind"]
    for old_module, new_module in _shared_modules(current, baseline):
        if kind == "function":
            pairs = [(item, new_module.function(item.name)) for item in old_module.functions]
        else:
            pairs = [(item, new_module.class_(item.name)) for item in old_module.classes]
        for old, new in pairs:
            if new is None or old.deprecated or not new.deprecated:
                continue
            yield {
                "module": new_module.path,
                "name": new.name,
                "kind": kind,
                "file": new_module.file,
                "line": new.line,
            }


@primitive("reexport_missing", fields=("name", "target"))
def reexport_missing(current: ApiSnapshot, baseline: ApiSnapshot, arguments: Mapping[str, object]) -> Iterator[Result]:
    for old_module, new_module in _shared_modules(current, baseline):
        for reexport in old_module.reexports:
            if new_module.kind_of(reexport.name) is not None:
                continue
            yield {
                "module": old_module.path,
                "name": reexport.name,
                "target": reexport.target,
                "file": old_module.file,
                "line": 0,
            }
