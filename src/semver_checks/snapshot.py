"""Snapshot documents: the structured public interface of one package version."""

from __future__ import annotations

import json
from enum import StrEnum
from pathlib import Path
from typing import Iterator, List, Optional

from pydantic import BaseModel, ConfigDict, ValidationError

from semver_checks.exceptions import FormatError

FORMAT_VERSION = 1
SUPPORTED_FORMAT_VERSIONS = (1,)


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")


class ParameterKind(StrEnum):
    POSITIONAL_ONLY = "positional_only"
    POSITIONAL_OR_KEYWORD = "positional_or_keyword"
    VAR_POSITIONAL = "var_positional"
    KEYWORD_ONLY = "keyword_only"
    VAR_KEYWORD = "var_keyword"


class ParameterItem(_Frozen):
    name: str
    kind: ParameterKind
    annotation: Optional[str] = None
    has_default: bool = False

    @property
    def is_positional(self) -> bool:
        return self.kind in (ParameterKind.POSITIONAL_ONLY, ParameterKind.POSITIONAL_OR_KEYWORD)

    @property
    def is_keyword(self) -> bool:
        return self.kind in (ParameterKind.POSITIONAL_OR_KEYWORD, ParameterKind.KEYWORD_ONLY)

    @property
    def is_variadic(self) -> bool:
        return self.kind in (ParameterKind.VAR_POSITIONAL, ParameterKind.VAR_KEYWORD)


class FunctionItem(_Frozen):
    name: str
    qualname: str
    is_async: bool = False
    parameters: List[ParameterItem] = []
    returns: Optional[str] = None
    decorators: List[str] = []
    deprecated: bool = False
    line: int = 0

    def parameter(self, name: str) -> ParameterItem | None:
        for parameter in self.parameters:
            if parameter.name == name:
                return parameter
        return None

    def positional(self) -> list[ParameterItem]:
        return [parameter for parameter in self.parameters if parameter.is_positional]

    def accepts_var_positional(self) -> bool:
        return any(p.kind is ParameterKind.VAR_POSITIONAL for p in self.parameters)

    def accepts_var_keyword(self) -> bool:
        return any(p.kind is ParameterKind.VAR_KEYWORD for p in self.parameters)


class ClassItem(_Frozen):
    name: str
    qualname: str
    bases: List[str] = []
    methods: List[FunctionItem] = []
    attributes: List[str] = []
    is_enum: bool = False
    deprecated: bool = False
    line: int = 0

    def method(self, name: str) -> FunctionItem | None:
        for method in self.methods:
            if method.name == name:
                return method
        return None


class ConstantItem(_Frozen):
    name: str
    annotation: Optional[str] = None
    line: int = 0


class ReexportItem(_Frozen):
    name: str
    target: str


class ModuleItem(_Frozen):
    path: str
    file: str
    functions: List[FunctionItem] = []
    classes: List[ClassItem] = []
    constants: List[ConstantItem] = []
    reexports: List[ReexportItem] = []

    def function(self, name: str) -> FunctionItem | None:
        for function in self.functions:
            if function.name == name:
                return function
        return None

    def class_(self, name: str) -> ClassItem | None:
        for class_item in self.classes:
            if class_item.name == name:
                return class_item
        return None

    def constant(self, name: str) -> ConstantItem | None:
        for constant in self.constants:
            if constant.name == name:
                return constant
        return None

    def reexport(self, name: str) -> ReexportItem | None:
        for reexport in self.reexports:
            if reexport.name == name:
                return reexport
        return None

    def kind_of(self, name: str) -> str | None:
        """Kind of the public name ``name`` defined in this module, if any."""
        if self.function(name) is not None:
            return "function"
        if self.class_(name) is not None:
            return "class"
        if self.constant(name) is not None:
            return "constant"
        if self.reexport(name) is not None:
            return "reexport"
        return None


class ApiSnapshot(_Frozen):
    format_version: int = FORMAT_VERSION
    package: str
    version: Optional[str] = None
    modules: List[ModuleItem] = []
    dependencies: List[str] = []

    def module(self, path: str) -> ModuleItem | None:
        for module in self.modules:
            if module.path == path:
                return module
        return None

    def iter_classes(self) -> Iterator[tuple[ModuleItem, ClassItem]]:
        for module in self.modules:
            for class_item in module.classes:
                yield module, class_item

    def resolve_class(self, module: ModuleItem, reference: str) -> ClassItem | None:
        """Class named by ``reference`` as written in ``module``, when it is in this snapshot."""
        local = module.class_(reference)
        if local is not None:
            return local
        reexport = module.reexport(reference)
        if reexport is not None:
            reference = reexport.target
        head, _, name = reference.rpartition(".")
        if not head:
            return None
        owner = self.module(head)
        return owner.class_(name) if owner is not None else None


def parse_snapshot(payload: object, *, source: str = "<memory>") -> ApiSnapshot:
    if not isinstance(payload, dict):
        raise FormatError(f"{source}: snapshot document must be a JSON object")
    raw_version = payload.get("format_version", FORMAT_VERSION)
    if raw_version not in SUPPORTED_FORMAT_VERSIONS:
        expected = ", ".join(str(value) for value in SUPPORTED_FORMAT_VERSIONS)
        raise FormatError(
            f"{source}: unsupported snapshot format_version={raw_version!r}; expected {expected}"
        )
    try:
        return ApiSnapshot.model_validate(payload)
    except ValidationError as exc:
        raise FormatError(f"{source}: invalid snapshot document: {exc}") from exc


def load_snapshot(path: Path) -> ApiSnapshot:
    try:
        text = Path(path).read_text(encoding="utf-8")
    except OSError as exc:
        raise FormatError(f"unable to read snapshot {path}: {exc}") from exc
    try:
        payload = json.loads(text)
    except json.JSONDecodeError as exc:
        raise FormatError(f"{path}: snapshot is not valid JSON: {exc}") from exc
    return parse_snapshot(payload, source=str(path))


def write_snapshot(path: Path, snapshot: ApiSnapshot) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(
        json.dumps(snapshot.model_dump(mode="json"), indent=2, sort_keys=False) + "\n",
        encoding="utf-8",
    )
