"""The rule catalog: one YAML document per rule under ``queries/``."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from functools import lru_cache
from pathlib import Path
import string
from types import MappingProxyType
from typing import Mapping

import yaml

from semver_checks.exceptions import InternalError
from semver_checks.primitives import Primitive, Result, get_primitive
from semver_checks.snapshot import ApiSnapshot

QUERY_DIR = Path(__file__).resolve().parent / "queries"

_REQUIRED_FIELDS = (
    "id",
    "human_readable_name",
    "description",
    "required_update",
    "check",
    "error_message",
)
_OPTIONAL_TEXT_FIELDS = ("reference", "reference_link", "per_result_error_template")
_KNOWN_FIELDS = frozenset({*_REQUIRED_FIELDS, *_OPTIONAL_TEXT_FIELDS, "arguments"})


class RequiredSemverUpdate(StrEnum):
    MAJOR = "major"
    MINOR = "minor"
    PATCH = "patch"


@dataclass(frozen=True)
class SemverQuery:
    id: str
    human_readable_name: str
    description: str
    required_update: RequiredSemverUpdate
    check: str
    error_message: str
    arguments: Mapping[str, object] = field(default_factory=dict)
    reference: str | None = None
    reference_link: str | None = None
    per_result_error_template: str | None = None

    @property
    def primitive(self) -> Primitive:
        found = get_primitive(self.check)
        if found is None:
            raise InternalError(f"rule {self.id} uses unknown check {self.check!r}")
        return found

    def evaluate(self, current: ApiSnapshot, baseline: ApiSnapshot) -> list[Result]:
        return self.primitive.run(current, baseline, self.arguments)

    def render(self, result: Mapping[str, object]) -> str | None:
        if self.per_result_error_template is None:
            return None
        return self.per_result_error_template.format(**result)


def template_fields(template: str) -> set[str]:
    """Top-level names a ``str.format`` template refers to."""
    names: set[str] = set()
    for _literal, field_name, _spec, _conversion in string.Formatter().parse(template):
        if field_name is None:
            continue
        head = field_name.split(".", 1)[0].split("[", 1)[0]
        names.add(head)
    return names


def _text(raw: Mapping[str, object], key: str, *, source: str, required: bool) -> str | None:
    value = raw.get(key)
    if value is None:
        if required:
            raise InternalError(f"{source}: missing required field {key!r}")
        return None
    if not isinstance(value, str) or (required and not value.strip()):
        raise InternalError(f"{source}: field {key!r} must be a non-empty string")
    return value.strip() if key != "per_result_error_template" else value.rstrip("\n")


def query_from_mapping(raw: object, *, source: str) -> SemverQuery:
    if not isinstance(raw, Mapping):
        raise InternalError(f"{source}: rule document must be a mapping")
    unknown = sorted(str(key) for key in raw if key not in _KNOWN_FIELDS)
    if unknown:
        raise InternalError(f"{source}: unknown fields {', '.join(unknown)}")
    values = {key: _text(raw, key, source=source, required=True) for key in _REQUIRED_FIELDS}
    optional = {key: _text(raw, key, source=source, required=False) for key in _OPTIONAL_TEXT_FIELDS}

    try:
        required_update = RequiredSemverUpdate(values["required_update"])
    except ValueError as exc:
        raise InternalError(
            f"{source}: required_update must be one of major, minor, patch; got {values['required_update']!r}"
        ) from exc

    arguments = raw.get("arguments") or {}
    if not isinstance(arguments, Mapping) or any(not isinstance(key, str) for key in arguments):
        raise InternalError(f"{source}: arguments must be a mapping of names to values")

    check = str(values["check"])
    found = get_primitive(check)
    if found is None:
        raise InternalError(f"{source}: unknown check {check!r}")
    try:
        found.validate(arguments)
    except ValueError as exc:
        raise InternalError(f"{source}: {exc}") from exc

    template = optional["per_result_error_template"]
    if template is not None:
        try:
            referenced = template_fields(template)
        except ValueError as exc:
            raise InternalError(f"{source}: malformed per_result_error_template: {exc}") from exc
        unknown_fields = sorted(referenced - found.fields)
        if unknown_fields:
            raise InternalError(
                f"{source}: per_result_error_template refers to {', '.join(unknown_fields)}, "
                f"which {check} does not produce"
            )

    return SemverQuery(
        id=str(values["id"]),
        human_readable_name=str(values["human_readable_name"]),
        description=str(values["description"]),
        required_update=required_update,
        check=check,
        error_message=str(values["error_message"]),
        arguments=MappingProxyType(dict(arguments)),
        reference=optional["reference"],
        reference_link=optional["reference_link"],
        per_result_error_template=template,
    )


@lru_cache(maxsize=1)
def load_catalog(directory: Path | None = None) -> Mapping[str, SemverQuery]:
    """Parse and validate every rule once per process; any defect is fatal."""
    rule_dir = QUERY_DIR if directory is None else directory
    paths = sorted(rule_dir.glob("*.yaml"))
    if not paths:
        raise InternalError(f"no rule definitions found in {rule_dir}")
    catalog: dict[str, SemverQuery] = {}
    for path in paths:
        source = path.name
        try:
            with path.open("r", encoding="utf-8") as handle:
                raw = yaml.safe_load(handle)
        except (OSError, yaml.YAMLError) as exc:
            raise InternalError(f"{source}: unreadable rule definition: {exc}") from exc
        query = query_from_mapping(raw, source=source)
        if query.id != path.stem:
            raise InternalError(f"{source}: rule id {query.id!r} does not match its file name")
        if query.id in catalog:
            raise InternalError(f"{source}: duplicate rule id {query.id!r}")
        catalog[query.id] = query
    return MappingProxyType(dict(sorted(catalog.items())))


def all_queries() -> Mapping[str, SemverQuery]:
    return load_catalog()


def get_query(query_id: str) -> SemverQuery | None:
    return load_catalog().get(query_id)
