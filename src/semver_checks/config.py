from __future__ import annotations

from datetime import date, datetime, time
import os
from pathlib import Path
from typing import TypeAlias
import tomllib

DEFAULT_CONFIG_NAME = "semver-checks.toml"
PYPROJECT_NAME = "pyproject.toml"
TOOL_SECTION = "semver-checks"
DEFAULT_TARGET_DIR = "build"
DEFAULT_REGISTRY_URL = "https://pypi.org/pypi"
REGISTRY_URL_ENV = "SEMVER_CHECKS_INDEX_URL"

TomlScalar: TypeAlias = str | int | float | bool | None | date | datetime | time
TomlValue: TypeAlias = TomlScalar | list["TomlValue"] | dict[str, "TomlValue"]
TomlTable: TypeAlias = dict[str, TomlValue]


def _load_toml(path: Path) -> TomlTable:
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError:
        return {}
    try:
        data = tomllib.loads(raw)
    except tomllib.TOMLDecodeError:
        return {}
    return data if isinstance(data, dict) else {}


def _tool_section(data: TomlTable) -> TomlTable:
    tool = data.get("tool", {})
    if not isinstance(tool, dict):
        return {}
    section = tool.get(TOOL_SECTION, {})
    return section if isinstance(section, dict) else {}


def load_config(root: Path | None = None, config_path: Path | None = None) -> TomlTable:
    """Tool settings for the project at ``root``.

    An explicit ``config_path`` or a ``semver-checks.toml`` next to the root
    manifest wins over ``[tool.semver-checks]`` in ``pyproject.toml``.
    """
    base = root if root is not None else Path.cwd()
    if config_path is not None:
        return _load_toml(config_path)
    standalone = base / DEFAULT_CONFIG_NAME
    if standalone.exists():
        return _load_toml(standalone)
    return _tool_section(_load_toml(base / PYPROJECT_NAME))


def _normalize_name_list(value: TomlValue) -> list[str]:
    items: list[str] = []
    if value is None:
        return items
    if isinstance(value, str):
        items = [part.strip() for part in value.split(",") if part.strip()]
    elif isinstance(value, (list, tuple, set)):
        for item in value:
            if isinstance(item, str):
                items.extend([part.strip() for part in item.split(",") if part.strip()])
    return [item for item in items if item]


def target_directory(root: Path, section: TomlTable | None = None) -> Path:
    section = load_config(root) if section is None else section
    raw = section.get("target-dir")
    if isinstance(raw, str) and raw.strip():
        candidate = Path(raw.strip())
        return candidate if candidate.is_absolute() else root / candidate
    return root / DEFAULT_TARGET_DIR


def registry_url(section: TomlTable | None = None) -> str:
    env_value = os.getenv(REGISTRY_URL_ENV, "").strip()
    if env_value:
        return env_value.rstrip("/")
    raw = (section or {}).get("registry-url")
    if isinstance(raw, str) and raw.strip():
        return raw.strip().rstrip("/")
    return DEFAULT_REGISTRY_URL


def excluded_packages(section: TomlTable | None) -> list[str]:
    if section is None:
        return []
    return _normalize_name_list(section.get("exclude"))


def snapshot_packages(section: TomlTable | None) -> list[str]:
    """Import packages a distribution exposes, when discovery must be overridden."""
    if section is None:
        return []
    return _normalize_name_list(section.get("packages"))


def merge_names(configured: list[str], explicit: list[str] | None) -> list[str]:
    merged = list(configured)
    for name in explicit or []:
        if name not in merged:
            merged.append(name)
    return merged
