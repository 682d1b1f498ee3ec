from __future__ import annotations

from datetime import date, datetime, time
from pathlib import Path
from typing import TypeAlias
import tomllib

DEFAULT_CONFIG_NAME = "doksnet.toml"
DEFAULT_STORE_FILE_NAME = ".doks"
DEFAULT_PREVIEW_CHARS = 200
DEFAULT_CHANGE_PREVIEW_CHARS = 300
VERIFY_FORMATS = ("text", "json")

TomlScalar: TypeAlias = str | int | float | bool | None | date | datetime | time
TomlValue: TypeAlias = TomlScalar | list["TomlValue"] | dict[str, "TomlValue"]
TomlTable: TypeAlias = dict[str, TomlValue]


def _load_toml(path: Path) -> TomlTable:
    try:
        raw = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return {}
    except OSError:
        return {}
    try:
        data = tomllib.loads(raw)
    except tomllib.TOMLDecodeError:
        return {}
    return data if isinstance(data, dict) else {}


def load_config(root: Path | None = None, config_path: Path | None = None) -> TomlTable:
    if config_path is None:
        base = root if root is not None else Path.cwd()
        config_path = base / DEFAULT_CONFIG_NAME
    return _load_toml(config_path)


def _section(data: TomlTable, name: str) -> TomlTable:
    section = data.get(name, {})
    return section if isinstance(section, dict) else {}


def store_defaults(root: Path | None = None, config_path: Path | None = None) -> TomlTable:
    return _section(load_config(root=root, config_path=config_path), "store")


def display_defaults(
    root: Path | None = None, config_path: Path | None = None
) -> TomlTable:
    return _section(load_config(root=root, config_path=config_path), "display")


def verify_defaults(root: Path | None = None, config_path: Path | None = None) -> TomlTable:
    return _section(load_config(root=root, config_path=config_path), "verify")


def _as_positive_int(value: TomlValue, default: int) -> int:
    if isinstance(value, bool):
        return default
    if isinstance(value, int):
        return value if value > 0 else default
    if isinstance(value, str):
        text = value.strip()
        if text.isdigit() and int(text) > 0:
            return int(text)
    return default


def store_file_name(section: TomlTable | None) -> str:
    if not isinstance(section, dict):
        return DEFAULT_STORE_FILE_NAME
    value = section.get("file_name")
    if isinstance(value, str) and value.strip() and "/" not in value:
        return value.strip()
    return DEFAULT_STORE_FILE_NAME


def preview_chars(section: TomlTable | None) -> int:
    if not isinstance(section, dict):
        return DEFAULT_PREVIEW_CHARS
    return _as_positive_int(section.get("preview_chars"), DEFAULT_PREVIEW_CHARS)


def change_preview_chars(section: TomlTable | None) -> int:
    if not isinstance(section, dict):
        return DEFAULT_CHANGE_PREVIEW_CHARS
    return _as_positive_int(
        section.get("change_preview_chars"), DEFAULT_CHANGE_PREVIEW_CHARS
    )


def verify_format(section: TomlTable | None) -> str:
    if not isinstance(section, dict):
        return "text"
    value = section.get("format")
    if isinstance(value, str) and value.strip().lower() in VERIFY_FORMATS:
        return value.strip().lower()
    return "text"


def merge_payload(payload: TomlTable, defaults: TomlTable) -> TomlTable:
    merged = dict(defaults)
    for key, value in payload.items():
        if value is None:
            continue
        merged[key] = value
    return merged
