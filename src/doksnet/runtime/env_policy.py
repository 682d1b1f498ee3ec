from __future__ import annotations

from contextlib import contextmanager
from contextvars import ContextVar, Token
import os
from pathlib import Path

STORE_PATH_ENV = "DOKSNET_STORE"

_STORE_PATH_OVERRIDE: ContextVar[Path | None] = ContextVar(
    "doksnet_store_path_override",
    default=None,
)


def env_text(name: str, *, default: str = "") -> str:
    return os.getenv(name, default).strip()


def store_path_override() -> Path | None:
    override = _STORE_PATH_OVERRIDE.get()
    if override is not None:
        return override
    text = env_text(STORE_PATH_ENV)
    if not text:
        return None
    return Path(text)


def set_store_path_override(path: Path | None) -> Token[Path | None]:
    return _STORE_PATH_OVERRIDE.set(path)


def reset_store_path_override(token: Token[Path | None]) -> None:
    _STORE_PATH_OVERRIDE.reset(token)


@contextmanager
def store_path_override_scope(path: Path | None):
    token = set_store_path_override(path)
    try:
        yield
    finally:
        reset_store_path_override(token)
