from __future__ import annotations

import sys
from pathlib import Path
from typing import Callable

ROOT = Path(__file__).resolve().parents[1]
for _entry in (ROOT, ROOT / "src"):
    if str(_entry) not in sys.path:
        sys.path.insert(0, str(_entry))


import pytest

from doksnet.runtime import env_policy
from doksnet.store import LinkStore, initialize_store

README_TEXT = (
    "# Demo\n"
    "\n"
    "Call `greet(name)` to build a greeting.\n"
    "It returns a string.\n"
    "\n"
    "## Math\n"
    "`add(a, b)` sums two numbers.\n"
)

APP_TEXT = (
    "def greet(name):\n"
    "    return f\"Hello, {name}!\"\n"
    "\n"
    "\n"
    "def add(a, b):\n"
    "    return a + b\n"
)


@pytest.fixture(autouse=True)
def _isolate_store_env(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.delenv(env_policy.STORE_PATH_ENV, raising=False)
    yield


@pytest.fixture
def write_file():
    def _write(path: Path, text: str, *, newline: str = "\n") -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(text.replace("\n", newline).encode("utf-8"))
        return path

    return _write


@pytest.fixture
def project(tmp_path: Path, write_file) -> Path:
    write_file(tmp_path / "README.md", README_TEXT)
    write_file(tmp_path / "src" / "app.py", APP_TEXT)
    return tmp_path


@pytest.fixture
def store(project: Path) -> LinkStore:
    return initialize_store(project, "README.md")


@pytest.fixture
def sequential_ids():
    def _make(prefix: str = "0000") -> Callable[[], str]:
        counter = iter(range(1, 10_000))
        return lambda: f"{prefix}{next(counter):04d}-aaaa-bbbb-cccc-dddddddddddd"

    return _make
