"""
Pytest config.

Local imports like `import bootsleuth` rely on the repo root being on sys.path. When a global `pytest`
entrypoint is used that doesn't happen reliably during collection, so we pin it here.

Shared fakes: an in-memory registry (read + write side), a temp offline Windows tree, and a manual clock for
the live monitor.
"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Any, Dict, Optional

import pytest


def _ensure_repo_root_on_syspath() -> None:
    repo_root = Path(__file__).resolve().parents[1]
    repo_root_str = str(repo_root)
    if repo_root_str not in sys.path:
        sys.path.insert(0, repo_root_str)


_ensure_repo_root_on_syspath()


class FakeRegistry:
    """Dict-backed registry: {key_path: {value_name: value}}. Paths compare case-insensitively."""

    def __init__(self, keys: Optional[Dict[str, Dict[str, Any]]] = None, *, denied: tuple = ()) -> None:
        self.keys: Dict[str, Dict[str, Any]] = {k.lower(): dict(v) for k, v in (keys or {}).items()}
        self.denied = {d.lower() for d in denied}
        self.writes: list = []

    def put(self, path: str, name: Optional[str] = None, value: Any = None) -> "FakeRegistry":
        key = self.keys.setdefault(path.lower(), {})
        if name is not None:
            key[name] = value
        return self

    def deny(self, path: str) -> "FakeRegistry":
        self.denied.add(path.lower())
        return self

    def _check(self, path: str) -> None:
        if path.lower() in self.denied:
            raise PermissionError(f"Access is denied: {path}")

    def key_exists(self, path: str) -> bool:
        self._check(path)
        return path.lower() in self.keys

    def read_value(self, path: str, name: str) -> Any:
        self._check(path)
        key = self.keys.get(path.lower())
        if key is None or name not in key:
            raise FileNotFoundError(f"{path}\\{name}")
        return key[name]

    def set_dword(self, path: str, name: str, value: int) -> None:
        self._check(path)
        self.writes.append(("set_dword", path, name, value))
        self.keys.setdefault(path.lower(), {})[name] = int(value)

    def delete_value(self, path: str, name: str) -> None:
        self._check(path)
        self.writes.append(("delete_value", path, name))
        key = self.keys.get(path.lower())
        if key is None or name not in key:
            raise FileNotFoundError(f"{path}\\{name}")
        del key[name]

    def delete_key(self, path: str) -> None:
        self._check(path)
        self.writes.append(("delete_key", path))
        if path.lower() not in self.keys:
            raise FileNotFoundError(path)
        del self.keys[path.lower()]


class FakeClock:
    """Monotonic clock that only moves when `sleep` is called."""

    def __init__(self, start: float = 0.0) -> None:
        self.now = start
        self.sleeps: list = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def fake_registry() -> FakeRegistry:
    return FakeRegistry()


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def windows_tree(tmp_path: Path) -> Path:
    """A mounted offline install: <tmp>/D/Windows/{System32,Panther}. Returns the volume mountpoint."""
    mount = tmp_path / "D"
    (mount / "Windows" / "System32").mkdir(parents=True)
    (mount / "Windows" / "Panther").mkdir(parents=True)
    return mount

