from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional


def _env_bool(name: str, default: bool = False) -> bool:
    raw = (os.getenv(name) or "").strip().lower()
    if not raw:
        return default
    return raw in ("1", "true", "yes", "y", "on")


def _env_float(name: str, default: float) -> float:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except Exception:
        return default


def normalize_drive(raw: Optional[str]) -> Optional[str]:
    """'d', 'D:', 'd:\\' -> 'D:'. Returns None for anything that is not a single volume letter."""
    s = (raw or "").strip().rstrip("\\/").rstrip(":")
    if len(s) != 1 or not s.isalpha():
        return None
    return f"{s.upper()}:"


@dataclass(frozen=True)
class EngineConfig:
    knowledge_base_path: Optional[str] = None
    poll_interval_seconds: float = 2.0
    monitor_timeout_seconds: float = 1800.0
    low_space_pct: float = 10.0
    system_drive: str = "C:"
    allow_blocker_clear: bool = True


def load_engine_config() -> EngineConfig:
    """
    Load engine settings from env.

    Recommended vars:
    - BOOTSLEUTH_KNOWLEDGE_BASE=/path/to/error_codes.yaml
    - BOOTSLEUTH_POLL_INTERVAL_SECONDS=2
    - BOOTSLEUTH_MONITOR_TIMEOUT_SECONDS=1800
    - BOOTSLEUTH_LOW_SPACE_PCT=10
    - BOOTSLEUTH_SYSTEM_DRIVE=X:   (WinRE usually runs from X:)
    - BOOTSLEUTH_ALLOW_BLOCKER_CLEAR=1
    """
    kb = (os.getenv("BOOTSLEUTH_KNOWLEDGE_BASE") or "").strip() or None
    system_drive = normalize_drive(os.getenv("BOOTSLEUTH_SYSTEM_DRIVE") or os.getenv("SystemDrive")) or "C:"

    return EngineConfig(
        knowledge_base_path=kb,
        poll_interval_seconds=max(0.1, min(_env_float("BOOTSLEUTH_POLL_INTERVAL_SECONDS", 2.0), 60.0)),
        monitor_timeout_seconds=max(1.0, min(_env_float("BOOTSLEUTH_MONITOR_TIMEOUT_SECONDS", 1800.0), 86400.0)),
        low_space_pct=max(0.0, min(_env_float("BOOTSLEUTH_LOW_SPACE_PCT", 10.0), 100.0)),
        system_drive=system_drive,
        allow_blocker_clear=_env_bool("BOOTSLEUTH_ALLOW_BLOCKER_CLEAR", True),
    )
