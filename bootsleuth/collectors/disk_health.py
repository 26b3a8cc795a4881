"""Disk health probe (status, free space, read-only flag)."""

from __future__ import annotations

import json
import logging
import platform
import subprocess
from typing import Callable, List, Optional

import psutil

from bootsleuth.config import normalize_drive
from bootsleuth.core.errors import EvidenceUnavailable, HardwareFault, record_gap
from bootsleuth.core.models import DiskHealthFact, DiskStatus, EvidenceGap

logger = logging.getLogger(__name__)

# Storage-module HealthStatus -> our closed set.
_HEALTH_MAP = {
    "healthy": "Healthy",
    "warning": "Warning",
    "unhealthy": "Critical",
    "critical": "Critical",
}

_PS_HEALTH = (
    "Get-Partition -DriveLetter {letter} -ErrorAction Stop | Get-Disk | Get-PhysicalDisk "
    "| Select-Object -First 1 HealthStatus | ConvertTo-Json -Compress"
)


def physical_disk_health(drive: str) -> DiskStatus:
    """Query `Get-PhysicalDisk` for the disk backing `drive`. Unknown when unavailable (non-Windows, WinPE)."""
    if platform.system().lower() != "windows":
        return "Unknown"
    letter = (normalize_drive(drive) or "").rstrip(":")
    if not letter:
        return "Unknown"
    try:
        proc = subprocess.run(
            ["powershell", "-NoProfile", "-NonInteractive", "-Command", _PS_HEALTH.format(letter=letter)],
            capture_output=True,
            text=True,
            timeout=30,
        )
    except (OSError, subprocess.TimeoutExpired) as e:
        logger.warning("Disk health query failed for %s: %s", drive, e)
        return "Unknown"
    raw = (proc.stdout or "").strip()
    if proc.returncode != 0 or not raw:
        return "Unknown"
    try:
        data = json.loads(raw)
    except ValueError:
        return "Unknown"
    status = str((data or {}).get("HealthStatus") or "").strip().lower()
    return _HEALTH_MAP.get(status, "Unknown")  # type: ignore[return-value]


def _read_only_flag(drive: str) -> Optional[bool]:
    try:
        for p in psutil.disk_partitions(all=False):
            if normalize_drive(p.mountpoint) == drive or normalize_drive(p.device) == drive:
                opts = {o.strip().lower() for o in (p.opts or "").split(",")}
                return "ro" in opts
    except Exception:
        return None
    return None


class DiskHealthProbe:
    def __init__(
        self,
        *,
        low_space_pct: float = 10.0,
        health_source: Callable[[str], DiskStatus] = physical_disk_health,
        read_only_source: Callable[[str], Optional[bool]] = _read_only_flag,
    ) -> None:
        self.low_space_pct = low_space_pct
        self._health_source = health_source
        self._read_only_source = read_only_source

    def probe(
        self, drive: str, gaps: Optional[List[EvidenceGap]] = None, *, mountpoint: Optional[str] = None
    ) -> DiskHealthFact:
        drive = normalize_drive(drive) or drive
        path = mountpoint or f"{drive}\\"
        notes: List[str] = []

        try:
            source_status: DiskStatus = self._health_source(drive)
        except Exception as e:
            record_gap(gaps, EvidenceUnavailable(f"disk health {drive}", str(e)))
            source_status = "Unknown"

        free_pct: Optional[float] = None
        raw_pct: Optional[float] = None
        try:
            usage = psutil.disk_usage(path)
            if usage.total:
                raw_pct = usage.free * 100.0 / usage.total
                free_pct = round(raw_pct, 1)
        except OSError as e:
            record_gap(gaps, EvidenceUnavailable(f"disk usage {drive}", str(e)))

        read_only = self._read_only_source(drive)

        # Compare unrounded: 9.96% reports as 10.0 but is still below a 10% threshold.
        low_space = raw_pct is not None and raw_pct < self.low_space_pct
        status: DiskStatus = source_status
        if low_space:
            notes.append(f"Free space {raw_pct:.2f}% is below {self.low_space_pct:g}%")
            if status in ("Healthy", "Unknown"):
                status = "Warning"
        if read_only:
            notes.append("Volume is mounted read-only")

        if status == "Critical":
            record_gap(gaps, HardwareFault(f"disk {drive}", "disk health reports Critical; back up before any repair"))
            logger.warning("Disk backing %s reports Critical health", drive)

        return DiskHealthFact(
            drive=drive,
            status=status,
            health_source_status=source_status,
            free_pct=free_pct,
            read_only=read_only,
            low_space=low_space,
            notes=tuple(notes),
        )
