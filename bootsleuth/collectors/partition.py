"""Locate the (offline) Windows installation to analyze."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Callable, List, Optional

import psutil

from bootsleuth.config import normalize_drive
from bootsleuth.core.errors import PartitionNotFound, record_gap
from bootsleuth.core.models import EvidenceGap, PartitionFact

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Volume:
    drive: str
    mountpoint: str
    read_only: bool = False


def list_mounted_volumes() -> List[Volume]:
    """Mounted volumes that carry a drive letter (psutil, best-effort)."""
    out: List[Volume] = []
    try:
        parts = psutil.disk_partitions(all=False)
    except Exception as e:
        logger.warning("Volume enumeration failed: %s", e)
        return out
    for p in parts:
        drive = normalize_drive(p.mountpoint) or normalize_drive(p.device)
        if not drive:
            continue
        opts = {o.strip().lower() for o in (p.opts or "").split(",")}
        out.append(Volume(drive=drive, mountpoint=p.mountpoint, read_only="ro" in opts))
    return out


def _has_windows(mountpoint: str) -> bool:
    return os.path.isdir(os.path.join(mountpoint, "Windows", "System32"))


class PartitionLocator:
    def __init__(
        self,
        *,
        system_drive: str = "C:",
        list_volumes: Callable[[], List[Volume]] = list_mounted_volumes,
    ) -> None:
        self.system_drive = normalize_drive(system_drive) or "C:"
        self._list_volumes = list_volumes

    def _fact(self, vol: Volume, selected_by: str) -> PartitionFact:
        return PartitionFact(
            drive=vol.drive,
            mountpoint=vol.mountpoint,
            windows_dir=os.path.join(vol.mountpoint, "Windows"),
            selected_by=selected_by,  # type: ignore[arg-type]
            system_drive=self.system_drive,
            is_offline=vol.drive != self.system_drive,
        )

    def locate(self, override: Optional[str] = None, gaps: Optional[List[EvidenceGap]] = None) -> Optional[PartitionFact]:
        """
        Return the Windows partition to analyze, or None (PartitionNotFound recorded in `gaps`).

        An explicit override always wins over auto-detection, as long as it names a mounted, accessible volume.
        """
        volumes = self._list_volumes()

        if override is not None:
            drive = normalize_drive(override)
            vol = next((v for v in volumes if drive and v.drive == drive), None)
            if vol is None or not os.path.isdir(vol.mountpoint):
                record_gap(gaps, PartitionNotFound(f"drive {override}", "override is not a mounted, accessible volume"))
                return None
            logger.info("Using override drive %s", vol.drive)
            return self._fact(vol, "override")

        for vol in volumes:
            # In a recovery environment the broken install is mounted as a data volume, never the running one.
            if vol.drive == self.system_drive:
                continue
            if _has_windows(vol.mountpoint):
                logger.info("Detected Windows installation on %s", vol.drive)
                return self._fact(vol, "auto")

        record_gap(
            gaps,
            PartitionNotFound(
                "partition auto-detection",
                f"no mounted volume other than {self.system_drive} contains Windows\\System32; use --drive to override",
            ),
        )
        return None
