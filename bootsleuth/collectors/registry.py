"""Registry blocker scanner (read-only).

Clearing a blocker is a separate, explicitly confirmed action (`bootsleuth.actions.clear`); nothing here writes.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, List, Optional, Protocol, Sequence, Tuple

from bootsleuth.core.errors import BootSleuthError, EvidenceUnavailable, PermissionDenied, record_gap
from bootsleuth.core.models import (
    BLOCKER_CBS_REBOOT_PENDING,
    BLOCKER_PENDING_FILE_RENAME,
    BLOCKER_PENDING_REBOOT_UPDATE,
    BLOCKER_PORTABLE_OS,
    Blocker,
    BlockerRemediation,
    EvidenceGap,
    Severity,
)

logger = logging.getLogger(__name__)

CONTROL_KEY = r"HKLM\SYSTEM\CurrentControlSet\Control"
SESSION_MANAGER_KEY = r"HKLM\SYSTEM\CurrentControlSet\Control\Session Manager"
WU_REBOOT_REQUIRED_KEY = r"HKLM\SOFTWARE\Microsoft\Windows\CurrentVersion\WindowsUpdate\Auto Update\RebootRequired"
CBS_REBOOT_PENDING_KEY = r"HKLM\SOFTWARE\Microsoft\Windows\CurrentVersion\Component Based Servicing\RebootPending"


class RegistryView(Protocol):
    """Read side. Missing keys/values raise FileNotFoundError; denied access raises PermissionError."""

    def key_exists(self, path: str) -> bool: ...

    def read_value(self, path: str, name: str) -> Any: ...


class RegistryEditor(RegistryView, Protocol):
    """Write side, only ever used by the confirmation-gated clearing action."""

    def set_dword(self, path: str, name: str, value: int) -> None: ...

    def delete_value(self, path: str, name: str) -> None: ...

    def delete_key(self, path: str) -> None: ...


def _split_hive(path: str) -> Tuple[str, str]:
    hive, _, sub = path.partition("\\")
    return hive.upper(), sub


class WinRegistry:
    """`winreg`-backed registry access for the running system."""

    def __init__(self) -> None:
        try:
            import winreg  # noqa: WPS433
        except ImportError as e:
            raise EvidenceUnavailable("registry", "the Windows registry is not available on this platform") from e
        self._winreg = winreg

    def _hive(self, name: str) -> Any:
        hives = {"HKLM": self._winreg.HKEY_LOCAL_MACHINE, "HKEY_LOCAL_MACHINE": self._winreg.HKEY_LOCAL_MACHINE}
        if name not in hives:
            raise EvidenceUnavailable(name, "unsupported registry hive")
        return hives[name]

    def key_exists(self, path: str) -> bool:
        hive, sub = _split_hive(path)
        try:
            with self._winreg.OpenKey(self._hive(hive), sub, 0, self._winreg.KEY_READ):
                return True
        except FileNotFoundError:
            return False

    def read_value(self, path: str, name: str) -> Any:
        hive, sub = _split_hive(path)
        with self._winreg.OpenKey(self._hive(hive), sub, 0, self._winreg.KEY_READ) as k:
            value, _typ = self._winreg.QueryValueEx(k, name)
            return value

    def set_dword(self, path: str, name: str, value: int) -> None:
        hive, sub = _split_hive(path)
        with self._winreg.OpenKey(self._hive(hive), sub, 0, self._winreg.KEY_SET_VALUE) as k:
            self._winreg.SetValueEx(k, name, 0, self._winreg.REG_DWORD, int(value))

    def delete_value(self, path: str, name: str) -> None:
        hive, sub = _split_hive(path)
        with self._winreg.OpenKey(self._hive(hive), sub, 0, self._winreg.KEY_SET_VALUE) as k:
            self._winreg.DeleteValue(k, name)

    def delete_key(self, path: str) -> None:
        hive, sub = _split_hive(path)
        parent, _, leaf = sub.rpartition("\\")
        with self._winreg.OpenKey(self._hive(hive), parent, 0, self._winreg.KEY_ALL_ACCESS) as k:
            self._winreg.DeleteKey(k, leaf)


@dataclass(frozen=True)
class BlockerProbe:
    """
    One registry location that can block repair/upgrade tooling.

    `value_name=None` means the key's presence is the signal. `clear_op` is how the clearing action removes it:
    - "set_zero": write REG_DWORD 0
    - "delete_value": remove the value
    - "delete_key": remove the key
    """

    blocker_type: str
    registry_path: str
    value_name: Optional[str]
    severity: Severity
    title: str
    clear_op: str

    def command(self) -> str:
        if self.clear_op == "set_zero":
            return f'reg add "{self.registry_path}" /v {self.value_name} /t REG_DWORD /d 0 /f'
        if self.clear_op == "delete_value":
            return f'reg delete "{self.registry_path}" /v {self.value_name} /f'
        return f'reg delete "{self.registry_path}" /f'

    def is_blocking(self, value: Any) -> bool:
        if value is None:
            return False
        if isinstance(value, (list, tuple)):
            return any(str(v).strip() for v in value)
        if isinstance(value, int):
            return value != 0
        s = str(value).strip()
        return bool(s) and s not in ("0", "0x0", "0x00000000")

    def to_blocker(self, observed: Any) -> Blocker:
        return Blocker(
            blocker_type=self.blocker_type,
            registry_path=self.registry_path,
            value_name=self.value_name,
            observed=None if observed is None else str(observed)[:200],
            severity=self.severity,
            remediation=BlockerRemediation(title=self.title, command=self.command()),
        )


DEFAULT_BLOCKER_PROBES: Tuple[BlockerProbe, ...] = (
    BlockerProbe(
        blocker_type=BLOCKER_PORTABLE_OS,
        registry_path=CONTROL_KEY,
        value_name="PortableOperatingSystem",
        severity="High",
        title="Reset PortableOperatingSystem flag (Windows To Go mode blocks setup and servicing)",
        clear_op="set_zero",
    ),
    BlockerProbe(
        blocker_type=BLOCKER_PENDING_FILE_RENAME,
        registry_path=SESSION_MANAGER_KEY,
        value_name="PendingFileRenameOperations",
        severity="Medium",
        title="Remove pending file rename operations",
        clear_op="delete_value",
    ),
    BlockerProbe(
        blocker_type=BLOCKER_PENDING_REBOOT_UPDATE,
        registry_path=WU_REBOOT_REQUIRED_KEY,
        value_name=None,
        severity="Medium",
        title="Clear the Windows Update reboot-required marker",
        clear_op="delete_key",
    ),
    BlockerProbe(
        blocker_type=BLOCKER_CBS_REBOOT_PENDING,
        registry_path=CBS_REBOOT_PENDING_KEY,
        value_name=None,
        severity="High",
        title="Clear the component servicing reboot-pending marker",
        clear_op="delete_key",
    ),
)


class RegistryBlockerScanner:
    def __init__(
        self,
        registry: Optional[RegistryView] = None,
        *,
        extra_probes: Sequence[BlockerProbe] = (),
    ) -> None:
        self._registry = registry
        self.probes: Tuple[BlockerProbe, ...] = tuple(DEFAULT_BLOCKER_PROBES) + tuple(extra_probes)

    def view(self) -> RegistryView:
        if self._registry is None:
            self._registry = WinRegistry()
        return self._registry

    def scan(self, gaps: Optional[List[EvidenceGap]] = None) -> List[Blocker]:
        """
        Check every probe location. Missing keys/values mean "blocker absent"; denied access is recorded as a
        scan gap and the remaining probes still run.
        """
        try:
            reg = self.view()
        except BootSleuthError as e:
            record_gap(gaps, e)
            return []

        found: List[Blocker] = []
        for probe in self.probes:
            try:
                if probe.value_name is None:
                    if reg.key_exists(probe.registry_path):
                        found.append(probe.to_blocker(None))
                    continue
                value = reg.read_value(probe.registry_path, probe.value_name)
                if probe.is_blocking(value):
                    found.append(probe.to_blocker(value))
            except FileNotFoundError:
                continue
            except PermissionError as e:
                record_gap(
                    gaps,
                    PermissionDenied(
                        probe.registry_path,
                        f"{e}; re-run elevated or from the recovery environment",
                    ),
                )
            except OSError as e:
                record_gap(gaps, EvidenceUnavailable(probe.registry_path, str(e)))

        if found:
            logger.info("Registry blockers detected: %s", ", ".join(b.blocker_type for b in found))
        return found

    def probe_for(self, blocker: Blocker) -> Optional[BlockerProbe]:
        for p in self.probes:
            if p.blocker_type == blocker.blocker_type and p.registry_path == blocker.registry_path:
                return p
        return None
