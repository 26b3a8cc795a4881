"""Canonical domain models (single source of truth).

This file is the one place where we define models used across:
- gathering evidence (boot log, setup log, registry, disks, partitions)
- analysis (boot chain diagnosis, blocker classification, repair planning)
- rendering (JSON dump, Markdown report)

Design note:
- Everything produced by an analysis run is a value object (`frozen=True`). A new run produces new values;
  nothing here is mutated after construction.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

Severity = Literal["Critical", "High", "Medium", "Low"]
# Diagnoses and alerts may carry a code that has no knowledge base entry.
SeverityOrUnknown = Literal["Critical", "High", "Medium", "Low", "Unknown"]
BootStage = Literal["BootLoader", "Driver", "Kernel", "Setup", "Unknown"]
EvidenceKind = Literal["BootLogEntry", "SetupLogEntry", "DiskHealthFact", "PartitionFact"]
DiskStatus = Literal["Healthy", "Warning", "Critical", "Unknown"]
GapKind = Literal["EvidenceUnavailable", "PartitionNotFound", "UnknownErrorCode", "HardwareFault", "PermissionDenied"]
RunMode = Literal["analyze", "full", "repair", "monitor"]
ActionKind = Literal["clear_blocker", "repair_tool", "advisory"]

# Higher rank wins. `Unknown` sorts below every registered severity.
SEVERITY_RANK: Dict[str, int] = {"Critical": 4, "High": 3, "Medium": 2, "Low": 1, "Unknown": 0}

# Well-known blocker types. Custom probes may use any other string.
BLOCKER_PORTABLE_OS = "PortableOSFlag"
BLOCKER_PENDING_FILE_RENAME = "PendingFileRename"
BLOCKER_PENDING_REBOOT_UPDATE = "PendingRebootUpdate"
BLOCKER_CBS_REBOOT_PENDING = "CBSRebootPending"


def severity_rank(severity: Optional[str]) -> int:
    return SEVERITY_RANK.get(str(severity or "Unknown"), 0)


class BaseModelFrozen(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)


class ErrorCodeEntry(BaseModelFrozen):
    """One known failure signature and its remediation metadata."""

    code: str
    description: str
    action: str
    command: Optional[str] = Field(
        default=None,
        description="Command template; placeholders: {drive} {letter} {root} {windir}",
    )
    severity: Severity
    stage: BootStage

    @field_validator("code")
    @classmethod
    def _normalize_code(cls, v: str) -> str:
        return str(v).strip().lower()


class EvidenceGap(BaseModelFrozen):
    """A soft failure recorded during collection (auditable absence of evidence)."""

    kind: GapKind
    source: str
    detail: str


class Evidence(BaseModelFrozen):
    kind: EvidenceKind
    source: str
    raw: str = ""
    code: Optional[str] = None
    entry: Optional[ErrorCodeEntry] = None
    line_number: Optional[int] = None
    offset: Optional[int] = None
    # Position of the match within its line; only used to break same-line ties.
    column: Optional[int] = None
    timestamp: Optional[datetime] = None
    details: Dict[str, Any] = Field(default_factory=dict)

    @property
    def is_unregistered_code(self) -> bool:
        return self.code is not None and self.entry is None


class PartitionFact(BaseModelFrozen):
    # `drive`/`system_drive` are volume letters ("D:") used to build commands; `mountpoint`/`windows_dir`
    # are the filesystem paths the collectors read from.
    drive: str
    mountpoint: str
    windows_dir: str
    selected_by: Literal["override", "auto"]
    system_drive: str
    is_offline: bool

    @property
    def letter(self) -> str:
        return self.drive.rstrip(":")

    @property
    def root(self) -> str:
        return f"{self.drive}\\"

    @property
    def windir(self) -> str:
        return f"{self.drive}\\Windows"


class DiskHealthFact(BaseModelFrozen):
    drive: str
    status: DiskStatus = "Unknown"
    health_source_status: DiskStatus = "Unknown"
    free_pct: Optional[float] = None
    read_only: Optional[bool] = None
    low_space: bool = False
    notes: Tuple[str, ...] = ()


class BlockerRemediation(BaseModelFrozen):
    title: str
    command: str


class Blocker(BaseModelFrozen):
    blocker_type: str
    registry_path: str
    value_name: Optional[str] = None
    observed: Optional[str] = None
    severity: Severity
    remediation: BlockerRemediation


class DiagnosisCandidate(BaseModelFrozen):
    code: str
    severity: SeverityOrUnknown
    stage: BootStage
    occurrences: int = 1
    last_line: Optional[int] = None
    last_column: Optional[int] = None
    registered: bool = True


class Diagnosis(BaseModelFrozen):
    """
    The analyzer's conclusion for one run.

    `unknown_code` is the explicit marker for a failure that could not be resolved to a knowledge base entry
    (unregistered status code, or a driver failure that carries no status code at all).
    """

    stage: BootStage = "Unknown"
    code: Optional[str] = None
    entry: Optional[ErrorCodeEntry] = None
    severity: SeverityOrUnknown = "Unknown"
    unknown_code: bool = False
    confidence_0_100: int = 0
    explanation: str = ""
    candidates: Tuple[DiagnosisCandidate, ...] = ()
    supporting: Tuple[Evidence, ...] = ()

    @property
    def is_resolved(self) -> bool:
        return self.stage != "Unknown"


class RepairAction(BaseModelFrozen):
    """
    One proposed step. Proposals only: execution is strictly outside the engine.
    """

    kind: ActionKind
    action_type: str
    title: str
    command: Optional[str] = None
    priority: int
    severity: SeverityOrUnknown = "Unknown"
    preconditions: Tuple[str, ...] = ()


class RepairPlan(BaseModelFrozen):
    actions: Tuple[RepairAction, ...] = ()
    notes: Tuple[str, ...] = ()

    @property
    def commands(self) -> Tuple[str, ...]:
        return tuple(a.command for a in self.actions if a.command)

    def has_repair_tool_command(self) -> bool:
        return any(a.kind == "repair_tool" and a.command for a in self.actions)


class Alert(BaseModelFrozen):
    code: str
    stage: BootStage
    severity: SeverityOrUnknown
    recommended_action: str
    source: str
    start_offset: int
    end_offset: int
    raised_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class DiagnosticReport(BaseModelFrozen):
    """Sealed per-run aggregate handed to callers (console, automation, JSON consumers)."""

    generated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    mode: RunMode = "analyze"
    status: Literal["ok", "degraded"] = "ok"
    partition: Optional[PartitionFact] = None
    diagnosis: Diagnosis = Field(default_factory=Diagnosis)
    blockers: Tuple[Blocker, ...] = ()
    disk_health: Tuple[DiskHealthFact, ...] = ()
    plan: Optional[RepairPlan] = None
    evidence: Tuple[Evidence, ...] = ()
    gaps: Tuple[EvidenceGap, ...] = ()
    cleared_blockers: Tuple[str, ...] = ()

    @field_validator("generated_at")
    @classmethod
    def _ensure_timezone_aware(cls, v: datetime) -> datetime:
        if isinstance(v, datetime) and v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v
