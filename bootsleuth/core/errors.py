"""Error taxonomy.

Only `NoEvidenceSourceReachable` (and a malformed knowledge base at load time) is fatal. The other errors are
raised inside collectors and converted into `EvidenceGap` records so that absent evidence stays auditable.
"""

from __future__ import annotations

from typing import List, Optional

from bootsleuth.core.models import EvidenceGap


class BootSleuthError(Exception):
    """Base error for the diagnostic engine."""

    kind = "EvidenceUnavailable"

    def __init__(self, source: str, detail: str = "") -> None:
        super().__init__(f"{source}: {detail}" if detail else source)
        self.source = source
        self.detail = detail

    def to_gap(self) -> EvidenceGap:
        return EvidenceGap(kind=self.kind, source=self.source, detail=self.detail or str(self))


class EvidenceUnavailable(BootSleuthError):
    """A log file or registry location is missing or unreadable."""

    kind = "EvidenceUnavailable"


class PartitionNotFound(BootSleuthError):
    """No offline Windows installation could be detected (or the override is not a mounted volume)."""

    kind = "PartitionNotFound"


class UnknownErrorCode(BootSleuthError):
    """A status code matched the pattern but has no knowledge base entry."""

    kind = "UnknownErrorCode"


class HardwareFault(BootSleuthError):
    """Disk health reports Critical; software repair must not be proposed."""

    kind = "HardwareFault"


class PermissionDenied(BootSleuthError):
    """Registry or log access was denied; the run should be repeated elevated or from WinRE."""

    kind = "PermissionDenied"


class NoEvidenceSourceReachable(BootSleuthError):
    """Fatal: not a single evidence source could be read."""


class KnowledgeBaseError(Exception):
    """Raised when the error code table fails validation at load time."""


def record_gap(gaps: Optional[List[EvidenceGap]], err: BootSleuthError) -> None:
    if gaps is None:
        return
    gap = err.to_gap()
    if gap not in gaps:
        gaps.append(gap)
