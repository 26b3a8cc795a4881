"""Analysis orchestrator (collectors -> analyzers -> planner -> sealed report).

The per-run gap list and evidence list are passed explicitly through the call chain; nothing here is process-wide
mutable state. Logging happens at defined points of the run.
"""

from __future__ import annotations

import logging
import os
import threading
from typing import Callable, List, Optional, Tuple

from bootsleuth.actions.clear import ConfirmFn, clear_blockers
from bootsleuth.actions.planner import RepairPlanner
from bootsleuth.collectors.boot_log import BootLogReader, boot_log_path
from bootsleuth.collectors.disk_health import DiskHealthProbe
from bootsleuth.collectors.partition import PartitionLocator
from bootsleuth.collectors.registry import RegistryBlockerScanner, RegistryView
from bootsleuth.collectors.setup_log import SetupLogReader, setup_log_path
from bootsleuth.config import EngineConfig, load_engine_config
from bootsleuth.core.errors import BootSleuthError, NoEvidenceSourceReachable, record_gap
from bootsleuth.core.models import Blocker, DiagnosticReport, Evidence, EvidenceGap, PartitionFact, RunMode
from bootsleuth.diagnostics.boot_chain import BootChainAnalyzer
from bootsleuth.knowledge.base import KnowledgeBase, get_default_knowledge_base, load_knowledge_base
from bootsleuth.monitor.live import LiveMonitor

logger = logging.getLogger(__name__)

_ACCESS_GAPS = ("EvidenceUnavailable", "PermissionDenied")


def _new_access_gaps(gaps: List[EvidenceGap], before: int) -> int:
    return sum(1 for g in gaps[before:] if g.kind in _ACCESS_GAPS)


class AnalysisOrchestrator:
    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        *,
        knowledge_base: Optional[KnowledgeBase] = None,
        registry: Optional[RegistryView] = None,
        locator: Optional[PartitionLocator] = None,
        disk_probe: Optional[DiskHealthProbe] = None,
    ) -> None:
        self.config = config or load_engine_config()
        if knowledge_base is None:
            knowledge_base = (
                load_knowledge_base(self.config.knowledge_base_path)
                if self.config.knowledge_base_path
                else get_default_knowledge_base()
            )
        self.kb = knowledge_base
        self.locator = locator or PartitionLocator(system_drive=self.config.system_drive)
        self.boot_reader = BootLogReader()
        self.setup_reader = SetupLogReader(self.kb)
        self.scanner = RegistryBlockerScanner(registry)
        self.disk_probe = disk_probe or DiskHealthProbe(low_space_pct=self.config.low_space_pct)
        self.analyzer = BootChainAnalyzer()
        self.planner = RepairPlanner(system_drive=self.config.system_drive)

    def _windows_dir(self, partition: Optional[PartitionFact]) -> str:
        if partition is not None:
            return partition.windows_dir
        return os.path.join(f"{self.config.system_drive}\\", "Windows")

    def _collect_logs(
        self, partition: Optional[PartitionFact], gaps: List[EvidenceGap]
    ) -> Tuple[List[Evidence], int]:
        windows_dir = self._windows_dir(partition)
        reachable = 0

        before = len(gaps)
        boot = self.boot_reader.read(boot_log_path(windows_dir), gaps)
        if boot or not _new_access_gaps(gaps, before):
            reachable += 1

        before = len(gaps)
        setup, _ = self.setup_reader.read(setup_log_path(windows_dir), 0, gaps)
        if setup or not _new_access_gaps(gaps, before):
            reachable += 1

        return [*boot, *setup], reachable

    def run(
        self,
        *,
        mode: RunMode = "analyze",
        drive: Optional[str] = None,
        confirm: Optional[ConfirmFn] = None,
    ) -> DiagnosticReport:
        """
        Run one analysis and return a sealed `DiagnosticReport`.

        - analyze: read-only diagnosis
        - full: analyze + repair plan for review
        - repair: full, and blockers confirmed by `confirm` are cleared before planning

        Raises `NoEvidenceSourceReachable` only when not a single evidence source could be read.
        """
        gaps: List[EvidenceGap] = []
        logger.info("Analysis started (mode=%s, drive override=%s)", mode, drive or "none")

        partition = self.locator.locate(drive, gaps)
        evidence, reachable = self._collect_logs(partition, gaps)
        if partition is not None:
            evidence.append(
                Evidence(
                    kind="PartitionFact",
                    source=partition.mountpoint,
                    raw=partition.drive,
                    details=partition.model_dump(mode="json"),
                )
            )

        before = len(gaps)
        blockers = self.scanner.scan(gaps)
        if blockers or not _new_access_gaps(gaps, before):
            reachable += 1

        health_drive = partition.drive if partition else self.config.system_drive
        disk = self.disk_probe.probe(health_drive, gaps, mountpoint=partition.mountpoint if partition else None)
        if disk.free_pct is not None or disk.health_source_status != "Unknown":
            reachable += 1
        evidence.append(
            Evidence(kind="DiskHealthFact", source=f"disk {disk.drive}", raw=disk.status, details=disk.model_dump(mode="json"))
        )

        if reachable == 0:
            logger.error("No evidence source reachable")
            raise NoEvidenceSourceReachable("all sources", "; ".join(f"{g.source}: {g.detail}" for g in gaps))

        logger.info(
            "Collected %d evidence record(s), %d blocker(s), disk %s=%s",
            len(evidence),
            len(blockers),
            disk.drive,
            disk.status,
        )

        diagnosis = self.analyzer.analyze(evidence)

        cleared: List[str] = []
        if mode == "repair" and blockers and disk.status != "Critical":
            cleared, blockers = self._clear_blockers(blockers, gaps, confirm)

        plan = None
        if mode in ("full", "repair"):
            plan = self.planner.plan(diagnosis, blockers, partition, disk_health=(disk,))

        status = "degraded" if gaps else "ok"
        if gaps:
            logger.info("Run degraded: %d gap(s): %s", len(gaps), ", ".join(sorted({g.kind for g in gaps})))

        return DiagnosticReport(
            mode=mode,
            status=status,
            partition=partition,
            diagnosis=diagnosis,
            blockers=tuple(blockers),
            disk_health=(disk,),
            plan=plan,
            evidence=tuple(evidence),
            gaps=tuple(gaps),
            cleared_blockers=tuple(cleared),
        )

    def _clear_blockers(
        self, blockers: List[Blocker], gaps: List[EvidenceGap], confirm: Optional[ConfirmFn]
    ) -> Tuple[List[str], List[Blocker]]:
        if not self.config.allow_blocker_clear:
            logger.info("Blocker clearing disabled by configuration")
            return [], blockers
        if confirm is None:
            logger.info("No confirmation gate supplied; blockers left in place")
            return [], blockers
        try:
            editor = self.scanner.view()
        except BootSleuthError as e:
            record_gap(gaps, e)
            return [], blockers
        if not all(hasattr(editor, op) for op in ("set_dword", "delete_value", "delete_key")):
            logger.warning("Registry backend is read-only; blockers left in place")
            return [], blockers
        cleared = clear_blockers(blockers, editor, self.scanner, confirm=confirm)  # type: ignore[arg-type]
        # Re-scan so the report reflects what is actually left.
        return cleared, self.scanner.scan(gaps)

    def monitor(
        self,
        *,
        drive: Optional[str] = None,
        cancel_event: Optional[threading.Event] = None,
        clock: Optional[Callable[[], float]] = None,
        sleep: Optional[Callable[[float], None]] = None,
    ) -> Tuple[LiveMonitor, str, List[EvidenceGap]]:
        """Build a LiveMonitor bound to the resolved setup log. The caller drives `monitor.start(...)`."""
        gaps: List[EvidenceGap] = []
        partition = self.locator.locate(drive, gaps)
        path = setup_log_path(self._windows_dir(partition))
        kwargs = {}
        if clock is not None:
            kwargs["clock"] = clock
        mon = LiveMonitor(self.setup_reader, self.analyzer, sleep=sleep, cancel_event=cancel_event, **kwargs)
        return mon, path, gaps
