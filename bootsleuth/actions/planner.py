"""Repair plan construction.

Proposals only: the engine never runs a repair tool. Every command is an exact string a technician can
review, copy, and run (or an external executor can run after its own confirmation gate).
"""

from __future__ import annotations

import logging
import re
from typing import List, Optional, Sequence

from bootsleuth.config import normalize_drive
from bootsleuth.core.models import (
    Blocker,
    Diagnosis,
    DiskHealthFact,
    PartitionFact,
    RepairAction,
    RepairPlan,
)
from bootsleuth.diagnostics.blockers import BlockerAnalyzer

logger = logging.getLogger(__name__)

_PRIORITY = {"Critical": 1, "High": 2, "Medium": 3, "Low": 4, "Unknown": 5}

SFC_SCAN = "sfc /scannow"
DISM_RESTORE = "DISM /Online /Cleanup-Image /RestoreHealth"

HARDWARE_ADVISORY_TITLE = (
    "Back up the data on this disk and replace or test the hardware before attempting any software repair"
)
UNRESOLVED_ADVISORY_TITLE = (
    "Diagnosis unresolved: back up user data and check hardware (disk health, cabling, memory) before any repair"
)


def _priority(severity: Optional[str]) -> int:
    return _PRIORITY.get(str(severity or "Unknown"), 5)


def _tool_name(command: str) -> str:
    return (command.split() or ["tool"])[0].lower()


def render_command(template: str, target_drive: str, *, offline: bool) -> str:
    """
    Fill placeholders and, for an offline target, switch SFC/DISM to explicit-target invocation.

    In-place mode assumes the tool's own host volume is the target, which is wrong when the broken install is
    mounted as a data volume under a recovery environment.
    """
    letter = target_drive.rstrip(":")
    root = f"{target_drive}\\"
    windir = f"{target_drive}\\Windows"
    cmd = template.format(drive=target_drive, letter=letter, root=root, windir=windir)
    if not offline:
        return cmd

    tool = _tool_name(cmd)
    if tool == "sfc" and "/offbootdir" not in cmd.lower():
        cmd = f"{cmd} /offbootdir={root} /offwindir={windir}"
    elif tool == "dism" and re.search(r"/online\b", cmd, re.IGNORECASE):
        cmd = re.sub(r"/online\b", lambda _m: f"/Image:{root}", cmd, flags=re.IGNORECASE)
    return cmd


class RepairPlanner:
    def __init__(self, *, system_drive: str = "C:") -> None:
        self.system_drive = normalize_drive(system_drive) or "C:"

    def plan(
        self,
        diagnosis: Diagnosis,
        blockers: Sequence[Blocker],
        partition: Optional[PartitionFact],
        *,
        disk_health: Sequence[DiskHealthFact] = (),
    ) -> RepairPlan:
        """
        Ordering: advisories about the environment, then blocker clearing (cheap, unblocks the tools), then
        repair-tool invocations for the diagnosis.
        """
        critical = [d for d in disk_health if d.status == "Critical"]
        if critical:
            drives = ", ".join(d.drive for d in critical)
            logger.warning("Hardware fault on %s: suppressing software repair commands", drives)
            return RepairPlan(
                actions=(
                    RepairAction(
                        kind="advisory",
                        action_type="hardware_backup_advisory",
                        title=HARDWARE_ADVISORY_TITLE,
                        priority=1,
                        severity="Critical",
                        preconditions=(f"Disk health reports Critical for {drives}.",),
                    ),
                ),
                notes=("Software repair suppressed: repair attempts on failing hardware risk further data loss.",),
            )

        if not diagnosis.is_resolved:
            return RepairPlan(
                actions=(
                    RepairAction(
                        kind="advisory",
                        action_type="hardware_backup_advisory",
                        title=UNRESOLVED_ADVISORY_TITLE,
                        priority=_priority("Unknown"),
                        severity="Unknown",
                        preconditions=(diagnosis.explanation,) if diagnosis.explanation else (),
                    ),
                ),
                notes=("No repair-tool command proposed for an unresolved diagnosis.",),
            )

        actions: List[RepairAction] = []
        notes: List[str] = []

        if partition is None:
            target, offline = self.system_drive, False
            actions.append(
                RepairAction(
                    kind="advisory",
                    action_type="partition_override_advisory",
                    title="Windows partition was not detected; re-run with --drive <letter> to target it explicitly",
                    priority=_priority("High"),
                    severity="High",
                )
            )
            notes.append(f"Commands target the running system drive {target} in place.")
        else:
            target, offline = partition.drive, partition.is_offline
            if offline:
                notes.append(f"Offline installation on {target}; commands use explicit-target invocation.")

        for d in disk_health:
            if d.low_space:
                actions.append(
                    RepairAction(
                        kind="advisory",
                        action_type="free_space_advisory",
                        title=f"Free space on {d.drive} is {d.free_pct}%; free space before running repair tools",
                        command=f"cleanmgr /d {d.drive.rstrip(':')}",
                        priority=_priority("Medium"),
                        severity="Medium",
                    )
                )
            if d.read_only:
                actions.append(
                    RepairAction(
                        kind="advisory",
                        action_type="read_only_volume_advisory",
                        title=f"{d.drive} is mounted read-only; repair tools cannot write to it",
                        priority=_priority("High"),
                        severity="High",
                    )
                )

        analyzer = BlockerAnalyzer(blockers)
        if analyzer.has_blocking_condition():
            for b in analyzer.classify():
                actions.append(
                    RepairAction(
                        kind="clear_blocker",
                        action_type=f"clear_{b.blocker_type}",
                        title=b.remediation.title,
                        command=b.remediation.command,
                        priority=_priority(b.severity),
                        severity=b.severity,
                        preconditions=(
                            "Registry write: requires explicit confirmation.",
                            f"Detected at {b.registry_path}" + (f" ({b.value_name})" if b.value_name else ""),
                        ),
                    )
                )

        actions.extend(self._diagnosis_actions(diagnosis, target, offline=offline, partition_known=partition is not None))

        logger.info("Repair plan: %d action(s)", len(actions))
        return RepairPlan(actions=tuple(actions), notes=tuple(notes))

    def _diagnosis_actions(
        self, diagnosis: Diagnosis, target: str, *, offline: bool, partition_known: bool
    ) -> List[RepairAction]:
        pre: List[str] = []
        if not partition_known:
            pre.append("Partition not confirmed: verify the target drive before running.")

        entry = diagnosis.entry
        if entry is None:
            # Driver failure without a status code.
            failure = next(
                (e.details.get("first_failure") for e in diagnosis.supporting if e.details.get("first_failure")), None
            )
            title = "Verify and repair system drivers"
            if failure:
                title += f" (first failing driver: {failure})"
            return [
                RepairAction(
                    kind="repair_tool",
                    action_type="run_sfc",
                    title=title,
                    command=render_command(SFC_SCAN, target, offline=offline),
                    priority=_priority(diagnosis.severity),
                    severity=diagnosis.severity,
                    preconditions=tuple(pre),
                )
            ]

        if not entry.command:
            return [
                RepairAction(
                    kind="advisory",
                    action_type="manual_followup",
                    title=entry.action,
                    priority=_priority(entry.severity),
                    severity=entry.severity,
                    preconditions=tuple(pre),
                )
            ]

        command = render_command(entry.command, target, offline=offline)
        out = [
            RepairAction(
                kind="repair_tool",
                action_type=f"run_{_tool_name(command)}",
                title=f"{entry.action} ({entry.code})",
                command=command,
                priority=_priority(entry.severity),
                severity=entry.severity,
                preconditions=tuple(pre),
            )
        ]
        if _tool_name(command) == "sfc":
            out.append(
                RepairAction(
                    kind="repair_tool",
                    action_type="run_dism",
                    title="If SFC cannot repair all files, repair the component store and re-run SFC",
                    command=render_command(DISM_RESTORE, target, offline=offline),
                    priority=_priority(entry.severity) + 1,
                    severity=entry.severity,
                    preconditions=tuple(pre),
                )
            )
        return out
