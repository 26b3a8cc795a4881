"""Deterministic Markdown report renderer.

`DiagnosticReport` is the single source of truth; rendering never recomputes analysis.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import List, Optional

from bootsleuth.core.models import DiagnosticReport


def render_report(report: DiagnosticReport, *, generated_at: Optional[datetime] = None) -> str:
    ts = generated_at or report.generated_at or datetime.now(timezone.utc)
    # Treat naive timestamps as UTC to avoid ambiguity in reports/tests.
    if isinstance(ts, datetime) and ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)

    dx = report.diagnosis
    lines: List[str] = []
    lines.append(f"# Boot Diagnostic Report: {dx.code or dx.stage}")
    lines.append("")
    lines.append(f"**Mode:** `{report.mode}`")
    lines.append(f"**Status:** `{report.status}`")
    if report.partition:
        p = report.partition
        where = "offline" if p.is_offline else "running system"
        lines.append(f"**Windows partition:** `{p.drive}` ({p.selected_by}, {where}; system drive `{p.system_drive}`)")
    else:
        lines.append("**Windows partition:** `not detected`")
    lines.append(f"**Generated:** {ts.strftime('%Y-%m-%d %H:%M:%S')}")
    lines.append("")

    lines.append("## Diagnosis")
    lines.append("")
    lines.append(f"**Stage:** `{dx.stage}`  **Severity:** `{dx.severity}`  **Confidence:** {dx.confidence_0_100}/100")
    if dx.code:
        marker = " (unregistered)" if dx.unknown_code else ""
        lines.append(f"**Code:** `{dx.code}`{marker}")
    if dx.explanation:
        lines.append("")
        lines.append(dx.explanation)
    if dx.entry:
        lines.append("")
        lines.append(f"**Recommended action:** {dx.entry.action}")
    if len(dx.candidates) > 1:
        lines.append("")
        lines.append("### Competing codes (ranked)")
        lines.append("")
        for c in dx.candidates[:10]:
            reg = "" if c.registered else ", unregistered"
            lines.append(f"- `{c.code}` {c.severity}/{c.stage} x{c.occurrences} (last line {c.last_line}{reg})")
    lines.append("")

    if report.blockers:
        lines.append("## Blockers")
        lines.append("")
        for b in report.blockers:
            lines.append(f"- **{b.blocker_type}** ({b.severity}) at `{b.registry_path}`")
        lines.append("")

    if report.disk_health:
        lines.append("## Disk health")
        lines.append("")
        for d in report.disk_health:
            free = f"{d.free_pct}% free" if d.free_pct is not None else "free space unknown"
            ro = ", read-only" if d.read_only else ""
            lines.append(f"- `{d.drive}`: {d.status} ({free}{ro})")
            for n in d.notes:
                lines.append(f"  - {n}")
        lines.append("")

    if report.plan is not None:
        lines.append("## Repair plan (proposed, not executed)")
        lines.append("")
        for idx, a in enumerate(report.plan.actions, start=1):
            lines.append(f"{idx}. [{a.kind}, P{a.priority}] {a.title}")
            if a.command:
                lines.append("")
                lines.append(f"```bat\n{a.command}\n```")
            for pre in a.preconditions:
                lines.append(f"   - {pre}")
        for n in report.plan.notes:
            lines.append(f"- _{n}_")
        lines.append("")

    if report.cleared_blockers:
        lines.append(f"**Cleared this run:** {', '.join(report.cleared_blockers)}")
        lines.append("")

    if report.gaps:
        lines.append("## Evidence gaps")
        lines.append("")
        for g in report.gaps:
            lines.append(f"- `{g.kind}` {g.source}: {g.detail}")
        lines.append("")

    return "\n".join(lines)
