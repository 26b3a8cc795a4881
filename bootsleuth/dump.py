"""JSON dump helpers (CLI-friendly, testable).

We keep CLI printing logic out of core modules; this returns plain dicts.
"""

from __future__ import annotations

from typing import Any, Dict, Literal

from bootsleuth.core.models import DiagnosticReport

DumpMode = Literal["analysis", "report"]


def _clean(d: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in d.items() if v not in (None, "", [], {})}


def report_to_json_dict(report: DiagnosticReport, *, mode: DumpMode = "analysis") -> Dict[str, Any]:
    if mode == "report":
        # Pydantic v2: mode="json" produces JSON-serializable types.
        return report.model_dump(mode="json")

    dx = report.diagnosis
    entry = dx.entry
    plan = report.plan

    # analysis mode (small, stable, explainable): raw evidence is summarized, not embedded.
    return {
        "generated_at": report.generated_at.isoformat(),
        "mode": report.mode,
        "status": report.status,
        "partition": report.partition.model_dump(mode="json") if report.partition else None,
        "diagnosis": _clean(
            {
                "stage": dx.stage,
                "code": dx.code,
                "severity": dx.severity,
                "unknown_code": dx.unknown_code,
                "confidence_0_100": dx.confidence_0_100,
                "explanation": dx.explanation,
                "description": entry.description if entry else None,
                "recommended_action": entry.action if entry else None,
                "recommended_command": entry.command if entry else None,
                "candidates": [c.model_dump(mode="json") for c in dx.candidates],
            }
        ),
        "blockers": [b.model_dump(mode="json") for b in report.blockers],
        "disk_health": [d.model_dump(mode="json") for d in report.disk_health],
        "plan": (
            {
                "actions": [a.model_dump(mode="json") for a in plan.actions],
                "notes": list(plan.notes),
            }
            if plan is not None
            else None
        ),
        "evidence": {
            "count": len(report.evidence),
            "kinds": sorted({e.kind for e in report.evidence}),
        },
        "cleared_blockers": list(report.cleared_blockers),
        "gaps": [g.model_dump(mode="json") for g in report.gaps],
    }
