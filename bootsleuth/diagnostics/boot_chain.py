from __future__ import annotations

import logging
from typing import Dict, List, Sequence, Tuple

from bootsleuth.core.models import Diagnosis, DiagnosisCandidate, Evidence, severity_rank

logger = logging.getLogger(__name__)

_BASE_CONFIDENCE = {"Critical": 90, "High": 80, "Medium": 65, "Low": 50}
_DRIVER_FALLBACK_CONFIDENCE = 50
_UNREGISTERED_CONFIDENCE = 20


def _clamp_0_100(x: int) -> int:
    return max(0, min(100, int(x)))


def _position(ev: Evidence, idx: int) -> Tuple[int, int]:
    """
    Sort key for "later in the log".

    Lines compare by byte offset (line number when unknown). Two codes on the *same* line compare by column
    with the earlier match winning, so same-line ties resolve in first-match-in-line order.
    """
    line_pos = ev.offset if ev.offset is not None else (ev.line_number if ev.line_number is not None else idx)
    return int(line_pos), -int(ev.column or 0)


def _aggregate(items: List[Tuple[int, Evidence]]) -> Dict[str, dict]:
    by_code: Dict[str, dict] = {}
    for idx, ev in items:
        code = str(ev.code)
        pos = _position(ev, idx)
        cur = by_code.get(code)
        if cur is None:
            by_code[code] = {"evidence": [ev], "last_pos": pos, "last": ev}
            continue
        cur["evidence"].append(ev)
        if pos > cur["last_pos"]:
            cur["last_pos"] = pos
            cur["last"] = ev
    return by_code


def _candidate(code: str, agg: dict, *, registered: bool) -> DiagnosisCandidate:
    last: Evidence = agg["last"]
    entry = last.entry
    return DiagnosisCandidate(
        code=code,
        severity=entry.severity if entry else "Unknown",
        stage=entry.stage if entry else "Unknown",
        occurrences=len(agg["evidence"]),
        last_line=last.line_number,
        last_column=last.column,
        registered=registered,
    )


class BootChainAnalyzer:
    """
    Derive one ranked `Diagnosis` from collected evidence.

    Precedence (deterministic for identical inputs):
    1. Setup-log codes with a knowledge base entry: highest severity wins; among equal severities the code
       that occurs latest in the log wins (later errors are usually the proximate cause).
    2. Setup-log codes without an entry: stage Unknown with an explicit unregistered-code marker. A boot-log
       driver failure seen alongside is kept as supporting evidence only.
    3. Boot-log first-failure driver, only when the setup log holds no code at all: stage Driver, severity
       High, unknown-code marker.
    4. Nothing usable: stage Unknown, zero confidence, "insufficient evidence". This is a valid result.
    """

    def analyze(self, evidence: Sequence[Evidence]) -> Diagnosis:
        setup = [(i, e) for i, e in enumerate(evidence) if e.kind == "SetupLogEntry" and e.code]
        resolved = [(i, e) for i, e in setup if e.entry is not None]
        unregistered = [(i, e) for i, e in setup if e.entry is None]

        res_agg = _aggregate(resolved)
        unreg_agg = _aggregate(unregistered)

        ranked_resolved = sorted(
            res_agg.items(),
            key=lambda kv: (severity_rank(kv[1]["last"].entry.severity), kv[1]["last_pos"]),
            reverse=True,
        )
        ranked_unreg = sorted(unreg_agg.items(), key=lambda kv: kv[1]["last_pos"], reverse=True)
        candidates = tuple(
            [_candidate(c, a, registered=True) for c, a in ranked_resolved]
            + [_candidate(c, a, registered=False) for c, a in ranked_unreg]
        )

        if ranked_resolved:
            code, agg = ranked_resolved[0]
            entry = agg["last"].entry
            score = _BASE_CONFIDENCE.get(entry.severity, 50)
            rivals = [c for c in candidates[1:] if c.registered and c.severity == entry.severity]
            if rivals:
                score -= 10
            score += min(len(agg["evidence"]) - 1, 3) * 2
            why = f"{code} ({entry.severity}, {entry.stage}): {entry.description}."
            if len(ranked_resolved) > 1:
                why += f" Selected over {len(ranked_resolved) - 1} other known code(s) by severity, then latest occurrence."
            logger.info("Diagnosis: %s stage=%s severity=%s", code, entry.stage, entry.severity)
            return Diagnosis(
                stage=entry.stage,
                code=code,
                entry=entry,
                severity=entry.severity,
                unknown_code=False,
                confidence_0_100=_clamp_0_100(score),
                explanation=why,
                candidates=candidates,
                supporting=tuple(agg["evidence"]),
            )

        boot = [e for e in evidence if e.kind == "BootLogEntry" and (e.details or {}).get("first_failure")]

        if ranked_unreg:
            code, agg = ranked_unreg[0]
            why = f"unregistered code {code}: it appears in the setup log but has no knowledge base entry."
            if boot:
                why += f" The boot log also shows driver {boot[-1].details.get('first_failure')} did not load."
            logger.info("Diagnosis: unregistered code %s", code)
            return Diagnosis(
                stage="Unknown",
                code=code,
                entry=None,
                severity="Unknown",
                unknown_code=True,
                confidence_0_100=_UNREGISTERED_CONFIDENCE,
                explanation=why,
                candidates=candidates,
                supporting=tuple(agg["evidence"]) + tuple(boot[-1:]),
            )

        if boot:
            ev = boot[-1]
            failure = ev.details.get("first_failure")
            last_loaded = ev.details.get("last_loaded")
            why = f"Boot log shows driver {failure} did not load"
            if last_loaded:
                why += f" (last successfully loaded: {last_loaded})"
            why += "; no status code was found, so the failure is not in the knowledge base."
            logger.info("Diagnosis: driver failure %s (no status code)", failure)
            return Diagnosis(
                stage="Driver",
                code=None,
                entry=None,
                severity="High",
                unknown_code=True,
                confidence_0_100=_DRIVER_FALLBACK_CONFIDENCE,
                explanation=why,
                candidates=candidates,
                supporting=(ev,),
            )

        return Diagnosis(
            stage="Unknown",
            severity="Unknown",
            confidence_0_100=0,
            explanation="insufficient evidence: no status codes in the setup log and no driver failure in the boot log.",
        )


__all__ = ["BootChainAnalyzer"]
