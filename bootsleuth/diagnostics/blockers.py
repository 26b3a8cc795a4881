from __future__ import annotations

from typing import List, Sequence, Tuple

from bootsleuth.core.models import Blocker, severity_rank


class BlockerAnalyzer:
    """Order detected blockers for planning. Never mutates the input or the registry."""

    def __init__(self, blockers: Sequence[Blocker] = ()) -> None:
        self._blockers: Tuple[Blocker, ...] = tuple(blockers)

    def classify(self, blockers: Sequence[Blocker] | None = None) -> List[Blocker]:
        """Severity descending; equal severities keep discovery order (sorted() is stable)."""
        if blockers is not None:
            self._blockers = tuple(blockers)
        return sorted(self._blockers, key=lambda b: -severity_rank(b.severity))

    def has_blocking_condition(self) -> bool:
        return bool(self._blockers)
