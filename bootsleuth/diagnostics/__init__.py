"""Analyzers (deterministic, explainable, read-only).

- `BootChainAnalyzer`: evidence -> ranked `Diagnosis`
- `BlockerAnalyzer`: registry blockers -> prioritized list
"""

from .blockers import BlockerAnalyzer
from .boot_chain import BootChainAnalyzer

__all__ = ["BlockerAnalyzer", "BootChainAnalyzer"]
