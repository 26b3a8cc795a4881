"""Blocker clearing (Repair mode only).

This is the one place the engine writes to the registry, and only after the injected confirmation callable
approves each blocker. Repair-tool commands are never executed here.
"""

from __future__ import annotations

import logging
from typing import Callable, List, Sequence

from bootsleuth.collectors.registry import RegistryBlockerScanner, RegistryEditor
from bootsleuth.core.models import Blocker

logger = logging.getLogger(__name__)

ConfirmFn = Callable[[Blocker], bool]


def clear_blockers(
    blockers: Sequence[Blocker],
    editor: RegistryEditor,
    scanner: RegistryBlockerScanner,
    *,
    confirm: ConfirmFn,
) -> List[str]:
    """
    Clear each confirmed blocker. Returns the blocker types that were cleared.

    A blocker whose value/key already disappeared counts as cleared. Access errors are logged and the blocker
    is left in place; the caller's next scan reports it again.
    """
    cleared: List[str] = []
    for b in blockers:
        probe = scanner.probe_for(b)
        if probe is None:
            logger.warning("No clearing rule for blocker %s at %s", b.blocker_type, b.registry_path)
            continue
        if not confirm(b):
            logger.info("Blocker %s not cleared (not confirmed)", b.blocker_type)
            continue
        try:
            if probe.clear_op == "set_zero":
                editor.set_dword(probe.registry_path, str(probe.value_name), 0)
            elif probe.clear_op == "delete_value":
                editor.delete_value(probe.registry_path, str(probe.value_name))
            else:
                editor.delete_key(probe.registry_path)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.error("Failed to clear blocker %s: %s", b.blocker_type, e)
            continue
        logger.info("Cleared blocker %s (%s)", b.blocker_type, b.remediation.command)
        cleared.append(b.blocker_type)
    return cleared
