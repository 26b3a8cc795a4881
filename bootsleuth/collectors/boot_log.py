"""Boot transcript (ntbtlog.txt) reader."""

from __future__ import annotations

import logging
import os
import re
from typing import List, Optional

from bootsleuth.collectors.text import decode_log, read_bytes_shared
from bootsleuth.core.errors import EvidenceUnavailable, PermissionDenied, record_gap
from bootsleuth.core.models import Evidence, EvidenceGap

logger = logging.getLogger(__name__)

_LOADED_RE = re.compile(r"^\s*Loaded driver\s+(?P<path>\S.*?)\s*$", re.IGNORECASE)
_NOT_LOADED_RE = re.compile(r"^\s*Did not load driver\s+(?P<path>\S.*?)\s*$", re.IGNORECASE)
# Each boot with logging enabled appends a new session starting with the OS banner.
_SESSION_RE = re.compile(r"^\s*Microsoft \(R\) Windows", re.IGNORECASE)


def boot_log_path(windows_dir: str) -> str:
    return os.path.join(windows_dir, "ntbtlog.txt")


def _last_session(lines: List[str]) -> tuple[int, List[str]]:
    start = 0
    for idx, line in enumerate(lines):
        if _SESSION_RE.match(line):
            start = idx
    return start, lines[start:]


class BootLogReader:
    def read(self, path: str, gaps: Optional[List[EvidenceGap]] = None) -> List[Evidence]:
        """
        Summarize the most recent boot session into at most one `BootLogEntry`.

        `first_failure` is the first "Did not load driver" line; `last_loaded` is the last "Loaded driver" line
        before it. A missing log is a soft miss: empty result plus a gap.
        """
        try:
            data = read_bytes_shared(path)
        except FileNotFoundError:
            record_gap(gaps, EvidenceUnavailable(path, "boot log not found (boot logging may be disabled)"))
            return []
        except PermissionError as e:
            record_gap(gaps, PermissionDenied(path, str(e)))
            return []
        except OSError as e:
            record_gap(gaps, EvidenceUnavailable(path, str(e)))
            return []

        lines = decode_log(data).splitlines()
        base_idx, session = _last_session(lines)

        last_loaded: Optional[str] = None
        loaded_count = 0
        for idx, line in enumerate(session):
            m = _NOT_LOADED_RE.match(line)
            if m:
                failure = m.group("path")
                logger.info("Boot log first failure: %s (last loaded: %s)", failure, last_loaded)
                return [
                    Evidence(
                        kind="BootLogEntry",
                        source=path,
                        raw=line.strip(),
                        line_number=base_idx + idx + 1,
                        details={
                            "first_failure": failure,
                            "last_loaded": last_loaded,
                            "loaded_count": loaded_count,
                        },
                    )
                ]
            m = _LOADED_RE.match(line)
            if m:
                last_loaded = m.group("path")
                loaded_count += 1

        if last_loaded is None:
            return []
        return [
            Evidence(
                kind="BootLogEntry",
                source=path,
                raw=f"Loaded driver {last_loaded}",
                details={"first_failure": None, "last_loaded": last_loaded, "loaded_count": loaded_count},
            )
        ]
