"""Setup/upgrade log (Panther\\setupact.log) reader with byte-offset checkpoints."""

from __future__ import annotations

import logging
import os
import re
from datetime import datetime
from typing import List, Optional, Tuple

from dateutil import parser as date_parser

from bootsleuth.collectors.text import read_bytes_shared
from bootsleuth.core.errors import EvidenceUnavailable, PermissionDenied, UnknownErrorCode, record_gap
from bootsleuth.core.models import Evidence, EvidenceGap
from bootsleuth.knowledge.base import KnowledgeBase, get_default_knowledge_base, normalize_code

logger = logging.getLogger(__name__)

# Codes are often glued to identifiers (`SP_0xc0000221`, `0xC1900101h`); only a longer hex run is rejected.
STATUS_CODE_RE = re.compile(r"0x[0-9a-f]{8}(?![0-9a-f])", re.IGNORECASE)
_TIMESTAMP_RE = re.compile(r"^\s*(\d{4}-\d{2}-\d{2}[ T]\d{2}:\d{2}:\d{2})")


def setup_log_path(windows_dir: str) -> str:
    return os.path.join(windows_dir, "Panther", "setupact.log")


def _line_timestamp(line: str) -> Optional[datetime]:
    m = _TIMESTAMP_RE.match(line)
    if not m:
        return None
    try:
        return date_parser.parse(m.group(1))
    except (ValueError, OverflowError):
        return None


class SetupLogReader:
    def __init__(self, knowledge_base: Optional[KnowledgeBase] = None) -> None:
        self.kb = knowledge_base or get_default_knowledge_base()

    def read(
        self,
        path: str,
        since_offset: int = 0,
        gaps: Optional[List[EvidenceGap]] = None,
        *,
        complete_lines_only: bool = False,
    ) -> Tuple[List[Evidence], int]:
        """
        Return every status code found after `since_offset` (file order) and the new byte offset.

        With `complete_lines_only`, a trailing line that has no newline yet is left for the next read so a code
        being written is never split across two reads.
        """
        since_offset = max(0, int(since_offset or 0))
        try:
            size = os.path.getsize(path)
            if size < since_offset:
                logger.info("Setup log %s shrank below checkpoint (%d < %d); re-reading", path, size, since_offset)
                since_offset = 0
            data = read_bytes_shared(path, since_offset)
        except FileNotFoundError:
            record_gap(gaps, EvidenceUnavailable(path, "setup log not found"))
            return [], since_offset
        except PermissionError as e:
            record_gap(gaps, PermissionDenied(path, str(e)))
            return [], since_offset
        except OSError as e:
            record_gap(gaps, EvidenceUnavailable(path, str(e)))
            return [], since_offset

        if complete_lines_only and data and not data.endswith(b"\n"):
            cut = data.rfind(b"\n")
            data = data[: cut + 1] if cut >= 0 else b""

        out: List[Evidence] = []
        pos = since_offset
        for line_no, raw_line in enumerate(data.splitlines(keepends=True), start=1):
            line_offset = pos
            pos += len(raw_line)
            line = raw_line.decode("utf-8", errors="replace").rstrip("\r\n")
            matches = list(STATUS_CODE_RE.finditer(line))
            if not matches:
                continue
            ts = _line_timestamp(line)
            for m in matches:
                code = normalize_code(m.group(0))
                entry = self.kb.lookup(code)
                if entry is None:
                    record_gap(gaps, UnknownErrorCode(code, f"no knowledge base entry (first seen in {path})"))
                out.append(
                    Evidence(
                        kind="SetupLogEntry",
                        source=path,
                        raw=line.strip()[:500],
                        code=code,
                        entry=entry,
                        line_number=line_no,
                        offset=line_offset,
                        column=m.start(),
                        timestamp=ts,
                    )
                )

        return out, since_offset + len(data)
