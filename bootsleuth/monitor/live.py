"""Live setup-log monitor (poll-with-offset state machine).

    Idle -> Watching -> {Alerted, TimedOut, Cancelled} -> Idle

`Alerted` is transient: it is entered while alerts for one poll's delta are emitted, then the monitor returns
to `Watching`. `TimedOut` and `Cancelled` end the stream cleanly and the monitor goes back to `Idle`.
"""

from __future__ import annotations

import logging
import os
import threading
import time
from typing import Callable, Iterator, List, Literal, Optional, Tuple

from bootsleuth.collectors.setup_log import SetupLogReader
from bootsleuth.core.models import Alert, EvidenceGap
from bootsleuth.diagnostics.boot_chain import BootChainAnalyzer

logger = logging.getLogger(__name__)

MonitorState = Literal["Idle", "Watching", "Alerted", "TimedOut", "Cancelled"]

_UNREGISTERED_ACTION = "Unregistered status code: look it up and add it to the knowledge base table"
# Prefix of the log compared between polls; a different head means the file was replaced.
_HEAD_BYTES = 256


class LiveMonitor:
    def __init__(
        self,
        reader: Optional[SetupLogReader] = None,
        analyzer: Optional[BootChainAnalyzer] = None,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Optional[Callable[[float], None]] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> None:
        self.reader = reader or SetupLogReader()
        self.analyzer = analyzer or BootChainAnalyzer()
        # A caller-supplied event is theirs to reset; our own is cleared on every start().
        self._owns_cancel = cancel_event is None
        self.cancel_event = cancel_event or threading.Event()
        self._clock = clock
        # Default sleep wakes early on cancellation, so stop() takes effect within one poll interval.
        self._sleep = sleep or (lambda seconds: self.cancel_event.wait(seconds))
        self.state: MonitorState = "Idle"
        self.history: List[MonitorState] = ["Idle"]
        self.last_outcome: Optional[MonitorState] = None
        self.offset = 0
        self.gaps: List[EvidenceGap] = []
        self._ino = 0
        self._head = b""

    def stop(self) -> None:
        """External cancellation signal."""
        self.cancel_event.set()

    def _transition(self, new: MonitorState) -> None:
        if new == self.state:
            return
        logger.debug("Monitor state %s -> %s", self.state, new)
        self.state = new
        self.history.append(new)

    def _finish(self, outcome: MonitorState) -> None:
        self._transition(outcome)
        self.last_outcome = outcome
        logger.info("Monitor stopped: %s (offset=%d)", outcome, self.offset)
        self._transition("Idle")

    def _identity(self, path: str) -> Tuple[int, int, bytes]:
        """(size, inode, head bytes); zeros when the file is missing."""
        try:
            st = os.stat(path)
            with open(path, "rb") as f:
                head = f.read(_HEAD_BYTES)
        except OSError:
            return 0, 0, b""
        return st.st_size, st.st_ino, head

    def _replaced(self, ino: int, head: bytes) -> bool:
        if self._ino and ino and ino != self._ino:
            return True
        return bool(self._head) and head[: len(self._head)] != self._head

    def start(self, path: str, timeout: float, poll_interval: float) -> Iterator[Alert]:
        """
        Watch `path` until `timeout` seconds elapse or `stop()` is called, yielding one `Alert` per distinct
        status code found in each newly appended chunk.

        Content present before the call is never replayed, and each byte range is parsed (and alerted on) once.
        """
        if self.state != "Idle":
            raise RuntimeError(f"monitor already running (state={self.state})")

        if self._owns_cancel:
            self.cancel_event.clear()
        self.offset, self._ino, self._head = self._identity(path)
        self.last_outcome = None
        started = self._clock()
        self._transition("Watching")
        logger.info("Watching %s from offset %d (timeout=%ss, poll=%ss)", path, self.offset, timeout, poll_interval)

        try:
            while True:
                if self.cancel_event.is_set():
                    self._finish("Cancelled")
                    return
                if self._clock() - started >= timeout:
                    self._finish("TimedOut")
                    return

                self._sleep(poll_interval)
                if self.cancel_event.is_set():
                    self._finish("Cancelled")
                    return

                size, ino, head = self._identity(path)
                replaced = self._replaced(ino, head)
                if size == self.offset and not replaced:
                    continue
                if replaced or size < self.offset:
                    logger.info("Setup log %s was truncated or replaced; restarting from the beginning", path)
                    self.offset = 0
                self._ino, self._head = ino, head

                start_offset = self.offset
                evidence, new_offset = self.reader.read(path, self.offset, self.gaps, complete_lines_only=True)
                if new_offset == start_offset:
                    # Only a partial line so far; wait for the newline.
                    self.offset = new_offset
                    continue
                self.offset = new_offset
                if not evidence:
                    continue

                diagnosis = self.analyzer.analyze(evidence)
                self._transition("Alerted")
                for cand in diagnosis.candidates:
                    entry = self.reader.kb.lookup(cand.code)
                    alert = Alert(
                        code=cand.code,
                        stage=cand.stage,
                        severity=cand.severity,
                        recommended_action=entry.action if entry else _UNREGISTERED_ACTION,
                        source=path,
                        start_offset=start_offset,
                        end_offset=new_offset,
                    )
                    logger.warning("Alert %s (%s, %s): %s", alert.code, alert.stage, alert.severity, alert.recommended_action)
                    yield alert
                self._transition("Watching")
        except KeyboardInterrupt:
            # Ctrl-C while sleeping or reading.
            self.cancel_event.set()
            self._finish("Cancelled")
            return
        except GeneratorExit:
            # Consumer closed the stream early; treat as cancellation.
            if self.state != "Idle":
                self._finish("Cancelled")
            raise
