"""Structured audit trail of governance decisions.

Contract:
    - log() is fire-and-forget from the coordinator's point of view
    - Every terminal verify/settle outcome produces exactly one entry
    - Entries are immutable; no delete/update operations exist

Durable storage (database, log stream) sits behind :class:`IAuditLogger`;
the sinks here cover stdout, JSONL files and in-memory capture for tests.
"""

from __future__ import annotations

import logging
import sys
import threading
from pathlib import Path
from typing import TextIO

from settlement_governance.core.models import AuditLogEntry

logger = logging.getLogger(__name__)


class ConsoleAuditLogger:
    """Writes one JSON object per line to a stream (stdout by default).

    Processable by any log aggregator.
    """

    def __init__(self, stream: TextIO | None = None) -> None:
        self._stream = stream or sys.stdout
        self._lock = threading.Lock()

    def log(self, entry: AuditLogEntry) -> None:
        with self._lock:
            self._stream.write(entry.model_dump_json() + "\n")
            self._stream.flush()


class InMemoryAuditLogger:
    """Captures entries for assertions in tests."""

    def __init__(self) -> None:
        self.entries: list[AuditLogEntry] = []

    def log(self, entry: AuditLogEntry) -> None:
        self.entries.append(entry)

    def clear(self) -> None:
        self.entries.clear()


class JsonlAuditLogger:
    """Appends entries to a JSONL file.

    A write failure marks the sink unavailable and is logged at ERROR;
    it is never raised into the lifecycle hook that produced the entry.
    Later entries are dropped (and counted) until :meth:`set_available`
    re-enables the sink.
    """

    def __init__(self, persist_path: str | Path) -> None:
        self._path = Path(persist_path)
        self._lock = threading.Lock()
        self._available = True
        self._dropped = 0

    def log(self, entry: AuditLogEntry) -> None:
        with self._lock:
            if not self._available:
                self._dropped += 1
                return
            try:
                self._path.parent.mkdir(parents=True, exist_ok=True)
                with self._path.open("a", encoding="utf-8") as f:
                    f.write(entry.model_dump_json() + "\n")
            except OSError as exc:
                self._available = False
                self._dropped += 1
                logger.error("Audit log persistence failed (%s): %s", self._path, exc)

    def read_all(self) -> list[AuditLogEntry]:
        if not self._path.exists():
            return []
        with self._lock:
            lines = self._path.read_text(encoding="utf-8").splitlines()
        return [AuditLogEntry.model_validate_json(line) for line in lines if line.strip()]

    @property
    def is_available(self) -> bool:
        return self._available

    @property
    def dropped_count(self) -> int:
        return self._dropped

    def set_available(self, available: bool) -> None:
        """Toggle availability after an operator fixes the sink."""
        self._available = available
