"""
Audit Sink - Append-only telemetry for resolution attempts.

Accepts two event shapes:
- ResolutionRecord: one row per resolve() call (search history)
- SystemEvent: free-form structured pipeline event

Sinks are fire-and-forget. ``record`` never raises; failures are logged and
dropped.
"""
from __future__ import annotations

import json
import logging
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Iterable, List, Optional, Union

from pydantic import ValidationError

from degradation_report.errors import AuditError
from degradation_report.models import ResolutionRecord, SystemEvent
from degradation_report.store import SubstanceStore


logger = logging.getLogger(__name__)


AuditEvent = Union[ResolutionRecord, SystemEvent]


class AuditSink(ABC):
    """Base sink. Subclasses implement ``_write``; ``record`` swallows failures."""

    def record(self, event: AuditEvent) -> bool:
        """Record an event.

        Returns:
            True if the event was written, False if it was dropped
        """
        try:
            self._write(event)
            return True
        except AuditError as e:
            logger.warning(f"Audit write dropped ({type(self).__name__}): {e}")
        except Exception as e:
            logger.warning(f"Audit write dropped ({type(self).__name__}): unexpected {type(e).__name__}: {e}")
        return False

    @abstractmethod
    def _write(self, event: AuditEvent) -> None:
        """Write one event, raising AuditError on failure."""

    def close(self) -> None:
        """Release sink resources."""


class StoreAuditSink(AuditSink):
    """Forwards events to the substance store's history and event procedures."""

    def __init__(self, store: SubstanceStore) -> None:
        self.store = store

    def _write(self, event: AuditEvent) -> None:
        try:
            if isinstance(event, ResolutionRecord):
                self.store.log_resolution(event)
            else:
                self.store.record_system_event(event)
        except Exception as e:
            raise AuditError(f"Store rejected audit event: {e}", operation="store") from e


class LoggingAuditSink(AuditSink):
    """Writes events as structured log lines."""

    def __init__(self, logger_name: str = "degradation_report.audit.events") -> None:
        self._logger = logging.getLogger(logger_name)

    def _write(self, event: AuditEvent) -> None:
        if isinstance(event, ResolutionRecord):
            self._logger.info(f"RESOLUTION | {event.model_dump_json()}")
            return
        level = logging.getLevelName(event.level)
        self._logger.log(level if isinstance(level, int) else logging.INFO, f"SYSTEM_EVENT | {event.model_dump_json()}")


class JsonlAuditSink(AuditSink):
    """
    Append-only audit trail in JSONL format.

    One JSON object per line, tagged with ``kind`` ("resolution" or "system").
    Loadable with ``pd.read_json(path, lines=True)``.
    """

    DEFAULT_PATH = ".cache/audit/resolutions.jsonl"

    def __init__(self, path: Optional[str] = None) -> None:
        self.path = Path(path or self.DEFAULT_PATH)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    def _write(self, event: AuditEvent) -> None:
        kind = "resolution" if isinstance(event, ResolutionRecord) else "system"
        line = json.dumps({"kind": kind, **event.model_dump(mode="json")}, ensure_ascii=False)
        try:
            with self._lock, open(self.path, "a", encoding="utf-8") as f:
                f.write(line + "\n")
        except OSError as e:
            raise AuditError(f"Cannot append to {self.path}: {e}", operation="append") from e

    def load_resolutions(self) -> List[ResolutionRecord]:
        """Load every resolution record, oldest first."""
        records = []
        for data in self._iter_lines():
            if data.pop("kind", None) == "resolution":
                try:
                    records.append(ResolutionRecord.model_validate(data))
                except ValidationError as e:
                    logger.warning(f"Skipping malformed audit line: {e}")
        return records

    def load_events(self) -> List[SystemEvent]:
        """Load every system event, oldest first."""
        events = []
        for data in self._iter_lines():
            if data.pop("kind", None) == "system":
                try:
                    events.append(SystemEvent.model_validate(data))
                except ValidationError as e:
                    logger.warning(f"Skipping malformed audit line: {e}")
        return events

    def _iter_lines(self) -> Iterable[dict]:
        if not self.path.exists():
            return
        with open(self.path, "r", encoding="utf-8") as f:
            for line in f:
                line = line.strip()
                if line:
                    yield json.loads(line)

    def __repr__(self) -> str:
        return f"JsonlAuditSink(path={self.path})"


class CompositeAuditSink(AuditSink):
    """Fans each event out to several sinks. One failing sink does not stop the others."""

    def __init__(self, sinks: Iterable[AuditSink]) -> None:
        self.sinks = list(sinks)

    def record(self, event: AuditEvent) -> bool:
        results = [sink.record(event) for sink in self.sinks]
        return any(results) if results else False

    def _write(self, event: AuditEvent) -> None:
        for sink in self.sinks:
            sink.record(event)

    def close(self) -> None:
        for sink in self.sinks:
            sink.close()
