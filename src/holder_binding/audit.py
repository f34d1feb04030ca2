"""RegistryAuditLogger — JSONL audit trail for registry events.

Every registry mutation (initialization, new binding, rejected binding,
allowed-asset change, compaction) is appended as a single JSON line to the
configured log file. If no file path is configured, events are kept in an
in-memory buffer that can be drained via :meth:`drain_buffer`.
"""
from __future__ import annotations

import datetime
import json
import threading
from dataclasses import dataclass, field
from pathlib import Path


@dataclass
class AuditEvent:
    """A single auditable registry event.

    Parameters
    ----------
    event_type:
        Short snake_case string identifying the event (e.g. "binding_created").
    registry_id:
        The registry the event happened in.
    actor:
        Address that triggered the event.
    details:
        Arbitrary key-value metadata about the event.
    timestamp:
        UTC datetime of the event. Defaults to now.
    """

    event_type: str
    registry_id: str
    actor: str
    details: dict[str, object] = field(default_factory=dict)
    timestamp: datetime.datetime = field(
        default_factory=lambda: datetime.datetime.now(datetime.timezone.utc)
    )

    def to_dict(self) -> dict[str, object]:
        """Serialize to a plain dictionary suitable for JSON encoding."""
        return {
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type,
            "registry_id": self.registry_id,
            "actor": self.actor,
            "details": self.details,
        }


class RegistryAuditLogger:
    """Append-only JSONL audit logger.

    Thread-safe.

    Parameters
    ----------
    log_path:
        Path to the JSONL log file. Parent directories are created. If None,
        events are buffered in memory only.
    """

    def __init__(self, log_path: Path | None = None) -> None:
        self._log_path = log_path
        self._buffer: list[str] = []
        self._lock = threading.Lock()

        if log_path is not None:
            log_path.parent.mkdir(parents=True, exist_ok=True)

    def log(self, event: AuditEvent) -> None:
        """Append an audit event to the log."""
        line = json.dumps(event.to_dict(), separators=(",", ":"), default=str)
        with self._lock:
            if self._log_path is not None:
                with self._log_path.open("a", encoding="utf-8") as fh:
                    fh.write(line + "\n")
            else:
                self._buffer.append(line)

    def log_event(
        self,
        event_type: str,
        registry_id: str,
        actor: str,
        **details: object,
    ) -> None:
        """Log an event without constructing :class:`AuditEvent` by hand."""
        self.log(
            AuditEvent(
                event_type=event_type,
                registry_id=registry_id,
                actor=actor,
                details=dict(details),
            )
        )

    # ------------------------------------------------------------------
    # Buffer / file access
    # ------------------------------------------------------------------

    def drain_buffer(self) -> list[str]:
        """Return and clear the in-memory event buffer (oldest first)."""
        with self._lock:
            events = list(self._buffer)
            self._buffer.clear()
        return events

    def read_events(self, tail: int | None = None) -> list[dict[str, object]]:
        """Return logged events as dictionaries, in chronological order.

        Parameters
        ----------
        tail:
            If provided, return only the last *tail* events.
        """
        with self._lock:
            if self._log_path is None or not self._log_path.exists():
                lines = list(self._buffer)
            else:
                lines = self._log_path.read_text(encoding="utf-8").splitlines()

        parsed: list[dict[str, object]] = []
        for line in lines:
            stripped = line.strip()
            if not stripped:
                continue
            try:
                parsed.append(json.loads(stripped))
            except json.JSONDecodeError:
                continue

        if tail is not None:
            return parsed[-tail:]
        return parsed


__all__ = ["AuditEvent", "RegistryAuditLogger"]
