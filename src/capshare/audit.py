"""ShareAuditLogger: JSONL audit trail for sharing events.

Every upload, delegation, access decision and revocation is appended as a
single JSON line. This is an append-only record for incident review, kept
separate from operational logging.

With no file path the logger keeps only the most recent events in a
bounded in-memory ring; older events are dropped as new ones arrive.
"""
from __future__ import annotations

import collections
import datetime
import json
import logging
import threading
from dataclasses import dataclass, field
from pathlib import Path

logger = logging.getLogger(__name__)

DEFAULT_BUFFER_SIZE: int = 1000


@dataclass(frozen=True)
class AuditEvent:
    """A single auditable sharing event.

    Parameters
    ----------
    event_type:
        Short snake_case event name (e.g. ``"delegation_issued"``).
    subject_id:
        Content identifier of the object involved.
    actor_id:
        Identity that triggered the event. Defaults to ``"system"``.
    details:
        Event-specific key-value data.
    timestamp:
        UTC datetime of the event. Defaults to now.
    """

    event_type: str
    subject_id: str
    actor_id: str = "system"
    details: dict[str, object] = field(default_factory=dict)
    timestamp: datetime.datetime = field(
        default_factory=lambda: datetime.datetime.now(datetime.timezone.utc)
    )

    def to_dict(self) -> dict[str, object]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type,
            "subject_id": self.subject_id,
            "actor_id": self.actor_id,
            "details": self.details,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), separators=(",", ":"), default=str)


class ShareAuditLogger:
    """Append-only audit logger for sharing events.

    Thread-safe.

    Parameters
    ----------
    log_path:
        JSONL file to append to. Parent directories are created. If None,
        events are kept in memory only.
    buffer_size:
        Number of events retained in memory when *log_path* is None.
    """

    def __init__(self, log_path: Path | None = None, buffer_size: int = DEFAULT_BUFFER_SIZE) -> None:
        if buffer_size < 1:
            raise ValueError(f"buffer_size must be at least 1, got {buffer_size}.")
        self._log_path = log_path
        self._buffer: collections.deque[AuditEvent] = collections.deque(maxlen=buffer_size)
        self._dropped = 0
        self._lock = threading.Lock()

        if log_path is not None:
            log_path.parent.mkdir(parents=True, exist_ok=True)

    @property
    def dropped(self) -> int:
        """Events evicted from the in-memory ring since the last drain."""
        with self._lock:
            return self._dropped

    def record(self, event: AuditEvent) -> None:
        """Append *event* to the file, or to the in-memory ring."""
        with self._lock:
            if self._log_path is not None:
                with self._log_path.open("a", encoding="utf-8") as fh:
                    fh.write(event.to_json() + "\n")
                return
            if len(self._buffer) == self._buffer.maxlen:
                self._dropped += 1
                if self._dropped == 1:
                    logger.warning(
                        "Audit buffer full (%d events); dropping oldest. "
                        "Set CAPSHARE_AUDIT_LOG_PATH to keep a full trail.",
                        self._buffer.maxlen,
                    )
            self._buffer.append(event)

    def _emit(self, event_type: str, subject_id: str, actor_id: str, **details: object) -> None:
        self.record(
            AuditEvent(
                event_type=event_type,
                subject_id=subject_id,
                actor_id=actor_id,
                details=details,
            )
        )

    # ------------------------------------------------------------------
    # Sharing events
    # ------------------------------------------------------------------

    def log_upload(self, subject_id: str, owner: str, filename: str) -> None:
        self._emit("object_uploaded", subject_id, owner, filename=filename)

    def log_delegation(
        self,
        subject_id: str,
        owner: str,
        grantee: str,
        capabilities: list[str],
        expires_at: str,
    ) -> None:
        self._emit(
            "delegation_issued",
            subject_id,
            owner,
            grantee=grantee,
            capabilities=capabilities,
            expires_at=expires_at,
        )

    def log_access(
        self,
        subject_id: str,
        grantee: str | None,
        capability: str,
        granted: bool,
        reason: str | None = None,
    ) -> None:
        """Log the outcome of a verification."""
        self._emit(
            "access_granted" if granted else "access_denied",
            subject_id,
            grantee or "unknown",
            capability=capability,
            reason=reason,
        )

    def log_revocation(self, subject_id: str, owner: str, grantee: str, found: bool) -> None:
        self._emit("delegation_revoked", subject_id, owner, grantee=grantee, found=found)

    # ------------------------------------------------------------------
    # Reading
    # ------------------------------------------------------------------

    def drain_buffer(self) -> list[AuditEvent]:
        """Return and clear the in-memory events, oldest first."""
        with self._lock:
            events = list(self._buffer)
            self._buffer.clear()
            self._dropped = 0
        return events

    def read_log(self, tail: int | None = None) -> list[dict[str, object]]:
        """Return events as dictionaries from the log file, or from memory.

        Parameters
        ----------
        tail:
            If given, return only the last *tail* events.
        """
        with self._lock:
            if self._log_path is None:
                events = [event.to_dict() for event in self._buffer]
            elif self._log_path.exists():
                lines = self._log_path.read_text(encoding="utf-8").splitlines()
                events = [json.loads(line) for line in lines if line.strip()]
            else:
                events = []

        if tail is not None:
            return events[-tail:] if tail > 0 else []
        return events


__all__ = ["AuditEvent", "DEFAULT_BUFFER_SIZE", "ShareAuditLogger"]
