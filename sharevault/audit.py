"""
Audit trail collaborators.

Audit reporting is best-effort: ``report`` never raises, so a failing sink
cannot change an upload, download or authorization result.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional
from uuid import UUID

from .clock import utc_now

logger = logging.getLogger(__name__)

ACTIVITY_LIMIT = 50


class AuditAction(Enum):
    """Audited actions (stored as text)."""

    FILE_UPLOAD = "FILE_UPLOAD"
    FILE_DOWNLOAD = "FILE_DOWNLOAD"
    FILE_DELETE = "FILE_DELETE"
    SHARE_LINK_CREATED = "SHARE_LINK_CREATED"
    SHARE_LINK_ACCESSED = "SHARE_LINK_ACCESSED"
    SHARE_LINK_DOWNLOADED = "SHARE_LINK_DOWNLOADED"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class AuditEvent:
    """One audit log entry."""

    action: AuditAction
    detail: str
    actor: Optional[UUID] = None
    file_id: Optional[UUID] = None
    source_address: Optional[str] = None
    timestamp: datetime = field(default_factory=utc_now)


class AuditSink(ABC):
    """Receiver of audit events."""

    @abstractmethod
    async def record(self, event: AuditEvent) -> None:
        """Persist or forward one event."""
        ...


class AuditLog(AuditSink):
    """Audit sink whose events can be read back."""

    @abstractmethod
    async def list_events(
        self, owner_id: UUID, limit: int = ACTIVITY_LIMIT
    ) -> List[AuditEvent]:
        """
        Recent activity for a user, newest first.

        Covers events the user performed and events on files the user owns,
        such as accesses through their share links.
        """
        ...


class LoggingAuditSink(AuditSink):
    """Writes audit events to a logger."""

    def __init__(self, name: str = "sharevault.audit.events") -> None:
        self._logger = logging.getLogger(name)

    async def record(self, event: AuditEvent) -> None:
        self._logger.info(
            "%s actor=%s file=%s source=%s: %s",
            event.action,
            event.actor,
            event.file_id,
            event.source_address,
            event.detail,
        )


class InMemoryAuditSink(AuditLog):
    """
    Keeps events in a list; used by tests and the benchmark.

    File ownership is taken from FILE_UPLOAD events.
    """

    def __init__(self) -> None:
        self.events: List[AuditEvent] = []

    async def record(self, event: AuditEvent) -> None:
        self.events.append(event)

    def actions(self) -> List[AuditAction]:
        return [e.action for e in self.events]

    async def list_events(
        self, owner_id: UUID, limit: int = ACTIVITY_LIMIT
    ) -> List[AuditEvent]:
        owned = {
            e.file_id
            for e in self.events
            if e.action is AuditAction.FILE_UPLOAD and e.actor == owner_id
        }
        matching = [
            e
            for e in self.events
            if e.actor == owner_id or (e.file_id is not None and e.file_id in owned)
        ]
        # sorted() is stable; reversing first keeps later events ahead on ties.
        return sorted(reversed(matching), key=lambda e: e.timestamp, reverse=True)[:limit]


async def report(sink: Optional[AuditSink], event: AuditEvent) -> None:
    """Send an event to the sink, logging and discarding any failure."""
    if sink is None:
        return
    try:
        await sink.record(event)
    except Exception:
        logger.warning("Failed to record audit event %s", event.action, exc_info=True)
