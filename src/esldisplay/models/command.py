"""Queued command bookkeeping."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any

from .enums import CommandKind, CommandStatus


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


@dataclass
class CommandRecord:
    """Lifecycle record of one enqueued command.

    Only the queue worker executing the command mutates it.
    """

    id: str
    device_id: str
    kind: CommandKind
    enqueued_at: datetime
    status: CommandStatus = CommandStatus.PENDING
    started_at: datetime | None = None
    completed_at: datetime | None = None
    error: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def mark_processing(self, now: datetime) -> None:
        self.status = CommandStatus.PROCESSING
        self.started_at = now

    def mark_completed(self, now: datetime) -> None:
        self.status = CommandStatus.COMPLETED
        self.completed_at = now

    def mark_failed(self, now: datetime, error: str) -> None:
        self.status = CommandStatus.FAILED
        self.completed_at = now
        self.error = error

    def to_dict(self) -> dict[str, Any]:
        """Serialize for the queue listing endpoint."""
        data: dict[str, Any] = {
            "id": self.id,
            "deviceId": self.device_id,
            "type": self.kind.value,
            "status": self.status.value,
            "enqueuedAt": _iso(self.enqueued_at),
        }
        if self.started_at is not None:
            data["startedAt"] = _iso(self.started_at)
        if self.completed_at is not None:
            data["completedAt"] = _iso(self.completed_at)
        if self.error is not None:
            data["error"] = self.error
        return data
