"""Last-known device state handed to the persistence layer."""

from __future__ import annotations

import base64
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from ..encoding.images import Preview

DEFAULT_ERROR_HISTORY = 10


@dataclass
class DeviceShadow:
    """Shadow fields populated by the core for one device.

    The core never stores these; it only updates them and hands them back to
    the caller for persistence.
    """

    last_successful_action_at: datetime | None = None
    last_seen_at: datetime | None = None
    last_error: str | None = None
    last_errors: list[str] = field(default_factory=list)
    preview_base64: str | None = None
    preview_type: str | None = None
    preview_width: int | None = None
    preview_height: int | None = None
    is_flashing: bool = False
    last_flashed: datetime | None = None
    flashed_for: int | None = None
    max_errors: int = DEFAULT_ERROR_HISTORY

    def record_success(self, now: datetime) -> None:
        """Mark a command as acknowledged by the device."""
        self.last_successful_action_at = now
        self.last_seen_at = now
        self.last_error = None

    def record_failure(self, now: datetime, error: str) -> None:
        """Remember an error, keeping only the newest ``max_errors``."""
        self.last_error = error
        self.last_errors.append(f"{now.isoformat()} {error}")
        if len(self.last_errors) > self.max_errors:
            del self.last_errors[:-self.max_errors]

    def record_preview(self, preview: Preview) -> None:
        self.preview_base64 = base64.b64encode(preview.data).decode("ascii")
        self.preview_type = preview.mime_type
        self.preview_width = preview.width
        self.preview_height = preview.height

    def record_flash(self, now: datetime, work_ms: int) -> None:
        self.is_flashing = work_ms > 0
        self.last_flashed = now
        self.flashed_for = work_ms

    def expire_flash(self, now: datetime) -> None:
        """Clear ``is_flashing`` once the flash pattern has run its course."""
        if self.is_flashing and self.last_flashed is not None and self.flashed_for is not None:
            if (now - self.last_flashed).total_seconds() * 1000 >= self.flashed_for:
                self.is_flashing = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "currentImagePreviewBase64": self.preview_base64,
            "currentImagePreviewType": self.preview_type,
            "currentImagePreviewWidth": self.preview_width,
            "currentImagePreviewHeight": self.preview_height,
            "isFlashing": self.is_flashing,
            "lastSuccessfulActionAt": self.last_successful_action_at,
            "lastSeenAt": self.last_seen_at,
            "lastError": self.last_error,
            "lastErrors": list(self.last_errors),
            "lastFlashed": self.last_flashed,
            "flashedFor": self.flashed_for,
        }
