"""Tunable timings and sizes."""

from __future__ import annotations

from dataclasses import dataclass

from ..protocol.commands import CHUNK_SIZE
from .enums import CommandKind
from .rgb_flash import DEFAULT_OFF_MS, DEFAULT_ON_MS, DEFAULT_WORK_MS
from .shadow import DEFAULT_ERROR_HISTORY


@dataclass(frozen=True)
class EslSettings:
    """Timeouts are in seconds, flash durations in milliseconds."""

    scan_timeout: float = 30.0
    connect_timeout: float = 10.0
    max_connect_attempts: int = 1
    chunk_size: int = CHUNK_SIZE
    inter_chunk_delay: float = 0.004
    unlock_settle_delay: float = 0.1
    status_poll_timeout: float = 0.5
    status_poll_interval: float = 0.1
    image_timeout: float = 180.0
    command_timeout: float = 60.0
    retention: float = 60.0
    purge_interval: float = 30.0
    error_history: int = DEFAULT_ERROR_HISTORY
    flash_on_ms: int = DEFAULT_ON_MS
    flash_off_ms: int = DEFAULT_OFF_MS
    flash_work_ms: int = DEFAULT_WORK_MS

    def __post_init__(self) -> None:
        if self.chunk_size <= 0:
            raise ValueError(f"chunk_size must be positive, got {self.chunk_size}")
        if self.max_connect_attempts < 1:
            raise ValueError(
                f"max_connect_attempts must be >= 1, got {self.max_connect_attempts}"
            )
        for name in (
            "scan_timeout",
            "connect_timeout",
            "image_timeout",
            "command_timeout",
            "status_poll_interval",
        ):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive")
        if self.error_history < 1:
            raise ValueError(f"error_history must be >= 1, got {self.error_history}")

    def timeout_for(self, kind: CommandKind) -> float:
        """Hard timeout applied to a background command of ``kind``."""
        if kind == CommandKind.SET_IMAGE:
            return self.image_timeout
        return self.command_timeout
