"""Status characteristic parsing."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Final

# Bit index in the error byte -> human readable condition
STATUS_ERROR_FLAGS: Final[tuple[tuple[int, str], ...]] = (
    (0, "EPD init error"),
    (1, "EPD write error"),
    (2, "Data decompression error"),
    (3, "OTA error"),
    (5, "Unlock failed"),
)


@dataclass(frozen=True)
class StatusSnapshot:
    """Decoded status characteristic value."""

    busy: bool = False
    error_byte: int = 0
    errors: tuple[str, ...] = ()

    @property
    def has_errors(self) -> bool:
        return bool(self.errors)


IDLE_STATUS = StatusSnapshot()


def decode_status_errors(error_byte: int) -> tuple[str, ...]:
    """Return the named error conditions set in a status error byte."""
    return tuple(name for bit, name in STATUS_ERROR_FLAGS if error_byte & (1 << bit))


def parse_status(data: bytes | bytearray | None) -> StatusSnapshot:
    """Parse a status characteristic read.

    Format: [flags:1][errors:1][...]
        - flags bit0: display busy
        - errors: bitmap, see STATUS_ERROR_FLAGS

    Devices that return fewer than 2 bytes are treated as idle with no errors.

    Args:
        data: Raw status read

    Returns:
        StatusSnapshot with busy flag and decoded errors
    """
    if data is None or len(data) < 2:
        return IDLE_STATUS

    error_byte = data[1]
    return StatusSnapshot(
        busy=bool(data[0] & 0x01),
        error_byte=error_byte,
        errors=decode_status_errors(error_byte),
    )
