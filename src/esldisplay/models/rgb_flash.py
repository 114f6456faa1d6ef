"""RGB LED flash parameters for the 0x08 command."""

from __future__ import annotations

import re
from dataclasses import dataclass

_HEX_COLOR = re.compile(r"^#?([0-9a-fA-F]{6})$")

DEFAULT_ON_MS = 500
DEFAULT_OFF_MS = 500
DEFAULT_WORK_MS = 5000


def _clamp(value: int, upper: int) -> int:
    return max(0, min(upper, int(value)))


@dataclass(frozen=True, slots=True)
class RgbCommandParams:
    """Colour and timing of an LED flash pattern.

    Colour channels are clamped to 0-255, durations (milliseconds) to the
    width of their wire fields.
    """

    red: int = 255
    green: int = 0
    blue: int = 0
    on_ms: int = DEFAULT_ON_MS
    off_ms: int = DEFAULT_OFF_MS
    work_ms: int = DEFAULT_WORK_MS

    def __post_init__(self) -> None:
        object.__setattr__(self, "red", _clamp(self.red, 0xFF))
        object.__setattr__(self, "green", _clamp(self.green, 0xFF))
        object.__setattr__(self, "blue", _clamp(self.blue, 0xFF))
        object.__setattr__(self, "on_ms", _clamp(self.on_ms, 0xFFFF))
        object.__setattr__(self, "off_ms", _clamp(self.off_ms, 0xFFFF))
        object.__setattr__(self, "work_ms", _clamp(self.work_ms, 0xFFFFFFFF))

    @classmethod
    def from_hex(
        cls,
        color: str | None,
        *,
        on_ms: int = DEFAULT_ON_MS,
        off_ms: int = DEFAULT_OFF_MS,
        work_ms: int = DEFAULT_WORK_MS,
    ) -> RgbCommandParams:
        """Build params from ``#RRGGBB`` or ``RRGGBB``.

        Anything unparseable falls back to pure red.
        """
        match = _HEX_COLOR.match((color or "").strip())
        if match is None:
            red, green, blue = 255, 0, 0
        else:
            value = int(match.group(1), 16)
            red, green, blue = (value >> 16) & 0xFF, (value >> 8) & 0xFF, value & 0xFF

        return cls(
            red=red,
            green=green,
            blue=blue,
            on_ms=on_ms,
            off_ms=off_ms,
            work_ms=work_ms,
        )
