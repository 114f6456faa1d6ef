"""Display target model."""

from __future__ import annotations

from dataclasses import dataclass

# Panel families supported by the frame encoder
DEFAULT_WIDTH = 400
DEFAULT_HEIGHT = 300
NATIVE_NARROW_WIDTH = 128
NATIVE_NARROW_HEIGHT = 296


@dataclass(frozen=True)
class DeviceTarget:
    """Minimal device information needed to drive one ESL."""

    address: str
    width: int = DEFAULT_WIDTH
    height: int = DEFAULT_HEIGHT

    def __post_init__(self) -> None:
        if not self.address or not self.address.strip():
            raise ValueError("address must not be empty")
        if self.width <= 0 or self.height <= 0:
            raise ValueError(f"Invalid display size {self.width}x{self.height}")
