"""Main ESL BLE device class."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from PIL import Image

from .encoding import Preview, encode_frame, frame_size, render_preview
from .models.capabilities import DeviceTarget
from .models.rgb_flash import RgbCommandParams
from .models.settings import EslSettings
from .protocol import StatusSnapshot
from .transport import EslSession

if TYPE_CHECKING:
    from bleak.backends.device import BLEDevice

_LOGGER = logging.getLogger(__name__)


def prepare_image(
        image: Image.Image,
        width: int,
        height: int,
        with_preview: bool = True,
) -> tuple[bytes, Preview | None]:
    """Encode an image for a display and optionally render its preview.

    Args:
        image: Source PIL Image (any mode)
        width: Display width in pixels
        height: Display height in pixels
        with_preview: Also render the JPEG preview (default: True)

    Returns:
        Tuple of (frame bytes, preview or None)
    """
    frame = encode_frame(image, width, height)
    preview = render_preview(image, width, height) if with_preview else None
    return frame, preview


class EslDevice:
    """ESL e-ink display reachable over BLE.

    Usage:
        async with EslDevice(DeviceTarget("AA:BB:CC:DD:EE:FF", 296, 128)) as device:
            await device.upload_image(image)

    Each ``async with`` block is one session: discover, connect, unlock, and
    disconnect on exit. Open sessions only from a DeviceCommandQueue task so a
    device never has two at once.
    """

    def __init__(
            self,
            target: DeviceTarget,
            settings: EslSettings | None = None,
            ble_device: BLEDevice | None = None,
    ):
        """Initialize ESL device.

        Args:
            target: Address and display size
            settings: Timings and chunk sizes (default: EslSettings())
            ble_device: Optional already-discovered BLEDevice
        """
        self.target = target
        self.settings = settings or EslSettings()
        self._session = EslSession(target.address, self.settings, ble_device)

    async def __aenter__(self) -> EslDevice:
        await self._session.open()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self._session.close()

    @property
    def address(self) -> str:
        return self.target.address

    @property
    def width(self) -> int:
        return self.target.width

    @property
    def height(self) -> int:
        return self.target.height

    @property
    def frame_size(self) -> int:
        """Size in bytes of a full frame for this display."""
        return frame_size(self.width, self.height)

    async def clear(self) -> StatusSnapshot:
        """Clear the display."""
        _LOGGER.info("Clearing %s", self.address)
        return await self._session.clear()

    async def flash(self, color: RgbCommandParams | str) -> StatusSnapshot:
        """Flash the LED.

        Args:
            color: Flash parameters, or a ``#RRGGBB`` colour using the
                configured on/off/work durations
        """
        if isinstance(color, str):
            color = RgbCommandParams.from_hex(
                color,
                on_ms=self.settings.flash_on_ms,
                off_ms=self.settings.flash_off_ms,
                work_ms=self.settings.flash_work_ms,
            )
        _LOGGER.info("Flashing %s", self.address)
        return await self._session.flash(color)

    async def upload_frame(self, frame: bytes) -> StatusSnapshot:
        """Send an already encoded frame."""
        if len(frame) != self.frame_size:
            raise ValueError(
                f"Frame is {len(frame)} bytes, expected {self.frame_size} "
                f"for {self.width}x{self.height}"
            )
        return await self._session.write_frame(frame)

    async def upload_image(self, image: Image.Image) -> StatusSnapshot:
        """Resize, quantize, encode and send an image.

        Raises:
            ImageEncodingError: If the image cannot be encoded
            ProtocolError: If the transfer fails
        """
        _LOGGER.info(
            "Uploading image to %s (%dx%d)",
            self.address,
            self.width,
            self.height,
        )
        frame = encode_frame(image, self.width, self.height)
        status = await self.upload_frame(frame)
        _LOGGER.info("Image upload complete")
        return status
