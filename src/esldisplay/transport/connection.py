"""BLE session management."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from bleak_retry_connector import BleakClientWithServiceCache, establish_connection

from ..discovery import find_peripheral
from ..exceptions import (
    BLEConnectionError,
    BLETimeoutError,
    CharacteristicWriteError,
    EslError,
    NoVendorServiceError,
    SecurityHandshakeError,
)
from ..models.enums import SessionState
from ..models.rgb_flash import RgbCommandParams
from ..models.settings import EslSettings
from ..protocol import (
    CHALLENGE_SIZE,
    IDLE_STATUS,
    StatusSnapshot,
    build_a500_block,
    build_a501_commit,
    build_clear_command,
    build_rgb_command,
    encrypt_challenge,
    iter_frame_chunks,
    parse_status,
)

if TYPE_CHECKING:
    from bleak import BleakClient
    from bleak.backends.characteristic import BleakGATTCharacteristic
    from bleak.backends.device import BLEDevice
    from bleak.backends.service import BleakGATTService

_LOGGER = logging.getLogger(__name__)

_BASE_UUID_SUFFIX = "-0000-1000-8000-00805f9b34fb"


def short_uuid(uuid: str) -> str | None:
    """Return the 16-bit form of a uuid on the Bluetooth base uuid, else None."""
    normalized = uuid.strip().lower()
    if len(normalized.replace("-", "")) <= 8:
        return normalized.replace("-", "")[-4:]
    if normalized.startswith("0000") and normalized.endswith(_BASE_UUID_SUFFIX):
        return normalized[4:8]
    return None


def is_vendor_service(uuid: str) -> bool:
    """Full 128-bit uuid, which excludes Generic Access (1800) and Generic Attribute (1801)."""
    return short_uuid(uuid) is None


def is_writable(char: BleakGATTCharacteristic) -> bool:
    return "write" in char.properties or "write-without-response" in char.properties


def is_readable(char: BleakGATTCharacteristic) -> bool:
    return "read" in char.properties


def is_status_characteristic(char: BleakGATTCharacteristic) -> bool:
    return is_readable(char) and "notify" in char.properties and not is_writable(char)


def find_vendor_service(services: list[BleakGATTService]) -> BleakGATTService:
    """Pick the first non-standard 128-bit service.

    Raises:
        NoVendorServiceError: If the peripheral exposes none
    """
    for service in services:
        if is_vendor_service(service.uuid):
            return service
    raise NoVendorServiceError("No vendor ESL service found on this device")


class EslSession:
    """One unlocked BLE session with an ESL peripheral.

    Lifecycle:
        DISCOVERING -> CONNECTING -> DISCOVERING_SERVICES -> UNLOCKING -> READY
        -> DISCONNECTING -> CLOSED

    Any failure while opening jumps straight to DISCONNECTING. Use as an async
    context manager so the peripheral is always disconnected:

        async with EslSession("AA:BB:CC:DD:EE:FF") as session:
            await session.clear()
    """

    def __init__(
            self,
            address: str,
            settings: EslSettings | None = None,
            ble_device: BLEDevice | None = None,
    ):
        """Initialize session.

        Args:
            address: BLE address or platform id of the peripheral
            settings: Timings and chunk sizes (default: EslSettings())
            ble_device: Optional already-discovered BLEDevice (skips scanning)
        """
        self.address = address
        self.settings = settings or EslSettings()
        self.ble_device = ble_device
        self.state = SessionState.IDLE

        self._client: BleakClient | None = None
        self.vendor_service_uuid: str | None = None
        self.security_char: BleakGATTCharacteristic | None = None
        self.command_char: BleakGATTCharacteristic | None = None
        self.status_char: BleakGATTCharacteristic | None = None
        self._writable: list[BleakGATTCharacteristic] = []

    async def __aenter__(self) -> EslSession:
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    @property
    def is_connected(self) -> bool:
        return self._client is not None and self._client.is_connected

    async def open(self) -> None:
        """Discover, connect, select characteristics and unlock.

        Raises:
            DiscoveryTimeoutError: Peripheral not seen in the scan window
            BLEConnectionError: Connection or service discovery failed
            BLETimeoutError: Connection timed out
            SecurityHandshakeError: Unlock could not be performed
        """
        try:
            self.state = SessionState.DISCOVERING
            device = self.ble_device or await find_peripheral(
                self.address, timeout=self.settings.scan_timeout
            )

            self.state = SessionState.CONNECTING
            await self._connect(device)

            self.state = SessionState.DISCOVERING_SERVICES
            self._select_characteristics()

            self.state = SessionState.UNLOCKING
            await self._unlock()

            self.state = SessionState.READY
            _LOGGER.info("Session ready for %s", self.address)
        except BaseException:
            await self.close()
            raise

    async def _connect(self, device: BLEDevice) -> None:
        _LOGGER.debug(
            "Connecting to %s (max_attempts=%d)",
            self.address,
            self.settings.max_connect_attempts,
        )
        try:
            self._client = await establish_connection(
                client_class=BleakClientWithServiceCache,
                device=device,
                name=device.name or self.address,
                max_attempts=self.settings.max_connect_attempts,
                timeout=self.settings.connect_timeout,
            )
        except asyncio.TimeoutError as e:
            raise BLETimeoutError(
                f"Connection timeout after {self.settings.connect_timeout}s"
            ) from e
        except EslError:
            raise
        except Exception as e:
            raise BLEConnectionError(f"Failed to connect: {e}") from e

        _LOGGER.debug("Connected to %s", self.address)

    def _select_characteristics(self) -> None:
        """Find the vendor service and assign writable/status characteristics."""
        if self._client is None:
            raise BLEConnectionError("Not connected")

        service = find_vendor_service(list(self._client.services))
        self.vendor_service_uuid = service.uuid.lower()

        characteristics = list(service.characteristics)
        self._writable = [c for c in characteristics if is_writable(c)]
        self.status_char = next(
            (c for c in characteristics if is_status_characteristic(c)), None
        )

        _LOGGER.debug(
            "Vendor service %s: %d writable characteristics, status=%s",
            self.vendor_service_uuid,
            len(self._writable),
            self.status_char.uuid if self.status_char else None,
        )

    async def _unlock(self) -> None:
        """Answer the security challenge and choose the command characteristic.

        Raises:
            SecurityHandshakeError: If no characteristic yields a 16-byte challenge
        """
        if not self._writable:
            raise SecurityHandshakeError("No writable characteristics on vendor service")

        random: bytes | None = None
        for char in self._writable:
            if not is_readable(char):
                continue
            try:
                data = bytes(await self._client.read_gatt_char(char))
            except Exception as e:
                _LOGGER.debug("Probe read of %s failed: %s", char.uuid, e)
                continue
            if len(data) == CHALLENGE_SIZE:
                self.security_char = char
                random = data
                break

        if self.security_char is None or random is None:
            raise SecurityHandshakeError(
                "Could not find security characteristic (no 16-byte random read)"
            )

        _LOGGER.debug("Unlocking via %s", self.security_char.uuid)
        await self._write_to(self.security_char, encrypt_challenge(random), response=True)

        await asyncio.sleep(self.settings.unlock_settle_delay)

        self.command_char = next(
            (c for c in self._writable if c.uuid != self.security_char.uuid),
            self.security_char,
        )

    async def close(self) -> None:
        """Disconnect. Failures are logged and never raised."""
        self.state = SessionState.DISCONNECTING
        client, self._client = self._client, None
        if client is not None and client.is_connected:
            try:
                _LOGGER.debug("Disconnecting from %s", self.address)
                await client.disconnect()
            except Exception as e:
                _LOGGER.warning("Error during disconnect from %s: %s", self.address, e)
        self.state = SessionState.CLOSED

    async def _write_to(
            self,
            char: BleakGATTCharacteristic,
            data: bytes,
            response: bool,
    ) -> None:
        if not self.is_connected:
            raise BLEConnectionError("Not connected")
        try:
            await self._client.write_gatt_char(char, data, response=response)
        except Exception as e:
            raise CharacteristicWriteError(f"Write to {char.uuid} failed: {e}") from e

    async def write(self, data: bytes, response: bool | None = None) -> None:
        """Write to the command characteristic.

        Args:
            data: Command bytes
            response: Request a write acknowledgement. None prefers
                write-without-response when the characteristic supports it.

        Raises:
            CharacteristicWriteError: If the write fails
        """
        if self.command_char is None:
            raise BLEConnectionError("Session not unlocked")
        if response is None:
            response = "write-without-response" not in self.command_char.properties
        await self._write_to(self.command_char, data, response=response)

    async def read_status(self) -> StatusSnapshot:
        """Read and decode the status characteristic.

        Devices without a status characteristic always report idle.
        """
        if self.status_char is None:
            return IDLE_STATUS
        if not self.is_connected:
            raise BLEConnectionError("Not connected")
        try:
            data = await self._client.read_gatt_char(self.status_char)
        except Exception as e:
            raise BLEConnectionError(f"Status read failed: {e}") from e
        return parse_status(bytes(data))

    async def poll_status(
            self,
            timeout: float | None = None,
            interval: float | None = None,
    ) -> StatusSnapshot:
        """Poll status until idle or ``timeout``; best effort.

        Returns the last snapshot read. Read errors end polling and report idle.
        """
        timeout = self.settings.status_poll_timeout if timeout is None else timeout
        interval = self.settings.status_poll_interval if interval is None else interval

        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        status = IDLE_STATUS

        while True:
            try:
                status = await self.read_status()
            except EslError as e:
                _LOGGER.debug("Status poll of %s failed: %s", self.address, e)
                return IDLE_STATUS

            if status.errors:
                _LOGGER.warning(
                    "Device %s reports errors: %s", self.address, ", ".join(status.errors)
                )
            if not status.busy or loop.time() + interval > deadline:
                return status
            await asyncio.sleep(interval)

    async def clear(self) -> StatusSnapshot:
        """Clear the screen."""
        await self.write(build_clear_command())
        _LOGGER.debug("Clear sent to %s", self.address)
        return await self.poll_status()

    async def flash(self, params: RgbCommandParams) -> StatusSnapshot:
        """Flash the RGB LED."""
        await self.write(build_rgb_command(params))
        _LOGGER.debug(
            "Flash #%02x%02x%02x sent to %s",
            params.red,
            params.green,
            params.blue,
            self.address,
        )
        return await self.poll_status()

    async def write_frame(self, frame: bytes) -> StatusSnapshot:
        """Send a packed frame with chunk writes followed by one commit.

        Raises:
            FrameTooLargeError: If the frame cannot be addressed by the protocol
            CharacteristicWriteError: If any write fails
        """
        chunk_size = self.settings.chunk_size
        total = len(frame)
        chunks = 0

        for offset, chunk in iter_frame_chunks(frame, chunk_size):
            await self.write(build_a500_block(offset, chunk, chunk_size), response=True)
            chunks += 1
            if self.settings.inter_chunk_delay > 0:
                await asyncio.sleep(self.settings.inter_chunk_delay)

        await self.write(build_a501_commit(total), response=True)

        _LOGGER.debug(
            "Sent %d bytes to %s in %d chunks of up to %d bytes",
            total,
            self.address,
            chunks,
            chunk_size,
        )
        return await self.poll_status()
