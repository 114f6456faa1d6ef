"""Peripheral discovery for ESL devices."""

from __future__ import annotations

import asyncio
import logging
import re
from typing import TYPE_CHECKING

from bleak import BleakScanner
from bleak.exc import BleakBluetoothNotAvailableError, BleakError

from .exceptions import AdapterUnavailableError, BLEConnectionError, DiscoveryTimeoutError

if TYPE_CHECKING:
    from bleak.backends.device import BLEDevice
    from bleak.backends.scanner import AdvertisementData

_LOGGER = logging.getLogger(__name__)

ADVERTISED_NAME_PREFIX = "ESL_"
DEFAULT_SCAN_TIMEOUT = 30.0
# Delay between attempts while the adapter reports it is powered off
POWER_ON_POLL_INTERVAL = 0.5

_NON_HEX = re.compile(r"[^0-9a-f]")


def normalize_address(address: str) -> str:
    return address.strip().lower()


def advertised_name_for(address: str) -> str:
    """Derive the name an ESL advertises from its address.

    ``AA:BB:CC:DD:EE:FF`` -> ``ESL_DDEEFF``.
    """
    compact = _NON_HEX.sub("", normalize_address(address))
    return f"{ADVERTISED_NAME_PREFIX}{compact[-6:].upper()}"


def matches_target(
        target: str,
        device: BLEDevice,
        advertisement: AdvertisementData | None = None,
) -> bool:
    """Check whether a scanned device is the one addressed by ``target``.

    Matches on address (or platform id on backends that hide MAC addresses)
    or on the advertised name derived from the address.
    """
    normalized = normalize_address(target)
    if normalize_address(device.address or "") == normalized:
        return True

    expected_name = advertised_name_for(normalized).lower()
    names = [device.name]
    if advertisement is not None:
        names.append(advertisement.local_name)
    return any(name and name.strip().lower() == expected_name for name in names)


def _is_powered_off(err: BleakBluetoothNotAvailableError) -> bool:
    reason = getattr(err, "reason", None)
    return getattr(reason, "name", "") == "POWERED_OFF"


async def _start_when_powered(scanner: BleakScanner, timeout: float) -> None:
    """Start scanning, waiting for the adapter to be powered on.

    Raises:
        AdapterUnavailableError: Bluetooth missing/denied, or still off after ``timeout``
    """
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout

    while True:
        try:
            await scanner.start()
            return
        except BleakBluetoothNotAvailableError as e:
            if not _is_powered_off(e):
                raise AdapterUnavailableError(f"Bluetooth not available: {e}") from e
            if loop.time() >= deadline:
                raise AdapterUnavailableError(
                    f"Bluetooth adapter still powered off after {timeout}s"
                ) from e
            _LOGGER.debug("Bluetooth adapter powered off, waiting")
            await asyncio.sleep(POWER_ON_POLL_INTERVAL)


async def find_peripheral(address: str, timeout: float = DEFAULT_SCAN_TIMEOUT) -> BLEDevice:
    """Scan until the peripheral for ``address`` is seen.

    Scanning stops as soon as the device matches or the timeout elapses.

    Args:
        address: BLE address or platform id of the peripheral
        timeout: Scan window in seconds (default: 30)

    Returns:
        The matching BLEDevice

    Raises:
        DiscoveryTimeoutError: If no matching peripheral was seen in time
        AdapterUnavailableError: If the adapter cannot be used
        BLEConnectionError: If scanning fails
    """
    target = normalize_address(address)
    if not target:
        raise ValueError("Empty peripheral id/address")

    loop = asyncio.get_running_loop()
    found: asyncio.Future[BLEDevice] = loop.create_future()

    def _on_detection(device: BLEDevice, advertisement: AdvertisementData) -> None:
        if not found.done() and matches_target(target, device, advertisement):
            found.set_result(device)

    scanner = BleakScanner(detection_callback=_on_detection)

    _LOGGER.debug("Scanning for %s (timeout=%.1fs)", target, timeout)
    try:
        await _start_when_powered(scanner, timeout)
    except BleakError as e:
        raise BLEConnectionError(f"Failed to start scanning: {e}") from e

    try:
        device = await asyncio.wait_for(found, timeout=timeout)
    except asyncio.TimeoutError as e:
        raise DiscoveryTimeoutError(
            f"Peripheral not found within {timeout}s: {target}"
        ) from e
    finally:
        try:
            await scanner.stop()
        except BleakError as e:
            _LOGGER.debug("Error stopping scanner: %s", e)

    _LOGGER.debug("Found %s (%s)", device.address, device.name)
    return device


async def discover_devices(timeout: float = 10.0) -> dict[str, BLEDevice]:
    """Scan for advertising ESL peripherals.

    Returns:
        Mapping of advertised name -> BLEDevice for devices whose name starts
        with the ESL prefix
    """
    devices: dict[str, BLEDevice] = {}
    for device, advertisement in (
        await BleakScanner.discover(timeout=timeout, return_adv=True)
    ).values():
        name = advertisement.local_name or device.name or ""
        if name.upper().startswith(ADVERTISED_NAME_PREFIX):
            devices[name] = device
    _LOGGER.debug("Discovered %d ESL devices", len(devices))
    return devices
