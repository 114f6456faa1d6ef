"""Exceptions raised by the ESL BLE package."""

from __future__ import annotations


class EslError(Exception):
    """Base exception for all ESL display errors."""


class BLEConnectionError(EslError):
    """Peripheral could not be reached or connected."""


class DiscoveryTimeoutError(BLEConnectionError):
    """No matching peripheral was seen within the scan window."""


class AdapterUnavailableError(BLEConnectionError):
    """Bluetooth adapter is missing, unsupported or access was denied."""


class NoVendorServiceError(BLEConnectionError):
    """Peripheral does not expose the vendor ESL service."""


class BLETimeoutError(EslError):
    """A BLE operation did not complete in time."""


class ProtocolError(EslError):
    """Wire protocol violation or failed exchange with the peripheral."""


class SecurityHandshakeError(ProtocolError):
    """Security characteristic missing or unlock challenge invalid."""


class CharacteristicWriteError(ProtocolError):
    """Writing to a GATT characteristic failed."""


class FrameTooLargeError(ProtocolError):
    """Frame cannot be addressed by the chunked transfer protocol."""


class ImageEncodingError(EslError):
    """Source image could not be decoded or encoded."""


class UnsupportedCommandError(EslError):
    """Command kind is not one the core knows how to execute."""


class UnknownDeviceError(EslError):
    """Device identifier could not be resolved to a peripheral."""


class TaskTimeoutError(EslError):
    """A queued command exceeded its hard timeout."""


class TaskCancelledError(EslError):
    """A queued command was cancelled before it finished."""
