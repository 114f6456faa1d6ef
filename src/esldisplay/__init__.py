"""ESL BLE Protocol Package.

  Pure Python package for driving BLE e-ink shelf labels.
  """

from .command_queue import CommandHandle, DeviceCommandQueue
from .device import EslDevice, prepare_image
from .discovery import advertised_name_for, discover_devices, find_peripheral
from .encoding import Preview, encode_frame, encode_rgba, frame_size, load_image, render_preview
from .exceptions import (
    AdapterUnavailableError,
    BLEConnectionError,
    BLETimeoutError,
    CharacteristicWriteError,
    DiscoveryTimeoutError,
    EslError,
    FrameTooLargeError,
    ImageEncodingError,
    NoVendorServiceError,
    ProtocolError,
    SecurityHandshakeError,
    TaskCancelledError,
    TaskTimeoutError,
    UnknownDeviceError,
    UnsupportedCommandError,
)
from .models import (
    CommandKind,
    CommandRecord,
    CommandStatus,
    DeviceShadow,
    DeviceTarget,
    EslSettings,
    PaletteColor,
    RgbCommandParams,
    SessionState,
)
from .protocol import StatusSnapshot, parse_status
from .service import EslCommandService
from .transport import EslSession

__version__ = "0.1.0"

__all__ = [
    # Main API
    "EslCommandService",
    "DeviceCommandQueue",
    "CommandHandle",
    "EslDevice",
    "EslSession",
    "discover_devices",
    "find_peripheral",
    "advertised_name_for",
    "prepare_image",
    # Encoding
    "encode_frame",
    "encode_rgba",
    "frame_size",
    "load_image",
    "render_preview",
    "Preview",
    # Exceptions
    "EslError",
    "BLEConnectionError",
    "DiscoveryTimeoutError",
    "AdapterUnavailableError",
    "NoVendorServiceError",
    "BLETimeoutError",
    "ProtocolError",
    "SecurityHandshakeError",
    "CharacteristicWriteError",
    "FrameTooLargeError",
    "ImageEncodingError",
    "UnsupportedCommandError",
    "UnknownDeviceError",
    "TaskTimeoutError",
    "TaskCancelledError",
    # Models
    "CommandKind",
    "CommandRecord",
    "CommandStatus",
    "DeviceShadow",
    "DeviceTarget",
    "EslSettings",
    "PaletteColor",
    "RgbCommandParams",
    "SessionState",
    "StatusSnapshot",
    "parse_status",
]
