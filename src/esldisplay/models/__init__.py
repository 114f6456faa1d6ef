"""Data models for ESL devices."""

from .capabilities import DeviceTarget
from .command import CommandRecord
from .enums import CommandKind, CommandStatus, PaletteColor, SessionState
from .rgb_flash import RgbCommandParams
from .settings import EslSettings
from .shadow import DeviceShadow

__all__ = [
    "CommandKind",
    "CommandRecord",
    "CommandStatus",
    "DeviceShadow",
    "DeviceTarget",
    "EslSettings",
    "PaletteColor",
    "RgbCommandParams",
    "SessionState",
]
