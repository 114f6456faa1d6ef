from __future__ import annotations

from enum import Enum, IntEnum


class PaletteColor(IntEnum):
    """2-bit colour codes used in the packed frame."""
    BLACK = 0
    WHITE = 1
    YELLOW = 2
    RED = 3


class CommandKind(str, Enum):
    """Commands accepted by the device command queue."""
    SET_IMAGE = "setImage"
    CLEAR_IMAGE = "clearImage"
    FLASH = "flash"


class CommandStatus(str, Enum):
    """Lifecycle of a queued command.

    pending -> processing -> completed | failed
    """
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (CommandStatus.COMPLETED, CommandStatus.FAILED)


class SessionState(Enum):
    """Transport session states."""
    IDLE = "idle"
    DISCOVERING = "discovering"
    CONNECTING = "connecting"
    DISCOVERING_SERVICES = "discovering_services"
    UNLOCKING = "unlocking"
    READY = "ready"
    DISCONNECTING = "disconnecting"
    CLOSED = "closed"
