"""BLE protocol implementation."""

from .commands import (
    CHUNK_HEADER_SIZE,
    CHUNK_SIZE,
    COMMAND_MARKER,
    CommandCode,
    build_a500_block,
    build_a501_commit,
    build_clear_command,
    build_rgb_command,
    clamp_byte,
    iter_frame_chunks,
)
from .responses import (
    IDLE_STATUS,
    STATUS_ERROR_FLAGS,
    StatusSnapshot,
    decode_status_errors,
    parse_status,
)
from .security import CHALLENGE_SIZE, SECURITY_KEY, encrypt_challenge

__all__ = [
    "CommandCode",
    "COMMAND_MARKER",
    "CHUNK_SIZE",
    "CHUNK_HEADER_SIZE",
    "build_clear_command",
    "build_rgb_command",
    "build_a500_block",
    "build_a501_commit",
    "clamp_byte",
    "iter_frame_chunks",
    "StatusSnapshot",
    "IDLE_STATUS",
    "STATUS_ERROR_FLAGS",
    "decode_status_errors",
    "parse_status",
    "SECURITY_KEY",
    "CHALLENGE_SIZE",
    "encrypt_challenge",
]
