"""BLE protocol commands for ESL devices."""

from __future__ import annotations

from collections.abc import Iterator
from enum import IntEnum
from typing import TYPE_CHECKING

from ..exceptions import FrameTooLargeError

if TYPE_CHECKING:
    from ..models.rgb_flash import RgbCommandParams


class CommandCode(IntEnum):
    """Opcodes (first byte) of the vendor command messages."""

    # Image upload commands (non-compressed chunked mode)
    CHUNK_WRITE = 0x00    # "A500": write frame bytes at an offset
    CHUNK_COMMIT = 0x01   # "A501": commit frame and refresh display

    CLEAR = 0x04          # Clear the screen
    RGB_FLASH = 0x08      # Flash the RGB LED


# Second byte of every command message
COMMAND_MARKER = 0xA5

# Chunking constants
CHUNK_SIZE = 200  # Default data bytes per chunk write
CHUNK_HEADER_SIZE = 6  # [opcode][marker][offset:4]

_U32_MAX = 0xFFFFFFFF


def _header(code: CommandCode) -> bytes:
    return bytes([code, COMMAND_MARKER])


def clamp_byte(value: int) -> int:
    """Clamp an integer colour channel into 0-255."""
    return max(0, min(255, int(value)))


def build_clear_command() -> bytes:
    """Build command to clear the display.

    Returns:
        Command bytes: 0x04 0xA5 (2 bytes)
    """
    return _header(CommandCode.CLEAR)


def build_rgb_command(params: RgbCommandParams) -> bytes:
    """Build command to flash the RGB LED.

    Args:
        params: Colour and timing of the flash pattern

    Returns:
        Command bytes: 0x08 0xA5 + payload (13 bytes)

    Format:
        [cmd:1][marker:1][r:1][g:1][b:1][on:2][off:2][work:4]
        - on/off: LED on and off durations in ms (little-endian uint16)
        - work: total flashing time in ms (little-endian uint32)
    """
    return (
        _header(CommandCode.RGB_FLASH)
        + bytes([clamp_byte(params.red), clamp_byte(params.green), clamp_byte(params.blue)])
        + (int(params.on_ms) & 0xFFFF).to_bytes(2, byteorder="little")
        + (int(params.off_ms) & 0xFFFF).to_bytes(2, byteorder="little")
        + (int(params.work_ms) & _U32_MAX).to_bytes(4, byteorder="little")
    )


def build_a500_block(offset: int, chunk: bytes, chunk_size: int = CHUNK_SIZE) -> bytes:
    """Build a chunk-write command carrying part of a frame.

    Args:
        offset: Byte offset of ``chunk`` inside the frame
        chunk: Frame bytes (max ``chunk_size``)
        chunk_size: Configured maximum chunk length

    Returns:
        Command bytes: 0x00 0xA5 + offset (4 bytes) + chunk

    Raises:
        ValueError: If chunk exceeds chunk_size
        FrameTooLargeError: If offset cannot be encoded as uint32
    """
    if len(chunk) > chunk_size:
        raise ValueError(f"Chunk size {len(chunk)} exceeds maximum {chunk_size}")
    if not 0 <= offset <= _U32_MAX:
        raise FrameTooLargeError(f"Chunk offset {offset} does not fit in 32 bits")

    return _header(CommandCode.CHUNK_WRITE) + offset.to_bytes(4, byteorder="little") + bytes(chunk)


def build_a501_commit(total_size: int) -> bytes:
    """Build the commit command that ends a chunked frame transfer.

    Args:
        total_size: Total number of frame bytes sent

    Returns:
        Command bytes: 0x01 0xA5 + size (4 bytes, little-endian)
    """
    if not 0 <= total_size <= _U32_MAX:
        raise FrameTooLargeError(f"Frame size {total_size} does not fit in 32 bits")

    return _header(CommandCode.CHUNK_COMMIT) + total_size.to_bytes(4, byteorder="little")


def iter_frame_chunks(frame: bytes, chunk_size: int = CHUNK_SIZE) -> Iterator[tuple[int, bytes]]:
    """Yield ``(offset, chunk)`` slices covering ``frame`` in order."""
    if chunk_size <= 0:
        raise ValueError(f"chunk_size must be positive, got {chunk_size}")
    if len(frame) > _U32_MAX:
        raise FrameTooLargeError(f"Frame of {len(frame)} bytes exceeds protocol limit")

    for offset in range(0, len(frame), chunk_size):
        yield offset, frame[offset:offset + chunk_size]
