import struct

import pytest

from esldisplay.exceptions import FrameTooLargeError
from esldisplay.models.rgb_flash import RgbCommandParams
from esldisplay.protocol.commands import (
    CHUNK_SIZE,
    CommandCode,
    build_a500_block,
    build_a501_commit,
    build_clear_command,
    build_rgb_command,
    iter_frame_chunks,
)


class TestCommandBuilders:
    """Test command builder functions against the vendor byte layouts."""

    def test_build_clear_command(self):
        """Clear is the bare two-byte header."""
        cmd = build_clear_command()
        assert cmd == b'\x04\xa5'

    def test_build_rgb_command_layout(self):
        """RGB flash: header, colour bytes, then LE on/off/work durations."""
        params = RgbCommandParams(red=0x12, green=0x34, blue=0x56, on_ms=250, off_ms=750, work_ms=70000)
        cmd = build_rgb_command(params)

        assert len(cmd) == 13
        assert cmd[0] == 0x08
        assert cmd[1] == 0xA5
        assert cmd[2:5] == b'\x12\x34\x56'
        on_ms, off_ms, work_ms = struct.unpack("<HHI", cmd[5:])
        assert (on_ms, off_ms, work_ms) == (250, 750, 70000)

    def test_build_rgb_command_clamps_colour(self):
        """Out-of-range channels are clamped to a byte."""
        params = RgbCommandParams(red=300, green=-5, blue=128)
        cmd = build_rgb_command(params)
        assert cmd[2:5] == bytes([255, 0, 128])

    def test_build_a500_block(self):
        """Chunk write embeds the offset little-endian before the data."""
        chunk = b'\xAA' * 10
        cmd = build_a500_block(0x01020304, chunk)

        assert cmd[:2] == b'\x00\xa5'
        assert cmd[2:6] == b'\x04\x03\x02\x01'
        assert cmd[6:] == chunk

    def test_build_a500_block_max_size(self):
        cmd = build_a500_block(0, b'A' * CHUNK_SIZE)
        assert len(cmd) == CHUNK_SIZE + 6

    def test_build_a500_block_too_large(self):
        with pytest.raises(ValueError, match="exceeds maximum"):
            build_a500_block(0, b'A' * (CHUNK_SIZE + 1))

    def test_build_a500_block_offset_overflow(self):
        with pytest.raises(FrameTooLargeError):
            build_a500_block(2 ** 32, b'A')

    def test_build_a501_commit(self):
        cmd = build_a501_commit(30000)
        assert cmd == b'\x01\xa5' + (30000).to_bytes(4, 'little')

    def test_build_a501_commit_overflow(self):
        with pytest.raises(FrameTooLargeError):
            build_a501_commit(2 ** 32)


class TestChunkedTransfer:
    """Test slicing a full frame into chunk-write commands."""

    def test_400x300_frame_needs_150_chunks_and_one_commit(self):
        frame = bytes(i % 256 for i in range(30000))

        commands = [build_a500_block(offset, chunk) for offset, chunk in iter_frame_chunks(frame, 200)]
        commands.append(build_a501_commit(len(frame)))

        assert len(commands) == 151
        for index, cmd in enumerate(commands[:-1]):
            assert cmd[:2] == b'\x00\xa5'
            offset = struct.unpack("<I", cmd[2:6])[0]
            assert offset == index * 200
            assert cmd[6:] == frame[offset:offset + 200]

        commit = commands[-1]
        assert commit[:2] == b'\x01\xa5'
        assert struct.unpack("<I", commit[2:6])[0] == 30000

    def test_last_chunk_is_short(self):
        chunks = list(iter_frame_chunks(b'\x00' * 450, 200))
        assert [(offset, len(chunk)) for offset, chunk in chunks] == [(0, 200), (200, 200), (400, 50)]

    def test_empty_frame_yields_nothing(self):
        assert list(iter_frame_chunks(b'', 200)) == []

    def test_invalid_chunk_size(self):
        with pytest.raises(ValueError):
            list(iter_frame_chunks(b'\x00', 0))


class TestCommandCode:
    """Test CommandCode enum values."""

    def test_command_code_values(self):
        assert CommandCode.CHUNK_WRITE == 0x00
        assert CommandCode.CHUNK_COMMIT == 0x01
        assert CommandCode.CLEAR == 0x04
        assert CommandCode.RGB_FLASH == 0x08
