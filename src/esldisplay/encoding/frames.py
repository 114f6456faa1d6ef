"""Packed 2-bit-per-pixel frame encoding.

Frame layout: rows are ``ceil(width / 4)`` bytes, four pixels per byte, the
leftmost pixel in the two most significant bits. Unused bits at the end of a
row stay 0.
"""

from __future__ import annotations

import logging

import numpy as np
from PIL import Image

from ..exceptions import ImageEncodingError
from ..models.capabilities import NATIVE_NARROW_HEIGHT, NATIVE_NARROW_WIDTH
from ..models.enums import PaletteColor

_LOGGER = logging.getLogger(__name__)

PIXELS_PER_BYTE = 4

# Quantization palette; declaration order breaks distance ties.
PALETTE: tuple[tuple[PaletteColor, tuple[int, int, int]], ...] = (
    (PaletteColor.WHITE, (255, 255, 255)),
    (PaletteColor.BLACK, (0, 0, 0)),
    (PaletteColor.RED, (255, 0, 0)),
    (PaletteColor.YELLOW, (255, 220, 0)),
)

_PALETTE_RGB = np.array([rgb for _, rgb in PALETTE], dtype=np.int32)
_PALETTE_CODES = np.array([code for code, _ in PALETTE], dtype=np.uint8)

# Alpha below this is rendered as white
ALPHA_THRESHOLD = 128

# Requesting the landscape size of the narrow panel renders onto the
# portrait native frame with axes swapped.
ROTATED_SIZE = (NATIVE_NARROW_HEIGHT, NATIVE_NARROW_WIDTH)


def frame_size(width: int, height: int) -> int:
    """Number of bytes in a packed frame of ``width`` x ``height``."""
    return -(-width // PIXELS_PER_BYTE) * height


def needs_rotation(width: int, height: int) -> bool:
    return (width, height) == ROTATED_SIZE


def sample_indices(dst: int, src: int) -> np.ndarray:
    """Nearest source index for each destination index.

    ``floor((d + 0.5) * src / dst)`` clamped to ``[0, src - 1]``.
    """
    positions = np.floor((np.arange(dst, dtype=np.float64) + 0.5) * src / dst)
    return np.clip(positions, 0, src - 1).astype(np.intp)


def quantize_pixel(r: int, g: int, b: int, a: int = 255) -> int:
    """Map one RGBA pixel to its palette colour code."""
    if a < ALPHA_THRESHOLD:
        return int(PaletteColor.WHITE)

    best_code = PALETTE[0][0]
    best_dist: int | None = None
    for code, (pr, pg, pb) in PALETTE:
        dist = (r - pr) ** 2 + (g - pg) ** 2 + (b - pb) ** 2
        if best_dist is None or dist < best_dist:
            best_dist = dist
            best_code = code
    return int(best_code)


def quantize(pixels: np.ndarray) -> np.ndarray:
    """Quantize an ``(H, W, 4)`` RGBA array to an ``(H, W)`` array of colour codes."""
    rgb = pixels[..., :3].astype(np.int32)
    diff = rgb[:, :, None, :] - _PALETTE_RGB[None, None, :, :]
    distances = np.einsum("hwpc,hwpc->hwp", diff, diff)
    # argmin returns the first minimum, i.e. palette order on ties
    codes = _PALETTE_CODES[np.argmin(distances, axis=-1)]
    codes[pixels[..., 3] < ALPHA_THRESHOLD] = PaletteColor.WHITE
    return codes


def pack_codes(codes: np.ndarray) -> bytes:
    """Pack an ``(H, W)`` array of 2-bit codes into frame bytes."""
    height, width = codes.shape
    bytes_per_row = -(-width // PIXELS_PER_BYTE)
    padded = np.zeros((height, bytes_per_row * PIXELS_PER_BYTE), dtype=np.uint8)
    padded[:, :width] = codes & 0x03

    groups = padded.reshape(height, bytes_per_row, PIXELS_PER_BYTE)
    packed = (
        (groups[..., 0] << 6)
        | (groups[..., 1] << 4)
        | (groups[..., 2] << 2)
        | groups[..., 3]
    )
    return packed.astype(np.uint8).tobytes()


def sample_rgba(pixels: np.ndarray, width: int, height: int) -> np.ndarray:
    """Nearest-neighbour resample of an ``(H, W, 4)`` array to ``width`` x ``height``.

    For the rotated narrow panel size the result has the native portrait shape
    ``(296, 128, 4)``.
    """
    src_h, src_w = pixels.shape[:2]

    if needs_rotation(width, height):
        frame_w, frame_h = NATIVE_NARROW_WIDTH, NATIVE_NARROW_HEIGHT
        # Frame row fy walks source columns, frame column fx walks source rows
        src_x = sample_indices(frame_h, src_w)
        src_y = sample_indices(frame_w, src_h)
        return pixels[src_y[None, :], src_x[:, None]]

    src_y = sample_indices(height, src_h)
    src_x = sample_indices(width, src_w)
    return pixels[src_y[:, None], src_x[None, :]]


def encode_pixels(pixels: np.ndarray, width: int, height: int) -> bytes:
    """Encode an ``(H, W, 4)`` RGBA array into a frame for a ``width`` x ``height`` display."""
    if width <= 0 or height <= 0:
        raise ImageEncodingError(f"Invalid target size {width}x{height}")
    if pixels.ndim != 3 or pixels.shape[2] != 4:
        raise ImageEncodingError(f"Expected RGBA pixel array, got shape {pixels.shape}")
    if pixels.shape[0] == 0 or pixels.shape[1] == 0:
        raise ImageEncodingError("Source image is empty")

    sampled = sample_rgba(pixels, width, height)
    frame = pack_codes(quantize(sampled))

    _LOGGER.debug(
        "Encoded %dx%d source to %dx%d frame (%d bytes, rotated=%s)",
        pixels.shape[1],
        pixels.shape[0],
        width,
        height,
        len(frame),
        needs_rotation(width, height),
    )
    return frame


def encode_rgba(
        data: bytes,
        src_width: int,
        src_height: int,
        width: int,
        height: int,
) -> bytes:
    """Encode a raw RGBA raster (row-major, 4 bytes per pixel).

    Args:
        data: RGBA bytes of the source image
        src_width: Source width in pixels
        src_height: Source height in pixels
        width: Target display width
        height: Target display height

    Returns:
        Frame of ``frame_size(width, height)`` bytes
    """
    expected = src_width * src_height * 4
    if len(data) < expected:
        raise ImageEncodingError(
            f"RGBA buffer too short: {len(data)} bytes for {src_width}x{src_height}"
        )
    pixels = np.frombuffer(bytes(data[:expected]), dtype=np.uint8).reshape(src_height, src_width, 4)
    return encode_pixels(pixels, width, height)


def encode_frame(image: Image.Image, width: int, height: int) -> bytes:
    """Encode a PIL image into a frame for a ``width`` x ``height`` display."""
    if image.mode != "RGBA":
        image = image.convert("RGBA")
    return encode_pixels(np.array(image, dtype=np.uint8), width, height)
