"""Image encoding and processing."""

from .frames import (
    PALETTE,
    encode_frame,
    encode_pixels,
    encode_rgba,
    frame_size,
    needs_rotation,
    pack_codes,
    quantize,
    quantize_pixel,
)
from .images import Preview, load_image, render_preview

__all__ = [
    "PALETTE",
    "encode_frame",
    "encode_pixels",
    "encode_rgba",
    "frame_size",
    "needs_rotation",
    "pack_codes",
    "quantize",
    "quantize_pixel",
    "Preview",
    "load_image",
    "render_preview",
]
