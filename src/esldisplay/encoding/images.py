"""Image decoding and preview rendering."""

from __future__ import annotations

import io
import logging
from dataclasses import dataclass

import numpy as np
from PIL import Image, UnidentifiedImageError

from ..exceptions import ImageEncodingError
from .frames import PALETTE, quantize, sample_indices

_LOGGER = logging.getLogger(__name__)

PREVIEW_MIME_TYPE = "image/jpeg"
PREVIEW_QUALITY = 85

# Lookup from 2-bit colour code to display RGB
_CODE_TO_RGB = np.zeros((4, 3), dtype=np.uint8)
for _code, _rgb in PALETTE:
    _CODE_TO_RGB[_code] = _rgb


@dataclass(frozen=True)
class Preview:
    """Rendered approximation of what the panel will show."""

    data: bytes
    width: int
    height: int
    mime_type: str = PREVIEW_MIME_TYPE


def load_image(raw: bytes) -> Image.Image:
    """Decode uploaded image bytes (any format Pillow reads) to RGBA.

    Raises:
        ImageEncodingError: If the bytes are not a decodable image
    """
    if not raw:
        raise ImageEncodingError("Image payload is empty")
    try:
        with Image.open(io.BytesIO(raw)) as image:
            image.load()
            return image.convert("RGBA")
    except (UnidentifiedImageError, OSError) as e:
        raise ImageEncodingError(f"Failed to decode image: {e}") from e


def render_preview(image: Image.Image, width: int, height: int) -> Preview:
    """Render the palette-quantized image as an RGB JPEG of ``width`` x ``height``.

    Uses the same nearest-pixel sampling and palette as the frame encoder, but
    never rotates: the preview shows the image as the user sees the panel.
    """
    if width <= 0 or height <= 0:
        raise ImageEncodingError(f"Invalid preview size {width}x{height}")
    if image.mode != "RGBA":
        image = image.convert("RGBA")

    pixels = np.array(image, dtype=np.uint8)
    src_y = sample_indices(height, pixels.shape[0])
    src_x = sample_indices(width, pixels.shape[1])
    sampled = pixels[src_y[:, None], src_x[None, :]]

    rgb = _CODE_TO_RGB[quantize(sampled)]

    buffer = io.BytesIO()
    Image.fromarray(rgb).save(buffer, format="JPEG", quality=PREVIEW_QUALITY)
    data = buffer.getvalue()

    _LOGGER.debug("Rendered %dx%d preview (%d bytes)", width, height, len(data))
    return Preview(data=data, width=width, height=height)
