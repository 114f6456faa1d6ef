"""Tests for image decoding and preview rendering."""

import io

import pytest
from PIL import Image

from esldisplay.encoding.images import load_image, render_preview
from esldisplay.exceptions import ImageEncodingError


def _png_bytes(size=(10, 6), color=(255, 0, 0)) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", size, color).save(buffer, format="PNG")
    return buffer.getvalue()


class TestLoadImage:
    """Test decoding uploaded bytes."""

    def test_png_is_converted_to_rgba(self):
        image = load_image(_png_bytes())
        assert image.mode == "RGBA"
        assert image.size == (10, 6)

    def test_empty_payload(self):
        with pytest.raises(ImageEncodingError, match="empty"):
            load_image(b"")

    def test_garbage_payload(self):
        with pytest.raises(ImageEncodingError, match="Failed to decode"):
            load_image(b"definitely not an image")


class TestRenderPreview:
    """Test the JPEG preview of the quantized image."""

    def test_preview_is_jpeg_of_declared_size(self):
        image = load_image(_png_bytes(size=(50, 40)))

        preview = render_preview(image, 400, 300)

        assert preview.mime_type == "image/jpeg"
        assert (preview.width, preview.height) == (400, 300)
        with Image.open(io.BytesIO(preview.data)) as decoded:
            assert decoded.format == "JPEG"
            assert decoded.size == (400, 300)

    def test_preview_is_not_rotated(self):
        image = load_image(_png_bytes(size=(296, 128)))

        preview = render_preview(image, 296, 128)

        with Image.open(io.BytesIO(preview.data)) as decoded:
            assert decoded.size == (296, 128)

    def test_preview_uses_palette_colours(self):
        image = load_image(_png_bytes(size=(8, 8), color=(200, 30, 30)))

        preview = render_preview(image, 16, 16)

        with Image.open(io.BytesIO(preview.data)) as decoded:
            r, g, b = decoded.convert("RGB").getpixel((8, 8))
        # Quantized to pure red, allowing for JPEG loss
        assert r > 230 and g < 30 and b < 30

    def test_invalid_size(self):
        image = load_image(_png_bytes())
        with pytest.raises(ImageEncodingError):
            render_preview(image, 0, 10)
