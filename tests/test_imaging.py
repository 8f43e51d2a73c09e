"""Tests for pre-upload image resizing."""

from __future__ import annotations

from io import BytesIO

import pytest
from PIL import Image

from gallerysync.imaging import resize_if_needed


def _image_bytes(size: tuple[int, int], image_format: str = "JPEG", mode: str = "RGB") -> bytes:
    buffer = BytesIO()
    Image.new(mode, size, color=(200, 100, 50, 255)[: len(mode)]).save(buffer, format=image_format)
    return buffer.getvalue()


def _size(data: bytes) -> tuple[int, int]:
    with Image.open(BytesIO(data)) as image:
        return image.size


def test_large_image_is_scaled_to_fit():
    resized = resize_if_needed(_image_bytes((2000, 1000)), 1024)

    assert _size(resized) == (1024, 512)


def test_portrait_png_keeps_format_and_aspect():
    resized = resize_if_needed(_image_bytes((600, 1200), "PNG", "RGBA"), 300)

    with Image.open(BytesIO(resized)) as image:
        assert image.format == "PNG"
        assert image.size == (150, 300)


@pytest.mark.parametrize("max_size", [0, -1, 4000])
def test_small_or_disabled_returns_original_bytes(max_size):
    original = _image_bytes((800, 600))

    assert resize_if_needed(original, max_size) is original


def test_unreadable_data_is_returned_unchanged():
    assert resize_if_needed(b"not an image", 100) == b"not an image"
