"""Down-scaling of images before upload."""

from __future__ import annotations

import logging
from io import BytesIO

from PIL import Image, UnidentifiedImageError

logger = logging.getLogger(__name__)


def resize_if_needed(data: bytes, max_size: int) -> bytes:
    """Shrink an image so its longest edge is at most `max_size`, keeping the aspect ratio.

    Returns the input unchanged when `max_size` is not positive, when the image already fits, or
    when Pillow cannot read it.
    """

    if not max_size or max_size <= 0:
        return data

    try:
        with Image.open(BytesIO(data)) as image:
            width, height = image.size
            if not width or not height or (width <= max_size and height <= max_size):
                return data

            image_format = image.format or "JPEG"
            resized = image.copy()
            resized.thumbnail((max_size, max_size), Image.Resampling.LANCZOS)
            if image_format.upper() in {"JPEG", "JPG"} and resized.mode not in {"RGB", "L"}:
                resized = resized.convert("RGB")

            output = BytesIO()
            save_kwargs = {"quality": 90} if image_format.upper() in {"JPEG", "JPG", "WEBP"} else {}
            resized.save(output, format=image_format, **save_kwargs)
    except (UnidentifiedImageError, OSError) as exc:
        logger.warning("Could not resize image (%s); uploading original bytes", exc)
        return data

    logger.debug("Resized image from %sx%s to fit %spx", width, height, max_size)
    return output.getvalue()
