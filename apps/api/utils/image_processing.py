"""Image preparation for uploads: crop, downscale and JPEG compression."""
from __future__ import annotations

import logging
from io import BytesIO
from typing import Optional, Sequence

from PIL import Image, ImageOps

logger = logging.getLogger(__name__)

MIN_JPEG_QUALITY = 40


def parse_crop_box(values: Optional[dict]) -> Optional[tuple]:
    """
    Turn ``{'x':..,'y':..,'width':..,'height':..}`` (pixels, as sent by the
    cropper widget) into a Pillow box. Returns None when no crop was given.
    """
    if not values:
        return None
    from apps.api.utils.validators import ValidationError

    try:
        x = int(float(values.get('x', 0)))
        y = int(float(values.get('y', 0)))
        width = int(float(values['width']))
        height = int(float(values['height']))
    except (KeyError, TypeError, ValueError):
        raise ValidationError('crop', 'Crop must have numeric x, y, width and height')
    if width <= 0 or height <= 0:
        raise ValidationError('crop', 'Crop width and height must be positive')
    return (max(x, 0), max(y, 0), x + width, y + height)


def crop_image(img: Image.Image, box: Optional[Sequence[int]] = None, square: bool = False) -> Image.Image:
    """Crop to ``box`` (clamped to the image), or to a centered square."""
    if box:
        left, top, right, bottom = box
        right = min(right, img.width)
        bottom = min(bottom, img.height)
        if right > left and bottom > top:
            return img.crop((left, top, right, bottom))
        return img
    if square:
        side = min(img.size)
        left = (img.width - side) // 2
        top = (img.height - side) // 2
        return img.crop((left, top, left + side, top + side))
    return img


def compress_image(
    data: bytes,
    max_dimension: int = 1024,
    max_size_kb: int = 500,
    crop_box: Optional[Sequence[int]] = None,
    square: bool = False,
) -> bytes:
    """
    Re-encode an uploaded image as JPEG.

    The image is rotated per its EXIF orientation, optionally cropped,
    downscaled so neither side exceeds ``max_dimension``, then saved with
    decreasing quality until it fits ``max_size_kb`` (or quality bottoms out).

    Returns:
        JPEG bytes
    """
    with Image.open(BytesIO(data)) as src:
        img = ImageOps.exif_transpose(src)
        img = crop_image(img, crop_box, square)
        if img.mode not in ('RGB', 'L'):
            img = img.convert('RGB')
        img.thumbnail((max_dimension, max_dimension))

        quality = 90
        limit = max_size_kb * 1024
        while True:
            buffer = BytesIO()
            img.save(buffer, format='JPEG', quality=quality, optimize=True)
            output = buffer.getvalue()
            if len(output) <= limit or quality <= MIN_JPEG_QUALITY:
                break
            quality -= 10

    if len(output) > limit:
        logger.warning("Compressed image is %d KB, above the %d KB target", len(output) // 1024, max_size_kb)
    return output
