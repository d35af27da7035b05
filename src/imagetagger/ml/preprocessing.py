"""Image preprocessing pipeline.

Decodes uploaded or on-disk images and converts them into the tensor layout
the tagger models were trained on: a letterboxed square, resized with a
bicubic filter, as a ``(1, S, S, 3)`` float32 array in BGR order with raw
``[0, 255]`` values.
"""

from __future__ import annotations

import io
import logging
from typing import TYPE_CHECKING

import numpy as np
from PIL import Image, UnidentifiedImageError

from imagetagger.errors import InvalidImage, ZeroDimension

if TYPE_CHECKING:
    from pathlib import Path

    from numpy.typing import NDArray

logger = logging.getLogger(__name__)


def letterbox_offset(width: int, height: int) -> tuple[int, int]:
    """Return the paste offset that centers a ``width x height`` image on its square canvas."""
    side = max(width, height)
    return (side - width) // 2, (side - height) // 2


def prepare_image(image: Image.Image, target_size: int) -> NDArray[np.float32]:
    """Convert an image into a model input tensor.

    Args:
        image: Any Pillow image.
        target_size: Side length declared by the model's input shape.

    Returns:
        ``(1, target_size, target_size, 3)`` float32 array, BGR channel order.

    Raises:
        ZeroDimension: If the image has zero width or height.
        InvalidImage: If ``target_size`` is not positive or the image cannot be converted.
    """
    width, height = image.size
    if width == 0 or height == 0:
        raise ZeroDimension(f"image has zero dimension ({width}x{height})")
    if target_size <= 0:
        raise InvalidImage(f"invalid target size {target_size}")

    try:
        rgba = image.convert("RGBA")
    except (OSError, ValueError) as exc:
        raise InvalidImage(f"cannot convert image from mode {image.mode}: {exc}") from exc

    side = max(width, height)
    canvas = Image.new("RGBA", (side, side), (0, 0, 0, 0))
    canvas.paste(rgba, letterbox_offset(width, height))

    # Pillow resamples RGBA premultiplied: rows that straddle the padding keep
    # the image colour instead of fading toward the black fill.
    resized = canvas.resize((target_size, target_size), Image.Resampling.BICUBIC)
    rgb = resized.convert("RGB")

    arr = np.asarray(rgb, dtype=np.float32)
    arr = arr[:, :, ::-1]  # RGB -> BGR
    return np.ascontiguousarray(arr[np.newaxis, ...])


def decode_image(image_bytes: bytes, max_pixels: int | None = None) -> Image.Image:
    """Decode raw image bytes into a fully loaded Pillow image.

    Raises:
        InvalidImage: If the bytes are not a decodable image or the image
            exceeds ``max_pixels``.
    """
    try:
        image = Image.open(io.BytesIO(image_bytes))
    except (UnidentifiedImageError, OSError, Image.DecompressionBombError) as exc:
        raise InvalidImage(f"cannot decode image: {exc}") from exc

    width, height = image.size
    if max_pixels is not None and width * height > max_pixels:
        raise InvalidImage(f"image is {width}x{height}, exceeding the {max_pixels} pixel limit")

    try:
        image.load()
    except (OSError, ValueError, Image.DecompressionBombError) as exc:
        raise InvalidImage(f"cannot decode image: {exc}") from exc
    return image


def open_image(path: str | Path, max_pixels: int | None = None) -> Image.Image:
    """Read an image file from disk."""
    try:
        with open(path, "rb") as handle:
            data = handle.read()
    except OSError as exc:
        raise InvalidImage(f"cannot read image: {exc.strerror or exc}", source=str(path)) from exc
    try:
        return decode_image(data, max_pixels=max_pixels)
    except InvalidImage as exc:
        raise InvalidImage(exc.message, source=str(path)) from exc
