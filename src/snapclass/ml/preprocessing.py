"""Image decoding and tensor preprocessing.

Decoding turns uploaded bytes into an HxWx3 RGB uint8 array. Preprocessing
turns that array into the (1, 224, 224, 3) float32 tensor the classifier
expects: nearest-neighbour resize, scale [0, 255] -> [-1, 1], batch axis.
"""

from __future__ import annotations

import io
import logging

import numpy as np
from numpy.typing import NDArray
from PIL import Image, ImageOps, UnidentifiedImageError

from snapclass.config import INPUT_SIZE

logger = logging.getLogger(__name__)


class InvalidImageError(ValueError):
    """Raised when uploaded bytes cannot be used as an image."""


def decode_image(image_bytes: bytes, max_pixels: int | None = None) -> NDArray[np.uint8]:
    """Decode raw image bytes into an RGB uint8 numpy array.

    Args:
        image_bytes: Raw file bytes (any format Pillow can read).
        max_pixels: Optional upper bound on width * height.

    Returns:
        HxWx3 RGB uint8 numpy array.

    Raises:
        InvalidImageError: If the image cannot be decoded or exceeds ``max_pixels``.
    """
    try:
        with Image.open(io.BytesIO(image_bytes)) as img:
            width, height = img.size
            if max_pixels is not None and width * height > max_pixels:
                raise InvalidImageError(f"Image too large: {width}x{height} exceeds {max_pixels} pixels")
            oriented = ImageOps.exif_transpose(img)
            rgb = oriented.convert("RGB")
    except InvalidImageError:
        raise
    except (UnidentifiedImageError, OSError, ValueError, SyntaxError, Image.DecompressionBombError) as exc:
        raise InvalidImageError("Could not decode image") from exc

    return np.asarray(rgb, dtype=np.uint8)


def resize_nearest(image: NDArray[np.uint8], size: int = INPUT_SIZE) -> NDArray[np.uint8]:
    """Resize to ``size`` x ``size`` by nearest-neighbour sampling.

    Destination pixel ``d`` samples source pixel ``floor(d * in / out)``.
    """
    height, width = image.shape[:2]
    rows = (np.arange(size) * height // size).astype(np.intp)
    cols = (np.arange(size) * width // size).astype(np.intp)
    return image[rows[:, None], cols[None, :]]


def preprocess(image: NDArray[np.uint8]) -> NDArray[np.float32]:
    """Convert an HxWx3 uint8 image into a normalized (1, 224, 224, 3) tensor in [-1, 1]."""
    resized = resize_nearest(image, INPUT_SIZE).astype(np.float32)
    normalized = resized / np.float32(127.5) - np.float32(1.0)
    return np.expand_dims(normalized, axis=0)
