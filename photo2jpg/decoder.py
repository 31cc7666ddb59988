"""
Image decoding backends.

Decoding is delegated to the host's image libraries: Pillow (with the optional
HEIF plugin) or Qt's image format plugins. Each backend turns raw bytes into a
:class:`Surface` with explicit pixel dimensions.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from io import BytesIO
from typing import Any, Protocol

from PIL import Image, ImageOps
from PyQt6.QtGui import QImage

from .errors import DecodeError

# Try to register optional format plugins
try:
    from pillow_heif import register_heif_opener
    register_heif_opener()
    HEIC_AVAILABLE = True
except ImportError:
    HEIC_AVAILABLE = False

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Surface:
    """A decoded bitmap prior to re-encoding."""
    width: int
    height: int
    image: Any  # PIL.Image.Image or QImage, depending on the backend


class ImageDecoder(Protocol):
    def decode(self, data: bytes, mime_type: str) -> Surface:  # pragma: no cover - interface
        ...


class PillowDecoder:
    """Decode images with Pillow."""

    def __init__(self, apply_exif_orientation: bool = True):
        self.apply_exif_orientation = apply_exif_orientation

    def decode(self, data: bytes, mime_type: str) -> Surface:
        try:
            img = Image.open(BytesIO(data))
            # Image.open is lazy; force the pixel data so corrupt bodies fail here
            img.load()
            if self.apply_exif_orientation:
                img = ImageOps.exif_transpose(img)
        except Exception as e:
            raise DecodeError(f"Failed to load image: {e}") from e

        logger.debug(f"Decoded {mime_type} image: size={img.size} mode={img.mode}")
        return Surface(width=img.width, height=img.height, image=img)


class QtDecoder:
    """Decode images with Qt's image format plugins."""

    def decode(self, data: bytes, mime_type: str) -> Surface:
        qimage = QImage()
        if not qimage.loadFromData(data) or qimage.isNull():
            raise DecodeError(f"Failed to load image ({mime_type})")

        logger.debug(f"Decoded {mime_type} image: size={qimage.width()}x{qimage.height()}")
        return Surface(width=qimage.width(), height=qimage.height(), image=qimage)
