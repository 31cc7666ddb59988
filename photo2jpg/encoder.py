"""
JPEG encoding backends.

JPEG has no alpha channel, so every encoder first fills an output surface of
the source's exact size with opaque white and draws the source over it.
"""

from __future__ import annotations

import logging
from io import BytesIO
from typing import Protocol

from PIL import Image
from PyQt6.QtCore import QBuffer, QIODevice, QPoint
from PyQt6.QtGui import QColor, QImage, QPainter

from .decoder import Surface
from .errors import EncodeError

logger = logging.getLogger(__name__)

WHITE = (255, 255, 255)
ALPHA_MODES = ('RGBA', 'RGBa', 'LA', 'La', 'PA')


class JpegEncoder(Protocol):
    def encode(self, surface: Surface, quality: float) -> bytes:  # pragma: no cover - interface
        ...


def jpeg_quality(quality: float) -> int:
    """Map a (0, 1] quality to the 1-100 scale used by the host encoders."""
    return min(100, max(1, round(quality * 100)))


def flatten_onto_white(img: Image.Image) -> Image.Image:
    """Composite an image over an opaque white background as RGB."""
    if img.mode in ALPHA_MODES or 'transparency' in img.info:
        if img.mode != 'RGBA':
            img = img.convert('RGBA')
        background = Image.new('RGB', img.size, WHITE)
        background.paste(img, mask=img.split()[3])
        return background
    # Opaque sources cover the background completely
    if img.mode != 'RGB':
        return img.convert('RGB')
    return img


def pil_to_qimage(pil_image: Image.Image) -> QImage:
    """Convert a PIL Image to a QImage that owns its pixel data."""
    if pil_image.mode in ALPHA_MODES or 'transparency' in pil_image.info:
        qimage_format = QImage.Format.Format_RGBA8888
        raw_mode = 'RGBA'
    else:
        qimage_format = QImage.Format.Format_RGB888
        raw_mode = 'RGB'
    if pil_image.mode != raw_mode:
        pil_image = pil_image.convert(raw_mode)

    data = pil_image.tobytes('raw', raw_mode)
    bytes_per_line = len(data) // pil_image.height
    qimage = QImage(data, pil_image.width, pil_image.height, bytes_per_line, qimage_format)
    # Copy immediately to avoid a dangling reference to the data buffer
    return qimage.copy()


def _check_dimensions(surface: Surface) -> None:
    if surface.width <= 0 or surface.height <= 0:
        raise EncodeError(f"Cannot encode an empty {surface.width}x{surface.height} surface")


class PillowJpegEncoder:
    """Encode surfaces as JPEG with Pillow."""

    def __init__(self, optimize: bool = True):
        self.optimize = optimize

    def encode(self, surface: Surface, quality: float) -> bytes:
        _check_dimensions(surface)
        img = surface.image
        if isinstance(img, QImage):
            img = Image.open(BytesIO(_qimage_png_bytes(img)))

        buffer = BytesIO()
        try:
            flattened = flatten_onto_white(img)
            flattened.save(buffer, format='JPEG', quality=jpeg_quality(quality), optimize=self.optimize)
        except Exception as e:
            raise EncodeError(f"Failed to convert image: {e}") from e

        data = buffer.getvalue()
        if not data:
            raise EncodeError("Failed to convert image: encoder produced no output")
        logger.debug(f"Encoded {surface.width}x{surface.height} JPEG at quality {jpeg_quality(quality)}: {len(data)} bytes")
        return data


class QtJpegEncoder:
    """Encode surfaces as JPEG with QPainter and Qt's JPEG writer."""

    def encode(self, surface: Surface, quality: float) -> bytes:
        _check_dimensions(surface)
        source = surface.image
        if isinstance(source, Image.Image):
            source = pil_to_qimage(source)

        canvas = QImage(surface.width, surface.height, QImage.Format.Format_RGB32)
        if canvas.isNull():
            raise EncodeError(f"Cannot allocate a {surface.width}x{surface.height} canvas")
        canvas.fill(QColor(*WHITE))

        painter = QPainter(canvas)
        try:
            painter.setCompositionMode(QPainter.CompositionMode.CompositionMode_SourceOver)
            painter.drawImage(QPoint(0, 0), source)
        finally:
            painter.end()

        buffer = QBuffer()
        buffer.open(QIODevice.OpenModeFlag.WriteOnly)
        saved = canvas.save(buffer, 'JPEG', jpeg_quality(quality))
        buffer.close()
        data = bytes(buffer.data())
        if not saved or not data:
            raise EncodeError("Failed to convert image: Qt JPEG writer produced no output")
        logger.debug(f"Encoded {surface.width}x{surface.height} JPEG at quality {jpeg_quality(quality)}: {len(data)} bytes")
        return data


def _qimage_png_bytes(qimage: QImage) -> bytes:
    buffer = QBuffer()
    buffer.open(QIODevice.OpenModeFlag.WriteOnly)
    if not qimage.save(buffer, 'PNG'):
        raise EncodeError("Failed to read back the decoded surface")
    buffer.close()
    return bytes(buffer.data())
