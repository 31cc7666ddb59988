"""Domain models for JPEG batch conversion."""

from __future__ import annotations

import mimetypes
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from .metrics import Savings

DEFAULT_MIME_TYPE = 'application/octet-stream'
JPEG_EXTENSION = '.jpg'

_EXTENSION_RE = re.compile(r"\.[^/.]+$")


def guess_mime_type(name: str) -> str:
    """Guess a MIME type from a file name, the way a browser labels uploads."""
    mime_type, _ = mimetypes.guess_type(name)
    return mime_type or DEFAULT_MIME_TYPE


def is_image_type(mime_type: str) -> bool:
    return mime_type.startswith('image/')


def jpeg_name(name: str) -> str:
    """Replace the trailing extension of ``name`` with ``.jpg``."""
    return _EXTENSION_RE.sub('', name) + JPEG_EXTENSION


@dataclass(frozen=True)
class InputImage:
    """A captured input file, immutable once created."""
    name: str
    mime_type: str
    byte_size: int
    raw_bytes: bytes = field(repr=False)

    @classmethod
    def from_bytes(cls, name: str, data: bytes, mime_type: Optional[str] = None) -> 'InputImage':
        return cls(
            name=name,
            mime_type=mime_type or guess_mime_type(name),
            byte_size=len(data),
            raw_bytes=bytes(data),
        )

    @classmethod
    def from_path(cls, path: Path) -> 'InputImage':
        path = Path(path)
        return cls.from_bytes(path.name, path.read_bytes())


@dataclass(frozen=True)
class ConversionRequest:
    """Batch-scoped conversion settings. Quality lies in (0, 1]."""
    quality: float

    def __post_init__(self):
        if not 0 < self.quality <= 1:
            raise ValueError(f"Quality must be in (0, 1], got {self.quality!r}")

    @classmethod
    def from_percent(cls, value: float) -> 'ConversionRequest':
        """Build a request from a 0-100 slider value."""
        return cls(quality=value / 100)


@dataclass(frozen=True)
class ConversionResult:
    """A successfully converted input."""
    source: InputImage
    output_bytes: bytes = field(repr=False)
    output_name: str
    savings: Savings

    @property
    def output_byte_size(self) -> int:
        return len(self.output_bytes)

    def metadata(self) -> dict:
        """Per-result figures shown by the presentation layer."""
        return {
            'output_name': self.output_name,
            'original_size': self.source.byte_size,
            'output_size': self.output_byte_size,
            'savings_percentage': self.savings.percentage,
            'savings_direction': self.savings.direction,
        }


@dataclass(frozen=True)
class FailedInput:
    """An input that could not be converted, with the reason."""
    source: InputImage
    error: str
    code: str


@dataclass
class BatchState:
    """Progress and outcome of one batch run."""
    total: int = 0
    completed: int = 0
    results: list[ConversionResult] = field(default_factory=list)
    failures: list[FailedInput] = field(default_factory=list)

    @property
    def is_complete(self) -> bool:
        return self.completed == self.total
