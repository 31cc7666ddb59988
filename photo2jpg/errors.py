"""Error taxonomy for the conversion pipeline."""

from __future__ import annotations

from typing import Iterable, Optional


class ConversionError(RuntimeError):
    """Base error carrying a short machine-readable code."""

    code = "CONVERSION_FAILED"

    def __init__(self, message: str, code: Optional[str] = None) -> None:
        super().__init__(message)
        if code is not None:
            self.code = code


class DecodeError(ConversionError):
    """Raised when the input bytes are not an image the host can render."""

    code = "DECODE_FAILED"


class EncodeError(ConversionError):
    """Raised when re-encoding a decoded surface to JPEG fails."""

    code = "ENCODE_FAILED"


class InputRejected(ConversionError):
    """Raised when a selection contains no image files at all."""

    code = "INPUT_REJECTED"

    def __init__(self, names: Iterable[str]) -> None:
        self.names = list(names)
        if self.names:
            message = "Not an image file: " + ", ".join(self.names)
        else:
            message = "No image files were selected."
        super().__init__(message)
