"""
photo2jpg
Batch conversion of raster images to JPEG.
"""

__version__ = "0.1.0"

from .errors import ConversionError, DecodeError, EncodeError, InputRejected
from .exporter import DirectorySink, ExportedFile, ResultExporter
from .metrics import Savings, format_bytes, savings
from .models import BatchState, ConversionRequest, ConversionResult, FailedInput, InputImage
from .pipeline import ConversionPipeline

__all__ = [
    "__version__",
    "BatchState",
    "ConversionError",
    "ConversionPipeline",
    "ConversionRequest",
    "ConversionResult",
    "DecodeError",
    "DirectorySink",
    "EncodeError",
    "ExportedFile",
    "FailedInput",
    "InputImage",
    "InputRejected",
    "ResultExporter",
    "Savings",
    "format_bytes",
    "savings",
]
