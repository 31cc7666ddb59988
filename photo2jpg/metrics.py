"""Size formatting and savings calculations."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

BYTE_UNITS = ('Bytes', 'KB', 'MB', 'GB')


@dataclass(frozen=True)
class Savings:
    """Relative size change between an original and its converted output."""
    percentage: float
    direction: Literal['smaller', 'larger']


def savings(original_size: int, new_size: int) -> Savings:
    """Compute the size change of a conversion.

    Only a strictly smaller output counts as "smaller"; an output of exactly
    the original size reports 0% "larger".
    """
    if original_size < 0 or new_size < 0:
        raise ValueError(f"Sizes must be non-negative, got {original_size} and {new_size}")

    direction = 'smaller' if new_size < original_size else 'larger'
    if original_size == 0:
        return Savings(percentage=0.0, direction=direction)

    percentage = abs(original_size - new_size) / original_size * 100
    return Savings(percentage=percentage, direction=direction)


def describe_savings(value: Savings) -> str:
    """Format savings for display, e.g. '42.3% smaller'."""
    return f"{value.percentage:.1f}% {value.direction}"


def format_bytes(size_bytes: int) -> str:
    """Format byte size to a human-readable string using 1024-based units."""
    if size_bytes < 0:
        raise ValueError(f"Size must be non-negative, got {size_bytes}")
    if size_bytes == 0:
        return '0 Bytes'

    index = 0
    while index < len(BYTE_UNITS) - 1 and size_bytes >= 1024 ** (index + 1):
        index += 1

    value = f"{size_bytes / 1024 ** index:.2f}".rstrip("0").rstrip(".")
    return f"{value} {BYTE_UNITS[index]}"
