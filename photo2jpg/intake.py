"""Build pipeline inputs from files picked or dropped by the user."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Iterator

from .errors import InputRejected
from .models import InputImage, guess_mime_type, is_image_type

logger = logging.getLogger(__name__)


@dataclass
class Intake:
    """Accepted image inputs and the names of everything filtered out."""
    images: list[InputImage] = field(default_factory=list)
    rejected: list[str] = field(default_factory=list)


def iter_files(paths: Iterable[Path]) -> Iterator[Path]:
    """Yield files, expanding directories one level deep in sorted order."""
    for path in paths:
        path = Path(path)
        if path.is_dir():
            for child in sorted(path.iterdir()):
                if child.is_file():
                    yield child
        elif path.is_file():
            yield path


def collect_inputs(paths: Iterable[Path]) -> Intake:
    """Read every image file among ``paths``, in order.

    Files whose type is not ``image/*`` are listed in ``Intake.rejected``.
    Raises :class:`InputRejected` when no image remains.
    """
    intake = Intake()
    for path in iter_files(paths):
        if not is_image_type(guess_mime_type(path.name)):
            intake.rejected.append(path.name)
            continue
        intake.images.append(InputImage.from_path(path))

    if intake.rejected:
        logger.warning(f"Skipping {len(intake.rejected)} non-image files: {', '.join(intake.rejected)}")
    if not intake.images:
        raise InputRejected(intake.rejected)
    return intake
