"""
Retrieval of converted results.

Bulk exports are staggered: each delivery waits a fixed interval after the
previous one so the host's save handling is never flooded.
"""

from __future__ import annotations

import logging
import os
import tempfile
from collections import deque
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterable, Optional

from PyQt6.QtCore import QObject, Qt, QTimer, pyqtSignal

from .models import ConversionResult

logger = logging.getLogger(__name__)

DEFAULT_STAGGER_MS = 200


@dataclass(frozen=True)
class ExportedFile:
    """A named payload ready to be saved."""
    name: str
    data: bytes = field(repr=False)
    mime_type: str = 'image/jpeg'


Sink = Callable[[ExportedFile], None]


def package_result(result: ConversionResult) -> ExportedFile:
    return ExportedFile(name=result.output_name, data=result.output_bytes)


class DirectorySink:
    """Save payloads into a directory, replacing files atomically."""

    def __init__(self, directory: Path):
        self.directory = Path(directory)

    def __call__(self, exported: ExportedFile) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        # Only the final path component is honoured
        dest_path = self.directory / Path(exported.name).name
        tmp_path = None
        try:
            with tempfile.NamedTemporaryFile(delete=False, dir=self.directory, suffix='.part') as tmp:
                tmp_path = Path(tmp.name)
                tmp.write(exported.data)
                tmp.flush()
                os.fsync(tmp.fileno())
            os.replace(tmp_path, dest_path)
        except OSError:
            if tmp_path is not None:
                tmp_path.unlink(missing_ok=True)
            raise
        logger.debug(f"Saved {dest_path} ({len(exported.data)} bytes)")


class ResultExporter(QObject):
    """Deliver converted results to a sink, one at a time or staggered in bulk.

    Each export is bound to its sink when requested. ``sink`` is the default
    used when a call does not name one.
    """

    exported = pyqtSignal(object)  # ExportedFile
    export_failed = pyqtSignal(str, str)  # name, reason
    batch_exported = pyqtSignal(int)  # number of payloads attempted

    def __init__(self, sink: Optional[Sink] = None, stagger_interval_ms: int = DEFAULT_STAGGER_MS, parent=None):
        super().__init__(parent)
        if stagger_interval_ms < 0:
            raise ValueError(f"Stagger interval must be non-negative, got {stagger_interval_ms}")
        self.sink = sink
        self.stagger_interval_ms = stagger_interval_ms
        self._queue: deque[tuple[ExportedFile, Sink]] = deque()
        self._batch_size = 0
        self._timer = QTimer(self)
        self._timer.setSingleShot(True)
        self._timer.setTimerType(Qt.TimerType.PreciseTimer)
        self._timer.timeout.connect(self._deliver_next)

    @property
    def pending(self) -> int:
        return len(self._queue)

    def export_single(self, result: ConversionResult, sink: Optional[Sink] = None) -> ExportedFile:
        """Deliver one result immediately."""
        exported = package_result(result)
        self._deliver(exported, self._resolve_sink(sink))
        return exported

    def export_batch(self, results: Iterable[ConversionResult], sink: Optional[Sink] = None) -> list[ExportedFile]:
        """Queue results for staggered delivery in order and return immediately."""
        target = self._resolve_sink(sink)
        payloads = [package_result(r) for r in results]
        if not payloads:
            return payloads

        self._queue.extend((payload, target) for payload in payloads)
        self._batch_size += len(payloads)
        logger.info(f"Exporting {len(payloads)} files, {self.stagger_interval_ms}ms apart")
        if not self._timer.isActive():
            self._timer.start(0)
        return payloads

    def cancel(self):
        """Drop every delivery that has not happened yet."""
        dropped = len(self._queue)
        self._timer.stop()
        self._queue.clear()
        self._batch_size = 0
        if dropped:
            logger.info(f"Cancelled {dropped} pending exports")

    def _deliver_next(self):
        if not self._queue:
            return
        self._deliver(*self._queue.popleft())
        if self._queue:
            self._timer.start(self.stagger_interval_ms)
        else:
            count, self._batch_size = self._batch_size, 0
            self.batch_exported.emit(count)

    def _resolve_sink(self, sink: Optional[Sink]) -> Sink:
        target = sink if sink is not None else self.sink
        if target is None:
            raise ValueError("No sink to export to")
        return target

    def _deliver(self, exported: ExportedFile, sink: Sink):
        try:
            sink(exported)
        except OSError as e:
            logger.error(f"Failed to save {exported.name}: {e}", exc_info=True)
            self.export_failed.emit(exported.name, str(e))
            return
        self.exported.emit(exported)
