"""
Batch conversion pipeline.

A batch runs on a single worker thread that converts inputs strictly one at a
time, in submission order. The pipeline relays the worker's events to its own
signals, dropping anything from a batch that has since been cleared or
superseded.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Iterable, Optional

from PyQt6.QtCore import QCoreApplication, QObject, QThread, pyqtSignal, pyqtSlot

from .decoder import ImageDecoder, PillowDecoder
from .encoder import JpegEncoder, PillowJpegEncoder
from .errors import ConversionError
from .metrics import savings
from .models import BatchState, ConversionRequest, ConversionResult, FailedInput, InputImage, jpeg_name

logger = logging.getLogger(__name__)


def convert_input(
    source: InputImage,
    request: ConversionRequest,
    decoder: ImageDecoder,
    encoder: JpegEncoder,
) -> ConversionResult:
    """Decode one input, re-encode it as JPEG and annotate the size change."""
    surface = decoder.decode(source.raw_bytes, source.mime_type)
    output = encoder.encode(surface, request.quality)
    return ConversionResult(
        source=source,
        output_bytes=output,
        output_name=jpeg_name(source.name),
        savings=savings(source.byte_size, len(output)),
    )


class BatchWorker(QThread):
    """Background thread converting one batch sequentially."""

    # Every signal carries the batch generation first
    progress = pyqtSignal(int, int, int)  # generation, completed, total
    file_converted = pyqtSignal(int, object)  # generation, ConversionResult
    file_failed = pyqtSignal(int, object)  # generation, FailedInput
    batch_complete = pyqtSignal(int, object)  # generation, BatchState
    error_occurred = pyqtSignal(int, str)

    def __init__(
        self,
        generation: int,
        inputs: list[InputImage],
        request: ConversionRequest,
        decoder: ImageDecoder,
        encoder: JpegEncoder,
        parent=None
    ):
        super().__init__(parent)
        self.generation = generation
        self.inputs = inputs
        self.request = request
        self.decoder = decoder
        self.encoder = encoder
        self.state = BatchState(total=len(inputs))
        self._cancelled = False
        self._lock = threading.Lock()

    def cancel(self):
        """Stop before the next file; the file in flight still completes."""
        with self._lock:
            self._cancelled = True

    def is_cancelled(self) -> bool:
        with self._lock:
            return self._cancelled

    def run(self):
        """Convert every input in order, recording failures without stopping."""
        try:
            started = time.perf_counter()
            logger.info(f"Batch {self.generation}: converting {self.state.total} images at quality {self.request.quality:.2f}")

            for source in self.inputs:
                if self.is_cancelled():
                    logger.info(f"Batch {self.generation} cancelled after {self.state.completed} of {self.state.total} images")
                    return
                self._convert_one(source)
                self.state.completed += 1
                self.progress.emit(self.generation, self.state.completed, self.state.total)

            elapsed = time.perf_counter() - started
            logger.info(
                f"Batch {self.generation} finished in {elapsed:.2f}s: "
                f"{len(self.state.results)} converted, {len(self.state.failures)} failed"
            )
            self.batch_complete.emit(self.generation, self.state)

        except Exception as e:
            logger.error(f"Batch {self.generation} aborted: {e}", exc_info=True)
            self.error_occurred.emit(self.generation, f"Conversion failed: {e}")

    def _convert_one(self, source: InputImage):
        logger.debug(f"Converting {source.name} ({source.mime_type}, {source.byte_size} bytes)")
        try:
            result = convert_input(source, self.request, self.decoder, self.encoder)
        except ConversionError as e:
            logger.warning(f"Error converting {source.name}: {e}")
            self._record_failure(FailedInput(source=source, error=str(e), code=e.code))
            return
        except Exception as e:
            logger.error(f"Unexpected error converting {source.name}: {e}", exc_info=True)
            self._record_failure(FailedInput(source=source, error=str(e), code=ConversionError.code))
            return
        self.state.results.append(result)
        self.file_converted.emit(self.generation, result)

    def _record_failure(self, failure: FailedInput):
        self.state.failures.append(failure)
        self.file_failed.emit(self.generation, failure)


class ConversionPipeline(QObject):
    """Owns the current batch and publishes its progress."""

    progress = pyqtSignal(int, int)  # completed, total
    completed = pyqtSignal(object)  # BatchState
    file_converted = pyqtSignal(object)
    file_failed = pyqtSignal(object)
    error_occurred = pyqtSignal(str)

    def __init__(
        self,
        decoder: Optional[ImageDecoder] = None,
        encoder: Optional[JpegEncoder] = None,
        parent=None
    ):
        super().__init__(parent)
        self.decoder = decoder or PillowDecoder()
        self.encoder = encoder or PillowJpegEncoder()
        self._generation = 0
        self._state = BatchState()
        self._worker: Optional[BatchWorker] = None
        # Started once every retired worker has exited
        self._pending: Optional[BatchWorker] = None
        # Superseded workers stay referenced until their thread exits
        self._retired: list[BatchWorker] = []

    @property
    def state(self) -> BatchState:
        """The current batch. Treat as read-only."""
        return self._state

    @property
    def is_running(self) -> bool:
        worker = self._worker
        return worker is not None and (worker.isRunning() or worker is self._pending)

    def on_progress(self, callback: Callable[[int, int], None]):
        """Call ``callback(completed, total)`` after every attempted file."""
        self.progress.connect(callback)

    def on_complete(self, callback: Callable[[BatchState], None]):
        """Call ``callback(state)`` once every file of a batch was attempted."""
        self.completed.connect(callback)

    def submit_batch(self, inputs: Iterable[InputImage], request: ConversionRequest) -> BatchState:
        """Start converting ``inputs`` on a worker thread and return the live state.

        A superseded batch still finishing its current file is waited out first,
        so no two files are ever converted at the same time.
        """
        worker = self._prepare_batch(inputs, request)
        if worker is not None:
            self._pending = worker
            self._start_pending()
        return self._state

    def run_batch(self, inputs: Iterable[InputImage], request: ConversionRequest) -> BatchState:
        """Convert ``inputs`` in the calling thread, emitting the same events."""
        worker = self._prepare_batch(inputs, request)
        if worker is not None:
            self._join_retired()
            worker.run()
        return self._state

    def clear(self):
        """Discard the current batch. An in-flight batch stops after its current file."""
        self._retire_worker()
        self._generation += 1
        self._state = BatchState()

    def wait(self, msecs: int = 30000) -> bool:
        """Block until the active batch finishes, then deliver its queued events."""
        if not self._join_retired(msecs):
            return False
        self._start_pending()
        worker = self._worker
        if worker is not None and worker.isRunning() and not worker.wait(msecs):
            return False
        QCoreApplication.sendPostedEvents()
        return True

    def shutdown(self, msecs: int = 30000):
        """Cancel and join every worker thread."""
        self.clear()
        self._join_retired(msecs)

    def _prepare_batch(self, inputs: Iterable[InputImage], request: ConversionRequest) -> Optional[BatchWorker]:
        self._retire_worker()
        self._generation += 1
        worker = BatchWorker(self._generation, list(inputs), request, self.decoder, self.encoder)
        self._state = worker.state

        if not worker.inputs:
            logger.info(f"Batch {self._generation} is empty; nothing to convert")
            self.completed.emit(self._state)
            return None

        worker.progress.connect(self._on_worker_progress)
        worker.file_converted.connect(self._on_worker_converted)
        worker.file_failed.connect(self._on_worker_failed)
        worker.batch_complete.connect(self._on_worker_complete)
        worker.error_occurred.connect(self._on_worker_error)
        worker.finished.connect(self._on_worker_finished)
        self._worker = worker
        return worker

    def _retire_worker(self):
        self._pending = None
        self._retired = [w for w in self._retired if not w.isFinished()]
        if self._worker is None:
            return
        self._worker.cancel()
        if self._worker.isRunning():
            self._retired.append(self._worker)
        self._worker = None

    def _join_retired(self, msecs: int = 30000) -> bool:
        for worker in self._retired:
            if not worker.wait(msecs):
                return False
        self._retired = []
        return True

    def _start_pending(self):
        self._retired = [w for w in self._retired if not w.isFinished()]
        if self._pending is None or self._retired:
            return
        worker, self._pending = self._pending, None
        worker.start()

    def _is_current(self, generation: int) -> bool:
        return generation == self._generation

    @pyqtSlot(int, int, int)
    def _on_worker_progress(self, generation: int, completed: int, total: int):
        if self._is_current(generation):
            self.progress.emit(completed, total)

    @pyqtSlot(int, object)
    def _on_worker_converted(self, generation: int, result):
        if self._is_current(generation):
            self.file_converted.emit(result)

    @pyqtSlot(int, object)
    def _on_worker_failed(self, generation: int, failure):
        if self._is_current(generation):
            self.file_failed.emit(failure)

    @pyqtSlot(int, object)
    def _on_worker_complete(self, generation: int, state):
        if self._is_current(generation):
            self.completed.emit(state)
        else:
            logger.debug(f"Discarding results of superseded batch {generation}")

    @pyqtSlot()
    def _on_worker_finished(self):
        self._start_pending()

    @pyqtSlot(int, str)
    def _on_worker_error(self, generation: int, message: str):
        if self._is_current(generation):
            self.error_occurred.emit(message)
