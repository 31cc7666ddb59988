import os
import threading
from io import BytesIO

os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

import pytest
from PIL import Image
from PyQt6.QtCore import QEventLoop, QTimer
from PyQt6.QtWidgets import QApplication

from photo2jpg.decoder import Surface
from photo2jpg.errors import DecodeError, EncodeError


@pytest.fixture(scope="session", autouse=True)
def qapp():
    app = QApplication.instance() or QApplication([])
    yield app


def _spin(timeout_ms: int, signal=None):
    loop = QEventLoop()
    received = []

    def on_emit(*args):
        received.append(args)
        loop.quit()

    timer = QTimer()
    timer.setSingleShot(True)
    timer.timeout.connect(loop.quit)
    if signal is not None:
        signal.connect(on_emit)
    timer.start(timeout_ms)
    loop.exec()
    timer.stop()
    if signal is not None:
        signal.disconnect(on_emit)
    return received


@pytest.fixture
def wait_for():
    """Run the event loop until ``signal`` fires and return its arguments."""

    def _wait_for(signal, timeout_ms: int = 5000):
        received = _spin(timeout_ms, signal)
        if not received:
            raise AssertionError(f"Signal not emitted within {timeout_ms}ms")
        return received[0]

    return _wait_for


@pytest.fixture
def process_events():
    """Run the event loop for a fixed time."""

    def _process_events(duration_ms: int):
        _spin(duration_ms)

    return _process_events


def encode_image(img: Image.Image, fmt: str, **params) -> bytes:
    buffer = BytesIO()
    img.save(buffer, format=fmt, **params)
    return buffer.getvalue()


@pytest.fixture
def encode():
    return encode_image


@pytest.fixture
def image_bytes():
    """Build encoded test images, e.g. ``image_bytes("PNG", mode="RGBA", color=(0, 0, 0, 0))``."""

    def _image_bytes(fmt: str = "PNG", size=(16, 12), mode: str = "RGB", color=(0, 128, 255), **params) -> bytes:
        return encode_image(Image.new(mode, size, color), fmt, **params)

    return _image_bytes


class FakeDecoder:
    """Decoder that fails for payloads starting with b"corrupt".

    Payloads starting with b"boom" raise a plain ValueError, like a buggy backend.
    """

    def __init__(self):
        self.calls = []
        self.in_flight = 0
        self.max_in_flight = 0
        self._lock = threading.Lock()
        self.started = threading.Event()
        self.release = threading.Event()
        self.release.set()

    def decode(self, data: bytes, mime_type: str) -> Surface:
        with self._lock:
            self.in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            self.calls.append(data)
            self.started.set()
            self.release.wait(5)
            if data.startswith(b"corrupt"):
                raise DecodeError("Failed to load image")
            if data.startswith(b"boom"):
                raise ValueError("backend bug")
            return Surface(width=1, height=1, image=data)
        finally:
            with self._lock:
                self.in_flight -= 1


class FakeEncoder:
    """Encoder that halves the payload and fails for b"unencodable"."""

    def __init__(self):
        self.qualities = []

    def encode(self, surface: Surface, quality: float) -> bytes:
        self.qualities.append(quality)
        if surface.image.startswith(b"unencodable"):
            raise EncodeError("Failed to convert image")
        return b"J" * max(1, len(surface.image) // 2)


@pytest.fixture
def fake_decoder():
    return FakeDecoder()


@pytest.fixture
def fake_encoder():
    return FakeEncoder()
