from PyQt6.QtCore import QCoreApplication

from photo2jpg.decoder import PillowDecoder
from photo2jpg.encoder import PillowJpegEncoder
from photo2jpg.models import BatchState, ConversionRequest, InputImage
from photo2jpg.pipeline import ConversionPipeline

REQUEST = ConversionRequest.from_percent(80)


def inputs(*payloads):
    names = "abcdefghij"
    return [InputImage.from_bytes(f"{names[i]}.png", data) for i, data in enumerate(payloads)]


class Recorder:
    def __init__(self, pipeline: ConversionPipeline):
        self.progress = []
        self.completed = []
        pipeline.on_progress(lambda done, total: self.progress.append((done, total)))
        pipeline.on_complete(self.completed.append)


def test_corrupted_input_is_isolated(fake_decoder, fake_encoder):
    pipeline = ConversionPipeline(fake_decoder, fake_encoder)
    events = Recorder(pipeline)

    state = pipeline.run_batch(inputs(b"x" * 10, b"y" * 10, b"corrupt", b"z" * 10), REQUEST)

    assert [r.output_name for r in state.results] == ["a.jpg", "b.jpg", "d.jpg"]
    assert len(state.failures) == 1
    failure = state.failures[0]
    assert failure.source.name == "c.png"
    assert failure.code == "DECODE_FAILED"
    assert "Failed to load image" in failure.error
    assert state.completed == state.total == 4
    assert events.progress == [(1, 4), (2, 4), (3, 4), (4, 4)]
    assert events.completed == [state]


def test_encode_failure_is_recorded(fake_decoder, fake_encoder):
    pipeline = ConversionPipeline(fake_decoder, fake_encoder)
    state = pipeline.run_batch(inputs(b"unencodable", b"fine"), REQUEST)

    assert [r.source.name for r in state.results] == ["b.png"]
    assert [(f.source.name, f.code) for f in state.failures] == [("a.png", "ENCODE_FAILED")]


def test_batch_with_no_successes_completes(fake_decoder, fake_encoder):
    pipeline = ConversionPipeline(fake_decoder, fake_encoder)
    events = Recorder(pipeline)

    state = pipeline.run_batch(inputs(b"corrupt-1", b"corrupt-2"), REQUEST)

    assert state.results == []
    assert len(state.failures) == 2
    assert state.is_complete
    assert len(events.completed) == 1


def test_empty_batch_completes_without_progress(fake_decoder, fake_encoder):
    pipeline = ConversionPipeline(fake_decoder, fake_encoder)
    events = Recorder(pipeline)

    state = pipeline.submit_batch([], REQUEST)

    assert state.completed == state.total == 0
    assert events.progress == []
    assert len(events.completed) == 1
    assert fake_decoder.calls == []


def test_quality_is_fixed_for_the_batch(fake_decoder, fake_encoder):
    pipeline = ConversionPipeline(fake_decoder, fake_encoder)
    pipeline.run_batch(inputs(b"1", b"2", b"3"), ConversionRequest(0.35))
    assert fake_encoder.qualities == [0.35, 0.35, 0.35]


def test_results_are_annotated_with_savings(fake_decoder, fake_encoder):
    pipeline = ConversionPipeline(fake_decoder, fake_encoder)
    state = pipeline.run_batch(inputs(b"x" * 10), REQUEST)

    result = state.results[0]
    assert result.output_byte_size == 5
    assert result.metadata()["savings_percentage"] == 50.0
    assert result.metadata()["savings_direction"] == "smaller"


def test_real_images_keep_submission_order(image_bytes):
    sources = [
        InputImage.from_bytes("a.png", image_bytes("PNG", mode="RGBA", color=(0, 0, 0, 0))),
        InputImage.from_bytes("b.gif", image_bytes("GIF", mode="P", color=1)),
        InputImage.from_bytes("c.bmp", image_bytes("BMP")),
    ]
    pipeline = ConversionPipeline(PillowDecoder(), PillowJpegEncoder())

    state = pipeline.run_batch(sources, REQUEST)

    assert state.failures == []
    assert [r.output_name for r in state.results] == ["a.jpg", "b.jpg", "c.jpg"]
    assert [r.source for r in state.results] == sources
    assert all(r.output_bytes.startswith(b"\xff\xd8") for r in state.results)


def test_submit_batch_runs_on_worker_thread(fake_decoder, fake_encoder, wait_for):
    pipeline = ConversionPipeline(fake_decoder, fake_encoder)
    events = Recorder(pipeline)

    pipeline.submit_batch(inputs(b"1", b"corrupt", b"3"), REQUEST)
    (state,) = wait_for(pipeline.completed)

    assert state is pipeline.state
    assert [r.output_name for r in state.results] == ["a.jpg", "c.jpg"]
    assert events.progress == [(1, 3), (2, 3), (3, 3)]
    assert fake_decoder.calls == [b"1", b"corrupt", b"3"]
    pipeline.shutdown()


def test_wait_delivers_queued_events(fake_decoder, fake_encoder):
    pipeline = ConversionPipeline(fake_decoder, fake_encoder)
    events = Recorder(pipeline)

    pipeline.submit_batch(inputs(b"1", b"2"), REQUEST)
    assert pipeline.wait()

    assert events.progress == [(1, 2), (2, 2)]
    assert len(events.completed) == 1
    assert not pipeline.is_running


def test_clear_discards_in_flight_batch(fake_decoder, fake_encoder):
    pipeline = ConversionPipeline(fake_decoder, fake_encoder)
    events = Recorder(pipeline)
    fake_decoder.release.clear()

    pipeline.submit_batch(inputs(b"1", b"2", b"3"), REQUEST)
    assert fake_decoder.started.wait(5)
    pipeline.clear()
    fake_decoder.release.set()
    pipeline.shutdown()
    QCoreApplication.sendPostedEvents()

    assert pipeline.state == BatchState()
    assert events.completed == []
    assert events.progress == []
    # The file in flight finishes; nothing after it starts
    assert fake_decoder.calls == [b"1"]


def test_new_submission_supersedes_previous_batch(fake_decoder, fake_encoder):
    pipeline = ConversionPipeline(fake_decoder, fake_encoder)
    events = Recorder(pipeline)

    pipeline.run_batch(inputs(b"old"), REQUEST)
    state = pipeline.run_batch(inputs(b"new-1", b"new-2"), REQUEST)

    assert pipeline.state is state
    assert [r.source.raw_bytes for r in state.results] == [b"new-1", b"new-2"]
    assert [s.total for s in events.completed] == [1, 2]


def test_unexpected_backend_error_is_isolated(fake_decoder, fake_encoder):
    pipeline = ConversionPipeline(fake_decoder, fake_encoder)
    events = Recorder(pipeline)
    errors = []
    pipeline.error_occurred.connect(errors.append)

    state = pipeline.run_batch(inputs(b"x" * 4, b"boom", b"z" * 4), REQUEST)

    assert [r.output_name for r in state.results] == ["a.jpg", "c.jpg"]
    assert [(f.source.name, f.code, f.error) for f in state.failures] == [
        ("b.png", "CONVERSION_FAILED", "backend bug")
    ]
    assert state.is_complete
    assert events.progress == [(1, 3), (2, 3), (3, 3)]
    assert events.completed == [state]
    assert errors == []


def test_new_submission_waits_for_file_in_flight(fake_decoder, fake_encoder, wait_for):
    pipeline = ConversionPipeline(fake_decoder, fake_encoder)
    events = Recorder(pipeline)
    fake_decoder.release.clear()

    pipeline.submit_batch(inputs(b"old-1", b"old-2"), REQUEST)
    assert fake_decoder.started.wait(5)
    state = pipeline.submit_batch(inputs(b"new-1", b"new-2"), REQUEST)

    # The new batch has not started while the old file is still decoding
    assert fake_decoder.calls == [b"old-1"]
    assert pipeline.is_running

    fake_decoder.release.set()
    (completed,) = wait_for(pipeline.completed)

    assert completed is state
    assert fake_decoder.max_in_flight == 1
    assert fake_decoder.calls == [b"old-1", b"new-1", b"new-2"]
    assert events.progress == [(1, 2), (2, 2)]
    assert events.completed == [state]
    pipeline.shutdown()


def test_wait_starts_batch_queued_behind_retired_worker(fake_decoder, fake_encoder):
    pipeline = ConversionPipeline(fake_decoder, fake_encoder)
    events = Recorder(pipeline)
    fake_decoder.release.clear()

    pipeline.submit_batch(inputs(b"old"), REQUEST)
    assert fake_decoder.started.wait(5)
    pipeline.submit_batch(inputs(b"new"), REQUEST)
    fake_decoder.release.set()

    assert pipeline.wait()
    assert [s.total for s in events.completed] == [1]
    assert fake_decoder.calls == [b"old", b"new"]
    assert fake_decoder.max_in_flight == 1
