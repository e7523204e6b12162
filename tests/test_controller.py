"""Segment loop scenarios driven with a fake backend and a short window."""

import asyncio
import time

import soundfile as sf

from conftest import FakeBackend, FakeStream, StepClock
from rspi_recorder.controller import SEGMENT_SECONDS, SegmentController
from rspi_recorder.handshake import Handshake, RecordStatus
from rspi_recorder.segment import local_now


def _run(backend, tmp_path, logger, *, interval, shutdown_after, clock=None):
    handshakes = []

    def make_handshake():
        hs = Handshake()
        handshakes.append(hs)
        return hs

    async def _exercise():
        shutdown = asyncio.Event()
        asyncio.get_running_loop().call_later(shutdown_after, shutdown.set)
        controller = SegmentController(
            backend,
            shutdown,
            logger,
            output_dir=tmp_path,
            interval=interval,
            clock=clock or StepClock(),
            handshake_factory=make_handshake,
        )
        count = await asyncio.wait_for(controller.run(), timeout=10.0)
        return controller, count

    controller, count = asyncio.run(_exercise())
    return controller, count, handshakes


def _wav_files(tmp_path):
    return sorted(tmp_path.glob("*.wav"))


def test_window_is_fixed_at_seven_seconds():
    assert SEGMENT_SECONDS == 7.0


def test_shutdown_in_first_window_saves_one_file(tmp_path, test_logger):
    backend = FakeBackend()
    controller, count, handshakes = _run(
        backend, tmp_path, test_logger, interval=5.0, shutdown_after=0.1
    )

    assert count == 1
    files = _wav_files(tmp_path)
    assert [f.name for f in files] == ["2024-05-01T10:00:00Z.wav"]
    assert sf.info(str(files[0])).frames > 0
    assert handshakes[0].history == [RecordStatus.STOP, RecordStatus.SUCCESS]
    assert backend.open_streams == 0


def test_two_full_windows_and_a_partial(tmp_path, test_logger):
    backend = FakeBackend()
    controller, count, handshakes = _run(
        backend, tmp_path, test_logger, interval=0.3, shutdown_after=0.75
    )

    assert count == 3
    files = _wav_files(tmp_path)
    assert [f.name for f in files] == [
        "2024-05-01T10:00:00Z.wav",
        "2024-05-01T10:00:07Z.wav",
        "2024-05-01T10:00:14Z.wav",
    ]
    durations = [sf.info(str(f)).duration for f in files]
    assert durations[2] < durations[0]
    assert durations[2] < durations[1]
    for hs in handshakes:
        assert hs.history == [RecordStatus.STOP, RecordStatus.SUCCESS]


def test_never_two_streams_open(tmp_path, test_logger):
    backend = FakeBackend()
    _run(backend, tmp_path, test_logger, interval=0.05, shutdown_after=0.4)

    assert backend.requests >= 3
    assert backend.max_open == 1
    assert backend.open_streams == 0
    assert all(stream.stopped for stream in backend.streams)


def test_first_stream_failure_moves_on_immediately(tmp_path, test_logger):
    backend = FakeBackend(fail_open={0})
    controller, count, handshakes = _run(
        backend, tmp_path, test_logger, interval=1.0, shutdown_after=0.45
    )

    assert count == 2
    assert controller.segments_failed == 1
    assert handshakes[0].history == [RecordStatus.FAIL]
    assert handshakes[1].history == [RecordStatus.STOP, RecordStatus.SUCCESS]

    first, second = _wav_files(tmp_path)
    assert sf.info(str(first)).frames == 0
    assert sf.info(str(second)).frames > 0
    # the good segment started right away and ran until shutdown
    assert sf.info(str(second)).duration > 0.3


def test_failures_are_retried_without_backoff(tmp_path, test_logger):
    backend = FakeBackend(fail_open={0, 1, 2})
    started = time.monotonic()
    controller, count, handshakes = _run(
        backend, tmp_path, test_logger, interval=30.0, shutdown_after=0.3
    )
    elapsed = time.monotonic() - started

    assert count == 4
    assert controller.segments_failed == 3
    assert [hs.history for hs in handshakes[:3]] == [[RecordStatus.FAIL]] * 3
    assert handshakes[3].history == [RecordStatus.STOP, RecordStatus.SUCCESS]
    assert elapsed < 5.0


def test_shutdown_already_set_still_records_one_segment(tmp_path, test_logger):
    backend = FakeBackend()
    controller, count, handshakes = _run(
        backend, tmp_path, test_logger, interval=5.0, shutdown_after=0.0
    )

    assert count == 1
    assert len(_wav_files(tmp_path)) == 1
    assert handshakes[0].history == [RecordStatus.STOP, RecordStatus.SUCCESS]


def test_worker_crash_does_not_stop_the_loop(tmp_path, test_logger):
    class FlakyBackend(FakeBackend):
        def new_record(self, sink, *, sample_rate, channels):
            if self.requests == 0:
                self.requests += 1
                raise KeyError("driver bug")
            return super().new_record(sink, sample_rate=sample_rate, channels=channels)

    backend = FlakyBackend()
    controller, count, handshakes = _run(
        backend, tmp_path, test_logger, interval=0.5, shutdown_after=0.3
    )

    assert count == 2
    assert handshakes[0].history == [RecordStatus.FAIL]
    assert handshakes[1].history == [RecordStatus.STOP, RecordStatus.SUCCESS]


def test_same_second_restart_gets_a_distinct_name(tmp_path, test_logger):
    backend = FakeBackend(fail_open={0})
    controller, count, handshakes = _run(
        backend, tmp_path, test_logger, interval=1.0, shutdown_after=0.2,
        clock=StepClock(step=0),
    )

    assert count == 2
    names = sorted(f.name for f in _wav_files(tmp_path))
    assert names == ["2024-05-01T10:00:00.000000Z.wav", "2024-05-01T10:00:00Z.wav"]
    assert sf.info(str(tmp_path / "2024-05-01T10:00:00Z.wav")).frames == 0
    assert sf.info(str(tmp_path / "2024-05-01T10:00:00.000000Z.wav")).frames > 0


def test_wall_clock_failure_keeps_both_files(tmp_path, test_logger):
    backend = FakeBackend(fail_open={0})
    controller, count, handshakes = _run(
        backend, tmp_path, test_logger, interval=1.0, shutdown_after=0.2,
        clock=local_now,
    )

    assert count == 2
    files = _wav_files(tmp_path)
    assert len(files) == 2
    frames = sorted(sf.info(str(f)).frames for f in files)
    assert frames[0] == 0
    assert frames[1] > 0


def test_signal_during_finalize_starts_no_new_segment(tmp_path, test_logger):
    class SlowStopStream(FakeStream):
        def stop(self):
            time.sleep(0.3)
            super().stop()

    class SlowStopBackend(FakeBackend):
        stream_class = SlowStopStream

    backend = SlowStopBackend()
    # window ends at 0.1s, the signal arrives while the stop is still running
    controller, count, handshakes = _run(
        backend, tmp_path, test_logger, interval=0.1, shutdown_after=0.2
    )

    assert count == 1
    assert backend.requests == 1
    assert handshakes[0].history == [RecordStatus.STOP, RecordStatus.SUCCESS]
    assert len(_wav_files(tmp_path)) == 1
