"""Pytest configuration helpers and audio backend fakes."""

from __future__ import annotations

import logging
import sys
import threading
import time
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable, Iterable, List, Optional

import numpy as np
import pytest


def _ensure_repo_on_path() -> None:
    """Allow tests to import from repo modules without setting PYTHONPATH."""
    repo_root = Path(__file__).resolve().parents[1]
    path_str = str(repo_root)
    if path_str not in sys.path:
        sys.path.insert(0, path_str)


_ensure_repo_on_path()

from rspi_recorder.audio_backend import BackendError  # noqa: E402


class FakeStream:
    """Capture stream that writes real-time-sized silence-ish blocks to the sink."""

    def __init__(self, backend: "FakeBackend", index: int, sink: Callable, sample_rate: int, channels: int):
        self.backend = backend
        self.index = index
        self.sink = sink
        self.sample_rate = sample_rate
        self.channels = channels
        self.started_at: Optional[float] = None
        self.stopped = False

    def _block(self, frames: int) -> np.ndarray:
        return np.full((frames, self.channels), 0.25, dtype=np.float32)

    def start(self) -> None:
        if self.index in self.backend.fail_start:
            raise BackendError("device busy")
        with self.backend.lock:
            self.backend.open_streams += 1
            self.backend.max_open = max(self.backend.max_open, self.backend.open_streams)
        self.started_at = time.monotonic()
        self.sink(self._block(self.sample_rate // 100))

    def stop(self) -> None:
        if self.stopped:
            return
        self.stopped = True
        if self.started_at is None:
            return
        elapsed = time.monotonic() - self.started_at
        frames = max(1, int(elapsed * self.sample_rate))
        self.sink(self._block(frames))
        with self.backend.lock:
            self.backend.open_streams -= 1


class FakeBackend:
    """Stand-in for :class:`AudioBackend` that never touches PortAudio."""

    stream_class = FakeStream

    def __init__(self, fail_open: Iterable[int] = (), fail_start: Iterable[int] = ()):
        self.fail_open = set(fail_open)
        self.fail_start = set(fail_start)
        self.requests = 0
        self.streams: List[FakeStream] = []
        self.open_streams = 0
        self.max_open = 0
        self.closed = False
        self.lock = threading.Lock()

    def new_record(self, sink, *, sample_rate, channels):
        index = self.requests
        self.requests += 1
        if index in self.fail_open:
            raise BackendError("could not open capture stream: connection refused")
        stream = self.stream_class(self, index, sink, sample_rate, channels)
        self.streams.append(stream)
        return stream

    def close(self) -> None:
        self.closed = True


class StepClock:
    """Deterministic clock: every call is one segment window later."""

    def __init__(self, start: Optional[datetime] = None, step: float = 7.0):
        self.now = start or datetime(2024, 5, 1, 10, 0, 0, tzinfo=timezone.utc)
        self.step = timedelta(seconds=step)

    def __call__(self) -> datetime:
        current = self.now
        self.now += self.step
        return current


@pytest.fixture
def fake_backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def step_clock() -> StepClock:
    return StepClock()


@pytest.fixture
def test_logger() -> logging.Logger:
    logger = logging.getLogger("test_rspi_recorder")
    logger.setLevel(logging.DEBUG)
    return logger
