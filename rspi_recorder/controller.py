"""controller.py
Segment lifecycle loop.

Each iteration names a segment after the current time, launches a
:class:`SegmentWorker` for it and waits for whichever comes first:

* the fixed segment window elapsing,
* the shutdown event firing,
* the worker giving up on its own (stream could not be opened).

Unless the worker already gave up, it is told to stop, and the loop always
waits for its acknowledgment before doing anything else, so the file in
flight is finalized even when shutting down.  At most one worker ever has
a capture stream open.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from pathlib import Path
from typing import Callable, Optional, Set, Union

from rspi_recorder.audio_backend import AudioBackend
from rspi_recorder.handshake import Handshake, RecordStatus
from rspi_recorder.segment import Segment, local_now
from rspi_recorder.wav_file import create_file
from rspi_recorder.worker import FileFactory, SegmentWorker

__all__ = ["SegmentController", "SEGMENT_SECONDS"]

SEGMENT_SECONDS = 7.0


class SegmentController:
    """Drive one worker per segment until shutdown.

    Parameters
    ----------
    backend : AudioBackend
        Connected client shared by all workers (never concurrently).
    shutdown : asyncio.Event
        Set once on SIGINT/SIGTERM; never cleared.
    logger : logging.Logger, optional
        Parent logger; a ``controller`` child is used.
    output_dir : str | Path, default "."
        Where segment files are written.
    interval : float, default SEGMENT_SECONDS
        Window length in seconds.  Fixed in production.
    clock : callable, optional
        Returns the segment start time; defaults to local wall-clock time.
    """

    def __init__(
        self,
        backend: AudioBackend,
        shutdown: asyncio.Event,
        logger: Optional[logging.Logger] = None,
        *,
        output_dir: Union[str, Path] = ".",
        interval: float = SEGMENT_SECONDS,
        clock: Optional[Callable[[], datetime]] = None,
        handshake_factory: Callable[[], Handshake] = Handshake,
        file_factory: FileFactory = create_file,
    ):
        self.backend = backend
        self.shutdown = shutdown
        self._parent_logger = logger or logging.getLogger("rspi_recorder")
        self.logger = self._parent_logger.getChild("controller")
        self.output_dir = Path(output_dir)
        self.interval = interval
        self._clock = clock or local_now
        self._handshake_factory = handshake_factory
        self._file_factory = file_factory
        self._workers: Set[asyncio.Task] = set()
        self.segments_started = 0
        self.segments_failed = 0

    async def run(self) -> int:
        """Record segments back to back until shutdown; returns the count started."""
        while True:
            handshake = self._handshake_factory()
            segment = self._next_segment()
            self._launch(segment, handshake)

            done_wait = asyncio.ensure_future(handshake.wait_done())
            await self._wait_window(done_wait)

            if not handshake.finished:
                handshake.send_stop()

            # never abandon a file mid-write, even when dying
            status = await done_wait
            if status is RecordStatus.FAIL:
                self.segments_failed += 1
                self.logger.warning("Segment ended without audio fileName=%s", segment.name)

            # checked after the acknowledgment so a signal that lands while the
            # worker finalizes still ends the loop
            if self.shutdown.is_set():
                self.logger.info("dying, breaking...")
                break

        if self._workers:
            await asyncio.gather(*self._workers, return_exceptions=True)
        self.logger.info(
            "Recording loop finished: %d segment(s), %d failed",
            self.segments_started, self.segments_failed,
        )
        return self.segments_started

    def _next_segment(self) -> Segment:
        when = self._clock()
        segment = Segment.starting_at(when, self.output_dir)
        if segment.path.exists():
            segment = Segment.starting_at(when, self.output_dir, timespec="microseconds")
            self.logger.debug("Name already taken, using fileName=%s", segment.name)
        return segment

    def _launch(self, segment: Segment, handshake: Handshake) -> None:
        worker = SegmentWorker(
            segment,
            handshake,
            self.backend,
            self._parent_logger,
            file_factory=self._file_factory,
        )
        task = asyncio.create_task(worker.run(), name=f"segment {segment.name}")
        self._workers.add(task)
        task.add_done_callback(self._reap)
        self.segments_started += 1

    async def _wait_window(self, done_wait: asyncio.Future) -> None:
        """Block until the window ends, shutdown fires, or the worker quits early."""
        timer = asyncio.ensure_future(asyncio.sleep(self.interval))
        dying = asyncio.ensure_future(self.shutdown.wait())
        try:
            await asyncio.wait(
                {timer, dying, done_wait}, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            for fut in (timer, dying):
                if not fut.done():
                    fut.cancel()

    def _reap(self, task: asyncio.Task) -> None:
        self._workers.discard(task)
        if task.cancelled():
            self.logger.warning("Worker %s was cancelled", task.get_name())
            return
        exc = task.exception()
        if exc is not None:
            self.logger.error("Worker %s crashed: %r", task.get_name(), exc)
