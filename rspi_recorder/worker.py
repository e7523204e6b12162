"""worker.py
Records exactly one segment.

The worker creates ``<segment>.wav``, points a capture stream at it and
then sleeps until the controller sends ``STOP`` over the segment's
handshake.  It stops the stream, finalizes the file and acknowledges.
If the stream cannot be set up it acknowledges with ``FAIL`` at once and
never waits for a stop.
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Callable, Optional

from rspi_recorder.audio_backend import AudioBackend, BackendError, CaptureStream
from rspi_recorder.handshake import Handshake, RecordStatus
from rspi_recorder.segment import Segment
from rspi_recorder.wav_file import WavFile, create_file

__all__ = ["SegmentWorker", "WorkerState"]

FileFactory = Callable[..., WavFile]


class WorkerState(Enum):
    STARTING = "starting"
    RECORDING = "recording"
    STOPPING = "stopping"
    DONE = "done"


class SegmentWorker:
    """One-shot recorder for a single :class:`Segment`.

    Parameters
    ----------
    segment : Segment
        Name, format and destination of the recording.
    handshake : Handshake
        Fresh handshake shared with the controller for this segment only.
    backend : AudioBackend
        Shared client; only used to open this segment's stream.
    logger : logging.Logger, optional
        Parent logger; a ``worker`` child is used.
    file_factory : callable, default :func:`create_file`
        ``(path, sample_rate, channels) -> WavFile``.
    """

    def __init__(
        self,
        segment: Segment,
        handshake: Handshake,
        backend: AudioBackend,
        logger: Optional[logging.Logger] = None,
        *,
        file_factory: FileFactory = create_file,
    ):
        self.segment = segment
        self.handshake = handshake
        self.backend = backend
        self.logger = (logger or logging.getLogger("rspi_recorder")).getChild("worker")
        self._file_factory = file_factory
        self.state = WorkerState.STARTING
        self.file: Optional[WavFile] = None
        self._stream: Optional[CaptureStream] = None

    async def run(self) -> RecordStatus:
        """Record until stopped; the acknowledgment is always sent exactly once."""
        status = RecordStatus.FAIL
        try:
            status = await self._record()
        finally:
            try:
                # a stream left running would keep writing into a closed file
                if self._stream is not None:
                    await self._stop_stream()
            finally:
                if self.file is not None and not self.file.closed:
                    self.file.close()
                self.state = WorkerState.DONE
                self.handshake.send_done(status)
        return status

    async def _record(self) -> RecordStatus:
        name = self.segment.name
        self.logger.info("Creating audio file fileName=%s", name)
        try:
            self.file = self._file_factory(
                self.segment.path, self.segment.sample_rate, self.segment.channel_count
            )
        except (OSError, RuntimeError) as exc:
            self.logger.error("Failed to create audio file fileName=%s: %s", name, exc)
            return RecordStatus.FAIL

        self._stream = self._open_stream(self.file)
        if self._stream is None:
            self.logger.error("Failed to create record stream, exiting record function... fileName=%s", name)
            await self._finalize()
            return RecordStatus.FAIL

        self.state = WorkerState.RECORDING
        self.logger.debug("Recording fileName=%s", name)

        await self.handshake.wait_stop()

        self.state = WorkerState.STOPPING
        self.logger.info("Stopping recording and saving file fileName=%s", name)
        await self._stop_stream()
        await self._finalize()
        return RecordStatus.SUCCESS

    def _open_stream(self, wav: WavFile) -> Optional[CaptureStream]:
        try:
            stream = self.backend.new_record(
                wav.write,
                sample_rate=self.segment.sample_rate,
                channels=self.segment.channel_count,
            )
        except BackendError as exc:
            self.logger.error("%s", exc)
            return None

        try:
            stream.start()
        except BackendError as exc:
            self.logger.error("%s", exc)
            try:
                stream.stop()
            except BackendError as stop_exc:
                self.logger.debug("Discarding unstarted stream: %s", stop_exc)
            return None
        return stream

    async def _stop_stream(self) -> None:
        stream, self._stream = self._stream, None
        try:
            await asyncio.get_running_loop().run_in_executor(None, stream.stop)
        except BackendError as exc:
            self.logger.error(
                "Error stopping capture stream fileName=%s: %s", self.segment.name, exc
            )

    async def _finalize(self) -> None:
        wav = self.file
        if wav is None or wav.closed:
            return
        await asyncio.get_running_loop().run_in_executor(None, wav.close)
        self.logger.debug(
            "Saved fileName=%s frames=%d duration=%.2fs peak=%.3f",
            self.segment.name, wav.frames, wav.duration, wav.peak,
        )
