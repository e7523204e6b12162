"""audio_backend.py
Microphone capture client built on *sounddevice* (PortAudio).

Usage example:

    backend = AudioBackend.connect()
    stream = backend.new_record(wav.write, sample_rate=44_100, channels=1)
    stream.start()
    ...
    stream.stop()
    backend.close()

The sink receives ``(frames, channels)`` float32 NumPy arrays normalised to
-1.0…1.0, one per PortAudio block, on the PortAudio callback thread.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Optional, Union

import numpy as np

from rspi_recorder.segment import CHANNELS, SAMPLE_RATE

__all__ = ["AudioBackend", "BackendError", "CaptureStream", "Sink"]

Sink = Callable[[np.ndarray], None]
Device = Union[int, str, None]


class BackendError(RuntimeError):
    """Raised when PortAudio refuses a connection or a stream."""


def _sounddevice():
    # sounddevice loads libportaudio at import time; a missing library is a
    # backend failure, not an import error for the whole package
    try:
        import sounddevice as sd
    except OSError as exc:
        raise BackendError(f"PortAudio library unavailable: {exc}") from exc
    return sd


class CaptureStream:
    """Controllable handle around one ``sounddevice.InputStream``."""

    def __init__(self, stream: Any):
        self._stream = stream
        self._stopped = False

    def start(self) -> None:
        """Begin delivering blocks to the sink; returns immediately."""
        sd = _sounddevice()
        try:
            self._stream.start()
        except sd.PortAudioError as exc:
            raise BackendError(f"could not start capture stream: {exc}") from exc

    def stop(self) -> None:
        """Stop and close the stream.

        Blocks until the last pending callback has returned, so the sink is
        never called again afterwards.
        """
        if self._stopped:
            return
        self._stopped = True
        sd = _sounddevice()
        try:
            self._stream.stop()
        except sd.PortAudioError as exc:
            raise BackendError(f"could not stop capture stream: {exc}") from exc
        finally:
            self._stream.close()

    @property
    def active(self) -> bool:
        return not self._stopped and bool(self._stream.active)


class AudioBackend:
    """Long-lived client used to open one capture stream per segment.

    Parameters
    ----------
    device : int | str | None
        PortAudio input device (index or name); ``None`` means the system
        default input.
    logger : logging.Logger, optional
        Parent logger; a ``backend`` child is used.
    """

    def __init__(self, device: Device = None, logger: Optional[logging.Logger] = None):
        self.device = device
        self.logger = (logger or logging.getLogger("rspi_recorder")).getChild("backend")
        self._closed = False

    @classmethod
    def connect(cls, device: Device = None, logger: Optional[logging.Logger] = None) -> "AudioBackend":
        """Validate that an input device is reachable and return a client."""
        sd = _sounddevice()
        backend = cls(device, logger)
        try:
            info = sd.query_devices(device, kind="input")
        except (sd.PortAudioError, ValueError) as exc:
            raise BackendError(f"no usable audio input device ({device!r}): {exc}") from exc

        backend.logger.info(
            "Connected to audio input device=%r name=%s defaultSampleRate=%s",
            device,
            info.get("name", "?"),
            info.get("default_samplerate", "?"),
        )
        return backend

    def new_record(
        self,
        sink: Sink,
        *,
        sample_rate: int = SAMPLE_RATE,
        channels: int = CHANNELS,
    ) -> CaptureStream:
        """Open (but do not start) a float32 capture stream feeding *sink*."""
        if self._closed:
            raise BackendError("audio backend client is closed")
        sd = _sounddevice()

        def _callback(indata, frames, time_info, status):  # PortAudio thread
            if status:
                self.logger.debug("Capture status: %s", status)
            sink(indata)

        try:
            stream = sd.InputStream(
                samplerate=sample_rate,
                channels=channels,
                dtype="float32",
                device=self.device,
                callback=_callback,
            )
        except (sd.PortAudioError, ValueError) as exc:
            raise BackendError(f"could not open capture stream: {exc}") from exc

        self.logger.debug(
            "Opened capture stream: samplerate=%d Hz, channels=%d, blocksize=%s",
            sample_rate, channels, stream.blocksize,
        )
        return CaptureStream(stream)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self.logger.debug("Audio backend client closed")

    @property
    def closed(self) -> bool:
        return self._closed
