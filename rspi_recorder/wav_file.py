"""wav_file.py
Uncompressed WAV container used as the capture sink.

``WavFile.write`` is handed to the audio backend as the sample sink, so it
runs on the PortAudio callback thread.  Closing must therefore only happen
after the capture stream has been stopped.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional, Union

import numpy as np
import soundfile as sf

__all__ = ["WavFile", "create_file"]

logger = logging.getLogger(__name__)

# float32 on the wire, float32 on disk: no conversion
_SUBTYPE = "FLOAT"


class WavFile:
    """Thin wrapper around a write-mode :class:`soundfile.SoundFile`.

    Parameters
    ----------
    path : str | Path
        Destination, created (or truncated) immediately.
    sample_rate : int
        Frames per second written into the header.
    channels : int
        Interleaved channel count.
    """

    def __init__(self, path: Union[str, Path], sample_rate: int, channels: int):
        self.path = Path(path)
        self.sample_rate = sample_rate
        self.channels = channels
        self.frames = 0
        self.peak = 0.0
        self._sf: Optional[sf.SoundFile] = sf.SoundFile(
            str(self.path),
            mode="w",
            samplerate=sample_rate,
            channels=channels,
            format="WAV",
            subtype=_SUBTYPE,
        )

    def write(self, samples: np.ndarray) -> None:
        if self._sf is None:
            return
        block = np.asarray(samples, dtype=np.float32)
        if block.ndim == 1:
            block = block.reshape(-1, self.channels)
        if block.size == 0:
            return
        self._sf.write(block)
        self.frames += block.shape[0]
        self.peak = max(self.peak, float(np.max(np.abs(block))))

    def close(self) -> None:
        """Finalize the header and release the handle (idempotent)."""
        if self._sf is None:
            return
        self._sf.close()
        self._sf = None
        logger.debug("Closed %s (%d frames)", self.path, self.frames)

    @property
    def closed(self) -> bool:
        return self._sf is None

    @property
    def duration(self) -> float:
        return self.frames / float(self.sample_rate)


def create_file(path: Union[str, Path], sample_rate: int, channels: int) -> WavFile:
    """Open *path* for writing; raises ``OSError``/``RuntimeError`` on failure."""
    return WavFile(path, sample_rate, channels)
