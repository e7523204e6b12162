"""segment.py
One recording unit of the recorder and the way it is named.

A segment is named after the moment its capture started, in RFC3339 form
with second precision, a numeric offset, and ``Z`` for UTC:

    2024-05-01T12:00:00+02:00.wav
    2024-05-01T10:00:00Z.wav

A segment that starts in the same second as an existing file gets
microsecond precision instead (``2024-05-01T10:00:00.250000Z``).
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Union

__all__ = ["Segment", "SAMPLE_RATE", "CHANNELS", "rfc3339", "local_now"]

SAMPLE_RATE = 44_100
CHANNELS = 1


def local_now() -> datetime:
    """Current wall-clock time with the local UTC offset attached."""
    return datetime.now().astimezone()


def rfc3339(when: datetime, timespec: str = "seconds") -> str:
    """Format *when* as RFC3339, with second precision unless *timespec* says otherwise.

    Naive datetimes are taken to be local time.
    """
    if when.tzinfo is None:
        when = when.astimezone()
    text = when.isoformat(timespec=timespec)
    if text.endswith("+00:00"):
        text = text[:-6] + "Z"
    return text


@dataclass(frozen=True)
class Segment:
    """A single time-bounded recording and its destination file."""

    name: str
    sample_rate: int = SAMPLE_RATE
    channel_count: int = CHANNELS
    directory: Path = Path(".")

    @classmethod
    def starting_at(
        cls, when: datetime, directory: Union[str, Path] = ".", timespec: str = "seconds"
    ) -> "Segment":
        return cls(name=rfc3339(when, timespec), directory=Path(directory))

    @property
    def path(self) -> Path:
        return self.directory / f"{self.name}.wav"
