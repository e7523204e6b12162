"""handshake.py
Single-use stop/done hand-off between the controller and one segment worker.

Usage (one instance per segment):

    hs = Handshake()
    # controller                      # worker
    hs.send_stop()                    await hs.wait_stop()
    status = await hs.wait_done()     hs.send_done(RecordStatus.SUCCESS)

Exactly two messages ever travel over a handshake: ``STOP`` from the
controller, then the worker's acknowledgment.  A worker whose stream never
came up acknowledges straight away with ``FAIL`` and no stop is sent.
"""

from __future__ import annotations

import asyncio
from enum import IntEnum
from typing import List

__all__ = ["Handshake", "HandshakeError", "RecordStatus"]


class RecordStatus(IntEnum):
    SUCCESS = 0
    FAIL = 1
    STOP = 2


class HandshakeError(RuntimeError):
    """Raised when either side breaks the two-message protocol."""


class Handshake:
    """Pair of single-fulfilment futures bound to the running event loop."""

    def __init__(self) -> None:
        loop = asyncio.get_running_loop()
        self._stop: asyncio.Future = loop.create_future()
        self._done: asyncio.Future = loop.create_future()
        self.history: List[RecordStatus] = []

    # controller side
    def send_stop(self) -> None:
        if self._stop.done():
            raise HandshakeError("stop already sent on this handshake")
        if self._done.done():
            raise HandshakeError("worker already acknowledged; stop would never be read")
        self._stop.set_result(RecordStatus.STOP)
        self.history.append(RecordStatus.STOP)

    async def wait_done(self) -> RecordStatus:
        return await self._done

    # worker side
    async def wait_stop(self) -> RecordStatus:
        return await self._stop

    def send_done(self, status: RecordStatus) -> None:
        if self._done.done():
            raise HandshakeError("done already sent on this handshake")
        if status is RecordStatus.STOP:
            raise HandshakeError("STOP is not a valid acknowledgment")
        self._done.set_result(status)
        self.history.append(status)

    @property
    def stop_sent(self) -> bool:
        return self._stop.done()

    @property
    def finished(self) -> bool:
        """True once the worker has acknowledged."""
        return self._done.done()
