"""recorder.py
Entry-point coroutine for the microphone recorder.

Run with the CLI:
    rspi-mic-recorder                    # log to ./vaf.log
    rspi-mic-recorder --debug --log-path /var/log/vaf.log

Or directly:
    python -m rspi_recorder

Send SIGINT (Ctrl-C) or SIGTERM to stop; the segment being recorded is
saved before the process exits.
"""

from __future__ import annotations

import asyncio
import logging
import signal
import sys
from typing import Callable, Optional

from rspi_recorder.audio_backend import AudioBackend, BackendError
from rspi_recorder.config import get_audio_device, get_output_dir
from rspi_recorder.controller import SegmentController

__all__ = ["install_shutdown_handlers", "run_recorder"]

_SIGNALS = (signal.SIGINT, signal.SIGTERM)


def install_shutdown_handlers(
    loop: asyncio.AbstractEventLoop,
    shutdown: asyncio.Event,
    logger: logging.Logger,
) -> bool:
    """Arm *shutdown* on SIGINT/SIGTERM; returns False where unsupported."""
    # add_signal_handler doesn't exist on Windows; Ctrl-C arrives as KeyboardInterrupt there
    if sys.platform == "win32":
        return False

    def _on_signal(sig: signal.Signals) -> None:
        if shutdown.is_set():
            logger.debug("Ignoring repeated %s, already shutting down", sig.name)
            return
        logger.info("Received %s, finishing current segment before exit", sig.name)
        shutdown.set()

    for sig in _SIGNALS:
        loop.add_signal_handler(sig, _on_signal, sig)
    return True


def _remove_shutdown_handlers(loop: asyncio.AbstractEventLoop) -> None:
    for sig in _SIGNALS:
        loop.remove_signal_handler(sig)


async def run_recorder(
    config: dict,
    logger: logging.Logger,
    *,
    connect: Callable[..., AudioBackend] = AudioBackend.connect,
    shutdown: Optional[asyncio.Event] = None,
) -> int:
    """Record segments until shutdown; returns the number of segments started.

    Args:
        config: Merged configuration (see :mod:`rspi_recorder.config`).
        logger: Logger built by :func:`rspi_recorder.log_setup.setup_logging`.
        connect: Backend factory, ``connect(device=..., logger=...)``.
        shutdown: Pre-armed event; when omitted one is created and bound
            to SIGINT/SIGTERM.
    """
    try:
        backend = connect(device=get_audio_device(config), logger=logger)
    except BackendError as exc:
        logger.error("%s", exc)
        logger.error("Failed to create audio backend client, exiting...")
        return 0

    loop = asyncio.get_running_loop()
    handlers_installed = False
    if shutdown is None:
        shutdown = asyncio.Event()
        handlers_installed = install_shutdown_handlers(loop, shutdown, logger)

    output_dir = get_output_dir(config)
    try:
        output_dir.mkdir(parents=True, exist_ok=True)
        controller = SegmentController(backend, shutdown, logger, output_dir=output_dir)
        logger.info("Recording into %s", output_dir.resolve())
        count = await controller.run()
    finally:
        if handlers_installed:
            _remove_shutdown_handlers(loop)
        backend.close()

    logger.info("Main done")
    return count
