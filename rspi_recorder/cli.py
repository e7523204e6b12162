"""cli.py
Command-line entry point for rspi-mic-recorder.

    rspi-mic-recorder [--log-path PATH] [--debug]

Exit status is 0 after a graceful shutdown (or when no audio backend is
reachable) and 1 when the log file or configuration cannot be used.
"""

from __future__ import annotations

import asyncio
import sys

import click
from rich.console import Console

from rspi_recorder import __version__

console = Console(stderr=True)

DEFAULT_LOG_PATH = "./vaf.log"


@click.command()
@click.option("--log-path", "--logPath", "log_path", default=DEFAULT_LOG_PATH, show_default=True, help="Path to log file")
@click.option("--debug", is_flag=True, help="Enable debug mode")
@click.version_option(__version__, prog_name="rspi-mic-recorder")
def cli(log_path: str, debug: bool):
    """Record the microphone into back-to-back 7 second WAV files."""
    from rspi_recorder.config import ConfigError, load_config
    from rspi_recorder.log_setup import close_logging, setup_logging
    from rspi_recorder.recorder import run_recorder

    try:
        logger = setup_logging(log_path, debug)
    except OSError as exc:
        console.print(f"[red]error opening log file: {exc}[/red]")
        console.print("[red]rspi-mic-recorder failed to start, exiting[/red]")
        sys.exit(1)

    try:
        logger.info("rspi-mic-recorder started successfully logPath=%s debugMode=%s", log_path, debug)
        try:
            config = load_config()
        except ConfigError as exc:
            logger.error("%s", exc)
            sys.exit(1)

        try:
            asyncio.run(run_recorder(config, logger))
        except KeyboardInterrupt:
            console.print("\n[yellow]Interrupted by user[/yellow]")
        except OSError as exc:
            logger.error("Recorder stopped: %s", exc)
            sys.exit(1)
    finally:
        close_logging(logger)


def main():
    """Entry point for the rspi-mic-recorder command."""
    cli()


if __name__ == "__main__":
    main()
