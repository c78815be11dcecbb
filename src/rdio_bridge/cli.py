"""Command-line interface for running the WhackerLink to Rdio Scanner bridge."""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys
import traceback
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Final

from dotenv import find_dotenv, load_dotenv

from .bridge import RdioBridge
from .config import BridgeConfig
from .errors import ConfigurationError, RdioBridgeError

LOG_LEVELS: Final[dict[str, int]] = {
    "CRITICAL": logging.CRITICAL,
    "ERROR": logging.ERROR,
    "WARNING": logging.WARNING,
    "INFO": logging.INFO,
    "DEBUG": logging.DEBUG,
}


@dataclass(frozen=True, slots=True)
class CliOptions:
    """Parsed command-line options for the bridge CLI.

    When ``config_path`` is unset the configuration is read from ``RDIO_*``
    environment variables (optionally loaded from a ``.env`` file).
    """

    config_path: Path | None
    dotenv_path: Path | None
    log_level: int


async def run_async(options: CliOptions) -> int:
    """Execute the bridge until a shutdown signal arrives and return the exit code."""
    logger = _setup_logging(options.log_level)

    dotenv_file = (
        str(options.dotenv_path) if options.dotenv_path is not None else find_dotenv(usecwd=True)
    )
    if dotenv_file:
        load_dotenv(dotenv_file, override=True)
        logger.info("Loaded environment from %s (override=True)", dotenv_file)
    else:
        logger.debug("No .env file found; relying on process environment only")

    try:
        config = resolve_config(options)
    except ConfigurationError as exc:
        logger.error("Failed to load config: %s", exc)
        print(f"error: {exc}", file=sys.stderr)
        return 1

    logger.info("WhackerLink Rdio Scanner bridge")
    logger.info(
        "Peering with %s:%s, uploading to %s",
        config.master.address,
        config.master.port,
        config.ingest.upload_url,
    )
    bridge = RdioBridge(config)
    try:
        await bridge.start()
        await _wait_for_shutdown_signal(bridge.peer_task)
        logger.info("Shutting down...")
    except RdioBridgeError as exc:
        logger.error("Bridge error: %s", exc)
        print(f"Bridge error: {exc}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
    except Exception as exc:
        logger.exception("An unhandled exception occurred")
        print(f"Unexpected error: {exc}", file=sys.stderr)
        return 1
    finally:
        await bridge.shutdown()
    return 0


def resolve_config(options: CliOptions) -> BridgeConfig:
    """Load configuration from the JSON file in *options* or from the environment."""
    if options.config_path is not None:
        return BridgeConfig.from_file(options.config_path)
    return BridgeConfig.from_environment()


def _setup_logging(log_level: int) -> logging.Logger:
    """Configure logging and return the CLI logger.

    Reduces noise from network libraries at non-DEBUG levels.
    """
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
    if log_level > logging.DEBUG:
        logging.getLogger("httpx").setLevel(logging.WARNING)
        logging.getLogger("httpcore").setLevel(logging.WARNING)
        logging.getLogger("websockets").setLevel(logging.WARNING)
    return logging.getLogger("rdio_bridge.cli")


def parse_cli_args(argv: Sequence[str] | None = None) -> CliOptions:
    """Parse command-line arguments into :class:`CliOptions`."""
    parser = argparse.ArgumentParser(
        prog="rdio_bridge",
        description=(
            "Record WhackerLink voice calls and upload each finished call to Rdio Scanner."
        ),
        epilog=(
            'Example config: {"master": {"address": "127.0.0.1", "port": 3005}, '
            '"ingest": {"endpoint": "http://localhost:3000", "api_key": "KEY"}, '
            '"talkgroups": ["1"]}'
        ),
    )
    parser.add_argument(
        "-c",
        "--config",
        dest="config_path",
        type=Path,
        default=None,
        help=(
            "Path to a JSON configuration file with snake_case keys (defaults to RDIO_* "
            "environment variables). YAML config.yml files are not read; convert them "
            "to this layout."
        ),
    )
    parser.add_argument(
        "--dotenv",
        type=Path,
        default=None,
        help="Optional path to a .env file containing RDIO_* settings",
    )
    parser.add_argument(
        "--log-level",
        choices=tuple(LOG_LEVELS.keys()),
        default="INFO",
        help="Log level for diagnostic output",
    )
    namespace = parser.parse_args(argv)
    config_path = namespace.config_path
    if config_path is not None:
        config_path = config_path.expanduser().resolve()
    return CliOptions(
        config_path=config_path,
        dotenv_path=namespace.dotenv,
        log_level=LOG_LEVELS[namespace.log_level],
    )


async def _wait_for_shutdown_signal(peer_task: asyncio.Task[None] | None = None) -> None:
    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    registered: list[signal.Signals] = []
    for signum in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(signum, stop_event.set)
        except (NotImplementedError, RuntimeError):
            continue
        registered.append(signum)
    waiters: set[asyncio.Future[Any]] = {asyncio.ensure_future(stop_event.wait())}
    if peer_task is not None:
        waiters.add(peer_task)
    try:
        await asyncio.wait(waiters, return_when=asyncio.FIRST_COMPLETED)
    finally:
        for waiter in waiters:
            if waiter is not peer_task:
                waiter.cancel()
        for signum in registered:
            loop.remove_signal_handler(signum)


def main(argv: Sequence[str] | None = None) -> None:
    """Entry point for the ``rdio_bridge`` console script."""
    options = parse_cli_args(argv)
    try:
        exit_code = asyncio.run(run_async(options))
    except KeyboardInterrupt:
        exit_code = 130
    except Exception:  # noqa: BLE001
        traceback.print_exc(limit=1)
        exit_code = 1
    raise SystemExit(exit_code)
