# src/sd_relay/logging_setup.py

from __future__ import annotations

import logging
import sys
from pathlib import Path

CHANNEL_LOGGER_PREFIX = "sd_relay.channel"


class _ConsoleNoiseFilter(logging.Filter):
    """
    Keep the console readable:
    - allow sd_relay logs
    - suppress third-party noise (aiohttp, httpx, nsq, tornado) unless WARNING+
    - suppress Python warnings (captured as 'py.warnings') unless ERROR+
    """

    def filter(self, record: logging.LogRecord) -> bool:
        name = record.name

        if name.startswith("sd_relay."):
            return True

        if name == "py.warnings":
            return record.levelno >= logging.ERROR

        return record.levelno >= logging.WARNING


class _ChannelOnlyFilter(logging.Filter):
    """Pass only records emitted by the websocket channel modules."""

    def filter(self, record: logging.LogRecord) -> bool:
        return record.name.startswith(CHANNEL_LOGGER_PREFIX)


def setup_logging(
    *,
    log_dir: str | Path = "./log",
    console_level: int = logging.INFO,
    file_level: int = logging.DEBUG,
) -> None:
    """
    Configure logging with:
    - Console handler: filtered
    - relay.log: everything
    - socket.log: channel lifecycle only (connect/ping/close/teardown)

    Call this ONCE, very early (before first logger.info).
    """
    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)

    # Remove any pre-existing handlers to avoid duplicates.
    for h in list(root.handlers):
        root.removeHandler(h)

    fmt = logging.Formatter(
        fmt="%(asctime)s.%(msecs)03d %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    ch = logging.StreamHandler(sys.stderr)
    ch.setLevel(console_level)
    ch.setFormatter(fmt)
    ch.addFilter(_ConsoleNoiseFilter())
    root.addHandler(ch)

    fh = logging.FileHandler(str(log_dir / "relay.log"), encoding="utf-8")
    fh.setLevel(file_level)
    fh.setFormatter(fmt)
    root.addHandler(fh)

    sh = logging.FileHandler(str(log_dir / "socket.log"), encoding="utf-8")
    sh.setLevel(file_level)
    sh.setFormatter(fmt)
    sh.addFilter(_ChannelOnlyFilter())
    root.addHandler(sh)

    logging.captureWarnings(True)

    for noisy in ("aiohttp", "httpx", "httpcore", "nsq", "tornado"):
        logging.getLogger(noisy).setLevel(logging.INFO)
