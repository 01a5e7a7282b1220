# src/sd_relay/cli/main.py

"""
CLI entrypoint.

Initializes logging, validates the encryption key, builds the RelayApp, then
consumes the NSQ topic until SIGINT/SIGTERM.
"""

from __future__ import annotations

import asyncio
import logging

import nsq
import tornado.ioloop

from ..cli.bootstrap import check_app_key, create_app
from ..config import get_settings
from ..connectors.nsq_consumer import create_nsq_reader
from ..errors import CryptoError
from ..logging_setup import setup_logging

logger = logging.getLogger(__name__)


def main() -> None:
    settings = get_settings()

    level_name = str(settings.log_level).upper()
    console_level = getattr(logging, level_name, logging.INFO)
    setup_logging(log_dir=settings.log_dir, console_level=console_level)

    try:
        check_app_key(settings.app_key)
    except CryptoError as e:
        logger.error("Invalid configuration: %s", e)
        raise SystemExit(f"sd-relay: {e}") from e

    logger.info("Starting %s (env=%s)...", settings.app_name, settings.env or "default")

    # pynsq drives tornado, which runs on this asyncio loop.
    asyncio.set_event_loop(asyncio.new_event_loop())

    app = create_app(settings=settings)
    reader = create_nsq_reader(settings, app.consumer)

    try:
        # Blocks until SIGINT/SIGTERM stops the IOLoop.
        nsq.run()
    finally:
        logger.info("Shutting down...")
        try:
            reader.close()
        except Exception:
            logger.debug("NSQ reader close failed.", exc_info=True)
        tornado.ioloop.IOLoop.current().run_sync(app.aclose)
        logger.info("Bye.")


if __name__ == "__main__":
    main()
