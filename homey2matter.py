#!/usr/bin/env python3
"""Homey to Matter bridge."""

import asyncio
import logging
import os
import signal
import sys

from constants import DEFAULT_CONFIG_FILE, ENV_CONFIG_FILE, ENV_LOG_LEVEL
from homey2matter_app import Homey2Matter, load_config

logger = logging.getLogger(__name__)


async def main(config_path: str) -> int:
    """Run the bridge until SIGINT/SIGTERM. Returns the process exit code."""
    try:
        config = load_config(config_path)
    except (FileNotFoundError, ValueError) as e:
        logger.error(str(e))
        return 1

    app = Homey2Matter(config)
    loop = asyncio.get_running_loop()
    exit_code = 0

    async def runner():
        nonlocal exit_code
        try:
            await app.start()
        except asyncio.CancelledError:
            pass
        except Exception as e:
            logger.error(f"Bridge failed: {e}", exc_info=True)
            exit_code = 1
        finally:
            await app.stop()

    task = loop.create_task(runner())

    def _shutdown(sig: signal.Signals):
        if not task.done():
            logger.info(f"Received {sig.name}, shutting down...")
            task.cancel()

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, _shutdown, sig)
        except NotImplementedError:
            pass

    await task
    return exit_code


def run():
    logging.basicConfig(
        level=os.environ.get(ENV_LOG_LEVEL, "INFO").upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    config_path = os.environ.get(ENV_CONFIG_FILE, DEFAULT_CONFIG_FILE)
    sys.exit(asyncio.run(main(config_path)))


if __name__ == "__main__":
    run()
