"""Entry point for the cross-DEX arbitrage scanner."""

import asyncio
import signal

from loguru import logger

from config.settings import settings
from src.parsers.worker import run_scanner
from src.utils.logger import setup_logger


async def main() -> None:
    setup_logger(json_logs=settings.json_logs, level="INFO")
    logger.info("Starting arbitrage scanner...")

    # Graceful shutdown on SIGINT/SIGTERM
    loop = asyncio.get_event_loop()
    shutdown_event = asyncio.Event()

    def _signal_handler() -> None:
        logger.info("Shutdown signal received")
        shutdown_event.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, _signal_handler)

    scanner_task = asyncio.create_task(run_scanner())

    # Wait for either scanner to finish or shutdown signal
    done, pending = await asyncio.wait(
        [scanner_task, asyncio.create_task(shutdown_event.wait())],
        return_when=asyncio.FIRST_COMPLETED,
    )

    # Cancel remaining tasks
    for task in pending:
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    # Surface a scanner crash (e.g. no RPC endpoint configured)
    if scanner_task in done and scanner_task.exception() is not None:
        logger.error(f"Scanner stopped: {scanner_task.exception()}")

    logger.info("Shutdown complete")


if __name__ == "__main__":
    asyncio.run(main())
