"""
WakeAlert — Process entry point.
Configures logging, restores persisted wake timers, and waits for timers to
fire until SIGINT/SIGTERM.
"""

import asyncio
import logging
import signal

from wakealert.core.config import settings
from wakealert.engine import ReminderEngine
from wakealert.infra.logging_config import setup_logging

logger = logging.getLogger(__name__)


async def run(engine: ReminderEngine | None = None, shutdown_event: asyncio.Event | None = None) -> None:
    engine = engine or ReminderEngine()
    shutdown_event = shutdown_event or asyncio.Event()

    loop = asyncio.get_running_loop()
    installed = []
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, shutdown_event.set)
            installed.append(sig)
        except (NotImplementedError, RuntimeError):
            pass  # Windows event loops, or not on the main thread

    await engine.start()
    try:
        await shutdown_event.wait()
    finally:
        logger.info("Shutting down WakeAlert...")
        await engine.stop()
        for sig in installed:
            loop.remove_signal_handler(sig)


def main() -> None:
    setup_logging(
        level="DEBUG" if settings.DEBUG else settings.LOG_LEVEL,
        log_file=settings.LOG_FILE or None,
        json_format=settings.LOG_JSON,
    )
    logger.info(f"Starting WakeAlert {settings.VERSION} ({settings.ENVIRONMENT})")
    asyncio.run(run())


if __name__ == "__main__":
    main()
