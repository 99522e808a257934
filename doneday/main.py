"""DoneDay reminder service entry point."""

import asyncio
import contextlib
import logging
import signal

from doneday.config import settings

logging.basicConfig(
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    level=getattr(logging, settings.log_level),
)
logger = logging.getLogger(__name__)


async def serve() -> None:
    """Run the reminder service until SIGINT/SIGTERM."""
    from doneday.app import ReminderApp

    app = ReminderApp()
    await app.start()

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(sig, stop.set)

    logger.info("DoneDay reminder service running (db=%s)", settings.database_path)
    try:
        await stop.wait()
    finally:
        logger.info("Shutting down...")
        await app.stop()


def main() -> None:
    """Start the reminder service."""
    asyncio.run(serve())


if __name__ == "__main__":
    main()
