"""
Close Worker Process

Runs the close scheduler loop:
- Recovers close deadlines of LIVE auctions on startup
- Activates APPROVED auctions at start_time
- Closes LIVE auctions at end_time

Run with: art-auction-worker   (or python -m art_auction.worker.close_worker)
"""
import asyncio
import logging
import signal

from art_auction.core.config import get_settings
from art_auction.core.logging_config import setup_logging
from art_auction.infrastructure.database import create_db_engine, create_session_factory, init_db
from art_auction.infrastructure.redis_client import test_redis_connection
from art_auction.services.engine import build_engine

logger = logging.getLogger(__name__)


class CloseWorker:
    """Owns one engine and keeps its scheduler running until told to stop"""

    def __init__(self, engine):
        self.engine = engine
        self.running = True

    async def run(self):
        scheduler = self.engine.scheduler
        scheduler.recover()
        await scheduler.start()

        try:
            while self.running:
                await asyncio.sleep(0.5)
        finally:
            await scheduler.stop()
            logger.info(f"🛑 Close worker stopped ({len(scheduler)} closes still scheduled)")


async def main():
    """Main entry point for the worker process"""
    settings = get_settings()
    setup_logging()

    if settings.LOCK_BACKEND == "redis" or settings.BROADCAST_BACKEND == "redis":
        if not test_redis_connection():
            logger.error("❌ Redis is required by the configured backends; exiting")
            return

    db_engine = create_db_engine()
    init_db(db_engine)
    worker = CloseWorker(build_engine(settings, create_session_factory(db_engine)))

    # Handle graceful shutdown (Ctrl+C)
    def signal_handler(sig, frame):
        logger.warning(f"⚠️  Shutdown signal {sig} received...")
        worker.running = False

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    try:
        await worker.run()
    except KeyboardInterrupt:
        logger.warning("⚠️  Keyboard interrupt")
        worker.running = False


def run():
    """Console script entry point"""
    asyncio.run(main())


if __name__ == "__main__":
    run()
