"""
Close Scheduler

Keeps the close deadline of every LIVE auction and fires due closes from a
polling loop. Activation of APPROVED auctions whose start_time has come runs
on the same tick.

The deadline registry is only a hint: close_if_due re-reads the auction, so
a stale entry (extended or force-closed auction) is harmless. Each tick also
sweeps the database for overdue LIVE auctions the registry is missing.
"""
import asyncio
import logging
import threading
from datetime import datetime
from typing import Dict, List, Optional

from art_auction.core.clock import utcnow
from art_auction.core.config import get_settings
from art_auction.core.errors import AuctionEngineError
from art_auction.models import Auction, AuctionStatus

logger = logging.getLogger(__name__)


class CloseScheduler:
    """Registry of close deadlines plus the background loop that fires them"""

    def __init__(self, check_interval: Optional[float] = None):
        self.check_interval = (
            check_interval if check_interval is not None
            else get_settings().CLOSE_CHECK_INTERVAL_SECONDS
        )
        self._deadlines: Dict[int, datetime] = {}
        self._mutex = threading.Lock()
        self.lifecycle = None
        self.closure = None
        self.running = False
        self.task = None

    def bind(self, lifecycle, closure):
        self.lifecycle = lifecycle
        self.closure = closure

    # ------------------------------------------------------------------
    # Registry
    # ------------------------------------------------------------------
    def schedule(self, auction_id: int, end_time: datetime):
        """Set (or move) the close deadline of an auction"""
        with self._mutex:
            self._deadlines[auction_id] = end_time
        logger.debug(f"🗓️  Close of auction {auction_id} scheduled at {end_time.isoformat()}")

    def cancel(self, auction_id: int) -> bool:
        with self._mutex:
            return self._deadlines.pop(auction_id, None) is not None

    def deadline(self, auction_id: int) -> Optional[datetime]:
        with self._mutex:
            return self._deadlines.get(auction_id)

    def due(self, now: datetime) -> List[int]:
        """Auction IDs whose deadline is at or before now, earliest first"""
        with self._mutex:
            ready = [(end, aid) for aid, end in self._deadlines.items() if end <= now]
        return [aid for _, aid in sorted(ready)]

    def __len__(self):
        with self._mutex:
            return len(self._deadlines)

    # ------------------------------------------------------------------
    # Firing
    # ------------------------------------------------------------------
    def recover(self) -> int:
        """Rebuild deadlines from LIVE auctions in the database (after a restart)"""
        with self.lifecycle.transactions.read() as repo:
            auction_ids = repo.list_auction_ids(AuctionStatus.LIVE)
            for auction_id in auction_ids:
                self.schedule(auction_id, repo.get_auction(auction_id).end_time)

        logger.info(f"🔁 Recovered {len(auction_ids)} scheduled closes")
        return len(auction_ids)

    def run_due(self, now: Optional[datetime] = None) -> List[int]:
        """
        One scheduler tick

        Returns:
            IDs of the auctions closed on this tick
        """
        now = now or utcnow()
        self.lifecycle.activate_due(now)

        # Registry first, then LIVE rows it never heard of (another engine went LIVE)
        with self.lifecycle.transactions.read() as repo:
            overdue = repo.find_due(AuctionStatus.LIVE, Auction.end_time, now)
        pending = self.due(now)
        pending += [aid for aid in overdue if aid not in pending]

        closed = []
        for auction_id in pending:
            try:
                result = self.closure.close_if_due(auction_id, now)
            except AuctionEngineError as e:
                logger.error(
                    f"❌ Scheduled close of auction {auction_id} failed: {e}",
                    extra={"auction_id": auction_id},
                )
                continue

            if result is not None:
                self.cancel(auction_id)
                closed.append(auction_id)
                continue

            # Not closed: extended meanwhile, or no longer LIVE
            state = self.lifecycle.state(auction_id)
            if state.status == AuctionStatus.LIVE:
                self.schedule(auction_id, state.end_time)
            else:
                self.cancel(auction_id)

        return closed

    # ------------------------------------------------------------------
    # Background loop
    # ------------------------------------------------------------------
    async def start(self):
        """Start the background loop"""
        if self.running:
            logger.warning("⚠️  Close scheduler already running")
            return

        self.running = True
        self.task = asyncio.create_task(self._run())
        logger.info(f"✅ Close scheduler started (interval: {self.check_interval}s)")

    async def stop(self):
        """Stop the background loop"""
        if not self.running:
            return

        self.running = False
        if self.task:
            self.task.cancel()
            try:
                await self.task
            except asyncio.CancelledError:
                pass
        logger.info("🛑 Close scheduler stopped")

    async def _run(self):
        """Main loop"""
        while self.running:
            try:
                # Sessions and locks are synchronous; keep them off the event loop
                await asyncio.to_thread(self.run_due)
                await asyncio.sleep(self.check_interval)
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"❌ Error in close scheduler: {e}")
                await asyncio.sleep(self.check_interval)
