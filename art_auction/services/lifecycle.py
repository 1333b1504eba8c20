"""
Auction Lifecycle Manager

Single authority for auction status:

    DRAFT → APPROVED → LIVE → CLOSED
                           ↘ CANCELLED

Also owns the time-driven parts of an auction: auto-extension when a bid
lands near the close, and the scheduled close itself.
"""
import logging
from datetime import datetime, timedelta
from typing import Callable, Dict, FrozenSet, List, Optional

from art_auction.core.clock import utcnow
from art_auction.core.errors import AuctionNotLiveError, IllegalTransitionError
from art_auction.infrastructure.broadcaster import AUCTION_EXTENDED, AUCTION_STATUS_CHANGED
from art_auction.models import Auction, AuctionStatus
from art_auction.schemas.bid import LedgerState

logger = logging.getLogger(__name__)

TRANSITIONS: Dict[AuctionStatus, FrozenSet[AuctionStatus]] = {
    AuctionStatus.DRAFT: frozenset({AuctionStatus.APPROVED}),
    AuctionStatus.APPROVED: frozenset({AuctionStatus.LIVE}),
    AuctionStatus.LIVE: frozenset({AuctionStatus.CLOSED, AuctionStatus.CANCELLED}),
    AuctionStatus.CLOSED: frozenset(),
    AuctionStatus.CANCELLED: frozenset(),
}


class AuctionLifecycleManager:
    """Owns auction status, auto-extension and close scheduling"""

    def __init__(self, transactions, scheduler):
        self.transactions = transactions
        self.scheduler = scheduler
        self._closer: Optional[Callable[..., object]] = None

    def bind_closer(self, closer: Callable[..., object]):
        """Closure entry point used for LIVE → CLOSED"""
        self._closer = closer

    # ------------------------------------------------------------------
    # Guards
    # ------------------------------------------------------------------
    @staticmethod
    def require_live(auction: Auction):
        if auction.status != AuctionStatus.LIVE:
            raise AuctionNotLiveError(
                f"Auction {auction.auction_id} is {auction.status.value}", auction.auction_id
            )

    @staticmethod
    def check_transition(auction: Auction, target: AuctionStatus):
        if target not in TRANSITIONS[auction.status]:
            raise IllegalTransitionError(
                f"Auction {auction.auction_id} cannot go from {auction.status.value} to {target.value}",
                auction.auction_id,
            )

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------
    def transition(self, auction_id: int, target_status, now: Optional[datetime] = None) -> LedgerState:
        """
        Move an auction along the transition table

        CLOSED → CLOSED is a no-op. LIVE → CLOSED goes through the closure
        service so the result is always computed.

        Raises:
            IllegalTransitionError: edge not in the table
        """
        target = AuctionStatus(target_status)
        now = now or utcnow()

        if target == AuctionStatus.CLOSED:
            with self.transactions.read() as repo:
                auction = repo.get_auction(auction_id)
                if auction.status != AuctionStatus.CLOSED:
                    self.check_transition(auction, target)
            if auction.status != AuctionStatus.CLOSED:
                self._closer(auction_id, now)
            return self.state(auction_id)

        with self.transactions.begin(auction_id) as uow:
            self.apply_transition(uow, target, now)
            state = LedgerState.from_auction(uow.auction)

        return state

    def apply_transition(self, uow, target: AuctionStatus, now: datetime):
        """Change status inside a held critical section"""
        auction = uow.auction
        self.check_transition(auction, target)
        previous = auction.status
        auction.status = target

        if target == AuctionStatus.LIVE:
            end_time = auction.end_time
            uow.on_commit(lambda: self.schedule_close(auction.auction_id, end_time))
        elif target in (AuctionStatus.CANCELLED, AuctionStatus.CLOSED):
            uow.repo.deactivate_all_ceilings(auction.auction_id, now)
            uow.on_commit(lambda: self.scheduler.cancel(auction.auction_id))

        uow.emit(AUCTION_STATUS_CHANGED, {"from": previous.value, "to": target.value})
        logger.info(
            f"🔄 Auction {auction.auction_id}: {previous.value} → {target.value}",
            extra={"auction_id": auction.auction_id},
        )

    def activate_due(self, now: Optional[datetime] = None) -> List[int]:
        """Go LIVE on every APPROVED auction whose start_time has passed"""
        now = now or utcnow()

        with self.transactions.read() as repo:
            due = repo.find_due(AuctionStatus.APPROVED, Auction.start_time, now)

        activated = []
        for auction_id in due:
            with self.transactions.begin(auction_id) as uow:
                # Re-check under the lock; an admin may have acted meanwhile
                if uow.auction.status != AuctionStatus.APPROVED or uow.auction.start_time > now:
                    continue
                self.apply_transition(uow, AuctionStatus.LIVE, now)
            activated.append(auction_id)

        return activated

    # ------------------------------------------------------------------
    # End time
    # ------------------------------------------------------------------
    def evaluate_auto_extend(self, auction_id: int, bid_placed_at: datetime) -> LedgerState:
        """Standalone auto-extend check; bids run the same logic inside their own section"""
        with self.transactions.begin(auction_id) as uow:
            self.require_live(uow.auction)
            self.apply_auto_extend(uow, bid_placed_at)
            return LedgerState.from_auction(uow.auction)

    def apply_auto_extend(self, uow, bid_placed_at: datetime) -> bool:
        """
        Anti-sniping: a bid inside the window pushes end_time to
        bid_placed_at + duration. Never shortens the auction.
        """
        auction = uow.auction
        self.require_live(auction)

        window = timedelta(seconds=auction.auto_extend_window_seconds or 0)
        if not window or auction.end_time - bid_placed_at >= window:
            return False

        new_end_time = bid_placed_at + timedelta(seconds=auction.auto_extend_duration_seconds or 0)
        if new_end_time <= auction.end_time:
            return False

        self._set_end_time(uow, new_end_time, reason="auto")
        return True

    def extend(self, auction_id: int, seconds: int) -> LedgerState:
        """Admin extension of a LIVE auction"""
        if seconds <= 0:
            raise ValueError("Extension must be a positive number of seconds")

        with self.transactions.begin(auction_id) as uow:
            self.require_live(uow.auction)
            self._set_end_time(uow, uow.auction.end_time + timedelta(seconds=seconds), reason="admin")
            return LedgerState.from_auction(uow.auction)

    def _set_end_time(self, uow, new_end_time: datetime, reason: str):
        auction = uow.auction
        old_end_time = auction.end_time
        auction.end_time = new_end_time
        auction.auto_extend_count = (auction.auto_extend_count or 0) + (1 if reason == "auto" else 0)

        uow.on_commit(lambda: self.schedule_close(auction.auction_id, new_end_time))
        uow.emit(AUCTION_EXTENDED, {
            "previous_end_time": old_end_time.isoformat(),
            "end_time": new_end_time.isoformat(),
            "reason": reason,
            "extension_count": auction.auto_extend_count,
        })
        logger.info(
            f"⏰ Auction {auction.auction_id} extended ({reason}): "
            f"{old_end_time.isoformat()} → {new_end_time.isoformat()}",
            extra={"auction_id": auction.auction_id},
        )

    def schedule_close(self, auction_id: int, end_time: datetime):
        """Arrange for the closure service to run at end_time"""
        self.scheduler.schedule(auction_id, end_time)

    def state(self, auction_id: int) -> LedgerState:
        with self.transactions.read() as repo:
            return LedgerState.from_auction(repo.get_auction(auction_id))
