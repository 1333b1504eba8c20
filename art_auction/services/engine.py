"""
Auction Engine - boundary facade

Wires the components together and is the only place where typed engine
errors turn into result objects:

- Bid rejections (not live, expired, too low, invalid) → BidResponse(success=False)
- CONCURRENT_MODIFICATION → retried, then BidResponse(success=False)
- Lifecycle misuse and defects → logged and re-raised
"""
import logging
from datetime import datetime
from typing import Callable, List, Optional

from sqlalchemy.orm import sessionmaker

from art_auction.core.config import Settings, get_settings
from art_auction.core.errors import (
    BID_REJECTIONS,
    AuctionEngineError,
    BidTooLowError,
    ConcurrentModificationError,
    ErrorCode,
)
from art_auction.infrastructure.broadcaster import NullBroadcaster, RealtimeBroadcaster, RedisBroadcaster
from art_auction.infrastructure.database import get_session_factory
from art_auction.infrastructure.lock import AuctionLock, LocalAuctionLock, RedisAuctionLock
from art_auction.infrastructure.redis_client import get_redis_client
from art_auction.schemas.auction import AuctionCreate, ClosureResult
from art_auction.schemas.bid import BidPlacement, BidRecord, BidResponse, CeilingRecord, LedgerState
from art_auction.services.auction_service import AuctionService
from art_auction.services.bid_ledger import BidLedger
from art_auction.services.closure_service import AuctionClosureService, PaymentSink
from art_auction.services.lifecycle import AuctionLifecycleManager
from art_auction.services.pricing import FeeCalculator, IncrementSchedule
from art_auction.services.proxy_resolver import ProxyBidResolver
from art_auction.services.scheduler import CloseScheduler
from art_auction.services.transaction import AuctionTransactions, run_with_retry

logger = logging.getLogger(__name__)


class AuctionEngine:
    """Entry point for bidders, admins and the close worker"""

    def __init__(
        self,
        session_factory: sessionmaker,
        lock: Optional[AuctionLock] = None,
        broadcaster: Optional[RealtimeBroadcaster] = None,
        scheduler: Optional[CloseScheduler] = None,
        payment_sink: Optional[PaymentSink] = None,
        increments: Optional[IncrementSchedule] = None,
        fee_calculator: Optional[FeeCalculator] = None,
    ):
        settings = get_settings()
        self.max_retries = settings.BID_MAX_RETRIES

        self.broadcaster = broadcaster or NullBroadcaster()
        self.transactions = AuctionTransactions(session_factory, lock or LocalAuctionLock(), self.broadcaster)
        self.scheduler = scheduler or CloseScheduler()
        self.fees = fee_calculator or FeeCalculator()

        self.lifecycle = AuctionLifecycleManager(self.transactions, self.scheduler)
        self.ledger = BidLedger(self.transactions, self.lifecycle, increments)
        self.resolver = ProxyBidResolver(self.transactions, self.ledger, self.lifecycle)
        self.closure = AuctionClosureService(self.transactions, self.lifecycle, self.fees, payment_sink)
        self.auctions = AuctionService(session_factory)

        self.lifecycle.bind_closer(self.closure.close)
        self.scheduler.bind(self.lifecycle, self.closure)

    # ------------------------------------------------------------------
    # Bidding
    # ------------------------------------------------------------------
    def place_bid(self, auction_id: int, bidder_id: int, amount, now: Optional[datetime] = None) -> BidResponse:
        """Place a manual bid and report the outcome"""
        return self._bid_response(
            auction_id,
            bidder_id,
            lambda: self.ledger.place_bid(auction_id, bidder_id, amount, now),
            "Bid placed successfully",
        )

    def register_proxy_ceiling(
        self, auction_id: int, bidder_id: int, ceiling_amount, now: Optional[datetime] = None
    ) -> BidResponse:
        """Register (or replace) a bidder's proxy ceiling"""
        return self._bid_response(
            auction_id,
            bidder_id,
            lambda: self.resolver.register_ceiling(auction_id, bidder_id, ceiling_amount, now),
            "Proxy bid registered",
        )

    def _bid_response(
        self,
        auction_id: int,
        bidder_id: int,
        operation: Callable[[], BidPlacement],
        message: str,
    ) -> BidResponse:
        try:
            placement, retries = run_with_retry(operation, self.max_retries, auction_id)
        except BID_REJECTIONS as e:
            logger.info(
                f"❌ Rejected on auction {auction_id} for bidder {bidder_id}: {e.message}",
                extra={"auction_id": auction_id, "bidder_id": bidder_id},
            )
            return BidResponse(
                success=False,
                message=e.message,
                error_code=e.code,
                minimum_bid=e.minimum_bid if isinstance(e, BidTooLowError) else None,
            )
        except ConcurrentModificationError as e:
            logger.warning(
                f"⚠️  Giving up on auction {auction_id} after {self.max_retries} retries: {e.message}",
                extra={"auction_id": auction_id, "bidder_id": bidder_id},
            )
            return BidResponse(
                success=False,
                message="The auction is busy, please try again",
                error_code=ErrorCode.CONCURRENT_MODIFICATION,
                retry_count=self.max_retries,
            )
        except Exception:
            logger.exception(
                f"💥 Unexpected failure on auction {auction_id} for bidder {bidder_id}",
                extra={"auction_id": auction_id, "bidder_id": bidder_id},
            )
            raise

        return BidResponse(success=True, message=message, retry_count=retries, placement=placement)

    def deactivate_proxy_ceiling(
        self, auction_id: int, bidder_id: int, now: Optional[datetime] = None
    ) -> Optional[CeilingRecord]:
        return self._admin(auction_id, lambda: self.resolver.deactivate_ceiling(auction_id, bidder_id, now))

    def resolve(self, auction_id: int, now: Optional[datetime] = None) -> BidPlacement:
        return self._admin(auction_id, lambda: self.resolver.resolve(auction_id, now))

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def create_auction(self, data: AuctionCreate) -> dict:
        return self.auctions.create_auction(data)

    def transition(self, auction_id: int, target_status, now: Optional[datetime] = None) -> LedgerState:
        return self._admin(auction_id, lambda: self.lifecycle.transition(auction_id, target_status, now))

    def extend(self, auction_id: int, seconds: int) -> LedgerState:
        return self._admin(auction_id, lambda: self.lifecycle.extend(auction_id, seconds))

    def close(self, auction_id: int, now: Optional[datetime] = None) -> ClosureResult:
        """Force-close (admin); safe to call on an already closed auction"""
        return self._admin(auction_id, lambda: self.closure.close(auction_id, now))

    def run_due(self, now: Optional[datetime] = None) -> List[int]:
        return self.scheduler.run_due(now)

    def _admin(self, auction_id: int, operation: Callable):
        try:
            result, _ = run_with_retry(operation, self.max_retries, auction_id)
            return result
        except AuctionEngineError as e:
            logger.exception(
                f"💥 {e.code.value} on auction {auction_id}: {e.message}",
                extra={"auction_id": auction_id},
            )
            raise

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    def get_state(self, auction_id: int) -> LedgerState:
        return self.ledger.get_state(auction_id)

    def get_bid_history(self, auction_id: int, limit: Optional[int] = None) -> List[BidRecord]:
        return self.ledger.get_bid_history(auction_id, limit)

    def get_bidder_history(self, bidder_id: int, limit: Optional[int] = 50) -> List[BidRecord]:
        return self.ledger.get_bidder_history(bidder_id, limit)

    def get_closure(self, auction_id: int) -> Optional[ClosureResult]:
        return self.closure.get_result(auction_id)

    def get_statistics(self, auction_id: int) -> dict:
        return self.auctions.get_auction_statistics(auction_id)


def build_engine(
    settings: Optional[Settings] = None,
    session_factory: Optional[sessionmaker] = None,
    payment_sink: Optional[PaymentSink] = None,
) -> AuctionEngine:
    """Engine wired from settings: lock and broadcaster backends, database"""
    settings = settings or get_settings()

    if settings.LOCK_BACKEND == "redis":
        lock = RedisAuctionLock(get_redis_client())
    else:
        lock = LocalAuctionLock(settings.LOCK_TIMEOUT_SECONDS)

    if settings.BROADCAST_BACKEND == "redis":
        broadcaster = RedisBroadcaster(get_redis_client())
    else:
        broadcaster = NullBroadcaster()

    logger.info(
        f"🚀 {settings.APP_NAME} v{settings.APP_VERSION} "
        f"(lock: {settings.LOCK_BACKEND}, broadcast: {settings.BROADCAST_BACKEND})"
    )

    return AuctionEngine(
        session_factory=session_factory or get_session_factory(),
        lock=lock,
        broadcaster=broadcaster,
        scheduler=CloseScheduler(settings.CLOSE_CHECK_INTERVAL_SECONDS),
        payment_sink=payment_sink,
    )
