"""
Bid Ledger - Business Logic

Handles:
- Bid validation (status, expiry, minimum amount)
- Gapless per-auction sequence numbers
- Current high bid bookkeeping (the only writer)
- Recording proxy counter-bids
- Bid history
"""
import logging
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import List, Optional

from art_auction.core.clock import utcnow
from art_auction.core.config import get_settings
from art_auction.core.errors import (
    AuctionExpiredError,
    BidTooLowError,
    InvalidBidError,
)
from art_auction.infrastructure.broadcaster import BID_ACCEPTED
from art_auction.models import Auction, Bid, BidOrigin
from art_auction.schemas.bid import BidPlacement, BidRecord, LedgerState
from art_auction.services.pricing import IncrementSchedule, to_money
from art_auction.services.proxy_resolver import plan_counter_bids
from art_auction.services.transaction import run_with_retry

logger = logging.getLogger(__name__)


class BidLedger:
    """
    Append-only bid record per auction

    Every write happens inside the auction's critical section, which makes
    the sequence gapless and rules out two bids accepted against the same
    high-bid value.
    """

    def __init__(self, transactions, lifecycle, increments: Optional[IncrementSchedule] = None):
        settings = get_settings()
        self.transactions = transactions
        self.lifecycle = lifecycle
        self.increments = increments or IncrementSchedule()
        self.max_bid_amount = to_money(settings.MAX_BID_AMOUNT)
        self.max_retries = settings.BID_MAX_RETRIES

    # ------------------------------------------------------------------
    # Pricing helpers
    # ------------------------------------------------------------------
    def opening_price(self, auction: Auction) -> Decimal:
        """Lowest acceptable first bid: the reserve (any positive amount when 0)"""
        return to_money(auction.reserve_price or 0)

    def minimum_bid(self, auction: Auction) -> Decimal:
        """Lowest acceptable next bid"""
        if not auction.has_bids:
            return self.opening_price(auction)
        current = auction.current_high_bid
        return to_money(current + self.increments.for_auction(auction, current))

    def validate_amount(self, amount, auction_id: Optional[int] = None) -> Decimal:
        try:
            amount = to_money(amount)
        except (InvalidOperation, ValueError, TypeError):
            raise InvalidBidError(f"Invalid bid amount: {amount!r}", auction_id)

        if amount <= 0:
            raise InvalidBidError("Bid amount must be positive", auction_id)

        if amount > self.max_bid_amount:
            raise InvalidBidError(
                f"Bid amount exceeds maximum allowed of ${self.max_bid_amount}", auction_id
            )
        return amount

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------
    def place_bid(
        self,
        auction_id: int,
        bidder_id: int,
        amount,
        now: Optional[datetime] = None,
    ) -> BidPlacement:
        """
        Place a manual bid

        Checks, in order:
        1. Auction is LIVE
        2. Auction has not reached end_time
        3. Amount meets the reserve (first bid) or high bid + increment

        The accepted bid is followed by proxy resolution and auto-extend
        evaluation in the same critical section.

        Raises:
            AuctionNotLiveError, AuctionExpiredError, BidTooLowError,
            InvalidBidError, ConcurrentModificationError
        """
        amount = self.validate_amount(amount, auction_id)
        now = now or utcnow()

        with self.transactions.begin(auction_id) as uow:
            auction = uow.auction
            self.lifecycle.require_live(auction)

            if now >= auction.end_time:
                raise AuctionExpiredError(f"Auction {auction_id} has ended", auction_id)

            minimum = self.minimum_bid(auction)
            if amount < minimum:
                raise BidTooLowError(
                    f"Bid must be at least ${minimum}", minimum_bid=minimum, auction_id=auction_id
                )

            before = LedgerState.from_auction(auction)
            bid = self.append(uow, bidder_id, amount, BidOrigin.MANUAL, now)
            generated = self.apply_resolution(uow, now)
            self.lifecycle.apply_auto_extend(uow, now)
            after = LedgerState.from_auction(auction)
            retries = uow.lock_retries

        logger.info(
            f"💰 Bid accepted on auction {auction_id}: bidder {bidder_id} ${amount} "
            f"(seq {bid.sequence_number}, {len(generated)} proxy counter-bids, {retries} lock retries)",
            extra={"auction_id": auction_id, "bidder_id": bidder_id, "sequence_number": bid.sequence_number},
        )

        return BidPlacement(
            bid=BidRecord.from_bid(bid),
            previous_state=before,
            proxy_bids=[BidRecord.from_bid(b) for b in generated],
            state=after,
        )

    def place_bid_with_retry(
        self,
        auction_id: int,
        bidder_id: int,
        amount,
        now: Optional[datetime] = None,
        max_retries: Optional[int] = None,
    ) -> BidPlacement:
        """Place a bid, retrying CONCURRENT_MODIFICATION against fresh state"""
        max_retries = self.max_retries if max_retries is None else max_retries
        placement, _ = run_with_retry(
            lambda: self.place_bid(auction_id, bidder_id, amount, now), max_retries, auction_id
        )
        return placement

    def append(self, uow, bidder_id: int, amount: Decimal, origin: BidOrigin, now: datetime) -> Bid:
        """Record one bid and move the high bid; caller holds the auction lock"""
        auction = uow.auction
        previous_amount = auction.current_high_bid
        previous_bidder_id = auction.current_high_bidder_id
        if previous_amount is not None and amount <= previous_amount:
            # Callers validate first; reaching this is a defect
            raise ValueError(
                f"Ledger amounts must increase: ${amount} after ${previous_amount}"
            )

        auction.last_sequence_number = (auction.last_sequence_number or 0) + 1
        bid = Bid(
            auction_id=auction.auction_id,
            bidder_id=bidder_id,
            amount=amount,
            previous_amount=previous_amount,
            sequence_number=auction.last_sequence_number,
            origin=origin,
            placed_at=now,
        )
        uow.session.add(bid)
        uow.session.flush()

        auction.current_high_bid = amount
        auction.current_high_bidder_id = bidder_id
        auction.current_high_bid_id = bid.bid_id

        uow.emit(BID_ACCEPTED, {
            "bid": bid.to_dict(),
            "current_high_bid": str(amount),
            "current_high_bidder_id": bidder_id,
            "outbid_bidder_id": previous_bidder_id if previous_bidder_id != bidder_id else None,
        })
        return bid

    def apply_resolution(self, uow, now: datetime) -> List[Bid]:
        """Record the counter-bids active ceilings produce; caller holds the lock"""
        auction = uow.auction
        ceilings = uow.repo.active_ceilings(auction.auction_id)
        if not ceilings:
            return []

        plans = plan_counter_bids(
            current_amount=auction.current_high_bid,
            current_bidder_id=auction.current_high_bidder_id,
            ceilings=ceilings,
            increment_for=lambda price: self.increments.for_auction(auction, price),
            opening_price=self.opening_price(auction),
        )

        return [
            self.append(uow, plan.bidder_id, to_money(plan.amount), BidOrigin.PROXY_GENERATED, now)
            for plan in plans
        ]

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    def get_state(self, auction_id: int) -> LedgerState:
        """Read-only snapshot; never takes the auction lock"""
        with self.transactions.read() as repo:
            return LedgerState.from_auction(repo.get_auction(auction_id))

    def get_bid_history(self, auction_id: int, limit: Optional[int] = None) -> List[BidRecord]:
        """Bids for an auction in sequence order"""
        with self.transactions.read() as repo:
            repo.get_auction(auction_id)
            return [BidRecord.from_bid(b) for b in repo.list_bids(auction_id, limit=limit)]

    def get_bidder_history(self, bidder_id: int, limit: Optional[int] = 50) -> List[BidRecord]:
        """A bidder's bids across auctions, newest first"""
        with self.transactions.read() as repo:
            return [BidRecord.from_bid(b) for b in repo.list_bidder_bids(bidder_id, limit=limit)]

