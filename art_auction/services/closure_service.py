"""
Auction Closure Service

The one-time terminal transition of a LIVE auction:
1. Decide SOLD (high bid meets reserve) or NO_SALE
2. Compute the platform fee and the charity's share
3. Deactivate ceilings and move the auction to CLOSED
4. Persist the AuctionClosure row
5. After commit: emit winner-determined / no-sale once, hand the sale to payments

Closing is idempotent. A second close (scheduler racing an admin force-close)
returns the stored result and emits nothing.
"""
import logging
from datetime import datetime
from decimal import Decimal
from typing import Callable, Optional

from art_auction.core.clock import utcnow
from art_auction.core.errors import AuctionNotLiveError
from art_auction.infrastructure.broadcaster import NO_SALE, WINNER_DETERMINED
from art_auction.models import AuctionClosure, AuctionStatus, ClosureOutcome
from art_auction.schemas.auction import ClosureResult
from art_auction.services.pricing import FeeCalculator, to_money

logger = logging.getLogger(__name__)

PaymentSink = Callable[[dict], object]


class AuctionClosureService:
    """Determines winners and closes auctions exactly once"""

    def __init__(
        self,
        transactions,
        lifecycle,
        fee_calculator: Optional[FeeCalculator] = None,
        payment_sink: Optional[PaymentSink] = None,
    ):
        self.transactions = transactions
        self.lifecycle = lifecycle
        self.fee_calculator = fee_calculator or FeeCalculator()
        self.payment_sink = payment_sink

    def close(self, auction_id: int, now: Optional[datetime] = None, due_only: bool = False) -> Optional[ClosureResult]:
        """
        Close an auction and return its result

        Args:
            due_only: only close a LIVE auction whose end_time is at or
                before `now`; otherwise return None. Checked under the lock.

        Returns:
            The stored result when the auction is already CLOSED

        Raises:
            AuctionNotLiveError: auction is DRAFT, APPROVED or CANCELLED
        """
        now = now or utcnow()

        with self.transactions.begin(auction_id) as uow:
            auction = uow.auction

            if due_only and (auction.status != AuctionStatus.LIVE or auction.end_time > now):
                return None

            if auction.status == AuctionStatus.CLOSED:
                closure = uow.repo.get_closure(auction_id)
                logger.info(f"↩️  Auction {auction_id} already closed", extra={"auction_id": auction_id})
                return ClosureResult.from_closure(closure)

            if auction.status != AuctionStatus.LIVE:
                raise AuctionNotLiveError(
                    f"Auction {auction_id} is {auction.status.value} and cannot be closed", auction_id
                )

            closure = self._determine(uow, now)
            self.lifecycle.apply_transition(uow, AuctionStatus.CLOSED, now)
            uow.session.add(closure)
            uow.session.flush()

            result = ClosureResult.from_closure(closure)
            if result.is_sale:
                uow.emit(WINNER_DETERMINED, {
                    "winner_id": result.winner_id,
                    "winning_bid_id": result.winning_bid_id,
                    "amount": str(result.amount),
                    "fee": str(result.fee),
                    "charity_amount": str(result.charity_amount),
                })
                uow.on_commit(lambda: self._send_payment(result))
            else:
                uow.emit(NO_SALE, {"reserve_price": str(auction.reserve_price)})

        if result.is_sale:
            logger.info(
                f"🏆 Auction {auction_id} sold to bidder {result.winner_id} for ${result.amount} "
                f"(fee ${result.fee})",
                extra={"auction_id": auction_id, "bidder_id": result.winner_id},
            )
        else:
            logger.info(f"📭 Auction {auction_id} closed without a sale", extra={"auction_id": auction_id})

        return result

    def close_if_due(self, auction_id: int, now: Optional[datetime] = None) -> Optional[ClosureResult]:
        """
        Scheduler entry point

        Closes only a LIVE auction whose end_time has passed. Returns None
        when there is nothing to do, e.g. an extension moved end_time.
        """
        now = now or utcnow()

        # Cheap lock-free filter; close() repeats the check under the lock
        with self.transactions.read() as repo:
            auction = repo.get_auction(auction_id)
            if auction.status != AuctionStatus.LIVE or auction.end_time > now:
                return None

        return self.close(auction_id, now, due_only=True)

    def get_result(self, auction_id: int) -> Optional[ClosureResult]:
        with self.transactions.read() as repo:
            repo.get_auction(auction_id)
            closure = repo.get_closure(auction_id)
            return ClosureResult.from_closure(closure) if closure else None

    def _determine(self, uow, now: datetime) -> AuctionClosure:
        auction = uow.auction
        reserve = to_money(auction.reserve_price or 0)

        if not auction.has_bids or auction.current_high_bid < reserve:
            return AuctionClosure(auction_id=auction.auction_id, outcome=ClosureOutcome.NO_SALE, closed_at=now)

        amount = to_money(auction.current_high_bid)
        fee = FeeCalculator.for_auction(auction, self.fee_calculator).compute_fee(amount)
        return AuctionClosure(
            auction_id=auction.auction_id,
            outcome=ClosureOutcome.SOLD,
            winner_id=auction.current_high_bidder_id,
            winning_bid_id=auction.current_high_bid_id,
            amount=amount,
            fee=fee,
            charity_amount=max(Decimal("0.00"), amount - fee),
            closed_at=now,
        )

    def _send_payment(self, result: ClosureResult):
        if self.payment_sink is None:
            return
        try:
            self.payment_sink(result.payment_payload())
        except Exception as e:
            logger.error(
                f"❌ Payment hand-off failed for auction {result.auction_id}: {e}",
                extra={"auction_id": result.auction_id},
            )
