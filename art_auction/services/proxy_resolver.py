"""
Proxy Bid Resolver

A proxy ceiling is the most a bidder lets the engine bid for them. After a
manual bid or a new ceiling, the resolver works out the counter-bids the
ceilings produce, the way an ascending proxy auction does:

- The strongest ceiling outside the current leader challenges when it
  exceeds the current price. Strength is amount, then earliest
  registration.
- A challenger that takes the lead pays one increment over the strongest
  ceiling it had to beat (a competitor below it, or the leader's own
  ceiling), capped at its own ceiling. A beaten competitor is first
  recorded at its maximum.
- A leader whose ceiling outranks the challenger answers one increment
  above the challenger's maximum.
- Equal ceilings: the earliest registered wins at current + increment and
  the later ones sit out the rest of the pass.

Every productive pass spends at least one ceiling, so resolution ends
within (number of active ceilings) passes.
"""
import logging
from datetime import datetime
from decimal import Decimal
from typing import Callable, List, NamedTuple, Optional, Sequence

from art_auction.core.clock import utcnow
from art_auction.core.errors import (
    AuctionExpiredError,
    InvalidProxyCeilingError,
    ResolutionBoundExceededError,
)
from art_auction.infrastructure.broadcaster import PROXY_CEILING_REGISTERED
from art_auction.models import ProxyCeiling
from art_auction.schemas.bid import BidPlacement, BidRecord, CeilingRecord, LedgerState

logger = logging.getLogger(__name__)


class ProxyBidPlan(NamedTuple):
    bidder_id: int
    amount: Decimal


def _rank(ceiling: ProxyCeiling):
    return (-ceiling.ceiling_amount, ceiling.registered_at, ceiling.ceiling_id)


def plan_counter_bids(
    current_amount: Optional[Decimal],
    current_bidder_id: Optional[int],
    ceilings: Sequence[ProxyCeiling],
    increment_for: Callable[[Decimal], Decimal],
    opening_price: Decimal,
) -> List[ProxyBidPlan]:
    """
    Counter-bids produced by `ceilings` against the current price

    current_amount is None when nothing has been bid yet; the first proxy
    bid then opens at `opening_price`, or at one increment when there is
    no reserve. Returned amounts are strictly increasing.
    """
    ceilings = sorted(ceilings, key=_rank)
    plans: List[ProxyBidPlan] = []
    spent = set()
    amount, leader = current_amount, current_bidder_id

    def exceeds(ceiling: ProxyCeiling) -> bool:
        if amount is None:
            return ceiling.ceiling_amount >= opening_price
        return ceiling.ceiling_amount > amount

    def bid(bidder_id: int, value: Decimal):
        nonlocal amount
        plans.append(ProxyBidPlan(bidder_id, value))
        amount = value

    for _ in range(len(ceilings) + 1):
        leader_ceiling = next(
            (c for c in ceilings if c.bidder_id == leader and c.ceiling_id not in spent), None
        )
        challengers = [
            c for c in ceilings
            if c.bidder_id != leader and c.ceiling_id not in spent and exceeds(c)
        ]
        if not challengers:
            return plans

        challenger = challengers[0]
        for other in challengers[1:]:
            if other.ceiling_amount == challenger.ceiling_amount:
                spent.add(other.ceiling_id)

        if leader_ceiling is not None and _rank(leader_ceiling) < _rank(challenger):
            # Leader holds: the challenger is played out to its maximum
            spent.add(challenger.ceiling_id)
            if challenger.ceiling_amount < leader_ceiling.ceiling_amount:
                bid(challenger.bidder_id, challenger.ceiling_amount)
            answer = min(leader_ceiling.ceiling_amount, amount + increment_for(amount))
            bid(leader, answer)
            continue

        # Challenger takes the lead
        floor = None
        if leader_ceiling is not None and (amount is None or leader_ceiling.ceiling_amount > amount):
            if leader_ceiling.ceiling_amount == challenger.ceiling_amount:
                spent.add(leader_ceiling.ceiling_id)
            else:
                floor = leader_ceiling.ceiling_amount

        rival = next(
            (c for c in challengers[1:] if c.ceiling_amount < challenger.ceiling_amount), None
        )
        if rival is not None and (floor is None or rival.ceiling_amount > floor):
            spent.add(rival.ceiling_id)
            bid(rival.bidder_id, rival.ceiling_amount)
            floor = rival.ceiling_amount

        base = floor if floor is not None else amount
        if base is None:
            opening = opening_price if opening_price > 0 else increment_for(Decimal("0"))
            price = min(challenger.ceiling_amount, opening)
        else:
            price = min(challenger.ceiling_amount, base + increment_for(base))

        bid(challenger.bidder_id, price)
        leader = challenger.bidder_id

    raise ResolutionBoundExceededError(
        f"Proxy resolution did not settle within {len(ceilings)} passes"
    )


class ProxyBidResolver:
    """
    Registers proxy ceilings and resolves counter-bidding

    Bids produced here are recorded through the BidLedger, inside the same
    critical section as whatever triggered the resolution.
    """

    def __init__(self, transactions, ledger, lifecycle):
        self.transactions = transactions
        self.ledger = ledger
        self.lifecycle = lifecycle

    def resolve(self, auction_id: int, now: Optional[datetime] = None) -> BidPlacement:
        """Re-run resolution for an auction (e.g. after a ceiling was withdrawn)"""
        now = now or utcnow()

        with self.transactions.begin(auction_id) as uow:
            self.lifecycle.require_live(uow.auction)
            before = LedgerState.from_auction(uow.auction)
            generated = self.ledger.apply_resolution(uow, now)
            if generated:
                self.lifecycle.apply_auto_extend(uow, now)
            after = LedgerState.from_auction(uow.auction)

        return BidPlacement(
            previous_state=before,
            proxy_bids=[BidRecord.from_bid(b) for b in generated],
            state=after,
        )

    def register_ceiling(
        self,
        auction_id: int,
        bidder_id: int,
        ceiling_amount,
        now: Optional[datetime] = None,
    ) -> BidPlacement:
        """
        Store a bidder's ceiling and resolve immediately

        A new, higher ceiling can unseat the leader without any manual bid.
        A bidder's previous active ceiling for the auction is replaced.

        Raises:
            AuctionNotLiveError, AuctionExpiredError, InvalidProxyCeilingError
        """
        now = now or utcnow()
        ceiling_amount = self.ledger.validate_amount(ceiling_amount, auction_id)

        with self.transactions.begin(auction_id) as uow:
            auction = uow.auction
            self.lifecycle.require_live(auction)

            if now >= auction.end_time:
                raise AuctionExpiredError(f"Auction {auction_id} has ended", auction_id)

            if auction.has_bids and ceiling_amount <= auction.current_high_bid:
                raise InvalidProxyCeilingError(
                    f"Ceiling ${ceiling_amount} must exceed the current bid of ${auction.current_high_bid}",
                    auction_id,
                )
            opening = self.ledger.opening_price(auction)
            if not auction.has_bids and ceiling_amount < opening:
                raise InvalidProxyCeilingError(
                    f"Ceiling ${ceiling_amount} is below the reserve of ${opening}",
                    auction_id,
                )

            previous = uow.repo.active_ceiling_for(auction_id, bidder_id)
            if previous is not None:
                previous.deactivate(now)
                uow.session.flush()

            ceiling = ProxyCeiling(
                auction_id=auction_id,
                bidder_id=bidder_id,
                ceiling_amount=ceiling_amount,
                registered_at=now,
                active=True,
            )
            uow.session.add(ceiling)
            uow.session.flush()

            before = LedgerState.from_auction(auction)
            generated = self.ledger.apply_resolution(uow, now)
            if generated:
                self.lifecycle.apply_auto_extend(uow, now)
            after = LedgerState.from_auction(auction)

            # Ceiling amounts stay private; only the fact of registration goes out
            uow.emit(PROXY_CEILING_REGISTERED, {"bidder_id": bidder_id})

        logger.info(
            f"🤖 Proxy ceiling registered: bidder {bidder_id} on auction {auction_id} "
            f"({len(generated)} counter-bids)",
            extra={"auction_id": auction_id, "bidder_id": bidder_id},
        )

        return BidPlacement(
            previous_state=before,
            proxy_bids=[BidRecord.from_bid(b) for b in generated],
            state=after,
        )

    def deactivate_ceiling(self, auction_id: int, bidder_id: int, now: Optional[datetime] = None) -> Optional[CeilingRecord]:
        """Withdraw a bidder's ceiling; takes effect from the next resolution pass"""
        now = now or utcnow()

        with self.transactions.begin(auction_id) as uow:
            self.lifecycle.require_live(uow.auction)
            ceiling = uow.repo.active_ceiling_for(auction_id, bidder_id)
            if ceiling is None:
                return None
            ceiling.deactivate(now)
            record = CeilingRecord.from_ceiling(ceiling)

        logger.info(
            f"🛑 Proxy ceiling withdrawn: bidder {bidder_id} on auction {auction_id}",
            extra={"auction_id": auction_id, "bidder_id": bidder_id},
        )
        return record

    def active_ceilings(self, auction_id: int) -> List[CeilingRecord]:
        with self.transactions.read() as repo:
            return [CeilingRecord.from_ceiling(c) for c in repo.active_ceilings(auction_id)]

