from datetime import timedelta
from decimal import Decimal

import pytest

from art_auction.core.errors import (
    AuctionExpiredError,
    AuctionNotFoundError,
    AuctionNotLiveError,
    BidTooLowError,
    InvalidBidError,
)
from art_auction.infrastructure.broadcaster import BID_ACCEPTED
from art_auction.models import AuctionStatus, BidOrigin


def test_first_bid_must_meet_reserve(engine, make_auction, now):
    auction_id = make_auction(reserve_price="100")

    with pytest.raises(BidTooLowError) as exc_info:
        engine.ledger.place_bid(auction_id, 1, "99.99", now=now)
    assert exc_info.value.minimum_bid == Decimal("100.00")

    placement = engine.ledger.place_bid(auction_id, 1, "100", now=now)
    assert placement.bid.sequence_number == 1
    assert placement.previous_state.current_high_bid is None
    assert placement.state.current_high_bid == Decimal("100.00")


def test_any_positive_first_bid_when_no_reserve(engine, make_auction, now):
    auction_id = make_auction(reserve_price="0", min_increment="10")

    response = engine.place_bid(auction_id, 1, "5", now=now)

    assert response.success
    assert response.placement.bid.amount == Decimal("5.00")
    assert engine.place_bid(auction_id, 2, "14.99", now=now).minimum_bid == Decimal("15.00")


def test_rejects_one_cent_below_increment_accepts_exact(engine, make_auction, now):
    auction_id = make_auction(min_increment="10")
    engine.ledger.place_bid(auction_id, 1, "100", now=now)

    with pytest.raises(BidTooLowError) as exc_info:
        engine.ledger.place_bid(auction_id, 2, "109.99", now=now)
    assert exc_info.value.minimum_bid == Decimal("110.00")

    placement = engine.ledger.place_bid(auction_id, 2, "110.00", now=now)
    assert placement.bid.amount == Decimal("110.00")


def test_tiered_increment_when_auction_has_none(engine, make_auction, now):
    # default tiers: below 100 → 1.00, below 500 → 5.00
    auction_id = make_auction(min_increment=None)
    engine.ledger.place_bid(auction_id, 1, "200", now=now)

    with pytest.raises(BidTooLowError) as exc_info:
        engine.ledger.place_bid(auction_id, 2, "204.99", now=now)
    assert exc_info.value.minimum_bid == Decimal("205.00")


def test_amounts_and_sequence_are_monotonic(engine, make_auction, now):
    auction_id = make_auction()
    for i, amount in enumerate(["20", "35", "50", "75"]):
        engine.ledger.place_bid(auction_id, i % 2 + 1, amount, now=now + timedelta(seconds=i))

    history = engine.get_bid_history(auction_id)

    assert [b.sequence_number for b in history] == [1, 2, 3, 4]
    assert [b.amount for b in history] == [Decimal("20"), Decimal("35"), Decimal("50"), Decimal("75")]
    assert [b.previous_amount for b in history] == [None, Decimal("20"), Decimal("35"), Decimal("50")]
    assert all(b.origin == BidOrigin.MANUAL for b in history)


@pytest.mark.parametrize("status", [AuctionStatus.DRAFT, AuctionStatus.APPROVED, AuctionStatus.CANCELLED])
def test_rejects_bids_on_non_live_auctions(engine, make_auction, now, status):
    auction_id = make_auction(status=status)

    with pytest.raises(AuctionNotLiveError):
        engine.ledger.place_bid(auction_id, 1, "100", now=now)


def test_rejects_bid_at_end_time(engine, make_auction, now):
    auction_id = make_auction(end_time=now)

    with pytest.raises(AuctionExpiredError):
        engine.ledger.place_bid(auction_id, 1, "100", now=now)


@pytest.mark.parametrize("amount", ["0", "-5", "10000000", "abc"])
def test_rejects_malformed_amounts(engine, make_auction, now, amount):
    auction_id = make_auction()

    with pytest.raises(InvalidBidError):
        engine.ledger.place_bid(auction_id, 1, amount, now=now)


def test_unknown_auction(engine, now):
    with pytest.raises(AuctionNotFoundError):
        engine.ledger.place_bid(404, 1, "100", now=now)


def test_bid_accepted_event_carries_outbid_bidder(engine, make_auction, broadcaster, now):
    auction_id = make_auction()
    engine.ledger.place_bid(auction_id, 1, "100", now=now)
    engine.ledger.place_bid(auction_id, 2, "150", now=now)

    events = broadcaster.of_type(BID_ACCEPTED)

    assert [e.payload["current_high_bidder_id"] for e in events] == [1, 2]
    assert events[0].payload["outbid_bidder_id"] is None
    assert events[1].payload["outbid_bidder_id"] == 1
    assert events[1].payload["bid"]["sequence_number"] == 2


def test_rejected_bid_emits_nothing(engine, make_auction, broadcaster, now):
    auction_id = make_auction(reserve_price="100")

    with pytest.raises(BidTooLowError):
        engine.ledger.place_bid(auction_id, 1, "10", now=now)

    assert broadcaster.events == []
    assert engine.get_bid_history(auction_id) == []


def test_bidder_history_newest_first(engine, make_auction, now):
    first = make_auction()
    second = make_auction()
    engine.ledger.place_bid(first, 7, "100", now=now)
    engine.ledger.place_bid(second, 7, "200", now=now + timedelta(seconds=5))

    history = engine.get_bidder_history(7)

    assert [b.auction_id for b in history] == [second, first]
