"""
Boundary behaviour: typed errors become BidResponse objects
"""
from decimal import Decimal
from unittest.mock import patch

import pytest

from art_auction.core.config import Settings
from art_auction.core.errors import (
    ConcurrentModificationError,
    ErrorCode,
    IllegalTransitionError,
    ResolutionBoundExceededError,
)
from art_auction.infrastructure.broadcaster import NullBroadcaster
from art_auction.infrastructure.lock import LocalAuctionLock
from art_auction.models import AuctionStatus
from art_auction.schemas.auction import AuctionCreate
from art_auction.services.engine import build_engine


def test_accepted_bid(engine, make_auction, now):
    auction_id = make_auction()

    response = engine.place_bid(auction_id, 1, "100", now=now)

    assert response.success
    assert response.error_code is None
    assert response.placement.bid.amount == Decimal("100.00")


def test_too_low_carries_minimum(engine, make_auction, now):
    auction_id = make_auction(min_increment="10")
    engine.place_bid(auction_id, 1, "100", now=now)

    response = engine.place_bid(auction_id, 2, "105", now=now)

    assert not response.success
    assert response.error_code == ErrorCode.BID_TOO_LOW
    assert response.minimum_bid == Decimal("110.00")


@pytest.mark.parametrize("amount, code", [
    ("-1", ErrorCode.INVALID_BID),
    ("10000000", ErrorCode.INVALID_BID),
])
def test_invalid_amounts(engine, make_auction, now, amount, code):
    auction_id = make_auction()

    assert engine.place_bid(auction_id, 1, amount, now=now).error_code == code


def test_unknown_auction(engine, now):
    assert engine.place_bid(999, 1, "100", now=now).error_code == ErrorCode.AUCTION_NOT_FOUND


def test_concurrent_modification_is_retried(engine, make_auction, now):
    auction_id = make_auction()
    real_place_bid = engine.ledger.place_bid
    calls = []

    def flaky(*args, **kwargs):
        calls.append(1)
        if len(calls) < 3:
            raise ConcurrentModificationError("busy", auction_id)
        return real_place_bid(*args, **kwargs)

    with patch.object(engine.ledger, "place_bid", side_effect=flaky):
        response = engine.place_bid(auction_id, 1, "100", now=now)

    assert response.success
    assert response.retry_count == 2


def test_concurrent_modification_gives_up(engine, make_auction, now):
    auction_id = make_auction()

    with patch.object(
        engine.ledger, "place_bid", side_effect=ConcurrentModificationError("busy", auction_id)
    ) as place_bid:
        response = engine.place_bid(auction_id, 1, "100", now=now)

    assert not response.success
    assert response.error_code == ErrorCode.CONCURRENT_MODIFICATION
    assert place_bid.call_count == engine.max_retries + 1


def test_defects_are_raised(engine, make_auction, now):
    auction_id = make_auction()

    with patch.object(engine.ledger, "place_bid", side_effect=ResolutionBoundExceededError("loop")):
        with pytest.raises(ResolutionBoundExceededError):
            engine.place_bid(auction_id, 1, "100", now=now)


def test_lifecycle_misuse_is_raised(engine, make_auction, now):
    auction_id = make_auction(status=AuctionStatus.DRAFT)

    with pytest.raises(IllegalTransitionError):
        engine.transition(auction_id, AuctionStatus.CLOSED, now=now)


def test_statistics(engine, make_auction, now):
    auction_id = make_auction(reserve_price="150")
    engine.register_proxy_ceiling(auction_id, 2, "400", now=now)
    engine.place_bid(auction_id, 1, "200", now=now)

    stats = engine.get_statistics(auction_id)

    assert stats["total_bids"] == 3
    assert stats["proxy_bids"] == 2
    assert stats["unique_bidders"] == 2
    assert stats["reserve_met"] is True
    assert stats["current_high_bid"] == Decimal("210.00")


def test_create_auction_applies_setting_defaults(engine, now):
    created = engine.create_auction(AuctionCreate(
        title="Still Life with Lemons",
        start_time=now,
        end_time=now.replace(hour=23),
    ))

    auction = engine.auctions.get_auction(created["auction_id"])
    assert auction["status"] == "DRAFT"
    assert auction["reserve_price"] == "0.00"


def test_create_auction_rejects_inverted_window(now):
    with pytest.raises(ValueError):
        AuctionCreate(title="Nocturne", start_time=now, end_time=now)


def test_build_engine_local_backends(session_factory):
    built = build_engine(Settings(LOCK_BACKEND="local", BROADCAST_BACKEND="null"), session_factory)

    assert isinstance(built.transactions.lock, LocalAuctionLock)
    assert isinstance(built.broadcaster, NullBroadcaster)
