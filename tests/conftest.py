from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from art_auction.infrastructure.broadcaster import InMemoryBroadcaster
from art_auction.infrastructure.database import create_db_engine, create_session_factory, init_db
from art_auction.infrastructure.lock import LocalAuctionLock
from art_auction.models import Auction, AuctionStatus, ProxyCeiling
from art_auction.services.engine import AuctionEngine
from art_auction.services.scheduler import CloseScheduler

# Fixed "now" for every test; nothing reads the wall clock
T0 = datetime(2026, 3, 14, 18, 0, 0)


@pytest.fixture
def now():
    return T0


@pytest.fixture
def session_factory(tmp_path):
    """Fresh file-backed SQLite database per test"""
    db_engine = create_db_engine(f"sqlite:///{tmp_path / 'auction.db'}")
    init_db(db_engine)
    yield create_session_factory(db_engine)
    db_engine.dispose()


@pytest.fixture
def broadcaster():
    return InMemoryBroadcaster()


@pytest.fixture
def payments():
    return []


@pytest.fixture
def engine(session_factory, broadcaster, payments):
    return AuctionEngine(
        session_factory=session_factory,
        lock=LocalAuctionLock(timeout=30),
        broadcaster=broadcaster,
        scheduler=CloseScheduler(check_interval=0.05),
        payment_sink=payments.append,
    )


@pytest.fixture
def make_auction(session_factory, engine):
    """Insert an auction directly; LIVE by default, ending an hour after T0"""

    def _make(
        status=AuctionStatus.LIVE,
        reserve_price="0",
        min_increment="10",
        start_time=None,
        end_time=None,
        window=0,
        duration=0,
        fee_percent=None,
        fee_minimum="5.00",
    ):
        auction = Auction(
            title="Untitled (Blue Study)",
            status=status,
            reserve_price=Decimal(reserve_price),
            min_increment=Decimal(min_increment) if min_increment is not None else None,
            start_time=start_time or T0 - timedelta(hours=1),
            end_time=end_time or T0 + timedelta(hours=1),
            auto_extend_window_seconds=window,
            auto_extend_duration_seconds=duration,
            auto_extend_count=0,
            last_sequence_number=0,
            fee_percent=Decimal(fee_percent) if fee_percent is not None else None,
            fee_minimum=Decimal(fee_minimum),
        )
        with session_factory() as session:
            session.add(auction)
            session.commit()
            auction_id = auction.auction_id

        if status == AuctionStatus.LIVE:
            engine.scheduler.schedule(auction_id, auction.end_time)
        return auction_id

    return _make


@pytest.fixture
def make_ceiling(session_factory):
    """Insert an active proxy ceiling without triggering resolution"""

    def _make(auction_id, bidder_id, amount, registered_at):
        with session_factory() as session:
            ceiling = ProxyCeiling(
                auction_id=auction_id,
                bidder_id=bidder_id,
                ceiling_amount=Decimal(amount),
                registered_at=registered_at,
                active=True,
            )
            session.add(ceiling)
            session.commit()
            return ceiling.ceiling_id

    return _make
