import asyncio
from datetime import timedelta

import pytest

from art_auction.core.clock import utcnow
from art_auction.infrastructure.broadcaster import WINNER_DETERMINED, InMemoryBroadcaster
from art_auction.infrastructure.lock import LocalAuctionLock
from art_auction.models import AuctionStatus
from art_auction.services.engine import AuctionEngine
from art_auction.services.scheduler import CloseScheduler


class TestRegistry:
    def test_due_orders_by_deadline(self, now):
        scheduler = CloseScheduler(check_interval=1)
        scheduler.schedule(1, now + timedelta(seconds=5))
        scheduler.schedule(2, now - timedelta(seconds=5))
        scheduler.schedule(3, now)

        assert scheduler.due(now) == [2, 3]

    def test_reschedule_and_cancel(self, now):
        scheduler = CloseScheduler(check_interval=1)
        scheduler.schedule(1, now)
        scheduler.schedule(1, now + timedelta(minutes=1))

        assert scheduler.due(now) == []
        assert scheduler.cancel(1)
        assert not scheduler.cancel(1)
        assert len(scheduler) == 0


def test_run_due_closes_expired_auctions(engine, make_auction, broadcaster, now):
    ending = make_auction(end_time=now + timedelta(seconds=10))
    open_auction = make_auction(end_time=now + timedelta(hours=1))
    engine.place_bid(ending, 1, "100", now=now)

    assert engine.run_due(now + timedelta(seconds=10)) == [ending]
    assert engine.get_state(ending).status == AuctionStatus.CLOSED
    assert engine.get_state(open_auction).status == AuctionStatus.LIVE
    assert engine.scheduler.deadline(ending) is None
    assert len(broadcaster.of_type(WINNER_DETERMINED)) == 1


def test_run_due_reschedules_extended_auction(engine, make_auction, now):
    end = now + timedelta(seconds=10)
    auction_id = make_auction(end_time=end)
    # stale deadline left behind by a restart
    engine.scheduler.schedule(auction_id, now)

    assert engine.run_due(now) == []
    assert engine.scheduler.deadline(auction_id) == end


def test_run_due_activates_then_closes(engine, make_auction, now):
    auction_id = make_auction(
        status=AuctionStatus.APPROVED,
        start_time=now - timedelta(minutes=1),
        end_time=now + timedelta(minutes=1),
    )

    engine.run_due(now)
    assert engine.get_state(auction_id).status == AuctionStatus.LIVE

    engine.run_due(now + timedelta(minutes=1))
    assert engine.get_state(auction_id).status == AuctionStatus.CLOSED


def test_race_with_force_close_is_harmless(engine, make_auction, broadcaster, now):
    auction_id = make_auction(end_time=now)
    engine.close(auction_id, now=now)

    assert engine.run_due(now) == []
    assert engine.scheduler.deadline(auction_id) is None


def test_recover_schedules_live_auctions(engine, make_auction, now):
    live = make_auction(end_time=now + timedelta(minutes=3))
    make_auction(status=AuctionStatus.DRAFT)
    engine.scheduler.cancel(live)

    assert engine.scheduler.recover() == 1
    assert engine.scheduler.deadline(live) == now + timedelta(minutes=3)


def test_run_due_closes_auction_live_on_another_engine(engine, make_auction, session_factory, now):
    worker = AuctionEngine(
        session_factory=session_factory,
        lock=LocalAuctionLock(timeout=5),
        broadcaster=InMemoryBroadcaster(),
        scheduler=CloseScheduler(check_interval=1),
    )
    assert worker.scheduler.recover() == 0

    auction_id = make_auction(
        status=AuctionStatus.APPROVED,
        start_time=now - timedelta(minutes=1),
        end_time=now + timedelta(hours=1),
    )
    engine.transition(auction_id, AuctionStatus.LIVE, now)
    assert worker.scheduler.deadline(auction_id) is None

    assert worker.run_due(now + timedelta(days=3)) == [auction_id]
    assert worker.get_state(auction_id).status == AuctionStatus.CLOSED
    assert worker.get_closure(auction_id) is not None


@pytest.mark.asyncio
async def test_background_loop_closes_auctions(engine, make_auction):
    # the loop reads the wall clock, so the auction ends in the past
    started = utcnow()
    auction_id = make_auction(start_time=started - timedelta(hours=1), end_time=started - timedelta(seconds=1))

    await engine.scheduler.start()
    try:
        for _ in range(100):
            if engine.get_state(auction_id).status == AuctionStatus.CLOSED:
                break
            await asyncio.sleep(0.05)
    finally:
        await engine.scheduler.stop()

    assert engine.get_state(auction_id).status == AuctionStatus.CLOSED
    assert not engine.scheduler.running

