"""
Per-auction critical section

Lock → session → FOR UPDATE row → work → commit → release → side effects.
Events and after-commit callbacks queued during the work run only once the
commit succeeded and the lock is released, so nothing inside the critical
section waits on the broadcaster or any other auction.
"""
import logging
import time
from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterator, List, Tuple

from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from art_auction.core.errors import ConcurrentModificationError
from art_auction.infrastructure.broadcaster import BroadcastEvent, RealtimeBroadcaster
from art_auction.infrastructure.lock import AuctionLock, LockTimeout
from art_auction.infrastructure.repository import AuctionRepository
from art_auction.models import Auction

logger = logging.getLogger(__name__)


class UnitOfWork:
    """State shared by the components while one auction is locked"""

    def __init__(self, session: Session, auction: Auction, lock_retries: int = 0):
        self.session = session
        self.repo = AuctionRepository(session)
        self.auction = auction
        self.lock_retries = lock_retries
        self.events: List[BroadcastEvent] = []
        self.after_commit: List[Callable[[], Any]] = []

    def emit(self, event_type: str, payload: Dict[str, Any]) -> None:
        self.events.append(BroadcastEvent(self.auction.auction_id, event_type, payload))

    def on_commit(self, callback: Callable[[], Any]) -> None:
        self.after_commit.append(callback)


class AuctionTransactions:
    """Opens the critical section for one auction"""

    def __init__(self, session_factory: sessionmaker, lock: AuctionLock, broadcaster: RealtimeBroadcaster):
        self.session_factory = session_factory
        self.lock = lock
        self.broadcaster = broadcaster

    @contextmanager
    def begin(self, auction_id: int) -> Iterator[UnitOfWork]:
        """
        Usage:
            with transactions.begin(auction_id) as uow:
                uow.auction.end_time = ...
                uow.emit("auction-extended", {...})
        """
        try:
            with self.lock.hold(auction_id) as retry_count:
                with self.session_factory() as session:
                    auction = AuctionRepository(session).lock_auction(auction_id)
                    uow = UnitOfWork(session, auction, retry_count)
                    yield uow
                    session.commit()
        except LockTimeout as e:
            raise ConcurrentModificationError(
                f"Auction {auction_id} is busy, retry the request", auction_id
            ) from e
        except StaleDataError as e:
            raise ConcurrentModificationError(
                f"Auction {auction_id} changed during the update, retry the request", auction_id
            ) from e

        for callback in uow.after_commit:
            callback()
        self.broadcaster.emit_all(uow.events)

    @contextmanager
    def read(self) -> Iterator[AuctionRepository]:
        """Lock-free read-only access"""
        with self.session_factory() as session:
            yield AuctionRepository(session)


def run_with_retry(operation: Callable[[], Any], max_retries: int, auction_id: int) -> Tuple[Any, int]:
    """
    Run `operation`, retrying ConcurrentModificationError against fresh state

    Returns:
        (result, number of retries used)
    """
    attempt = 0

    while True:
        try:
            return operation(), attempt
        except ConcurrentModificationError:
            attempt += 1
            if attempt > max_retries:
                raise
            logger.warning(
                f"🔁 Retrying on auction {auction_id} (attempt {attempt}/{max_retries})",
                extra={"auction_id": auction_id},
            )
            time.sleep(0.01 * attempt)
