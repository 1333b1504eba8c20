"""
Auction Repository

ID-based lookups over a SQLAlchemy session. Entities never hold object
pointers to each other; everything is resolved through here.
"""
from typing import List, Optional

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from art_auction.core.errors import AuctionNotFoundError
from art_auction.models import Auction, AuctionClosure, Bid, ProxyCeiling


class AuctionRepository:
    """Queries for auctions, bids, ceilings and closures"""

    def __init__(self, session: Session):
        self.session = session

    # ------------------------------------------------------------------
    # Auctions
    # ------------------------------------------------------------------
    def get_auction(self, auction_id: int) -> Auction:
        auction = self.session.get(Auction, auction_id)
        if auction is None:
            raise AuctionNotFoundError(f"Auction {auction_id} not found", auction_id)
        return auction

    def lock_auction(self, auction_id: int) -> Auction:
        """Load the auction row FOR UPDATE (no-op on SQLite)"""
        auction = self.session.execute(
            select(Auction).where(Auction.auction_id == auction_id).with_for_update()
        ).scalar_one_or_none()

        if auction is None:
            raise AuctionNotFoundError(f"Auction {auction_id} not found", auction_id)
        return auction

    def list_auction_ids(self, status=None) -> List[int]:
        query = select(Auction.auction_id)
        if status is not None:
            query = query.where(Auction.status == status)
        return list(self.session.execute(query.order_by(Auction.auction_id)).scalars())

    def find_due(self, status, time_column, now) -> List[int]:
        """IDs of auctions in `status` whose `time_column` is at or before now"""
        query = (
            select(Auction.auction_id)
            .where(Auction.status == status)
            .where(time_column <= now)
            .order_by(Auction.auction_id)
        )
        return list(self.session.execute(query).scalars())

    # ------------------------------------------------------------------
    # Bids
    # ------------------------------------------------------------------
    def list_bids(self, auction_id: int, limit: Optional[int] = None) -> List[Bid]:
        query = select(Bid).where(Bid.auction_id == auction_id).order_by(Bid.sequence_number)
        if limit:
            query = query.limit(limit)
        return list(self.session.execute(query).scalars())

    def list_bidder_bids(self, bidder_id: int, limit: Optional[int] = None) -> List[Bid]:
        query = (
            select(Bid)
            .where(Bid.bidder_id == bidder_id)
            .order_by(Bid.placed_at.desc(), Bid.bid_id.desc())
        )
        if limit:
            query = query.limit(limit)
        return list(self.session.execute(query).scalars())

    # ------------------------------------------------------------------
    # Proxy ceilings
    # ------------------------------------------------------------------
    def active_ceilings(self, auction_id: int) -> List[ProxyCeiling]:
        query = (
            select(ProxyCeiling)
            .where(ProxyCeiling.auction_id == auction_id)
            .where(ProxyCeiling.active.is_(True))
            .order_by(ProxyCeiling.registered_at, ProxyCeiling.ceiling_id)
        )
        return list(self.session.execute(query).scalars())

    def active_ceiling_for(self, auction_id: int, bidder_id: int) -> Optional[ProxyCeiling]:
        query = (
            select(ProxyCeiling)
            .where(ProxyCeiling.auction_id == auction_id)
            .where(ProxyCeiling.bidder_id == bidder_id)
            .where(ProxyCeiling.active.is_(True))
        )
        return self.session.execute(query).scalar_one_or_none()

    def deactivate_all_ceilings(self, auction_id: int, when) -> int:
        result = self.session.execute(
            update(ProxyCeiling)
            .where(ProxyCeiling.auction_id == auction_id)
            .where(ProxyCeiling.active.is_(True))
            .values(active=False, deactivated_at=when)
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount

    # ------------------------------------------------------------------
    # Closures
    # ------------------------------------------------------------------
    def get_closure(self, auction_id: int) -> Optional[AuctionClosure]:
        return self.session.get(AuctionClosure, auction_id)
