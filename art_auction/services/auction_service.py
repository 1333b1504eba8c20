"""
Auction Service - Business Logic

Handles:
- Auction creation (always as DRAFT)
- Auction queries
- Auction statistics

Status changes after creation go through the lifecycle manager.
"""
import logging
from typing import Dict, List, Optional

from sqlalchemy.orm import sessionmaker

from art_auction.core.clock import utcnow
from art_auction.core.config import get_settings
from art_auction.infrastructure.repository import AuctionRepository
from art_auction.models import Auction, AuctionStatus, BidOrigin
from art_auction.schemas.auction import AuctionCreate
from art_auction.services.pricing import to_money

logger = logging.getLogger(__name__)


class AuctionService:
    """
    Service for auction-related business logic

    Creation and reads only; these never take an auction lock.
    """

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    def create_auction(self, data: AuctionCreate) -> Dict:
        """
        Create a new DRAFT auction

        Settings supply the auto-extend window/duration and the fee minimum
        when the request leaves them out.

        Args:
            data: Validated auction fields

        Returns:
            Created auction as a dict
        """
        settings = get_settings()

        auction = Auction(
            title=data.title,
            status=AuctionStatus.DRAFT,
            reserve_price=to_money(data.reserve_price),
            start_time=data.start_time,
            end_time=data.end_time,
            auto_extend_window_seconds=(
                data.auto_extend_window_seconds
                if data.auto_extend_window_seconds is not None
                else settings.AUTO_EXTEND_WINDOW_SECONDS
            ),
            auto_extend_duration_seconds=(
                data.auto_extend_duration_seconds
                if data.auto_extend_duration_seconds is not None
                else settings.AUTO_EXTEND_DURATION_SECONDS
            ),
            min_increment=to_money(data.min_increment) if data.min_increment is not None else None,
            fee_percent=data.fee_percent,
            fee_minimum=to_money(data.fee_minimum if data.fee_minimum is not None else settings.FEE_MINIMUM),
            last_sequence_number=0,
            auto_extend_count=0,
        )

        with self.session_factory() as session:
            session.add(auction)
            session.commit()
            result = auction.to_dict()

        logger.info(
            f"✅ Created auction {result['auction_id']}: {result['title']}",
            extra={"auction_id": result["auction_id"]},
        )
        return result

    def get_auction(self, auction_id: int) -> Dict:
        with self.session_factory() as session:
            return AuctionRepository(session).get_auction(auction_id).to_dict()

    def list_auctions(self, status: Optional[AuctionStatus] = None) -> List[Dict]:
        with self.session_factory() as session:
            repo = AuctionRepository(session)
            return [repo.get_auction(aid).to_dict() for aid in repo.list_auction_ids(status)]

    def get_auction_statistics(self, auction_id: int) -> Dict:
        """
        Get detailed statistics for auction

        Returns:
            Statistics dictionary
        """
        with self.session_factory() as session:
            repo = AuctionRepository(session)
            auction = repo.get_auction(auction_id)
            bids = repo.list_bids(auction_id)

            reserve = to_money(auction.reserve_price or 0)
            if bids:
                unique_bidders = len({bid.bidder_id for bid in bids})
                average_bid = to_money(sum(bid.amount for bid in bids) / len(bids))
                proxy_bids = sum(1 for bid in bids if bid.origin == BidOrigin.PROXY_GENERATED)
            else:
                unique_bidders = 0
                average_bid = None
                proxy_bids = 0

            if auction.status == AuctionStatus.LIVE:
                time_remaining = max(0, int((auction.end_time - utcnow()).total_seconds()))
            else:
                time_remaining = None

            return {
                "auction_id": auction_id,
                "status": auction.status.value,
                "total_bids": len(bids),
                "proxy_bids": proxy_bids,
                "unique_bidders": unique_bidders,
                "reserve_price": reserve,
                "current_high_bid": auction.current_high_bid,
                "reserve_met": auction.has_bids and auction.current_high_bid >= reserve,
                "average_bid": average_bid,
                "auto_extend_count": auction.auto_extend_count,
                "time_remaining_seconds": time_remaining,
            }
