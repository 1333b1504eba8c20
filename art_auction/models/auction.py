"""
Auction Model
"""
from sqlalchemy import Column, Integer, String, Numeric, DateTime, Enum as SQLEnum
import enum

from art_auction.core.clock import utcnow
from art_auction.models import Base


class AuctionStatus(str, enum.Enum):
    """Auction status enum"""
    DRAFT = "DRAFT"
    APPROVED = "APPROVED"
    LIVE = "LIVE"
    CLOSED = "CLOSED"
    CANCELLED = "CANCELLED"


class Auction(Base):
    """Auction database model

    Holds only ID references to bids and bidders; the winning Bid is
    resolved through the repository.
    """

    __tablename__ = "auctions"

    auction_id = Column(Integer, primary_key=True, index=True)
    title = Column(String, nullable=False)
    status = Column(SQLEnum(AuctionStatus), default=AuctionStatus.DRAFT, nullable=False, index=True)

    reserve_price = Column(Numeric(12, 2), nullable=False, default=0)
    current_high_bid = Column(Numeric(12, 2), nullable=True)
    current_high_bidder_id = Column(Integer, nullable=True)
    current_high_bid_id = Column(Integer, nullable=True)
    last_sequence_number = Column(Integer, nullable=False, default=0)

    start_time = Column(DateTime, nullable=False)
    end_time = Column(DateTime, nullable=False)
    auto_extend_window_seconds = Column(Integer, nullable=False, default=0)
    auto_extend_duration_seconds = Column(Integer, nullable=False, default=0)
    auto_extend_count = Column(Integer, nullable=False, default=0)

    # Fixed increment; NULL means the tiered schedule applies
    min_increment = Column(Numeric(12, 2), nullable=True)
    # Flat fee percent override; NULL means the tiered schedule applies
    fee_percent = Column(Numeric(5, 2), nullable=True)
    fee_minimum = Column(Numeric(12, 2), nullable=False, default=0)

    version = Column(Integer, nullable=False)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    __mapper_args__ = {"version_id_col": version}

    @property
    def has_bids(self) -> bool:
        return self.current_high_bid is not None

    def to_dict(self):
        """Convert to dictionary"""
        return {
            "auction_id": self.auction_id,
            "title": self.title,
            "status": self.status.value if isinstance(self.status, AuctionStatus) else self.status,
            "reserve_price": str(self.reserve_price),
            "current_high_bid": str(self.current_high_bid) if self.current_high_bid is not None else None,
            "current_high_bidder_id": self.current_high_bidder_id,
            "last_sequence_number": self.last_sequence_number,
            "start_time": self.start_time.isoformat() if self.start_time else None,
            "end_time": self.end_time.isoformat() if self.end_time else None,
            "auto_extend_count": self.auto_extend_count,
        }
