"""
Bid Model
"""
from sqlalchemy import Column, Integer, Numeric, DateTime, ForeignKey, UniqueConstraint, Enum as SQLEnum
import enum

from art_auction.core.clock import utcnow
from art_auction.models import Base


class BidOrigin(str, enum.Enum):
    """Who placed the bid"""
    MANUAL = "MANUAL"
    PROXY_GENERATED = "PROXY_GENERATED"


class Bid(Base):
    """Bid database model (immutable once written)"""

    __tablename__ = "bids"
    __table_args__ = (
        UniqueConstraint("auction_id", "sequence_number", name="uq_bids_auction_sequence"),
    )

    bid_id = Column(Integer, primary_key=True, index=True)
    auction_id = Column(Integer, ForeignKey("auctions.auction_id"), nullable=False, index=True)
    bidder_id = Column(Integer, nullable=False, index=True)
    amount = Column(Numeric(12, 2), nullable=False)
    previous_amount = Column(Numeric(12, 2), nullable=True)
    sequence_number = Column(Integer, nullable=False)
    origin = Column(SQLEnum(BidOrigin), nullable=False, default=BidOrigin.MANUAL)
    placed_at = Column(DateTime, default=utcnow, index=True)

    def to_dict(self):
        """Convert to dictionary"""
        return {
            "bid_id": self.bid_id,
            "auction_id": self.auction_id,
            "bidder_id": self.bidder_id,
            "amount": str(self.amount),
            "previous_amount": str(self.previous_amount) if self.previous_amount is not None else None,
            "sequence_number": self.sequence_number,
            "origin": self.origin.value if isinstance(self.origin, BidOrigin) else self.origin,
            "placed_at": self.placed_at.isoformat() if self.placed_at else None,
        }
