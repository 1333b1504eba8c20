"""
Auction Closure Model
"""
from sqlalchemy import Column, Integer, Numeric, DateTime, ForeignKey, Enum as SQLEnum
import enum

from art_auction.models import Base


class ClosureOutcome(str, enum.Enum):
    """Closure outcome enum"""
    SOLD = "SOLD"
    NO_SALE = "NO_SALE"


class AuctionClosure(Base):
    """Stored result of closing an auction; written exactly once"""

    __tablename__ = "auction_closures"

    auction_id = Column(Integer, ForeignKey("auctions.auction_id"), primary_key=True)
    outcome = Column(SQLEnum(ClosureOutcome), nullable=False)
    winner_id = Column(Integer, nullable=True)
    winning_bid_id = Column(Integer, nullable=True)
    amount = Column(Numeric(12, 2), nullable=True)
    fee = Column(Numeric(12, 2), nullable=True)
    charity_amount = Column(Numeric(12, 2), nullable=True)
    closed_at = Column(DateTime, nullable=False)
