"""
Database Models
"""
from sqlalchemy.orm import declarative_base

Base = declarative_base()

# Import models after Base is defined
from art_auction.models.auction import Auction, AuctionStatus
from art_auction.models.bid import Bid, BidOrigin
from art_auction.models.proxy_ceiling import ProxyCeiling
from art_auction.models.closure import AuctionClosure, ClosureOutcome

__all__ = [
    "Base",
    "Auction",
    "AuctionStatus",
    "Bid",
    "BidOrigin",
    "ProxyCeiling",
    "AuctionClosure",
    "ClosureOutcome",
]
