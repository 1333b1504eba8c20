"""
Pydantic schemas returned by the engine
"""
from art_auction.schemas.auction import AuctionCreate, ClosureResult
from art_auction.schemas.bid import BidPlacement, BidRecord, BidResponse, CeilingRecord, LedgerState

__all__ = [
    "AuctionCreate",
    "ClosureResult",
    "BidPlacement",
    "BidRecord",
    "BidResponse",
    "CeilingRecord",
    "LedgerState",
]
