"""Pydantic schemas for bids and ledger state"""
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field

from art_auction.core.errors import ErrorCode
from art_auction.models.auction import AuctionStatus
from art_auction.models.bid import BidOrigin


class BidRecord(BaseModel):
    bid_id: int
    auction_id: int
    bidder_id: int
    amount: Decimal
    previous_amount: Optional[Decimal] = None
    sequence_number: int
    origin: BidOrigin
    placed_at: datetime

    @classmethod
    def from_bid(cls, bid):
        """Convert Bid ORM model to response"""
        return cls(
            bid_id=bid.bid_id,
            auction_id=bid.auction_id,
            bidder_id=bid.bidder_id,
            amount=bid.amount,
            previous_amount=bid.previous_amount,
            sequence_number=bid.sequence_number,
            origin=bid.origin,
            placed_at=bid.placed_at,
        )


class LedgerState(BaseModel):
    """Snapshot of an auction's bidding state"""
    auction_id: int
    status: AuctionStatus
    current_high_bid: Optional[Decimal] = None
    current_high_bidder_id: Optional[int] = None
    current_high_bid_id: Optional[int] = None
    sequence_number: int = 0
    end_time: datetime
    auto_extend_count: int = 0

    @classmethod
    def from_auction(cls, auction):
        return cls(
            auction_id=auction.auction_id,
            status=auction.status,
            current_high_bid=auction.current_high_bid,
            current_high_bidder_id=auction.current_high_bidder_id,
            current_high_bid_id=auction.current_high_bid_id,
            sequence_number=auction.last_sequence_number,
            end_time=auction.end_time,
            auto_extend_count=auction.auto_extend_count,
        )


class BidPlacement(BaseModel):
    """Outcome of an accepted bid or ceiling registration"""
    bid: Optional[BidRecord] = None
    previous_state: LedgerState
    proxy_bids: List[BidRecord] = Field(default_factory=list)
    state: LedgerState

    @property
    def all_bids(self) -> List[BidRecord]:
        return ([self.bid] if self.bid else []) + self.proxy_bids


class BidResponse(BaseModel):
    """What a bidder sees: accepted, or rejected with a reason"""
    success: bool
    message: str
    error_code: Optional[ErrorCode] = None
    minimum_bid: Optional[Decimal] = None
    retry_count: int = 0
    placement: Optional[BidPlacement] = None


class CeilingRecord(BaseModel):
    ceiling_id: int
    auction_id: int
    bidder_id: int
    ceiling_amount: Decimal
    registered_at: datetime
    active: bool

    @classmethod
    def from_ceiling(cls, ceiling):
        return cls(
            ceiling_id=ceiling.ceiling_id,
            auction_id=ceiling.auction_id,
            bidder_id=ceiling.bidder_id,
            ceiling_amount=ceiling.ceiling_amount,
            registered_at=ceiling.registered_at,
            active=ceiling.active,
        )
