"""Pydantic schemas for auction creation, state and closure"""
from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field, model_validator

from art_auction.models.closure import ClosureOutcome


class AuctionCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    reserve_price: Decimal = Field(Decimal("0"), ge=0)
    start_time: datetime
    end_time: datetime
    min_increment: Optional[Decimal] = Field(None, gt=0)
    auto_extend_window_seconds: Optional[int] = Field(None, ge=0)
    auto_extend_duration_seconds: Optional[int] = Field(None, ge=0)
    fee_percent: Optional[Decimal] = Field(None, ge=0, le=100)
    fee_minimum: Optional[Decimal] = Field(None, ge=0)

    @model_validator(mode="after")
    def check_window(self):
        if self.end_time <= self.start_time:
            raise ValueError("end_time must be after start_time")
        return self


class ClosureResult(BaseModel):
    """Final outcome of an auction; also the payload handed to payments"""
    auction_id: int
    outcome: ClosureOutcome
    winner_id: Optional[int] = None
    winning_bid_id: Optional[int] = None
    amount: Optional[Decimal] = None
    fee: Optional[Decimal] = None
    charity_amount: Optional[Decimal] = None
    closed_at: datetime

    @property
    def is_sale(self) -> bool:
        return self.outcome == ClosureOutcome.SOLD

    @classmethod
    def from_closure(cls, closure):
        """Convert AuctionClosure ORM model to response"""
        return cls(
            auction_id=closure.auction_id,
            outcome=closure.outcome,
            winner_id=closure.winner_id,
            winning_bid_id=closure.winning_bid_id,
            amount=closure.amount,
            fee=closure.fee,
            charity_amount=closure.charity_amount,
            closed_at=closure.closed_at,
        )

    def payment_payload(self) -> dict:
        return {
            "auction_id": self.auction_id,
            "winner_id": self.winner_id,
            "amount": self.amount,
            "fee": self.fee,
        }
