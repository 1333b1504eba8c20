"""
Engine error kinds

Every error raised by the bidding and lifecycle components carries an
ErrorCode so the engine boundary can turn it into a result object.
"""
import enum
from decimal import Decimal
from typing import Optional


class ErrorCode(str, enum.Enum):
    """Error codes surfaced to callers"""
    AUCTION_NOT_FOUND = "AUCTION_NOT_FOUND"
    AUCTION_NOT_LIVE = "AUCTION_NOT_LIVE"
    AUCTION_EXPIRED = "AUCTION_EXPIRED"
    BID_TOO_LOW = "BID_TOO_LOW"
    INVALID_BID = "INVALID_BID"
    INVALID_PROXY_CEILING = "INVALID_PROXY_CEILING"
    ILLEGAL_TRANSITION = "ILLEGAL_TRANSITION"
    CONCURRENT_MODIFICATION = "CONCURRENT_MODIFICATION"
    RESOLUTION_BOUND_EXCEEDED = "RESOLUTION_BOUND_EXCEEDED"


class AuctionEngineError(Exception):
    """Base exception for engine errors"""
    code: ErrorCode = None

    def __init__(self, message: str, auction_id: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.auction_id = auction_id


class AuctionNotFoundError(AuctionEngineError):
    """Raised when the auction doesn't exist"""
    code = ErrorCode.AUCTION_NOT_FOUND


class AuctionNotLiveError(AuctionEngineError):
    """Raised when a bid, ceiling or extension targets a non-LIVE auction"""
    code = ErrorCode.AUCTION_NOT_LIVE


class AuctionExpiredError(AuctionEngineError):
    """Raised when a bid arrives at or after end_time"""
    code = ErrorCode.AUCTION_EXPIRED


class BidTooLowError(AuctionEngineError):
    """Raised when a bid is below the minimum acceptable amount"""
    code = ErrorCode.BID_TOO_LOW

    def __init__(self, message: str, minimum_bid: Decimal, auction_id: Optional[int] = None):
        super().__init__(message, auction_id)
        self.minimum_bid = minimum_bid


class InvalidBidError(AuctionEngineError):
    """Raised when the bid amount itself is malformed"""
    code = ErrorCode.INVALID_BID


class InvalidProxyCeilingError(AuctionEngineError):
    """Raised when a proxy ceiling does not exceed the current price"""
    code = ErrorCode.INVALID_PROXY_CEILING


class IllegalTransitionError(AuctionEngineError):
    """Raised when a status change is not in the transition table"""
    code = ErrorCode.ILLEGAL_TRANSITION


class ConcurrentModificationError(AuctionEngineError):
    """Raised when the auction changed underneath us; safe to retry"""
    code = ErrorCode.CONCURRENT_MODIFICATION


class ResolutionBoundExceededError(AuctionEngineError):
    """Raised when proxy resolution fails to settle; always a defect"""
    code = ErrorCode.RESOLUTION_BOUND_EXCEEDED


# Rejections a bidder can act on; everything else is an integration error
BID_REJECTIONS = (
    AuctionNotFoundError,
    AuctionNotLiveError,
    AuctionExpiredError,
    BidTooLowError,
    InvalidBidError,
    InvalidProxyCeilingError,
)
