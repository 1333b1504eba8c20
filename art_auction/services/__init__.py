"""
Business Logic Services
"""
from art_auction.services.auction_service import AuctionService
from art_auction.services.bid_ledger import BidLedger
from art_auction.services.closure_service import AuctionClosureService
from art_auction.services.engine import AuctionEngine, build_engine
from art_auction.services.lifecycle import AuctionLifecycleManager
from art_auction.services.pricing import FeeCalculator, IncrementSchedule
from art_auction.services.proxy_resolver import ProxyBidResolver
from art_auction.services.scheduler import CloseScheduler

__all__ = [
    "AuctionService",
    "BidLedger",
    "AuctionClosureService",
    "AuctionEngine",
    "build_engine",
    "AuctionLifecycleManager",
    "FeeCalculator",
    "IncrementSchedule",
    "ProxyBidResolver",
    "CloseScheduler",
]
