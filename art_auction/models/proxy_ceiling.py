"""
Proxy Ceiling Model
"""
from sqlalchemy import Column, Integer, Numeric, DateTime, Boolean, ForeignKey

from art_auction.core.clock import utcnow
from art_auction.models import Base


class ProxyCeiling(Base):
    """Maximum amount a bidder lets the engine bid on their behalf"""

    __tablename__ = "proxy_ceilings"

    ceiling_id = Column(Integer, primary_key=True, index=True)
    auction_id = Column(Integer, ForeignKey("auctions.auction_id"), nullable=False, index=True)
    bidder_id = Column(Integer, nullable=False, index=True)
    ceiling_amount = Column(Numeric(12, 2), nullable=False)
    registered_at = Column(DateTime, default=utcnow, nullable=False)
    active = Column(Boolean, default=True, nullable=False)
    deactivated_at = Column(DateTime, nullable=True)

    def deactivate(self, when):
        self.active = False
        self.deactivated_at = when

