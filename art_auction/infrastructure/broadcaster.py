"""
Realtime broadcasting

The engine pushes events outward with emit(auction_id, event_type, payload).
Delivery is fire-and-forget: a failing transport is logged and never
affects bidding or closure.

Channels follow the "auction:{auction_id}" pattern so WebSocket servers can
subscribe per auction (or to "auction:*").
"""
import json
import logging
import threading
from typing import Any, Dict, List, NamedTuple

import redis

logger = logging.getLogger(__name__)

# Event types
BID_ACCEPTED = "bid-accepted"
AUCTION_EXTENDED = "auction-extended"
WINNER_DETERMINED = "winner-determined"
NO_SALE = "no-sale"
PROXY_CEILING_REGISTERED = "proxy-ceiling-registered"
AUCTION_STATUS_CHANGED = "auction-status-changed"


class BroadcastEvent(NamedTuple):
    auction_id: int
    event_type: str
    payload: Dict[str, Any]


class RealtimeBroadcaster:
    """Interface for pushing auction events to UI and notification consumers"""

    def emit(self, auction_id: int, event_type: str, payload: Dict[str, Any]) -> None:
        raise NotImplementedError

    def emit_all(self, events: List[BroadcastEvent]) -> None:
        """Emit a batch, isolating failures per event"""
        for event in events:
            try:
                self.emit(event.auction_id, event.event_type, event.payload)
            except Exception as e:
                logger.warning(
                    f"⚠️  Broadcast of {event.event_type} for auction {event.auction_id} failed: {e}",
                    extra={"auction_id": event.auction_id, "event_type": event.event_type},
                )


class NullBroadcaster(RealtimeBroadcaster):
    """Drops every event"""

    def emit(self, auction_id: int, event_type: str, payload: Dict[str, Any]) -> None:
        pass


class InMemoryBroadcaster(RealtimeBroadcaster):
    """Keeps emitted events in memory, in emission order"""

    def __init__(self):
        self.events: List[BroadcastEvent] = []
        self._lock = threading.Lock()

    def emit(self, auction_id: int, event_type: str, payload: Dict[str, Any]) -> None:
        with self._lock:
            self.events.append(BroadcastEvent(auction_id, event_type, payload))

    def of_type(self, event_type: str) -> List[BroadcastEvent]:
        with self._lock:
            return [e for e in self.events if e.event_type == event_type]


class RedisBroadcaster(RealtimeBroadcaster):
    """Publishes events as JSON to Redis Pub/Sub"""

    def __init__(self, redis_client: redis.Redis):
        self.redis = redis_client
        self.messages_published = 0

    @staticmethod
    def channel_name(auction_id: int) -> str:
        return f"auction:{auction_id}"

    def emit(self, auction_id: int, event_type: str, payload: Dict[str, Any]) -> None:
        channel = self.channel_name(auction_id)
        message = {"type": event_type, "auction_id": auction_id, **payload}

        # Decimals and datetimes go out as strings
        num_subscribers = self.redis.publish(channel, json.dumps(message, default=str))
        self.messages_published += 1

        logger.debug(f"📢 Published {event_type} to {channel} ({num_subscribers} subscribers)")
