"""
Best-effort pub/sub fan-out to real-time subscribers (WebSocket clients).
"""
from __future__ import annotations
from typing import Dict, Protocol, Set
import logging

logger = logging.getLogger(__name__)

EMOTION_CHANNEL = "emotion"


class Subscriber(Protocol):
    async def send_json(self, data) -> None: ...


class Broadcaster:
    """
    Channel name -> connected subscribers.

    No buffering and no delivery guarantee: with nobody subscribed an event is
    dropped, and a subscriber whose send fails is logged and removed.
    """

    def __init__(self):
        self._channels: Dict[str, Set[Subscriber]] = {}

    def subscribe(self, channel: str, subscriber: Subscriber) -> None:
        self._channels.setdefault(channel, set()).add(subscriber)
        logger.info(f"[broadcast] subscriber joined channel={channel} total={self.subscriber_count(channel)}")

    def unsubscribe(self, channel: str, subscriber: Subscriber) -> bool:
        subs = self._channels.get(channel)
        if not subs or subscriber not in subs:
            return False
        subs.discard(subscriber)
        if not subs:
            del self._channels[channel]
        logger.info(f"[broadcast] subscriber left channel={channel} total={self.subscriber_count(channel)}")
        return True

    def subscriber_count(self, channel: str) -> int:
        return len(self._channels.get(channel, ()))

    async def publish(self, channel: str, payload: dict) -> int:
        """
        Send `payload` to every subscriber of `channel`.

        Returns:
            int: Number of subscribers the message was handed to.
        """
        subs = list(self._channels.get(channel, ()))
        if not subs:
            return 0
        message = {"event": channel, "data": payload}
        delivered = 0
        for sub in subs:
            try:
                await sub.send_json(message)
                delivered += 1
            except Exception as e:
                logger.warning(f"[broadcast] dropping subscriber on channel={channel}: {e}")
                self.unsubscribe(channel, sub)
        return delivered
