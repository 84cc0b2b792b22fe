"""In-process broadcast hub for live-session channels.

Channels are keyed by session id. Delivery is fire-and-forget and
best-effort: a failing subscriber is logged and skipped, and the publisher
never waits for an acknowledgement.
"""
import itertools
import logging
import threading
from typing import Callable, Dict

from app.schemas.live_session import BroadcastEvent

logger = logging.getLogger(__name__)

Handler = Callable[[BroadcastEvent], None]


class RealtimeHub:
    def __init__(self):
        self._channels: Dict[str, Dict[int, Handler]] = {}
        self._ids = itertools.count(1)
        # sync routes publish from the threadpool while websockets subscribe on the loop
        self._lock = threading.Lock()

    def subscribe(self, session_id: str, handler: Handler) -> Callable[[], None]:
        """Register a handler; returns a callable that removes it again."""
        key = str(session_id)
        token = next(self._ids)
        with self._lock:
            self._channels.setdefault(key, {})[token] = handler
        logger.debug("Subscribed handler %s to session %s", token, key)

        def unsubscribe() -> None:
            with self._lock:
                handlers = self._channels.get(key)
                if handlers is None:
                    return
                handlers.pop(token, None)
                if not handlers:
                    del self._channels[key]

        return unsubscribe

    def publish(self, session_id: str, event: BroadcastEvent) -> int:
        """Deliver an event to every subscriber of the channel. Returns the delivery count."""
        key = str(session_id)
        with self._lock:
            handlers = list(self._channels.get(key, {}).values())

        delivered = 0
        for handler in handlers:
            try:
                handler(event)
                delivered += 1
            except Exception:
                logger.exception("Broadcast of %s to a subscriber of session %s failed", event.event.value, key)
        logger.info("Broadcast %s to %d/%d subscribers of session %s", event.event.value, delivered, len(handlers), key)
        return delivered

    def subscriber_count(self, session_id: str) -> int:
        with self._lock:
            return len(self._channels.get(str(session_id), {}))


hub = RealtimeHub()


def get_realtime_hub() -> RealtimeHub:
    return hub
