"""
Realtime hub tests.
"""

from datetime import datetime, timezone

import pytest

from app.models.enums import BroadcastEventType
from app.schemas.live_session import BroadcastEvent
from app.services.realtime import RealtimeHub


@pytest.fixture
def event():
    return BroadcastEvent(
        event=BroadcastEventType.PLAY_STATE_CHANGE,
        payload={"play_state": "intro"},
        timestamp=datetime(2026, 5, 1, tzinfo=timezone.utc),
    )


class TestRealtimeHub:
    def test_publish_reaches_subscribers(self, event):
        hub = RealtimeHub()
        received = []
        hub.subscribe("s1", received.append)
        hub.subscribe("s1", received.append)

        assert hub.publish("s1", event) == 2
        assert received == [event, event]

    def test_channels_are_isolated(self, event):
        hub = RealtimeHub()
        received = []
        hub.subscribe("s1", received.append)

        assert hub.publish("s2", event) == 0
        assert received == []

    def test_unsubscribe(self, event):
        hub = RealtimeHub()
        received = []
        unsubscribe = hub.subscribe("s1", received.append)
        unsubscribe()
        unsubscribe()

        assert hub.subscriber_count("s1") == 0
        assert hub.publish("s1", event) == 0
        assert received == []

    def test_failing_subscriber_does_not_stop_delivery(self, event):
        hub = RealtimeHub()
        received = []

        def broken(_):
            raise RuntimeError("socket closed")

        hub.subscribe("s1", broken)
        hub.subscribe("s1", received.append)

        assert hub.publish("s1", event) == 1
        assert received == [event]

    def test_broadcast_envelope(self, event):
        body = event.model_dump(mode="json")
        assert body["type"] == "broadcast"
        assert body["event"] == "play_state_change"
        assert body["payload"] == {"play_state": "intro"}
        assert body["timestamp"].startswith("2026-05-01")
