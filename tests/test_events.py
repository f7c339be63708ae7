"""Tests for event models."""
import dataclasses
from datetime import datetime, timezone

import pytest

from streamchat_api.websocket.events import (
    Event,
    ChannelEvent,
    ConnectionEvent,
    HealthCheckEvent,
    LocationEvent,
    MemberEvent,
    MessageEvent,
    UnknownEvent,
    WatchingEvent,
)


class TestEventFromDict:
    """Tests for Event.from_dict."""

    def test_message_event(self):
        """Should parse the message and stamp it with the event cid."""
        event = Event.from_dict({
            "type": "message.new",
            "cid": "messaging:general",
            "created_at": "2024-01-01T10:00:00.123456789Z",
            "user": {"id": "bob"},
            "message": {"id": "m1", "text": "hi", "user": {"id": "bob"}},
        })

        assert isinstance(event, MessageEvent)
        assert event.message.cid == "messaging:general"
        assert event.message.user_id == "bob"
        assert event.created_at == datetime(2024, 1, 1, 10, 0, 0, 123456, tzinfo=timezone.utc)

    @pytest.mark.parametrize("payload, event_class", [
        ({"type": "health.check", "connection_id": "c1", "me": {"id": "alice"}}, HealthCheckEvent),
        ({"type": "connection.changed", "online": False}, ConnectionEvent),
        ({"type": "user.watching.start", "watcher_count": 2}, WatchingEvent),
        ({"type": "member.added", "member": {"user_id": "bob"}}, MemberEvent),
        ({"type": "channel.updated", "channel": {"name": "General"}}, ChannelEvent),
        ({"type": "location.updated", "live_location": {"user_id": "bob", "lat": 1, "lon": 2}}, LocationEvent),
        ({"type": "something.new"}, UnknownEvent),
    ])
    def test_event_classes(self, payload, event_class):
        assert type(Event.from_dict(payload)) is event_class

    def test_health_check_fields(self):
        event = Event.from_dict({"type": "health.check", "connection_id": "c1", "me": {"id": "alice"}})

        assert event.connection_id == "c1"
        assert event.me.id == "alice"

    def test_location_event_user_from_payload(self):
        """Should fill the location's user and cid from the event."""
        event = Event.from_dict({
            "type": "location.shared",
            "cid": "messaging:general",
            "user": {"id": "bob"},
            "live_location": {"lat": 1.0, "lon": 2.0},
        })

        assert event.user_id == "bob"
        assert event.location.user_id == "bob"
        assert event.location.cid == "messaging:general"

    @pytest.mark.parametrize("payload", [{}, {"type": 3}, {"type": ""}, ["health.check"], "text"])
    def test_invalid_payloads(self, payload):
        with pytest.raises(ValueError):
            Event.from_dict(payload)

    def test_events_are_immutable(self):
        """Should refuse attribute and payload mutation."""
        event = Event.from_dict({"type": "custom", "value": 1})

        with pytest.raises(dataclasses.FrozenInstanceError):
            event.type = "other"
        with pytest.raises(TypeError):
            event.raw["value"] = 2

    def test_payload_copied(self):
        """Should not share the payload with the caller."""
        payload = {"type": "custom", "nested": {"value": 1}}
        event = Event.from_dict(payload)

        payload["nested"]["value"] = 2

        assert event.get("nested") == {"value": 1}
        assert event.to_dict() == {"type": "custom", "nested": {"value": 1}}
