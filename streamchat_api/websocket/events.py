"""
Event models for frames received over the websocket

Every inbound frame becomes an immutable Event. Known event types map to a
subclass exposing typed payload fields; anything else becomes an
UnknownEvent that still carries the raw fields, so new server-side event
types flow through dispatch untouched.
"""

import copy
from dataclasses import dataclass, field
from datetime import datetime
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Union

from ..models.user import User
from ..models.message import Message
from ..models.member import Member
from ..models.location import LiveLocation
from ..utils.helpers import parse_datetime, utcnow

ALL_EVENTS = "all"

HEALTH_CHECK = "health.check"
CONNECTION_CHANGED = "connection.changed"
CONNECTION_RECOVERED = "connection.recovered"

USER_PRESENCE_CHANGED = "user.presence.changed"
USER_UPDATED = "user.updated"
USER_WATCHING_START = "user.watching.start"
USER_WATCHING_STOP = "user.watching.stop"

TYPING_START = "typing.start"
TYPING_STOP = "typing.stop"

MESSAGE_NEW = "message.new"
MESSAGE_UPDATED = "message.updated"
MESSAGE_DELETED = "message.deleted"
MESSAGE_READ = "message.read"
REACTION_NEW = "reaction.new"
REACTION_UPDATED = "reaction.updated"
REACTION_DELETED = "reaction.deleted"

MEMBER_ADDED = "member.added"
MEMBER_UPDATED = "member.updated"
MEMBER_REMOVED = "member.removed"

CHANNEL_UPDATED = "channel.updated"
CHANNEL_DELETED = "channel.deleted"
CHANNEL_TRUNCATED = "channel.truncated"

LOCATION_SHARED = "location.shared"
LOCATION_UPDATED = "location.updated"
LOCATION_STOPPED = "location.stopped"

NOTIFICATION_MESSAGE_NEW = "notification.message_new"
NOTIFICATION_MARK_READ = "notification.mark_read"
NOTIFICATION_INVITED = "notification.invited"
NOTIFICATION_ADDED_TO_CHANNEL = "notification.added_to_channel"
NOTIFICATION_REMOVED_FROM_CHANNEL = "notification.removed_from_channel"


def _user_or_none(data: Any) -> Optional[User]:
    return User.from_dict(data) if isinstance(data, dict) else None


@dataclass(frozen=True)
class Event:
    """Base event: type discriminant, routing cid and the raw payload"""
    type: str
    cid: Optional[str] = None
    created_at: Optional[datetime] = None
    received_at: datetime = field(default_factory=utcnow)
    raw: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))

    @classmethod
    def from_dict(cls, data: Union["Event", Dict[str, Any]]) -> "Event":
        """
        Create the matching Event subclass from a decoded frame

        Args:
            data: Decoded JSON object (or an Event, returned as-is)

        Returns:
            Event instance; UnknownEvent for unrecognised types

        Raises:
            ValueError: If the payload is not an object with a string "type",
                or its "cid" is not a string
        """
        if isinstance(data, Event):
            return data
        if not isinstance(data, dict):
            raise ValueError(f"Event payload must be an object, got {type(data).__name__}")
        event_type = data.get('type')
        if not isinstance(event_type, str) or not event_type:
            raise ValueError("Event payload has no type")
        cid = data.get('cid')
        if cid is not None and not isinstance(cid, str):
            raise ValueError(f"Event cid must be a string, got {type(cid).__name__}")

        event_class = EVENT_CLASSES.get(event_type, UnknownEvent)
        raw = copy.deepcopy(data)
        return event_class(
            type=event_type,
            cid=raw.get('cid'),
            created_at=parse_datetime(raw.get('created_at')),
            raw=MappingProxyType(raw),
            **event_class._payload_fields(raw)
        )

    @classmethod
    def _payload_fields(cls, data: Dict[str, Any]) -> Dict[str, Any]:
        return {}

    def get(self, key: str, default: Any = None) -> Any:
        """Look up a raw payload field"""
        return self.raw.get(key, default)

    def to_dict(self) -> dict:
        """Copy of the raw payload"""
        return copy.deepcopy(dict(self.raw))


@dataclass(frozen=True)
class UnknownEvent(Event):
    """Event type this client does not know about"""


@dataclass(frozen=True)
class ConnectionEvent(Event):
    """Synthetic connection lifecycle event"""
    online: Optional[bool] = None

    @classmethod
    def _payload_fields(cls, data):
        return {'online': data.get('online')}


@dataclass(frozen=True)
class HealthCheckEvent(Event):
    """Health check; the first one on a socket is the handshake"""
    connection_id: Optional[str] = None
    me: Optional[User] = None

    @classmethod
    def _payload_fields(cls, data):
        return {
            'connection_id': data.get('connection_id'),
            'me': _user_or_none(data.get('me'))
        }


@dataclass(frozen=True)
class UserEvent(Event):
    """Event about a user (presence, typing, read, watching)"""
    user: Optional[User] = None

    @property
    def user_id(self) -> Optional[str]:
        return self.user.id if self.user else None

    @classmethod
    def _payload_fields(cls, data):
        return {'user': _user_or_none(data.get('user'))}


@dataclass(frozen=True)
class WatchingEvent(UserEvent):
    watcher_count: Optional[int] = None

    @classmethod
    def _payload_fields(cls, data):
        fields = super()._payload_fields(data)
        fields['watcher_count'] = data.get('watcher_count')
        return fields


@dataclass(frozen=True)
class MessageEvent(UserEvent):
    """Message created, updated, deleted or reacted to"""
    message: Optional[Message] = None

    @classmethod
    def _payload_fields(cls, data):
        fields = super()._payload_fields(data)
        message = data.get('message')
        if isinstance(message, dict):
            message = Message.from_dict(message)
            if message.cid is None:
                message.cid = data.get('cid')
            fields['message'] = message
        return fields


@dataclass(frozen=True)
class ChannelEvent(MessageEvent):
    """Channel level change or notification carrying a channel object"""
    channel: Optional[Mapping[str, Any]] = None

    @classmethod
    def _payload_fields(cls, data):
        fields = super()._payload_fields(data)
        channel = data.get('channel')
        if isinstance(channel, dict):
            fields['channel'] = MappingProxyType(channel)
        return fields


@dataclass(frozen=True)
class MemberEvent(UserEvent):
    member: Optional[Member] = None

    @classmethod
    def _payload_fields(cls, data):
        fields = super()._payload_fields(data)
        member = data.get('member')
        if isinstance(member, dict):
            fields['member'] = Member.from_dict(member)
        return fields


@dataclass(frozen=True)
class LocationEvent(UserEvent):
    """Live location started, updated or stopped"""
    location: Optional[LiveLocation] = None

    @property
    def user_id(self) -> Optional[str]:
        if self.location is not None and self.location.user_id:
            return self.location.user_id
        return self.user.id if self.user else None

    @classmethod
    def _payload_fields(cls, data):
        fields = super()._payload_fields(data)
        location = data.get('live_location') or data.get('location')
        if isinstance(location, dict):
            location = dict(location)
            if not location.get('user_id') and isinstance(data.get('user'), dict):
                location['user_id'] = data['user'].get('id')
            location.setdefault('cid', data.get('cid'))
            fields['location'] = LiveLocation.from_dict(location)
        return fields


EVENT_CLASSES = {
    HEALTH_CHECK: HealthCheckEvent,
    CONNECTION_CHANGED: ConnectionEvent,
    CONNECTION_RECOVERED: ConnectionEvent,
    USER_PRESENCE_CHANGED: UserEvent,
    USER_UPDATED: UserEvent,
    USER_WATCHING_START: WatchingEvent,
    USER_WATCHING_STOP: WatchingEvent,
    TYPING_START: UserEvent,
    TYPING_STOP: UserEvent,
    MESSAGE_NEW: MessageEvent,
    MESSAGE_UPDATED: MessageEvent,
    MESSAGE_DELETED: MessageEvent,
    MESSAGE_READ: UserEvent,
    REACTION_NEW: MessageEvent,
    REACTION_UPDATED: MessageEvent,
    REACTION_DELETED: MessageEvent,
    MEMBER_ADDED: MemberEvent,
    MEMBER_UPDATED: MemberEvent,
    MEMBER_REMOVED: MemberEvent,
    CHANNEL_UPDATED: ChannelEvent,
    CHANNEL_DELETED: ChannelEvent,
    CHANNEL_TRUNCATED: ChannelEvent,
    LOCATION_SHARED: LocationEvent,
    LOCATION_UPDATED: LocationEvent,
    LOCATION_STOPPED: LocationEvent,
    NOTIFICATION_MESSAGE_NEW: ChannelEvent,
    NOTIFICATION_MARK_READ: ChannelEvent,
    NOTIFICATION_INVITED: ChannelEvent,
    NOTIFICATION_ADDED_TO_CHANNEL: ChannelEvent,
    NOTIFICATION_REMOVED_FROM_CHANNEL: ChannelEvent,
}
