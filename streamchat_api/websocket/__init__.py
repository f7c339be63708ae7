"""
Chat WebSocket Package
"""

from .connection import StableConnection, ConnectionState
from .transport import WebSocketTransport, parse_handshake
from .events import (
    Event,
    UnknownEvent,
    ConnectionEvent,
    HealthCheckEvent,
    UserEvent,
    WatchingEvent,
    MessageEvent,
    ChannelEvent,
    MemberEvent,
    LocationEvent,
    ALL_EVENTS,
)

__all__ = [
    'StableConnection',
    'ConnectionState',
    'WebSocketTransport',
    'parse_handshake',
    'Event',
    'UnknownEvent',
    'ConnectionEvent',
    'HealthCheckEvent',
    'UserEvent',
    'WatchingEvent',
    'MessageEvent',
    'ChannelEvent',
    'MemberEvent',
    'LocationEvent',
    'ALL_EVENTS',
]
