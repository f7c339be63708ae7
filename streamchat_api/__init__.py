"""
Stream Chat API Library
A Python client for a hosted real-time chat service: stable websocket
session, event dispatch and local channel state
"""

# Main exports
from .chat import StreamChatClient, Channel, ChannelState
from .api import ChatAPIClient, RateLimitInfo
from .config import ClientOptions

# Model exports
from .models import (
    User,
    Message,
    Member,
    ReadState,
    Location,
    LiveLocation,
)

# WebSocket exports
from .websocket import (
    StableConnection,
    ConnectionState,
    WebSocketTransport,
    Event,
    UnknownEvent,
)

# Error exports
from .exceptions import (
    StreamChatError,
    ConfigurationError,
    ChatAPIError,
    InvalidLocationError,
    ChatConnectionError,
    HandshakeError,
)

__version__ = "0.1.0"

__all__ = [
    # Main classes
    'StreamChatClient',
    'Channel',
    'ChannelState',
    'ChatAPIClient',
    'RateLimitInfo',
    'ClientOptions',
    # Models
    'User',
    'Message',
    'Member',
    'ReadState',
    'Location',
    'LiveLocation',
    # WebSocket
    'StableConnection',
    'ConnectionState',
    'WebSocketTransport',
    'Event',
    'UnknownEvent',
    # Errors
    'StreamChatError',
    'ConfigurationError',
    'ChatAPIError',
    'InvalidLocationError',
    'ChatConnectionError',
    'HandshakeError',
]
