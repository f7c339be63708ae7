"""
Chat Client Package
"""

from .client import StreamChatClient
from .channel import Channel
from .channel_state import ChannelState, TypingCache
from .dispatcher import EventDispatcher, ListenerRegistry
from .state import ClientState

__all__ = [
    'StreamChatClient',
    'Channel',
    'ChannelState',
    'TypingCache',
    'EventDispatcher',
    'ListenerRegistry',
    'ClientState',
]
