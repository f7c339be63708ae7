"""
Chat API Models Package
"""

from .user import User
from .message import Message
from .member import Member, ReadState
from .location import Location, LiveLocation

__all__ = [
    'User',
    'Message',
    'Member',
    'ReadState',
    'Location',
    'LiveLocation',
]
