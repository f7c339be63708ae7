"""
Chat API Package
"""

from .client import ChatAPIClient
from .models import RateLimitInfo

__all__ = [
    'ChatAPIClient',
    'RateLimitInfo',
]
