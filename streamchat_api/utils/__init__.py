"""
Chat API Utils Package
"""

from .helpers import (
    utcnow,
    parse_datetime,
    format_datetime,
    encode_uri_component,
)

__all__ = [
    'utcnow',
    'parse_datetime',
    'format_datetime',
    'encode_uri_component',
]
