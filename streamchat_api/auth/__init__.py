"""
Chat Auth Package
"""

from .signing import (
    create_user_token,
    create_server_token,
    dev_token,
    user_from_token,
    check_signature,
)

__all__ = [
    'create_user_token',
    'create_server_token',
    'dev_token',
    'user_from_token',
    'check_signature',
]
