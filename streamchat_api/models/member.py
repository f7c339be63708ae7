"""
Channel membership and read state models
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional

from .user import User
from ..utils.helpers import parse_datetime, format_datetime


@dataclass
class Member:
    """Channel membership record"""
    user_id: str
    user: Optional[User] = None
    role: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict):
        """Create Member from dictionary"""
        user = data.get('user')
        user_id = data.get('user_id')
        if user_id is None and isinstance(user, dict):
            user_id = user.get('id')
        return cls(
            user_id=user_id or '',
            user=User.from_dict(user) if isinstance(user, dict) else None,
            role=data.get('role'),
            created_at=parse_datetime(data.get('created_at')),
            updated_at=parse_datetime(data.get('updated_at')),
            extra={
                k: v for k, v in data.items()
                if k not in ('user_id', 'user', 'role', 'created_at', 'updated_at')
            }
        )

    def to_dict(self) -> dict:
        """Convert Member to dictionary"""
        result = dict(self.extra)
        result['user_id'] = self.user_id
        if self.user is not None:
            result['user'] = self.user.to_dict()
        if self.role is not None:
            result['role'] = self.role
        if self.created_at is not None:
            result['created_at'] = format_datetime(self.created_at)
        if self.updated_at is not None:
            result['updated_at'] = format_datetime(self.updated_at)
        return result


@dataclass
class ReadState:
    """Last read marker of one user"""
    user: User
    last_read: Optional[datetime] = None

    @classmethod
    def from_dict(cls, data: dict):
        """Create ReadState from dictionary"""
        return cls(
            user=User.from_dict(data.get('user') or {}),
            last_read=parse_datetime(data.get('last_read'))
        )

    def to_dict(self) -> dict:
        """Convert ReadState to dictionary"""
        result = {'user': self.user.to_dict()}
        if self.last_read is not None:
            result['last_read'] = format_datetime(self.last_read)
        return result
