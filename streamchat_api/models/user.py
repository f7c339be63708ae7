"""
User model for the chat API
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional

from ..utils.helpers import parse_datetime, format_datetime

_KNOWN_FIELDS = ('id', 'name', 'role', 'online', 'last_active', 'anon')


@dataclass
class User:
    """User information model"""
    id: str
    name: Optional[str] = None
    role: Optional[str] = None
    online: Optional[bool] = None
    last_active: Optional[datetime] = None
    anon: Optional[bool] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict):
        """Create User from dictionary"""
        return cls(
            id=data.get('id', ''),
            name=data.get('name'),
            role=data.get('role'),
            online=data.get('online'),
            last_active=parse_datetime(data.get('last_active')),
            anon=data.get('anon'),
            extra={k: v for k, v in data.items() if k not in _KNOWN_FIELDS}
        )

    def to_dict(self) -> dict:
        """Convert User to dictionary"""
        result = dict(self.extra)
        result['id'] = self.id
        if self.name is not None:
            result['name'] = self.name
        if self.role is not None:
            result['role'] = self.role
        if self.online is not None:
            result['online'] = self.online
        if self.last_active is not None:
            result['last_active'] = format_datetime(self.last_active)
        if self.anon is not None:
            result['anon'] = self.anon
        return result
