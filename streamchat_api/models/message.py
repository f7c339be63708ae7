"""
Message model for the chat API
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from .user import User
from ..utils.helpers import parse_datetime, format_datetime

_KNOWN_FIELDS = (
    'id', 'text', 'type', 'user', 'cid', 'created_at', 'updated_at',
    'deleted_at', 'attachments', 'parent_id'
)


@dataclass
class Message:
    """Chat message model"""
    id: str
    text: Optional[str] = None
    type: Optional[str] = None
    user: Optional[User] = None
    cid: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    deleted_at: Optional[datetime] = None
    attachments: List[Dict[str, Any]] = field(default_factory=list)
    parent_id: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict):
        """Create Message from dictionary"""
        user = data.get('user')
        return cls(
            id=data.get('id', ''),
            text=data.get('text'),
            type=data.get('type'),
            user=User.from_dict(user) if isinstance(user, dict) else None,
            cid=data.get('cid'),
            created_at=parse_datetime(data.get('created_at')),
            updated_at=parse_datetime(data.get('updated_at')),
            deleted_at=parse_datetime(data.get('deleted_at')),
            attachments=[dict(a) for a in data.get('attachments') or []],
            parent_id=data.get('parent_id'),
            extra={k: v for k, v in data.items() if k not in _KNOWN_FIELDS}
        )

    @property
    def user_id(self) -> Optional[str]:
        return self.user.id if self.user else None

    def location_attachment(self) -> Optional[Dict[str, Any]]:
        """Return the location of the first location attachment, if any"""
        for attachment in self.attachments:
            if attachment.get('type') == 'location' and isinstance(attachment.get('location'), dict):
                return attachment['location']
        return None

    def to_dict(self) -> dict:
        """Convert Message to dictionary"""
        result = dict(self.extra)
        result['id'] = self.id
        if self.text is not None:
            result['text'] = self.text
        if self.type is not None:
            result['type'] = self.type
        if self.user is not None:
            result['user'] = self.user.to_dict()
        if self.cid is not None:
            result['cid'] = self.cid
        if self.created_at is not None:
            result['created_at'] = format_datetime(self.created_at)
        if self.updated_at is not None:
            result['updated_at'] = format_datetime(self.updated_at)
        if self.deleted_at is not None:
            result['deleted_at'] = format_datetime(self.deleted_at)
        if self.attachments:
            result['attachments'] = [dict(a) for a in self.attachments]
        if self.parent_id is not None:
            result['parent_id'] = self.parent_id
        return result
