"""
Location models for static and live location sharing
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from ..exceptions import InvalidLocationError
from ..utils.helpers import parse_datetime, format_datetime, utcnow


@dataclass
class Location:
    """
    Location payload sent by the client

    live=True starts (or refreshes) live sharing; expires_in_minutes only
    applies when sharing starts.
    """
    lat: float
    lon: float
    accuracy: float = 0
    live: bool = False
    expires_in_minutes: Optional[int] = None

    @classmethod
    def from_dict(cls, data: dict):
        """Create Location from dictionary"""
        return cls(
            lat=data.get('lat'),
            lon=data.get('lon'),
            accuracy=data.get('accuracy', 0),
            live=bool(data.get('live', False)),
            expires_in_minutes=data.get('expires_in_minutes')
        )

    def validate(self):
        """
        Check coordinate ranges

        Raises:
            InvalidLocationError: lat outside [-90, 90], lon outside
                [-180, 180] or accuracy outside [0, 100]
        """
        if not isinstance(self.lat, (int, float)) or not -90 <= self.lat <= 90:
            raise InvalidLocationError(f"UpdateLocation failed with error: \"lat must be between -90 and 90, got {self.lat}\"")
        if not isinstance(self.lon, (int, float)) or not -180 <= self.lon <= 180:
            raise InvalidLocationError(f"UpdateLocation failed with error: \"lon must be between -180 and 180, got {self.lon}\"")
        if not isinstance(self.accuracy, (int, float)) or not 0 <= self.accuracy <= 100:
            raise InvalidLocationError(f"UpdateLocation failed with error: \"accuracy must be between 0 and 100, got {self.accuracy}\"")
        if self.expires_in_minutes is not None and self.expires_in_minutes < 0:
            raise InvalidLocationError("UpdateLocation failed with error: \"expires_in_minutes can't be negative\"")

    def to_dict(self) -> dict:
        """Convert Location to dictionary"""
        result = {
            'lat': self.lat,
            'lon': self.lon,
            'accuracy': self.accuracy,
            'live': self.live
        }
        if self.expires_in_minutes is not None:
            result['expires_in_minutes'] = self.expires_in_minutes
        return result

    def to_attachment(self) -> dict:
        """Message attachment carrying this location"""
        return {'type': 'location', 'location': self.to_dict()}


@dataclass
class LiveLocation:
    """Live location record kept per user in a channel"""
    user_id: str
    lat: float
    lon: float
    accuracy: float = 0
    cid: Optional[str] = None
    message_id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None

    @classmethod
    def from_dict(cls, data: dict):
        """Create LiveLocation from dictionary"""
        user_id = data.get('user_id')
        if user_id is None:
            user_id = (data.get('user') or {}).get('id', '')
        return cls(
            user_id=user_id,
            lat=data.get('lat'),
            lon=data.get('lon'),
            accuracy=data.get('accuracy', 0),
            cid=data.get('cid') or data.get('channel_cid'),
            message_id=data.get('message_id'),
            created_at=parse_datetime(data.get('created_at')),
            updated_at=parse_datetime(data.get('updated_at')),
            expires_at=parse_datetime(data.get('expires_at'))
        )

    @classmethod
    def from_attachment(cls, message: Any, location: Dict[str, Any]):
        """Create LiveLocation from a message carrying a live location attachment"""
        created_at = message.created_at or utcnow()
        expires_at = parse_datetime(location.get('expires_at'))
        minutes = location.get('expires_in_minutes')
        if expires_at is None and minutes is not None:
            expires_at = created_at + timedelta(minutes=minutes)
        return cls(
            user_id=message.user_id or '',
            lat=location.get('lat'),
            lon=location.get('lon'),
            accuracy=location.get('accuracy', 0),
            cid=message.cid,
            message_id=message.id,
            created_at=created_at,
            updated_at=message.updated_at or created_at,
            expires_at=expires_at
        )

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        """Check if sharing has run past its expiry"""
        if self.expires_at is None:
            return False
        return (now or utcnow()) >= self.expires_at

    def to_dict(self) -> dict:
        """Convert LiveLocation to dictionary"""
        result = {
            'user_id': self.user_id,
            'lat': self.lat,
            'lon': self.lon,
            'accuracy': self.accuracy
        }
        if self.cid is not None:
            result['cid'] = self.cid
        if self.message_id is not None:
            result['message_id'] = self.message_id
        if self.created_at is not None:
            result['created_at'] = format_datetime(self.created_at)
        if self.updated_at is not None:
            result['updated_at'] = format_datetime(self.updated_at)
        if self.expires_at is not None:
            result['expires_at'] = format_datetime(self.expires_at)
        return result
