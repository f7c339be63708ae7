"""
API response models for the chat REST API
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Mapping, Optional


@dataclass
class RateLimitInfo:
    """Rate limit state reported by the x-ratelimit-* response headers"""
    limit: int
    remaining: int
    reset: int

    @classmethod
    def from_headers(cls, headers: Mapping[str, str]) -> Optional["RateLimitInfo"]:
        """
        Create RateLimitInfo from response headers

        Args:
            headers: Response headers (case-insensitive mapping)

        Returns:
            RateLimitInfo, or None if the headers are missing or malformed
        """
        try:
            return cls(
                limit=int(headers['x-ratelimit-limit']),
                remaining=int(headers['x-ratelimit-remaining']),
                reset=int(headers['x-ratelimit-reset'])
            )
        except (KeyError, TypeError, ValueError):
            return None

    @property
    def reset_at(self) -> datetime:
        return datetime.fromtimestamp(self.reset, tz=timezone.utc)

    def is_exhausted(self) -> bool:
        return self.remaining <= 0

    def to_dict(self) -> dict:
        """Convert RateLimitInfo to dictionary"""
        return {
            'limit': self.limit,
            'remaining': self.remaining,
            'reset': self.reset
        }
