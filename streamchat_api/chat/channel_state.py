"""
Channel state cache

Local mirror of one channel: messages, members, read markers, watchers,
typing indicators and live locations. Written only by the event dispatcher
and by responses to the channel's own requests.
"""

import bisect
import dataclasses
import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Set, Tuple

from cachetools import TTLCache

from ..models.user import User
from ..models.message import Message
from ..models.member import Member, ReadState
from ..models.location import LiveLocation
from ..utils.helpers import utcnow
from ..websocket.events import (
    Event,
    MESSAGE_NEW,
    MESSAGE_UPDATED,
    MESSAGE_DELETED,
    MESSAGE_READ,
    REACTION_NEW,
    REACTION_UPDATED,
    REACTION_DELETED,
    MEMBER_ADDED,
    MEMBER_UPDATED,
    MEMBER_REMOVED,
    USER_WATCHING_START,
    USER_WATCHING_STOP,
    TYPING_START,
    TYPING_STOP,
    CHANNEL_TRUNCATED,
    LOCATION_SHARED,
    LOCATION_UPDATED,
    LOCATION_STOPPED,
)

_END_OF_TIME = datetime.max.replace(tzinfo=timezone.utc)

_MESSAGE_EVENTS = (
    MESSAGE_NEW, MESSAGE_UPDATED, MESSAGE_DELETED,
    REACTION_NEW, REACTION_UPDATED, REACTION_DELETED,
)


class TypingCache(TTLCache):
    """
    TTLCache of typing.start events per user

    TTLCache expires entries lazily, including on insert. Expired entries are
    collected here until drain() hands them out, so every expiry results in
    exactly one synthetic typing.stop.
    """

    def __init__(self, maxsize: int, ttl: float, timer=time.monotonic):
        self._expired: List[Tuple[str, Any]] = []
        super().__init__(maxsize=maxsize, ttl=ttl, timer=timer)

    def expire(self, time=None):
        expired = super().expire(time)
        self._expired.extend(expired)
        return expired

    def drain(self) -> List[Tuple[str, Any]]:
        """Expire now and return every expired (user_id, event) not typing again since"""
        self.expire()
        expired, self._expired = self._expired, []
        return [(user_id, event) for user_id, event in expired if user_id not in self]


def _sort_key(message: Message) -> datetime:
    return message.created_at or _END_OF_TIME


class ChannelState:
    """Local mirror of a single channel"""

    def __init__(self, cid: Optional[str] = None, typing_timeout: float = 7.0, clock=time.monotonic):
        self.cid = cid
        self.messages: List[Message] = []
        self.members: Dict[str, Member] = {}
        self.read: Dict[str, ReadState] = {}
        self.watchers: Dict[str, User] = {}
        self.watcher_count = 0
        self.typing = TypingCache(maxsize=1000, ttl=typing_timeout, timer=clock)
        self.live_locations: Dict[str, LiveLocation] = {}
        self.last_message_at: Optional[datetime] = None
        self.last_synced_at: Optional[datetime] = None
        # Users whose latest location event was a stop or an expiry
        self._stopped_locations: Set[str] = set()

    # Messages

    def _index_of(self, message_id: str) -> Optional[int]:
        for index, message in enumerate(self.messages):
            if message.id == message_id:
                return index
        return None

    def add_message(self, message: Message) -> bool:
        """
        Insert or replace a message keeping creation order and unique IDs

        A copy with an older updated_at than the cached one is ignored, so a
        stale snapshot never overwrites newer local knowledge.

        Returns:
            True if the cache changed
        """
        if not message.id:
            return False
        if message.cid is None and self.cid is not None:
            message = dataclasses.replace(message, cid=self.cid)

        index = self._index_of(message.id)
        if index is not None:
            current = self.messages[index]
            if (
                current.updated_at is not None
                and message.updated_at is not None
                and message.updated_at < current.updated_at
            ):
                return False
            if message.created_at is None and current.created_at is not None:
                message = dataclasses.replace(message, created_at=current.created_at)
            if message == current:
                return False
            del self.messages[index]

        keys = [_sort_key(m) for m in self.messages]
        self.messages.insert(bisect.bisect_right(keys, _sort_key(message)), message)

        if message.created_at is not None and (
            self.last_message_at is None or message.created_at > self.last_message_at
        ):
            self.last_message_at = message.created_at
        return True

    def remove_message(self, message_id: str) -> bool:
        index = self._index_of(message_id)
        if index is None:
            return False
        del self.messages[index]
        return True

    def apply_message(self, message: Message, event_type: str = MESSAGE_NEW) -> bool:
        """Fold a message into the cache, including any live location attachment"""
        changed = self.add_message(message)
        self._track_live_location(message, event_type)
        return changed

    def last_message(self) -> Optional[Message]:
        return self.messages[-1] if self.messages else None

    # Snapshots

    def init_state(self, snapshot: Dict[str, Any]):
        """
        Merge a server snapshot (query/watch response) into the cache

        Messages are unioned by ID; members, read markers, watchers and
        active live locations are replaced when present. Applying the same
        snapshot twice leaves the cache unchanged.
        """
        for data in snapshot.get('messages') or []:
            self.add_message(Message.from_dict(data))

        if 'members' in snapshot:
            members = [Member.from_dict(m) for m in snapshot.get('members') or []]
            self.members = {m.user_id: m for m in members if m.user_id}
        if 'read' in snapshot:
            reads = [ReadState.from_dict(r) for r in snapshot.get('read') or []]
            self.read = {r.user.id: r for r in reads if r.user.id}
        if 'watchers' in snapshot:
            watchers = [User.from_dict(w) for w in snapshot.get('watchers') or []]
            self.watchers = {w.id: w for w in watchers if w.id}
        if 'watcher_count' in snapshot:
            self.watcher_count = snapshot.get('watcher_count') or 0
        if 'active_live_locations' in snapshot:
            locations = [LiveLocation.from_dict(l) for l in snapshot.get('active_live_locations') or []]
            self.live_locations = {}
            for location in locations:
                if location.user_id:
                    self.start_live_location(location)

        if self.last_message_at is not None and (
            self.last_synced_at is None or self.last_message_at > self.last_synced_at
        ):
            self.last_synced_at = self.last_message_at

    def update_user(self, user: User):
        """Replace the cached copy of user on members, watchers and read markers"""
        member = self.members.get(user.id)
        if member is not None:
            self.members[user.id] = dataclasses.replace(member, user=user)
        if user.id in self.watchers:
            self.watchers[user.id] = user
        read = self.read.get(user.id)
        if read is not None:
            self.read[user.id] = dataclasses.replace(read, user=user)

    # Live events

    def apply_event(self, event: Event):
        """Apply one dispatched event to this channel's cache"""
        event_type = event.type
        user = getattr(event, 'user', None)

        if event_type in _MESSAGE_EVENTS:
            message = getattr(event, 'message', None)
            if message is not None:
                self.apply_message(message, event_type)
        elif event_type == MESSAGE_READ:
            if user is not None:
                self.read[user.id] = ReadState(user=user, last_read=event.created_at or event.received_at)
        elif event_type in (MEMBER_ADDED, MEMBER_UPDATED):
            member = getattr(event, 'member', None)
            if member is not None and member.user_id:
                self.members[member.user_id] = member
        elif event_type == MEMBER_REMOVED:
            member = getattr(event, 'member', None)
            user_id = member.user_id if member is not None else (user.id if user else None)
            if user_id:
                self.members.pop(user_id, None)
        elif event_type in (USER_WATCHING_START, USER_WATCHING_STOP):
            if user is not None:
                if event_type == USER_WATCHING_START:
                    self.watchers[user.id] = user
                else:
                    self.watchers.pop(user.id, None)
            watcher_count = getattr(event, 'watcher_count', None)
            if watcher_count is not None:
                self.watcher_count = watcher_count
        elif event_type == TYPING_START:
            if user is not None:
                self.typing[user.id] = event
        elif event_type == TYPING_STOP:
            if user is not None:
                self.typing.pop(user.id, None)
        elif event_type == CHANNEL_TRUNCATED:
            self.messages = []
        elif event_type in (LOCATION_SHARED, LOCATION_UPDATED, LOCATION_STOPPED):
            self._apply_location_event(event)

    def _apply_location_event(self, event: Event):
        location = getattr(event, 'location', None)
        user_id = getattr(event, 'user_id', None)
        if not user_id:
            return
        if event.type == LOCATION_STOPPED:
            self.stop_live_location(user_id)
        elif location is not None:
            if event.type == LOCATION_SHARED:
                self.start_live_location(location)
            else:
                self.update_live_location(location)

    # Live locations

    def start_live_location(self, location: LiveLocation):
        self._stopped_locations.discard(location.user_id)
        self.live_locations[location.user_id] = location

    def update_live_location(self, location: LiveLocation) -> bool:
        """
        Refresh a live location in place

        Ignored for users whose last location event was a stop or an expiry.

        Returns:
            True if the mapping changed
        """
        if location.user_id in self._stopped_locations:
            return False
        current = self.live_locations.get(location.user_id)
        if current is not None:
            location = dataclasses.replace(
                location,
                cid=location.cid or current.cid,
                message_id=location.message_id or current.message_id,
                created_at=location.created_at or current.created_at,
                expires_at=location.expires_at or current.expires_at
            )
        self.live_locations[location.user_id] = location
        return True

    def stop_live_location(self, user_id: str):
        self.live_locations.pop(user_id, None)
        self._stopped_locations.add(user_id)

    def _track_live_location(self, message: Message, event_type: str):
        location = message.location_attachment()
        if location is None or not message.user_id:
            return
        if location.get('live'):
            record = LiveLocation.from_attachment(message, location)
            if event_type == MESSAGE_NEW:
                self.start_live_location(record)
            else:
                self.update_live_location(record)
        else:
            current = self.live_locations.get(message.user_id)
            if current is not None and current.message_id == message.id:
                self.stop_live_location(message.user_id)

    # Expiry

    def expire_typing(self) -> List[Tuple[str, Any]]:
        """Drop typing indicators older than the typing timeout"""
        return self.typing.drain()

    def expire_live_locations(self, now: Optional[datetime] = None) -> List[LiveLocation]:
        """Drop live locations whose expiry has passed"""
        now = now or utcnow()
        expired = [location for location in self.live_locations.values() if location.is_expired(now)]
        for location in expired:
            self.stop_live_location(location.user_id)
        return expired
