"""
Channel handle

A Channel is the caller-facing object for one cid. The client keeps exactly
one handle per cid; its ChannelState is written by the event dispatcher and
by the responses to this handle's own requests.
"""

import logging
from typing import Any, Dict, Optional, Union

from ..models.location import Location
from ..models.message import Message
from ..models.member import Member
from ..websocket.events import (
    Event,
    CHANNEL_UPDATED,
    LOCATION_STOPPED,
    MESSAGE_NEW,
    TYPING_START,
    TYPING_STOP,
)
from .channel_state import ChannelState
from .dispatcher import ListenerRegistry

logger = logging.getLogger(__name__)

# Minimum seconds between two typing.start events sent by keystroke()
TYPING_START_INTERVAL = 2.0
# Seconds without keystrokes after which clean() sends typing.stop
KEYSTROKE_TIMEOUT = 3.0


class Channel:
    """
    Handle for a single channel

    Usage:
        channel = client.channel("messaging", "general")
        await channel.watch()
        await channel.send_message({"text": "hello"})
    """

    def __init__(self, client, channel_type: str, channel_id: Optional[str] = None, data: Optional[Dict[str, Any]] = None):
        """
        Initialize channel handle

        Args:
            client: Owning StreamChatClient
            channel_type: Channel type (e.g. "messaging")
            channel_id: Channel ID; None lets the server assign one on create
            data: Custom channel data sent with queries
        """
        self._client = client
        self.type = channel_type
        self.id = channel_id
        self.cid = f"{channel_type}:{channel_id}" if channel_id else None
        self.data: Dict[str, Any] = dict(data or {})
        self.initialized = False
        self.listeners = ListenerRegistry()
        self.state = ChannelState(
            self.cid,
            typing_timeout=client.options.typing_timeout,
            clock=client.clock
        )

        # Typing indicator bookkeeping for the local user
        self.is_typing = False
        self._last_keystroke_at: Optional[float] = None
        self._last_typing_event_at: Optional[float] = None

    def __repr__(self) -> str:
        return f"Channel(cid={self.cid!r}, initialized={self.initialized})"

    @property
    def _channel_url(self) -> str:
        return f"/channels/{self.type}/{self.id}"

    @property
    def config(self) -> Optional[Dict[str, Any]]:
        """Channel type config cached by the client"""
        return self._client.configs.get(self.type)

    def _config_enabled(self, key: str) -> bool:
        config = self.config
        return not config or config.get(key, True) is not False

    # Listeners

    def on(self, event_type=None, callback=None):
        """Register a listener for events of this channel (same forms as client.on)"""
        return self.listeners.on(event_type, callback)

    def off(self, event_type, callback=None):
        self.listeners.off(event_type, callback)

    # Queries

    async def query(self, options: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Query the channel and merge the returned state

        Args:
            options: Query options (state, watch, presence, messages pagination...)

        Returns:
            Raw channel state response
        """
        await self._client._wait_for_connection()

        payload = {"data": self.data, "state": True}
        payload.update(options or {})
        endpoint = f"{self._channel_url}/query" if self.id else f"/channels/{self.type}/query"
        state = await self._client._request("POST", endpoint, payload=payload)

        if self.id is None:
            channel = state.get("channel") or {}
            self.id = channel.get("id")
            self.cid = channel.get("cid") or f"{self.type}:{self.id}"
            self.state.cid = self.cid
            self._client._register_channel(self)

        self._client._add_channel_config(state)
        self._initialize_state(state)
        return state

    async def watch(self, options: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Start receiving events for this channel and load its state"""
        combined = {"state": True, "watch": True, "presence": False}
        combined.update(options or {})
        state = await self.query(combined)
        self.initialized = True
        logger.info(f"Watching channel {self.cid}")
        return state

    async def create(self) -> Dict[str, Any]:
        """Create the channel without watching it"""
        return await self.query({"watch": False, "state": False, "presence": False})

    async def stop_watching(self) -> Dict[str, Any]:
        response = await self._client._request("POST", f"{self._channel_url}/stop-watching", payload={})
        logger.info(f"Stopped watching channel {self.cid}")
        return response

    def _initialize_state(self, state: Dict[str, Any]):
        channel = state.get("channel")
        if isinstance(channel, dict):
            self.data = dict(channel)
        self.state.init_state(state)

        for data in state.get("members") or []:
            member = Member.from_dict(data)
            self._client.state.update_user_reference(member.user, self.cid)

    # Messages and events

    async def send_message(self, message: Dict[str, Any]) -> Dict[str, Any]:
        """
        Send a message to the channel

        Args:
            message: Message body, e.g. {"text": "hi", "attachments": [...]}

        Returns:
            Response containing the created message
        """
        response = await self._client._request("POST", f"{self._channel_url}/message", payload={"message": message})
        if isinstance(response.get("message"), dict):
            created = Message.from_dict(response["message"])
            self.state.apply_message(created, MESSAGE_NEW)
        return response

    async def share_location(self, location: Union[Location, Dict[str, Any]], text: Optional[str] = None) -> Dict[str, Any]:
        """
        Send a message with a static or live location attachment

        Raises:
            InvalidLocationError: If the coordinates are out of range
        """
        if isinstance(location, dict):
            location = Location.from_dict(location)
        location.validate()
        message: Dict[str, Any] = {"attachments": [location.to_attachment()]}
        if text is not None:
            message["text"] = text
        return await self.send_message(message)

    async def send_event(self, event: Dict[str, Any]) -> Dict[str, Any]:
        return await self._client._request("POST", f"{self._channel_url}/event", payload={"event": event})

    async def keystroke(self):
        """Signal that the local user is typing; typing.start is sent at most every 2 seconds"""
        if not self._config_enabled("typing_events"):
            return
        now = self._client.clock()
        self._last_keystroke_at = now
        self.is_typing = True
        if self._last_typing_event_at is None or now - self._last_typing_event_at >= TYPING_START_INTERVAL:
            self._last_typing_event_at = now
            await self.send_event({"type": TYPING_START})

    async def stop_typing(self):
        """Signal that the local user stopped typing"""
        if not self._config_enabled("typing_events") or not self.is_typing:
            return
        self._last_typing_event_at = None
        self.is_typing = False
        await self.send_event({"type": TYPING_STOP})

    async def mark_read(self) -> Optional[Dict[str, Any]]:
        if not self._config_enabled("read_events"):
            return None
        return await self._client._request("POST", f"{self._channel_url}/read", payload={})

    def last_message(self) -> Optional[Message]:
        return self.state.last_message()

    # Dispatch hooks

    def _apply_event(self, event: Event):
        if event.type == CHANNEL_UPDATED:
            channel = getattr(event, "channel", None)
            if channel:
                self.data = dict(channel)
        self.state.apply_event(event)

    async def clean(self):
        """
        Expire stale typing indicators and live locations

        Each expiry is dispatched as a synthetic typing.stop or
        location.stopped event so listeners observe it.
        """
        if self.is_typing and self._last_keystroke_at is not None:
            if self._client.clock() - self._last_keystroke_at > KEYSTROKE_TIMEOUT:
                await self.stop_typing()

        for user_id, typing_event in self.state.expire_typing():
            await self._client.dispatch_event({
                "type": TYPING_STOP,
                "cid": self.cid,
                "user": dict(typing_event.get("user") or {"id": user_id})
            })

        for location in self.state.expire_live_locations():
            logger.debug(f"Live location of {location.user_id} in {self.cid} expired")
            user = self._client.state.get_user(location.user_id)
            await self._client.dispatch_event({
                "type": LOCATION_STOPPED,
                "cid": self.cid,
                "user": user.to_dict() if user is not None else {"id": location.user_id},
                "live_location": location.to_dict()
            })
