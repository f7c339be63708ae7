"""
Chat Client Module

StreamChatClient is the session object: it owns the stable websocket
connection, the event dispatcher, every channel handle and the process-wide
user cache. One client holds at most one logical connection at a time.
"""

import asyncio
import dataclasses
import logging
import time
import uuid
from typing import Any, Callable, Dict, List, Optional, Union

from ..api.client import ChatAPIClient
from ..auth import signing
from ..config import ClientOptions
from ..exceptions import ConfigurationError
from ..models.location import Location
from ..models.message import Message
from ..models.user import User
from ..utils.helpers import encode_uri_component
from ..websocket.connection import StableConnection, ConnectionState
from ..websocket.events import Event, MESSAGE_UPDATED
from .channel import Channel
from .dispatcher import EventDispatcher, ListenerRegistry
from .state import ClientState

logger = logging.getLogger(__name__)

# Longest URL-encoded handshake payload accepted in the connect URL
MAX_CONNECT_PAYLOAD_LENGTH = 1900


class StreamChatClient:
    """
    Chat client

    Usage:
        client = StreamChatClient("api-key")
        await client.set_user({"id": "alice", "name": "Alice"}, token)
        channel = client.channel("messaging", "general")
        await channel.watch()
        ...
        await client.disconnect()
    """

    def __init__(
        self,
        api_key: str,
        secret: Optional[str] = None,
        options: Optional[ClientOptions] = None,
        transport_factory: Optional[Callable[..., Any]] = None,
        api_client: Optional[ChatAPIClient] = None,
        clock: Callable[[], float] = time.monotonic
    ):
        """
        Initialize chat client

        Args:
            api_key: Application API key
            secret: Application secret; only for server-side use
            options: Client options (defaults to ClientOptions())
            transport_factory: Callable(url, on_message) returning a websocket
                transport; defaults to WebSocketTransport
            api_client: HTTP helper (defaults to a ChatAPIClient)
            clock: Monotonic clock for heartbeats and typing timeouts
        """
        self.api_key = api_key
        self.secret = secret
        self.options = options or ClientOptions()
        self.transport_factory = transport_factory
        self.clock = clock

        self.api = api_client or ChatAPIClient(
            api_key,
            base_url=self.options.base_url,
            timeout=self.options.timeout,
            user_agent=self.options.user_agent
        )
        self.base_url = ""
        self.ws_base_url = ""
        self.set_base_url(self.options.base_url)

        # Process-wide state
        self.state = ClientState()
        self.listeners = ListenerRegistry()
        self.active_channels: Dict[str, Channel] = {}
        self.configs: Dict[str, Any] = {}
        self.dispatcher = EventDispatcher(
            self.state,
            self.active_channels,
            self.listeners,
            configs=self.configs,
            on_health_check=self._on_health_check
        )

        self._server_token = signing.create_server_token(secret) if secret else None
        self._clean_task: Optional[asyncio.Task] = None
        self._reset_session()

    def _reset_session(self):
        self.user: Optional[User] = None
        self._user: Optional[Dict[str, Any]] = None
        self.user_id: Optional[str] = None
        self.user_token: Optional[str] = None
        self.anonymous = False
        self.client_id: Optional[str] = None
        self.connection: Optional[StableConnection] = None

    @property
    def auth_type(self) -> str:
        return "anonymous" if self.anonymous else "jwt"

    @property
    def connection_state(self) -> ConnectionState:
        return self.connection.state if self.connection is not None else ConnectionState.IDLE

    def set_base_url(self, base_url: str):
        """Set the REST base URL; the websocket base URL is derived from it"""
        self.base_url = base_url.rstrip("/")
        self.ws_base_url = self.base_url.replace("http", "ws", 1)
        self.api.set_base_url(self.base_url)

    # Tokens

    def create_token(self, user_id: str, exp: Optional[int] = None) -> str:
        """
        Create a token for a user (server-side only)

        Args:
            user_id: User ID
            exp: Optional expiry as seconds since the epoch

        Raises:
            ConfigurationError: If the client has no secret
        """
        if not self.secret:
            raise ConfigurationError("An API secret is required to create user tokens")
        return signing.create_user_token(self.secret, user_id, exp)

    def dev_token(self, user_id: str) -> str:
        return signing.dev_token(user_id)

    def verify_webhook(self, body: Union[str, bytes], signature: str) -> bool:
        """Check the X-Signature header of a webhook request"""
        if not self.secret:
            raise ConfigurationError("An API secret is required to verify webhooks")
        return signing.check_signature(body, self.secret, signature)

    # Session

    def set_user(self, user: Union[User, Dict[str, Any]], token: Optional[str] = None) -> asyncio.Future:
        """
        Set the current user and open the connection

        Must be called from a running event loop. Configuration errors are
        raised immediately; the returned future resolves with the handshake
        payload once connected, or fails with HandshakeError.

        Args:
            user: User data, at least {"id": ...}
            token: User token; created from the secret when omitted

        Returns:
            Awaitable connect future

        Raises:
            ConfigurationError: On a second call, a missing user ID, missing
                credentials, a token for another user or an oversized user object
        """
        if self.user_id:
            raise ConfigurationError(
                "Use client.disconnect() before trying to connect as a different user. "
                "set_user was called twice."
            )
        details = user.to_dict() if isinstance(user, User) else dict(user or {})
        user_id = details.get("id")
        if not user_id:
            raise ConfigurationError('The "id" field on the user is missing')

        user_token = token
        if user_token is None and self.secret is not None:
            user_token = self.create_token(user_id)
        if user_token is None:
            raise ConfigurationError("both user token and api secret are not provided")

        if token is not None:
            token_user_id = signing.user_from_token(token)
            if not token_user_id or token_user_id != user_id:
                raise ConfigurationError("user token does not have a user_id or is not matching with user.id")

        self.user_id = user_id
        self.user_token = user_token
        self.anonymous = False
        self._set_user(details)
        return self._setup_connection()

    def set_anonymous_user(self) -> asyncio.Future:
        """Connect as an anonymous user with a random ID"""
        if self.user_id:
            raise ConfigurationError(
                "Use client.disconnect() before trying to connect as a different user. "
                "set_anonymous_user was called twice."
            )
        self.anonymous = True
        self.user_id = str(uuid.uuid4())
        self.user_token = None
        self._set_user({"id": self.user_id, "anon": True})
        return self._setup_connection()

    async def set_guest_user(self, user: Dict[str, Any]) -> Dict[str, Any]:
        """
        Create a temporary guest user and connect as it

        Returns:
            Handshake payload
        """
        self.anonymous = True
        try:
            response = await self._request("POST", "/guest", payload={"user": user})
        finally:
            self.anonymous = False
        guest = {
            k: v for k, v in (response.get("user") or {}).items()
            if k not in ("created_at", "updated_at", "last_active", "online")
        }
        return await self.set_user(guest, response.get("access_token"))

    def _set_user(self, details: Dict[str, Any]):
        self._user = dict(details)
        self.user = User.from_dict(details)

    def _setup_connection(self) -> asyncio.Future:
        self.client_id = f"{self.user_id}--{uuid.uuid4()}"
        try:
            return self.connect()
        except ConfigurationError:
            self._reset_session()
            raise

    def connect(self) -> asyncio.Future:
        """
        Open the websocket for the current user, or join the attempt in flight

        Raises:
            ConfigurationError: If no user is set or the user object is too large
        """
        if self.user_id is None:
            raise ConfigurationError("Call set_user or set_anonymous_user before starting the connection")
        if self.connection is not None:
            return self.connection.connect()

        params = {
            "client_id": self.client_id,
            "user_id": self.user_id,
            "user_details": self._user,
            "user_token": self.user_token,
        }
        qs = encode_uri_component(params)
        if len(qs) > MAX_CONNECT_PAYLOAD_LENGTH:
            raise ConfigurationError("User object is too large")

        token = self._auth_token()
        url = (
            f"{self.ws_base_url}/connect?json={qs}&api_key={self.api_key}"
            f"&authorization={token}&stream-auth-type={self.auth_type}"
        )

        self.connection = StableConnection(
            url,
            self.client_id,
            self.user_id,
            message_callback=self.dispatcher.handle_frame,
            event_callback=self.dispatch_event,
            recover_callback=self.recover_state,
            transport_factory=self.transport_factory,
            ping_interval=self.options.ping_interval,
            check_interval=self.options.connection_check_interval,
            connection_timeout=self.options.connection_timeout,
            open_timeout=self.options.open_timeout,
            initial_backoff=self.options.initial_backoff,
            max_backoff=self.options.max_backoff,
            clock=self.clock
        )
        self._start_cleaning()
        logger.info(f"Connecting as {self.user_id} (client_id={self.client_id})")
        return self.connection.connect()

    async def disconnect(self):
        """
        Close the connection and forget the current user

        The closed connection is never reused; set_user may be called again
        afterwards to start a new session.
        """
        connection = self.connection
        self._reset_session()
        self._stop_cleaning()
        if connection is not None:
            await connection.disconnect()

    async def close(self):
        """Disconnect and release the HTTP session"""
        await self.disconnect()
        self.api.close()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def _wait_for_connection(self):
        if self.connection is not None:
            await self.connection.wait_until_healthy()

    def _auth_token(self) -> str:
        if self.anonymous:
            return ""
        if self.user_token is not None:
            return self.user_token
        if self._server_token is not None:
            return self._server_token
        raise ConfigurationError(
            "Both secret and user tokens are not set, did you forget to call client.set_user?"
        )

    # Events

    def on(self, event_type=None, callback=None):
        """
        Listen to events on all watched channels and users

        Usage:
            client.on(callback)
            client.on("message.new", callback)

            @client.on("message.new")
            async def handle(event):
                ...
        """
        return self.listeners.on(event_type, callback)

    def off(self, event_type, callback=None):
        self.listeners.off(event_type, callback)

    async def dispatch_event(self, payload: Union[Event, Dict[str, Any]]) -> Optional[Event]:
        """Run an event through the dispatcher as if it arrived on the websocket"""
        return await self.dispatcher.dispatch(payload)

    def _on_health_check(self, event: Event):
        me = getattr(event, "me", None)
        if me is not None:
            self.user = me
        if self.connection is not None:
            self.connection.note_health_check()

    async def recover_state(self):
        """
        Re-query every active channel after a reconnect

        Snapshots are merged into the channel caches before this returns.
        """
        cids = list(self.active_channels)
        if not cids:
            return
        last_message_ids = {}
        for cid, channel in self.active_channels.items():
            last_message = channel.last_message()
            last_message_ids[cid] = last_message.id if last_message else None

        logger.info(f"Recovering state of {len(cids)} channels")
        await self._query_channels(
            {"cid": {"$in": cids}},
            {"last_message_at": -1},
            {
                "limit": self.options.recovery_limit,
                "recovery": True,
                "last_message_ids": last_message_ids
            },
            wait=False
        )

    # Cleaning

    def _start_cleaning(self):
        if self._clean_task is None or self._clean_task.done():
            self._clean_task = asyncio.get_running_loop().create_task(self._clean_loop())

    def _stop_cleaning(self):
        if self._clean_task is not None and not self._clean_task.done():
            self._clean_task.cancel()
        self._clean_task = None

    async def _clean_loop(self):
        """Expire typing indicators and live locations of every channel"""
        while True:
            await asyncio.sleep(self.options.clean_interval)
            for channel in list(self.active_channels.values()):
                try:
                    await channel.clean()
                except Exception as e:
                    logger.error(f"Error cleaning channel {channel.cid}: {e}", exc_info=True)

    # Channels

    def channel(
        self,
        channel_type: str,
        channel_id: Union[str, Dict[str, Any], None] = None,
        data: Optional[Dict[str, Any]] = None
    ) -> Channel:
        """
        Return the handle for a channel, creating it on first use

        channel(type, data) creates a handle whose ID is assigned by the
        server on create/watch.

        Raises:
            ConfigurationError: Without a user or secret, or if type or ID contain ":"
        """
        if not self.user_id and not self.secret:
            raise ConfigurationError("Call set_user or set_anonymous_user before creating a channel")
        if ":" in channel_type:
            raise ConfigurationError(f"Invalid channel group {channel_type}, cant contain the : character")

        if isinstance(channel_id, dict):
            data = channel_id
            channel_id = None
        if channel_id is not None:
            channel_id = str(channel_id)
            if ":" in channel_id:
                raise ConfigurationError(f"Invalid channel id {channel_id}, cant contain the : character")

        if not channel_id:
            return Channel(self, channel_type, None, data)

        cid = f"{channel_type}:{channel_id}"
        channel = self.active_channels.get(cid)
        if channel is None:
            channel = Channel(self, channel_type, channel_id, data)
            self.active_channels[cid] = channel
        elif data:
            channel.data = dict(data)
        return channel

    def _register_channel(self, channel: Channel):
        self.active_channels.setdefault(channel.cid, channel)

    def _add_channel_config(self, state: Dict[str, Any]):
        channel = state.get("channel") or {}
        if channel.get("type"):
            self.configs[channel["type"]] = channel.get("config")

    # Queries

    @staticmethod
    def _sort_fields(sort: Optional[Dict[str, int]]) -> List[Dict[str, Any]]:
        return [{"field": k, "direction": v} for k, v in (sort or {}).items()]

    async def query_channels(
        self,
        filter_conditions: Dict[str, Any],
        sort: Optional[Dict[str, int]] = None,
        options: Optional[Dict[str, Any]] = None
    ) -> List[Channel]:
        """
        Query channels and merge their state into the local caches

        Args:
            filter_conditions: MongoDB style filter, e.g. {"members": {"$in": ["alice"]}}
            sort: Sort options, e.g. {"last_message_at": -1}
            options: Query options (limit, offset, state, watch, presence...)

        Returns:
            Channel handles, in response order
        """
        return await self._query_channels(filter_conditions, sort, options)

    async def _query_channels(
        self,
        filter_conditions: Dict[str, Any],
        sort: Optional[Dict[str, int]] = None,
        options: Optional[Dict[str, Any]] = None,
        wait: bool = True
    ) -> List[Channel]:
        if wait:
            await self._wait_for_connection()

        payload = {
            "filter_conditions": filter_conditions,
            "sort": self._sort_fields(sort),
            "user_details": self._user,
            "state": True,
            "watch": self.client_id is not None,
            "presence": False,
        }
        payload.update(options or {})

        response = await self._request("GET", "/channels", payload=payload)
        states = response.get("channels") or []
        for state in states:
            self._add_channel_config(state)

        channels = []
        for state in states:
            data = state.get("channel") or {}
            if not data.get("type") or not data.get("id"):
                logger.warning(f"Skipping channel without type or id in query response: {data!r}")
                continue
            channel = self.channel(data["type"], data["id"])
            channel.initialized = True
            channel._initialize_state(state)
            channels.append(channel)
        return channels

    async def query_users(
        self,
        filter_conditions: Dict[str, Any],
        sort: Optional[Dict[str, int]] = None,
        options: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        """Query users; returned users refresh the local user cache"""
        await self._wait_for_connection()
        payload = {
            "filter_conditions": filter_conditions,
            "sort": self._sort_fields(sort),
            "presence": self.client_id is not None,
        }
        payload.update(options or {})
        response = await self._request("GET", "/users", payload=payload)
        for data in response.get("users") or []:
            self.state.update_user(User.from_dict(data))
        return response

    async def search(
        self,
        filter_conditions: Dict[str, Any],
        query: Union[str, Dict[str, Any]],
        options: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        """Full text (or message filter) search over the channels matching filter_conditions"""
        await self._wait_for_connection()
        payload: Dict[str, Any] = {"filter_conditions": filter_conditions}
        if isinstance(query, str):
            payload["query"] = query
        else:
            payload["message_filter_conditions"] = query
        payload.update(options or {})
        return await self._request("GET", "/search", payload=payload)

    # Users

    async def update_user(self, user: Dict[str, Any]) -> Dict[str, Any]:
        return await self.update_users([user])

    async def update_users(self, users: List[Dict[str, Any]]) -> Dict[str, Any]:
        """
        Create or update users in one batch

        Raises:
            ConfigurationError: If a user has no ID
        """
        user_map = {}
        for user in users:
            if not user.get("id"):
                raise ConfigurationError("User ID is required when updating a user")
            user_map[user["id"]] = user

        response = await self._request("POST", "/users", payload={"users": user_map})
        for data in (response.get("users") or {}).values():
            self.state.update_user(User.from_dict(data))
        return response

    # Live location

    async def update_live_location(self, location: Union[Location, Dict[str, Any]]) -> Dict[str, Any]:
        """
        Update the current user's live location in every channel it is shared in

        Returns:
            Response with the updated "messages"

        Raises:
            InvalidLocationError: If the coordinates are out of range; the
                caches are left untouched
        """
        if isinstance(location, dict):
            location = Location.from_dict(location)
        location.validate()
        response = await self._request("PUT", "/users/live_locations", payload=location.to_dict())
        self._fold_location_messages(response, stopped=not location.live)
        return response

    async def stop_live_location(self, location: Union[Location, Dict[str, Any]]) -> Dict[str, Any]:
        """Stop sharing the live location, leaving the given one as the final position"""
        if isinstance(location, dict):
            location = Location.from_dict(location)
        location = dataclasses.replace(location, live=False)
        location.validate()
        response = await self._request("PUT", "/users/live_locations", payload=location.to_dict())
        self._fold_location_messages(response, stopped=True)
        return response

    def _fold_location_messages(self, response: Dict[str, Any], stopped: bool):
        for data in response.get("messages") or []:
            message = Message.from_dict(data)
            channel = self.active_channels.get(message.cid)
            if channel is None:
                continue
            channel.state.apply_message(message, MESSAGE_UPDATED)
            user_id = message.user_id or self.user_id
            if stopped and user_id:
                channel.state.stop_live_location(user_id)

    # HTTP

    async def _request(
        self,
        method: str,
        endpoint: str,
        payload: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        """Send an authenticated request without blocking the event loop"""
        self.api.set_credentials(
            self._auth_token(),
            auth_type=self.auth_type,
            user_id=self.user_id,
            client_id=self.client_id
        )
        return await asyncio.to_thread(self.api.request, method, endpoint, payload=payload, params=params)
