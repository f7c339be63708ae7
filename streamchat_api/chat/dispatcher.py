"""
Event dispatch: the single funnel for every inbound event

Frames are decoded into Events and processed one at a time in arrival
order: process-wide state first, then the matching channel cache, then the
client listeners and finally the channel's own listeners.
"""

import inspect
import json
import logging
from typing import Any, Callable, Dict, List, Optional, Union

from ..exceptions import ConfigurationError
from ..websocket.events import (
    Event,
    ALL_EVENTS,
    HEALTH_CHECK,
    USER_PRESENCE_CHANGED,
    USER_UPDATED,
    NOTIFICATION_MESSAGE_NEW,
)
from .state import ClientState

logger = logging.getLogger(__name__)

Listener = Callable[[Event], Any]


class ListenerRegistry:
    """
    Ordered listeners per event type

    Registering the same callback twice for the same type is allowed and the
    callback then runs twice per event; there is no de-duplication. off()
    removes every registration of the callback for that type, comparing with
    ==, so bound methods of the same object match.
    """

    def __init__(self):
        self._listeners: Dict[str, List[Listener]] = {}

    def add(self, event_type: str, callback: Listener):
        if not isinstance(event_type, str) or not event_type:
            raise ConfigurationError(f"Invalid event type {event_type!r}")
        if not callable(callback):
            raise ConfigurationError("Event listener must be callable")
        self._listeners.setdefault(event_type, []).append(callback)

    def remove(self, event_type: str, callback: Listener):
        listeners = self._listeners.get(event_type)
        if listeners:
            self._listeners[event_type] = [listener for listener in listeners if listener != callback]

    def on(self, event_type: Union[str, Listener, None] = None, callback: Optional[Listener] = None):
        """
        Register a listener

        Usage:
            registry.on(callback)                  # every event
            registry.on("message.new", callback)   # one event type

            @registry.on("message.new")
            def handle(event):
                ...
        """
        if callable(event_type) and callback is None:
            self.add(ALL_EVENTS, event_type)
            return event_type
        if callback is None:
            def decorator(func: Listener):
                self.add(event_type or ALL_EVENTS, func)
                return func
            return decorator
        self.add(event_type, callback)
        return callback

    def off(self, event_type: Union[str, Listener], callback: Optional[Listener] = None):
        """Remove a listener registered with on()"""
        if callable(event_type) and callback is None:
            self.remove(ALL_EVENTS, event_type)
        else:
            self.remove(event_type, callback)

    def resolve(self, event_type: str) -> List[Listener]:
        """Catch-all listeners followed by listeners of event_type, in registration order"""
        listeners = list(self._listeners.get(ALL_EVENTS, []))
        if event_type != ALL_EVENTS:
            listeners.extend(self._listeners.get(event_type, []))
        return listeners

    def count(self, event_type: str) -> int:
        return len(self._listeners.get(event_type, []))

    async def emit(self, event: Event):
        """Call every matching listener; a failing listener never stops the others"""
        for listener in self.resolve(event.type):
            try:
                result = listener(event)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(f"Error in event listener for {event.type}: {e}", exc_info=True)


class EventDispatcher:
    """Routes decoded events to client state, channel caches and listeners"""

    def __init__(
        self,
        state: ClientState,
        channels: Dict[str, Any],
        listeners: ListenerRegistry,
        configs: Optional[Dict[str, Any]] = None,
        on_health_check: Optional[Callable[[Event], None]] = None
    ):
        """
        Initialize dispatcher

        Args:
            state: Process-wide client state of the session
            channels: Active channels by cid (shared with the client)
            listeners: Client-level listener registry
            configs: Channel type configs by type (shared with the client)
            on_health_check: Called for every health.check event
        """
        self.state = state
        self.channels = channels
        self.listeners = listeners
        self.configs = configs if configs is not None else {}
        self.on_health_check = on_health_check

    async def handle_frame(self, frame: str):
        """Decode a raw websocket frame and dispatch it"""
        try:
            payload = json.loads(frame)
        except ValueError as e:
            logger.error(f"Failed to parse event frame: {e}")
            return
        await self.dispatch(payload)

    async def dispatch(self, payload: Union[Event, Dict[str, Any]]) -> Optional[Event]:
        """
        Process one event

        Args:
            payload: Decoded event object or an Event

        Returns:
            The dispatched Event, or None if the payload had no usable type
        """
        try:
            event = Event.from_dict(payload)
        except ValueError as e:
            logger.warning(f"Dropping malformed event: {e}")
            return None
        except Exception as e:
            logger.error(f"Dropping event that could not be decoded: {e}", exc_info=True)
            return None

        try:
            self._apply_client_state(event)
        except Exception as e:
            logger.error(f"Error applying {event.type} to client state: {e}", exc_info=True)

        channel = self.channels.get(event.cid) if event.cid else None
        if channel is not None:
            try:
                channel._apply_event(event)
            except Exception as e:
                logger.error(f"Error applying {event.type} to channel {event.cid}: {e}", exc_info=True)

        await self.listeners.emit(event)
        if channel is not None:
            await channel.listeners.emit(event)
        return event

    def _apply_client_state(self, event: Event):
        if event.type in (USER_PRESENCE_CHANGED, USER_UPDATED):
            user = getattr(event, 'user', None)
            self.state.update_user(user)
            self._refresh_channel_users(user)
        elif event.type == HEALTH_CHECK:
            self.state.update_user(getattr(event, 'me', None))
            if self.on_health_check is not None:
                self.on_health_check(event)
        elif event.type == NOTIFICATION_MESSAGE_NEW:
            channel = getattr(event, 'channel', None)
            if channel and channel.get('type'):
                self.configs[channel['type']] = channel.get('config')

        if event.cid and getattr(event, 'user', None) is not None:
            self.state.update_user_reference(event.user, event.cid)

    def _refresh_channel_users(self, user):
        """Push a changed user into every channel known to reference it"""
        if user is None or not user.id:
            return
        for cid in self.state.user_channel_references.get(user.id, ()):
            channel = self.channels.get(cid)
            if channel is not None:
                channel.state.update_user(user)
