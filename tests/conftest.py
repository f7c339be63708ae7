"""
Shared fakes for the connection and client tests

FakeTransport mimics WebSocketTransport without a network: open() returns a
scripted handshake (or raises), run() pumps frames pushed by the test until
the test drops the socket. FakeAPI answers ChatAPIClient.request() calls from
scripted responses.
"""

import asyncio
import copy
import json
from typing import Any, Dict, List, Optional

import pytest

from streamchat_api.config import ClientOptions
from streamchat_api.auth import signing
from streamchat_api.chat.client import StreamChatClient

API_KEY = "test-key"
API_SECRET = "test-secret-0123456789abcdef0123456789abcdef"


class FakeClock:
    """Manually advanced monotonic clock"""

    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


class FakeTransport:
    """In-memory stand-in for WebSocketTransport"""

    def __init__(self, url: str, on_message, handshake: Optional[Dict[str, Any]] = None, error: Optional[BaseException] = None):
        self.url = url
        self.on_message = on_message
        self.handshake = handshake
        self.error = error
        self.sent: List[str] = []
        self.opened = False
        self.closed = False
        self.aborted = False
        self.close_code: Optional[int] = None
        self._frames: asyncio.Queue = asyncio.Queue()

    async def open(self) -> Dict[str, Any]:
        self.opened = True
        if self.error is not None:
            raise self.error
        return self.handshake

    async def run(self):
        while True:
            frame = await self._frames.get()
            if isinstance(frame, tuple):
                return frame
            await self.on_message(frame)

    def push(self, payload: Any):
        """Deliver a frame to the reader"""
        self._frames.put_nowait(payload if isinstance(payload, str) else json.dumps(payload))

    def drop(self, code: int = 1006, reason: str = ""):
        """Simulate the server or the network closing the socket"""
        self._frames.put_nowait((code, reason))

    async def send(self, data: str):
        if self.closed:
            raise ConnectionError("Transport is not open")
        self.sent.append(data)

    async def close(self, code: int = 1000, reason: str = "Normal closure"):
        self.closed = True
        self.close_code = code
        self._frames.put_nowait((code, reason))

    def abort(self):
        self.aborted = True
        self.drop(1006, "aborted")


class FakeTransportFactory:
    """
    Transport factory handing out FakeTransports

    Each outcome is consumed by one connection attempt: an exception makes
    open() raise it, a dict is used as the handshake, None means a default
    successful handshake. Once the outcomes run out every attempt succeeds.
    """

    def __init__(self, outcomes: Optional[List[Any]] = None, me: Optional[Dict[str, Any]] = None):
        self.outcomes = list(outcomes or [])
        self.me = me
        self.transports: List[FakeTransport] = []

    def __call__(self, url: str, on_message) -> FakeTransport:
        outcome = self.outcomes.pop(0) if self.outcomes else None
        number = len(self.transports) + 1
        if isinstance(outcome, BaseException):
            transport = FakeTransport(url, on_message, error=outcome)
        else:
            handshake = outcome or {"type": "health.check", "connection_id": f"conn-{number}"}
            if self.me is not None and "me" not in handshake:
                handshake = dict(handshake, me=self.me)
            transport = FakeTransport(url, on_message, handshake=handshake)
        self.transports.append(transport)
        return transport

    @property
    def latest(self) -> FakeTransport:
        return self.transports[-1]


class FakeAPI:
    """Scripted stand-in for ChatAPIClient"""

    def __init__(self):
        self.calls: List[tuple] = []
        self.responses: Dict[tuple, List[Any]] = {}
        self.base_url = None
        self.credentials: Dict[str, Any] = {}
        self.closed = False

    def set_base_url(self, base_url: str):
        self.base_url = base_url

    def set_credentials(self, token, auth_type="jwt", user_id=None, client_id=None):
        self.credentials = {
            "token": token,
            "auth_type": auth_type,
            "user_id": user_id,
            "client_id": client_id,
        }

    def respond(self, method: str, endpoint: str, response: Any):
        """
        Queue a response for method + endpoint

        The last queued response is repeated; an exception is raised; a
        callable is called with the payload.
        """
        self.responses.setdefault((method, endpoint), []).append(response)

    def request(self, method, endpoint, payload=None, params=None):
        self.calls.append((method, endpoint, copy.deepcopy(payload)))
        queue = self.responses.get((method, endpoint))
        if not queue:
            return {}
        response = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(response, BaseException):
            raise response
        if callable(response):
            return response(payload)
        return copy.deepcopy(response)

    def calls_to(self, method: str, endpoint: str) -> List[Any]:
        return [payload for m, e, payload in self.calls if m == method and e == endpoint]

    def close(self):
        self.closed = True


async def wait_until(predicate, timeout: float = 2.0):
    """Poll predicate until it is true or fail after timeout seconds"""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.001)


def channel_state(cid: str, messages=None, **extra) -> Dict[str, Any]:
    """Build a channel query response for cid"""
    channel_type, channel_id = cid.split(":", 1)
    state = {
        "channel": {
            "id": channel_id,
            "type": channel_type,
            "cid": cid,
            "config": {"typing_events": True, "read_events": True},
        },
        "messages": messages or [],
        "members": [],
        "read": [],
    }
    state.update(extra)
    return state


def message_data(message_id: str, created_at: str, user_id: str = "bob", **extra) -> Dict[str, Any]:
    data = {
        "id": message_id,
        "text": f"text of {message_id}",
        "type": "regular",
        "user": {"id": user_id},
        "created_at": created_at,
        "updated_at": created_at,
    }
    data.update(extra)
    return data


def live_attachment(lat: float, lon: float, live: bool = True, **extra) -> Dict[str, Any]:
    location = {"lat": lat, "lon": lon, "accuracy": 10, "live": live}
    location.update(extra)
    return {"type": "location", "location": location}


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def transports():
    return FakeTransportFactory()


@pytest.fixture
def api():
    return FakeAPI()


@pytest.fixture
def fast_options():
    return ClientOptions(
        base_url="https://chat.example.com",
        initial_backoff=0.001,
        max_backoff=0.005,
        ping_interval=60,
        connection_check_interval=60,
        clean_interval=60
    )


@pytest.fixture
def make_client(api, transports, fast_options, clock):
    def factory(secret: Optional[str] = API_SECRET, options: Optional[ClientOptions] = None) -> StreamChatClient:
        return StreamChatClient(
            API_KEY,
            secret=secret,
            options=options or fast_options,
            transport_factory=transports,
            api_client=api,
            clock=clock
        )
    return factory


@pytest.fixture
def user_token():
    return signing.create_user_token(API_SECRET, "alice")
