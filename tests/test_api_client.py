"""Tests for ChatAPIClient."""
import json
from unittest.mock import MagicMock

import brotli
import pytest
import requests

from streamchat_api.api.client import ChatAPIClient
from streamchat_api.api.models import RateLimitInfo
from streamchat_api.exceptions import ChatAPIError


def make_response(status=200, body=None, headers=None, content=None):
    response = requests.Response()
    response.status_code = status
    response._content = content if content is not None else json.dumps(body if body is not None else {}).encode("utf-8")
    response.headers.update(headers or {})
    return response


@pytest.fixture
def client():
    api = ChatAPIClient("test-key", base_url="https://chat.example.com/", timeout=5)
    api.session = MagicMock()
    api.session.request.return_value = make_response(body={"ok": True})
    api.set_credentials("user-token", user_id="alice", client_id="alice--1")
    return api


class TestRequests:
    """Tests for request construction."""

    def test_auth_headers_and_params(self, client):
        """Should attach credentials as headers and client identity as query parameters."""
        result = client.post("/channels/messaging/general/query", {"state": True})

        assert result == {"ok": True}
        args, kwargs = client.session.request.call_args
        assert args == ("POST", "https://chat.example.com/channels/messaging/general/query")
        assert kwargs["json"] == {"state": True}
        assert kwargs["params"] == {"user_id": "alice", "api_key": "test-key", "client_id": "alice--1"}
        assert kwargs["headers"]["Authorization"] == "user-token"
        assert kwargs["headers"]["stream-auth-type"] == "jwt"
        assert kwargs["timeout"] == 5

    def test_get_payload_in_query_string(self, client):
        """Should send GET payloads as a JSON query parameter."""
        client.request("GET", "/channels", payload={"filter_conditions": {"type": "messaging"}})

        kwargs = client.session.request.call_args[1]
        assert kwargs["json"] is None
        assert json.loads(kwargs["params"]["payload"]) == {"filter_conditions": {"type": "messaging"}}

    def test_anonymous_credentials(self, client):
        client.set_credentials("", auth_type="anonymous")

        client.get("/users")

        kwargs = client.session.request.call_args[1]
        assert kwargs["headers"]["Authorization"] == ""
        assert kwargs["headers"]["stream-auth-type"] == "anonymous"
        assert "user_id" not in kwargs["params"]
        assert "client_id" not in kwargs["params"]


class TestResponses:
    """Tests for response handling."""

    def test_api_error(self, client):
        """Should raise ChatAPIError with the API error code and body."""
        body = {"code": 4, "message": "UpdateLocation failed", "StatusCode": 400}
        client.session.request.return_value = make_response(400, body)

        with pytest.raises(ChatAPIError) as excinfo:
            client.put("/users/live_locations", {"lat": 1, "lon": 1})

        error = excinfo.value
        assert error.status == 400
        assert error.code == 4
        assert error.response == body
        assert str(error) == "StreamChat error code 4: UpdateLocation failed"

    def test_error_without_json_body(self, client):
        client.session.request.return_value = make_response(502, content=b"Bad gateway")

        with pytest.raises(ChatAPIError) as excinfo:
            client.get("/channels")

        assert excinfo.value.status == 502
        assert excinfo.value.code is None
        assert str(excinfo.value) == "StreamChat error HTTP code: 502"

    def test_network_error_wrapped(self, client):
        client.session.request.side_effect = requests.ConnectionError("connection refused")

        with pytest.raises(ChatAPIError) as excinfo:
            client.get("/channels")

        assert excinfo.value.status is None
        assert isinstance(excinfo.value.__cause__, requests.ConnectionError)

    def test_brotli_body_decoded(self, client):
        """Should decode Brotli bodies left compressed."""
        client.session.request.return_value = make_response(
            content=brotli.compress(b'{"users": []}'),
            headers={"Content-Encoding": "br"}
        )

        assert client.get("/users") == {"users": []}

    def test_rate_limits_recorded(self, client):
        client.session.request.return_value = make_response(
            body={},
            headers={"x-ratelimit-limit": "60", "x-ratelimit-remaining": "59", "x-ratelimit-reset": "1700000000"}
        )

        client.get("/channels")

        assert client.rate_limits["/channels"] == RateLimitInfo(limit=60, remaining=59, reset=1700000000)

    def test_missing_rate_limit_headers(self):
        assert RateLimitInfo.from_headers({}) is None
        assert RateLimitInfo.from_headers({"x-ratelimit-limit": "x", "x-ratelimit-remaining": "1", "x-ratelimit-reset": "1"}) is None

    def test_context_manager_closes_session(self):
        with ChatAPIClient("test-key") as api:
            api.session = MagicMock()
        api.session.close.assert_called_once()
