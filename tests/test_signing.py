"""Tests for token signing helpers."""
import base64
import hashlib
import hmac
import json

import jwt
import pytest

from streamchat_api.auth import signing

SECRET = "signing-secret-0123456789abcdef0123456789"


def _b64decode(segment):
    return base64.urlsafe_b64decode(segment + "=" * (-len(segment) % 4))


class TestTokens:
    """Tests for JWT creation and parsing."""

    def test_user_token(self):
        token = signing.create_user_token(SECRET, "alice")

        assert jwt.decode(token, SECRET, algorithms=["HS256"]) == {"user_id": "alice"}

    def test_user_token_with_expiry(self):
        token = signing.create_user_token(SECRET, "alice", exp=4102444800)

        assert jwt.decode(token, SECRET, algorithms=["HS256"])["exp"] == 4102444800

    def test_server_token(self):
        token = signing.create_server_token(SECRET)

        assert jwt.decode(token, SECRET, algorithms=["HS256"]) == {"server": True}

    def test_dev_token(self):
        """Should build an unsigned token carrying the user ID."""
        token = signing.dev_token("alice")
        header, payload, signature = token.split(".")

        assert json.loads(_b64decode(header)) == {"alg": "HS256", "typ": "JWT"}
        assert json.loads(_b64decode(payload)) == {"user_id": "alice"}
        assert signature == "devtoken"
        assert signing.user_from_token(token) == "alice"

    @pytest.mark.parametrize("token", [None, "", "not-a-token", "a.b.c"])
    def test_user_from_invalid_token(self, token):
        assert signing.user_from_token(token) is None

    def test_user_from_expired_token(self):
        """Should read the user ID without checking expiry."""
        token = signing.create_user_token(SECRET, "alice", exp=1)

        assert signing.user_from_token(token) == "alice"


class TestWebhookSignature:
    """Tests for check_signature."""

    def test_valid_signature(self):
        body = b'{"type": "message.new"}'
        signature = hmac.new(SECRET.encode(), body, hashlib.sha256).hexdigest()

        assert signing.check_signature(body, SECRET, signature) is True
        assert signing.check_signature(body.decode(), SECRET, signature) is True

    def test_invalid_signature(self):
        assert signing.check_signature(b"{}", SECRET, "0" * 64) is False
        assert signing.check_signature(b"{}", SECRET, "") is False
