"""
Token signing and webhook signature checks

Tokens are HS256 JWTs signed with the application secret. Only the claims
the websocket handshake and REST authentication need are produced.
"""

import base64
import hashlib
import hmac
import json
import logging
from datetime import datetime
from typing import Optional, Union

import jwt

logger = logging.getLogger(__name__)

# {"alg": "HS256", "typ": "JWT"}
_DEV_TOKEN_HEADER = "eyJhbGciOiJIUzI1NiIsInR5cCI6IkpXVCJ9"
_DEV_TOKEN_SIGNATURE = "devtoken"


def create_user_token(secret: str, user_id: str, exp: Optional[Union[int, datetime]] = None) -> str:
    """
    Create a user token

    Args:
        secret: Application secret
        user_id: User the token authenticates
        exp: Optional expiry, as a UNIX timestamp or datetime

    Returns:
        Signed JWT
    """
    payload = {"user_id": user_id}
    if exp is not None:
        payload["exp"] = exp
    return jwt.encode(payload, secret, algorithm="HS256")


def create_server_token(secret: str) -> str:
    """Create a token acting as the server, used when no user token is set"""
    return jwt.encode({"server": True}, secret, algorithm="HS256")


def dev_token(user_id: str) -> str:
    """
    Create an unsigned development token

    Only accepted by applications with auth checks disabled.
    """
    payload = json.dumps({"user_id": user_id}, separators=(",", ":")).encode("utf-8")
    encoded = base64.urlsafe_b64encode(payload).decode("ascii").rstrip("=")
    return f"{_DEV_TOKEN_HEADER}.{encoded}.{_DEV_TOKEN_SIGNATURE}"


def user_from_token(token: Optional[str]) -> Optional[str]:
    """
    Read the user_id claim without verifying the signature

    Returns:
        User ID, or None if the token is malformed or has no user_id
    """
    if not token:
        return None
    try:
        claims = jwt.decode(token, options={"verify_signature": False})
    except jwt.DecodeError as e:
        logger.debug(f"Could not decode token: {e}")
        return None
    user_id = claims.get("user_id")
    return user_id if isinstance(user_id, str) else None


def check_signature(body: Union[str, bytes], secret: str, signature: str) -> bool:
    """
    Verify a webhook request body against its X-Signature header

    Args:
        body: Raw request body
        secret: Application secret
        signature: Hex HMAC-SHA256 digest from the request

    Returns:
        True if the signature matches
    """
    if isinstance(body, str):
        body = body.encode("utf-8")
    expected = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()
    return hmac.compare_digest(expected, signature or "")
