"""
Exception types raised by the chat client
"""

from typing import Any, Dict, Optional


class StreamChatError(Exception):
    """Base class for all chat client errors"""


class ConfigurationError(StreamChatError):
    """
    Raised synchronously for caller mistakes

    Missing user IDs, a second set_user call, oversized handshake payloads,
    reserved characters in channel identifiers and similar. Never retried.
    """


class ChatAPIError(StreamChatError):
    """Non-2xx response from the REST API"""

    def __init__(
        self,
        message: str,
        status: Optional[int] = None,
        code: Optional[int] = None,
        response: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        self.status = status
        self.code = code
        self.response = response or {}

    def __repr__(self) -> str:
        return f"{type(self).__name__}(status={self.status}, code={self.code}, message={self.message!r})"


class InvalidLocationError(ChatAPIError):
    """Location coordinates rejected before reaching the API"""

    def __init__(self, message: str):
        super().__init__(
            message,
            status=400,
            code=4,
            response={"code": 4, "message": message, "StatusCode": 400}
        )


class ChatConnectionError(StreamChatError):
    """The logical connection is closed or could not be used"""


class HandshakeError(ChatConnectionError):
    """The server rejected the connection handshake or sent a malformed one"""

    def __init__(self, message: str, code: Optional[int] = None, status: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.code = code
        self.status = status

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "HandshakeError":
        """Create HandshakeError from the error object of a handshake frame"""
        error = payload.get("error") or {}
        if not isinstance(error, dict):
            error = {"message": str(error)}
        code = error.get("code")
        message = error.get("message", "connection handshake rejected")
        return cls(
            f"WS failed with code {code} and reason - {message}",
            code=code,
            status=error.get("StatusCode")
        )
