"""
Client configuration
"""

import os
from dataclasses import dataclass, field, replace
from typing import Optional

DEFAULT_BASE_URL = "https://chat-us-east-1.stream-io-api.com"
LOCAL_BASE_URL = "http://localhost:3030"
USER_AGENT = "stream-chat-python-client-0.1.0"


@dataclass
class ClientOptions:
    """
    Tunables for the HTTP helper and the stable connection

    Intervals and timeouts are in seconds.
    """
    base_url: str = DEFAULT_BASE_URL
    timeout: float = 3.0

    # Heartbeat: send a health check every ping_interval, check every
    # connection_check_interval that something arrived within connection_timeout
    ping_interval: float = 25.0
    connection_check_interval: float = 5.0
    connection_timeout: float = 35.0
    open_timeout: float = 10.0

    # Reconnect backoff window
    initial_backoff: float = 0.25
    max_backoff: float = 25.0

    recovery_limit: int = 30
    clean_interval: float = 0.5
    typing_timeout: float = 7.0
    user_agent: str = field(default=USER_AGENT)

    @classmethod
    def from_env(cls, **overrides) -> "ClientOptions":
        """
        Build options from environment variables

        STREAM_LOCAL_TEST_RUN points the client at a local server,
        STREAM_CHAT_BASE_URL and STREAM_CHAT_TIMEOUT override the defaults.
        Keyword overrides win over the environment.
        """
        options = cls()
        if os.getenv("STREAM_LOCAL_TEST_RUN"):
            options.base_url = LOCAL_BASE_URL
        base_url: Optional[str] = os.getenv("STREAM_CHAT_BASE_URL")
        if base_url:
            options.base_url = base_url
        timeout = os.getenv("STREAM_CHAT_TIMEOUT")
        if timeout:
            options.timeout = float(timeout)
        return replace(options, **overrides)
