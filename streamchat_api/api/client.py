"""
Chat API Client Module
Handles all REST requests with authentication headers and client query parameters
"""

import json
import logging
from typing import Dict, Any, Optional

import brotli
import requests
from requests import Response

from .models import RateLimitInfo
from ..config import DEFAULT_BASE_URL, USER_AGENT
from ..exceptions import ChatAPIError

logger = logging.getLogger(__name__)

_JSON_START = ('{', '[', '"')


class ChatAPIClient:
    """
    Chat REST API Client

    Automatically handles:
    - Authorization and stream-auth-type headers
    - api_key, user_id and client_id query parameters
    - Rate limit bookkeeping per endpoint
    - Error responses, raised as ChatAPIError
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 3.0,
        user_agent: str = USER_AGENT
    ):
        """
        Initialize Chat API Client

        Args:
            api_key: Application API key
            base_url: Base URL for the API
            timeout: Request timeout in seconds
            user_agent: User-Agent string
        """
        self.api_key = api_key
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.user_agent = user_agent

        # Credentials, set by the client once a user (or server identity) is known
        self.token = ""
        self.auth_type = "jwt"
        self.user_id: Optional[str] = None
        self.client_id: Optional[str] = None

        self.rate_limits: Dict[str, RateLimitInfo] = {}

        # Create session for connection pooling
        self.session = requests.Session()

    def set_base_url(self, base_url: str):
        self.base_url = base_url.rstrip('/')

    def set_credentials(
        self,
        token: str,
        auth_type: str = "jwt",
        user_id: Optional[str] = None,
        client_id: Optional[str] = None
    ):
        """
        Set the identity attached to every request

        Args:
            token: JWT sent as Authorization (empty for anonymous users)
            auth_type: "jwt" or "anonymous"
            user_id: Current user ID, sent as user_id query parameter
            client_id: Connection client ID, sent as client_id query parameter
        """
        self.token = token or ""
        self.auth_type = auth_type
        self.user_id = user_id
        self.client_id = client_id

    def _build_params(self, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        result = {'user_id': self.user_id}
        if params:
            result.update(params)
        result['api_key'] = self.api_key
        result['client_id'] = self.client_id
        return {k: v for k, v in result.items() if v is not None}

    def _build_headers(self, custom_headers: Optional[Dict[str, str]] = None) -> Dict[str, str]:
        headers = {
            "Authorization": self.token,
            "stream-auth-type": self.auth_type,
            "X-Stream-Client": self.user_agent,
            "User-Agent": self.user_agent,
            "Accept-Encoding": "gzip, deflate, br",
        }
        if custom_headers:
            headers.update(custom_headers)
        return headers

    def _ensure_decompressed(self, response: Response) -> Response:
        """
        Decode a Brotli body that requests left compressed

        requests only decodes br when a brotli package is importable by
        urllib3; bodies that still do not look like JSON are decoded here.
        """
        content_encoding = response.headers.get('Content-Encoding', '').lower()
        if 'br' not in content_encoding or not response.content:
            return response
        if response.content.lstrip()[:1].decode('latin-1') in _JSON_START:
            return response
        try:
            response._content = brotli.decompress(response.content)
        except brotli.error as e:
            logger.debug(f"Response body is not Brotli encoded: {e}")
            return response
        response.headers.pop('Content-Encoding', None)
        return response

    def _record_rate_limit(self, endpoint: str, response: Response):
        info = RateLimitInfo.from_headers(response.headers)
        if info is not None:
            self.rate_limits[endpoint] = info
            if info.is_exhausted():
                logger.warning(f"Rate limit exhausted for {endpoint}, resets at {info.reset_at.isoformat()}")

    @staticmethod
    def error_from_response(response: Response, data: Any = None) -> ChatAPIError:
        """
        Build a ChatAPIError from a non-2xx response

        Args:
            response: Response object
            data: Decoded JSON body, if any

        Returns:
            ChatAPIError carrying status, API error code, message and body
        """
        status = response.status_code
        message = f"StreamChat error HTTP code: {status}"
        code = None
        if isinstance(data, dict) and data.get('code'):
            code = data['code']
            message = f"StreamChat error code {code}: {data.get('message')}"
        return ChatAPIError(
            message,
            status=status,
            code=code,
            response=data if isinstance(data, dict) else {}
        )

    def _handle_response(self, response: Response) -> Dict[str, Any]:
        try:
            data = response.json()
        except ValueError:
            data = None
        if not 200 <= response.status_code < 300:
            raise self.error_from_response(response, data)
        return data if data is not None else {}

    def request(
        self,
        method: str,
        endpoint: str,
        payload: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
        timeout: Optional[float] = None
    ) -> Dict[str, Any]:
        """
        Send an authenticated request

        Args:
            method: HTTP method (GET, POST, PUT, PATCH, DELETE)
            endpoint: API endpoint (e.g., "/channels")
            payload: JSON body; sent as the "payload" query parameter for GET and DELETE
            params: Extra query parameters
            headers: Additional custom headers
            timeout: Request timeout in seconds (defaults to the client timeout)

        Returns:
            Decoded JSON body

        Raises:
            ChatAPIError: On a non-2xx response or a network failure
        """
        method = method.upper()
        query = dict(params or {})
        body = None
        if payload is not None:
            if method in ("GET", "DELETE"):
                query['payload'] = json.dumps(payload)
            else:
                body = payload

        url = f"{self.base_url}{endpoint}"
        try:
            response = self.session.request(
                method,
                url,
                params=self._build_params(query),
                json=body,
                headers=self._build_headers(headers),
                timeout=timeout if timeout is not None else self.timeout
            )
        except requests.RequestException as e:
            logger.warning(f"{method} {endpoint} failed: {type(e).__name__} - {e}")
            raise ChatAPIError(f"{method} {endpoint} failed: {e}") from e

        response = self._ensure_decompressed(response)
        self._record_rate_limit(endpoint, response)
        logger.debug(f"{method} {endpoint} -> {response.status_code}")
        return self._handle_response(response)

    def get(self, endpoint: str, params: Optional[Dict[str, Any]] = None, **kwargs) -> Dict[str, Any]:
        return self.request("GET", endpoint, params=params, **kwargs)

    def post(self, endpoint: str, payload: Optional[Dict[str, Any]] = None, **kwargs) -> Dict[str, Any]:
        return self.request("POST", endpoint, payload=payload, **kwargs)

    def put(self, endpoint: str, payload: Optional[Dict[str, Any]] = None, **kwargs) -> Dict[str, Any]:
        return self.request("PUT", endpoint, payload=payload, **kwargs)

    def patch(self, endpoint: str, payload: Optional[Dict[str, Any]] = None, **kwargs) -> Dict[str, Any]:
        return self.request("PATCH", endpoint, payload=payload, **kwargs)

    def delete(self, endpoint: str, params: Optional[Dict[str, Any]] = None, **kwargs) -> Dict[str, Any]:
        return self.request("DELETE", endpoint, params=params, **kwargs)

    def close(self):
        """Close the session"""
        self.session.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
