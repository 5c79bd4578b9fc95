"""
Authenticated client for the task service API.

Wraps httpx with credential attachment and transparent renewal of expired
login tokens. A rejected access token is renewed at most once per call and
the call is retried at most once, so a permanently invalid refresh token can
never cause a refresh loop.

Example:
    >>> sessions = SessionStore(JsonFileStore(state_path))
    >>> async with ApiClient(sessions) as api:
    ...     response = await api.call("/todolist", "POST", json={"title": "Read later"})
    ...     task = response.json()
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from webclipper.core.errors import ApiError, AuthError, AuthErrorKind, NetworkError
from webclipper.core.session.models import AuthMode, Session
from webclipper.core.session.store import SessionStore

logger = logging.getLogger(__name__)

LOGIN_PATH = "/auth/v2/login"
REFRESH_PATH = "/auth/refresh-token"
PROFILE_PATH = "/auth/profile"

JSON_HEADERS = {"Content-Type": "application/json"}


def _json_body(response: httpx.Response) -> Any | None:
    """Parse a JSON body, returning None when the body is not JSON."""
    try:
        return response.json()
    except ValueError:
        return None


def server_message(response: httpx.Response, fallback: str | None = None) -> str:
    """
    Extract the error message a server put in a response body.

    Args:
        response: Non-success response
        fallback: Message used when the body has none

    Returns:
        The body's ``message`` field, else the fallback, else ``API error: <status>``
    """
    body = _json_body(response)
    if isinstance(body, dict):
        message = body.get("message")
        if isinstance(message, str) and message:
            return message
    return fallback or f"API error: {response.status_code}"


class ApiClient:
    """
    Client for authenticated calls to the task service.

    Reads the session from the SessionStore on every call so credential
    changes made elsewhere (login, logout, renewal) apply immediately.

    Attributes:
        sessions: Store holding API URL and credentials
        api_key_prefix: Literal prefix API keys must carry
    """

    def __init__(
        self,
        sessions: SessionStore,
        *,
        http: httpx.AsyncClient | None = None,
        timeout: float = 30.0,
        api_key_prefix: str = "ak_",
    ) -> None:
        """
        Initialize the client.

        Args:
            sessions: Session store to read credentials from and persist renewals to
            http: Pre-built httpx client (tests inject one with a mock transport)
            timeout: Request timeout in seconds when no client is injected
            api_key_prefix: Prefix checked by test_api_key
        """
        self.sessions = sessions
        self.api_key_prefix = api_key_prefix
        self._owns_http = http is None
        self._http = http or httpx.AsyncClient(timeout=timeout)

    async def __aenter__(self) -> ApiClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close the underlying HTTP client if this instance created it."""
        if self._owns_http:
            await self._http.aclose()

    async def _send(
        self,
        method: str,
        url: str,
        *,
        credential: str | None = None,
        json: Any = None,
        headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        request_headers = dict(JSON_HEADERS)
        if credential is not None:
            request_headers["Authorization"] = f"Bearer {credential}"
        if headers:
            request_headers.update(headers)
        try:
            return await self._http.request(method, url, json=json, headers=request_headers)
        except httpx.RequestError as e:
            raise NetworkError("Cannot reach server", url=url, error=str(e)) from e

    async def call(
        self,
        path: str,
        method: str = "GET",
        *,
        json: Any = None,
        headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        """
        Make an authenticated request.

        Args:
            path: API path appended to the session's API URL (e.g. "/todolist")
            method: HTTP method
            json: JSON body
            headers: Extra headers (override the defaults)

        Returns:
            Successful response

        Raises:
            AuthError: NOT_AUTHENTICATED without a credential, SESSION_EXPIRED
                when renewal fails, INVALID_CREDENTIAL on a 401 that renewal
                cannot fix
            ApiError: On any other non-success status
            NetworkError: If the server cannot be reached
        """
        session = self.sessions.read()
        credential = session.credential
        if credential is None:
            raise AuthError(AuthErrorKind.NOT_AUTHENTICATED)

        url = f"{session.api_url}{path}"
        response = await self._send(method, url, credential=credential, json=json, headers=headers)

        if response.status_code == 401:
            if session.auth_mode != AuthMode.LOGIN_TOKEN:
                raise AuthError(AuthErrorKind.INVALID_CREDENTIAL, "Invalid API key", path=path)

            logger.info("Access token rejected for %s %s, renewing", method, path)
            if not await self.renew(session):
                raise AuthError(AuthErrorKind.SESSION_EXPIRED, path=path)

            renewed = self.sessions.read().credential
            if renewed is None:
                raise AuthError(AuthErrorKind.SESSION_EXPIRED, path=path)

            response = await self._send(
                method, url, credential=renewed, json=json, headers=headers
            )
            if response.status_code == 401:
                raise AuthError(AuthErrorKind.INVALID_CREDENTIAL, path=path)

        if not response.is_success:
            raise ApiError(response.status_code, server_message(response), path=path)
        return response

    async def renew(self, session: Session | None = None) -> bool:
        """
        Exchange the stored refresh token for a new access token.

        On success the new access token is persisted (the refresh token is kept
        unless the server issues a new one). On any failure the login tokens
        are cleared from the session store.

        Args:
            session: Session to renew (defaults to the stored one)

        Returns:
            True if a new access token was stored
        """
        session = session or self.sessions.read()
        if not session.can_renew:
            logger.warning("No refresh token available, cannot renew session")
            self.sessions.clear_login_tokens()
            return False

        try:
            response = await self._send(
                "POST",
                f"{session.api_url}{REFRESH_PATH}",
                json={"refreshToken": session.refresh_token},
            )
        except NetworkError as e:
            logger.warning("Token renewal failed: %s", e.context.get("error", e))
            self.sessions.clear_login_tokens()
            return False

        body = _json_body(response) if response.is_success else None
        access_token = body.get("accessToken") if isinstance(body, dict) else None
        if not access_token:
            logger.warning("Token renewal rejected (status %d)", response.status_code)
            self.sessions.clear_login_tokens()
            return False

        new_refresh = body.get("refreshToken") if isinstance(body, dict) else None
        self.sessions.update(
            access_token=access_token,
            refresh_token=new_refresh or session.refresh_token,
        )
        logger.debug("Access token renewed")
        return True

    async def login(self, api_url: str, username: str, password: str) -> Session:
        """
        Sign in with username and password and persist the login tokens.

        Any stored API key is dropped: the session switches to login-token mode.

        Args:
            api_url: Task service base URL
            username: Account name
            password: Account password

        Returns:
            The persisted session

        Raises:
            AuthError: INVALID_CREDENTIAL on a 401
            ApiError: On other non-success statuses or a malformed reply
            NetworkError: If the server cannot be reached
        """
        api_url = api_url.rstrip("/")
        response = await self._send(
            "POST",
            f"{api_url}{LOGIN_PATH}",
            json={"username": username, "password": password},
        )
        if response.status_code == 401:
            raise AuthError(AuthErrorKind.INVALID_CREDENTIAL, "Invalid username or password")
        if not response.is_success:
            raise ApiError(response.status_code, server_message(response, "Login failed"))

        body = _json_body(response)
        if not isinstance(body, dict) or not body.get("accessToken"):
            raise ApiError(response.status_code, "Login failed: malformed server reply")

        self.sessions.update(
            api_url=api_url,
            auth_mode=AuthMode.LOGIN_TOKEN,
            access_token=body["accessToken"],
            refresh_token=body.get("refreshToken"),
            user_label=body.get("userName") or username,
            api_key=None,
        )
        logger.info("Logged in to %s as %s", api_url, body.get("userName") or username)
        return self.sessions.read()

    async def fetch_profile(self) -> dict[str, Any]:
        """
        Fetch the signed-in user's profile.

        Returns:
            Profile document (empty dict if the body is not an object)
        """
        response = await self.call(PROFILE_PATH)
        body = _json_body(response)
        return body if isinstance(body, dict) else {}

    async def test_api_key(self, api_url: str, api_key: str) -> str:
        """
        Check an API key against the profile endpoint without storing it.

        Args:
            api_url: Task service base URL
            api_key: Candidate API key

        Returns:
            User name the key belongs to

        Raises:
            AuthError: INVALID_CREDENTIAL for a malformed or rejected key
            ApiError: On other non-success statuses
            NetworkError: If the server cannot be reached
        """
        if not api_key.startswith(self.api_key_prefix):
            raise AuthError(
                AuthErrorKind.INVALID_CREDENTIAL,
                f"API key must start with '{self.api_key_prefix}'",
            )

        response = await self._send(
            "GET", f"{api_url.rstrip('/')}{PROFILE_PATH}", credential=api_key
        )
        if response.status_code == 401:
            raise AuthError(AuthErrorKind.INVALID_CREDENTIAL, "Invalid API key")
        if not response.is_success:
            raise ApiError(response.status_code, server_message(response))

        body = _json_body(response)
        if isinstance(body, dict):
            return str(body.get("username") or body.get("name") or "unknown")
        return "unknown"


__all__ = [
    "LOGIN_PATH",
    "PROFILE_PATH",
    "REFRESH_PATH",
    "ApiClient",
    "server_message",
]
