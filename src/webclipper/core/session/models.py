"""
Session models.

A session describes which server the clipper talks to and which credential
it presents. The authentication mode decides which credential fields are
authoritative; the others are ignored.
"""

from enum import Enum

from pydantic import BaseModel, Field


class AuthMode(str, Enum):
    """How requests to the task service are authenticated."""

    NONE = "none"
    API_KEY = "api_key"
    LOGIN_TOKEN = "login_token"


class Session(BaseModel):
    """
    Current authentication state.

    Example:
        >>> session = Session(
        ...     api_url="http://localhost:4000",
        ...     auth_mode=AuthMode.API_KEY,
        ...     api_key="ak_123",
        ...     access_token="stale",
        ... )
        >>> session.credential
        'ak_123'
        >>> session.is_authenticated
        True
    """

    api_url: str = Field(..., description="Base URL of the task service")
    auth_mode: AuthMode = Field(default=AuthMode.NONE, description="Active authentication mode")
    api_key: str | None = Field(default=None, description="API key (api_key mode)")
    access_token: str | None = Field(default=None, description="Access token (login_token mode)")
    refresh_token: str | None = Field(
        default=None, description="Refresh token used to renew the access token"
    )
    user_label: str | None = Field(default=None, description="Display name of the signed-in user")

    @property
    def credential(self) -> str | None:
        """The credential the current mode makes authoritative, if present."""
        if self.auth_mode == AuthMode.API_KEY:
            return self.api_key or None
        if self.auth_mode == AuthMode.LOGIN_TOKEN:
            return self.access_token or None
        return None

    @property
    def is_authenticated(self) -> bool:
        """Whether a usable credential exists for the current mode."""
        return self.credential is not None

    @property
    def can_renew(self) -> bool:
        """Whether an expired access token can be exchanged for a new one."""
        return self.auth_mode == AuthMode.LOGIN_TOKEN and bool(self.refresh_token)
