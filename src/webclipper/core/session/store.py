"""
Session store.

Reads and writes the session fields in the shared key/value store. There is
no in-memory copy: every ``read`` reflects the latest durable write, which
is what lets the control surface and the coordinator run in separate
contexts.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any

from webclipper.core.config.models import DEFAULT_API_URL
from webclipper.core.session.models import AuthMode, Session
from webclipper.core.storage.base import KeyValueStore

logger = logging.getLogger(__name__)

# Session field name -> persisted key
SESSION_KEYS: dict[str, str] = {
    "api_url": "api_url",
    "auth_mode": "auth_mode",
    "api_key": "api_key",
    "access_token": "access_token",
    "refresh_token": "refresh_token",
    "user_label": "user_label",
}

LOGIN_TOKEN_FIELDS = ("access_token", "refresh_token")
CREDENTIAL_FIELDS = ("api_key", "access_token", "refresh_token", "user_label")

# Keys written by the capture status publisher; cleared on logout
CAPTURE_STATUS_KEYS = ("capture_status", "capture_title", "capture_error")


class SessionStore:
    """
    Read/update/clear access to the persisted session.

    The store validates structure only. Callers keep ``auth_mode`` and the
    credential fields consistent.

    Example:
        >>> store = SessionStore(MemoryStore())
        >>> store.read().auth_mode
        <AuthMode.NONE: 'none'>
        >>> store.update(auth_mode=AuthMode.API_KEY, api_key="ak_123")
        >>> store.read().credential
        'ak_123'
    """

    def __init__(self, storage: KeyValueStore, default_api_url: str = DEFAULT_API_URL) -> None:
        """
        Initialize the session store.

        Args:
            storage: Shared key/value store
            default_api_url: API URL written on first read of an empty store
        """
        self.storage = storage
        self.default_api_url = default_api_url.rstrip("/")

    def read(self) -> Session:
        """
        Read the current session.

        The first read of an empty store persists the default API URL.

        Returns:
            Session built from the persisted fields
        """
        data = self.storage.get(SESSION_KEYS.values())
        if not data.get("api_url"):
            self.storage.set({"api_url": self.default_api_url})
            data["api_url"] = self.default_api_url

        mode_value = data.get("auth_mode")
        try:
            auth_mode = AuthMode(mode_value) if mode_value else AuthMode.NONE
        except ValueError:
            logger.warning("Unknown auth mode %r in storage, treating as none", mode_value)
            auth_mode = AuthMode.NONE

        return Session(
            api_url=data["api_url"],
            auth_mode=auth_mode,
            api_key=data.get("api_key"),
            access_token=data.get("access_token"),
            refresh_token=data.get("refresh_token"),
            user_label=data.get("user_label"),
        )

    def update(self, **fields: Any) -> None:
        """
        Persist a partial session update.

        Fields set to None are removed from storage.

        Args:
            **fields: Session field names and new values

        Raises:
            ValueError: If a field name is not a session field
        """
        unknown = set(fields) - set(SESSION_KEYS)
        if unknown:
            raise ValueError(f"Unknown session fields: {sorted(unknown)}")

        to_set: dict[str, Any] = {}
        to_remove: list[str] = []
        for name, value in fields.items():
            key = SESSION_KEYS[name]
            if value is None:
                to_remove.append(key)
            elif isinstance(value, AuthMode):
                to_set[key] = value.value
            elif name == "api_url":
                to_set[key] = str(value).rstrip("/")
            else:
                to_set[key] = value

        if to_set:
            self.storage.set(to_set)
        if to_remove:
            self.storage.remove(to_remove)

    def clear(self, fields: Iterable[str]) -> None:
        """
        Remove session fields from storage.

        Args:
            fields: Session field names to clear
        """
        self.update(**{name: None for name in fields})

    def clear_login_tokens(self) -> None:
        """Forget the access/refresh token pair (renewal failed or logout)."""
        self.clear(LOGIN_TOKEN_FIELDS)

    def logout(self) -> None:
        """Forget every credential, the user label and the last capture status."""
        self.clear((*CREDENTIAL_FIELDS, "auth_mode"))
        self.storage.remove(CAPTURE_STATUS_KEYS)
