"""
Session persistence.

The session (API URL, auth mode, credentials) is stored in the shared
key/value store so every context sees the same credentials.
"""

from webclipper.core.session.models import AuthMode, Session
from webclipper.core.session.store import SessionStore

__all__ = ["AuthMode", "Session", "SessionStore"]
