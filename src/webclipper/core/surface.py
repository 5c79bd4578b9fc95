"""
Control surface: the view logic behind the user-facing popup.

The surface decides which view to show and what it says. It holds no
credentials and never touches the capture pipeline: actions become messages
to the coordinator, and progress arrives as capture status changes in the
shared store.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterable
from enum import Enum

from pydantic import BaseModel, ConfigDict

from webclipper.core.capture.models import CapturePhase, CaptureStatus
from webclipper.core.capture.status import StatusObserver
from webclipper.core.messaging.bus import SURFACE, Message, MessageBus
from webclipper.core.page.host import (
    DEFAULT_INTERNAL_SCHEMES,
    INTERNAL_PAGE_MESSAGE,
    is_internal_url,
)
from webclipper.core.page.models import Tab
from webclipper.core.session.models import Session
from webclipper.core.storage.base import KeyValueStore

logger = logging.getLogger(__name__)

NO_REPLY = "No response from background"


class View(str, Enum):
    """Views the surface can show."""

    LOGIN = "login"
    READY = "ready"
    SAVING = "saving"
    SUCCESS = "success"
    ERROR = "error"
    SETTINGS = "settings"


class RenderedView(BaseModel):
    """What the surface shows: a view and its message."""

    view: View
    text: str = ""

    model_config = ConfigDict(frozen=True)


class ControlSurface:
    """
    Popup view state.

    Rendering a ``success`` status schedules the surface to close once, after
    ``success_close_delay`` seconds, however often that status is rendered.

    Example:
        >>> surface = ControlSurface(bus, store, on_close=popup.close)
        >>> surface.render(CaptureStatus(phase=CapturePhase.SUCCESS, title="Docs"))
        RenderedView(view=<View.SUCCESS: 'success'>, text='Saved: Docs')
    """

    def __init__(
        self,
        bus: MessageBus,
        storage: KeyValueStore,
        *,
        on_close: Callable[[], object] | None = None,
        on_render: Callable[[RenderedView], object] | None = None,
        success_close_delay: float = 2.0,
        internal_schemes: Iterable[str] = DEFAULT_INTERNAL_SCHEMES,
    ) -> None:
        self.bus = bus
        self.storage = storage
        self.on_close = on_close
        self.on_render = on_render
        self.success_close_delay = success_close_delay
        self.internal_schemes = tuple(internal_schemes)
        self.current: RenderedView | None = None
        self.closed = False
        self._close_handle: asyncio.TimerHandle | None = None
        self._observer = StatusObserver(storage, self._on_status)

    @staticmethod
    def initial_view(session: Session, status: CaptureStatus) -> View:
        """
        Pick the view to open with.

        Example:
            >>> session = Session(api_url="http://localhost:4000")
            >>> ControlSurface.initial_view(session, CaptureStatus())
            <View.LOGIN: 'login'>
        """
        if not session.is_authenticated:
            return View.LOGIN
        if status.phase is CapturePhase.SAVING:
            return View.SAVING
        return View.READY

    @property
    def close_scheduled(self) -> bool:
        return self._close_handle is not None

    def render(self, status: CaptureStatus) -> RenderedView:
        """Map a capture status to a view; pure apart from the one-shot close timer."""
        if status.phase is CapturePhase.SAVING:
            rendered = RenderedView(view=View.SAVING, text="Saving page...")
        elif status.phase is CapturePhase.SUCCESS:
            rendered = RenderedView(view=View.SUCCESS, text=f"Saved: {status.title or ''}".rstrip())
            self._schedule_close()
        elif status.phase is CapturePhase.ERROR:
            rendered = RenderedView(view=View.ERROR, text=status.error_message or "Save failed")
        else:
            rendered = RenderedView(view=View.READY, text="")
        self.current = rendered
        return rendered

    def watch(self) -> None:
        """Re-render on every capture status change in the store."""
        self._observer.start()

    def unwatch(self) -> None:
        self._observer.stop()

    def close(self) -> None:
        """Close the surface (idempotent)."""
        if self.closed:
            return
        self.closed = True
        self.unwatch()
        logger.debug("Closing control surface")
        if self._close_handle is not None:
            self._close_handle.cancel()
        if self.on_close is not None:
            self.on_close()

    def _schedule_close(self) -> None:
        if self._close_handle is not None or self.closed:
            return
        self._close_handle = asyncio.get_running_loop().call_later(
            self.success_close_delay, self.close
        )

    def _on_status(self, status: CaptureStatus) -> None:
        rendered = self.render(status)
        if self.on_render is not None:
            self.on_render(rendered)

    async def _send(self, message: Message) -> Message:
        reply = await self.bus.send_message(message, SURFACE)
        return reply if reply is not None else {"success": False, "error": NO_REPLY}

    async def login(self, api_url: str, username: str, password: str) -> RenderedView:
        """Sign in; returns the ready view or the login view with the error."""
        if not username or not password:
            return RenderedView(view=View.LOGIN, text="Please enter username and password")
        reply = await self._send(
            {"action": "login", "apiUrl": api_url, "username": username, "password": password}
        )
        if reply.get("success"):
            return RenderedView(view=View.READY, text=f"Logged in as {reply.get('userName')}")
        return RenderedView(view=View.LOGIN, text=reply.get("error") or "Login failed")

    async def logout(self) -> RenderedView:
        await self._send({"action": "logout"})
        return RenderedView(view=View.LOGIN, text="")

    async def capture(
        self,
        tab: Tab,
        *,
        custom_title: str | None = None,
        tags: list[str] | None = None,
        wait: bool = False,
    ) -> RenderedView:
        """
        Ask the coordinator to capture a tab.

        Internal pages are refused here, before any message is sent.
        """
        if is_internal_url(tab.url, self.internal_schemes):
            return self.render_error(INTERNAL_PAGE_MESSAGE)

        message: Message = {"action": "capture", "targetId": tab.id, "wait": wait}
        if custom_title and custom_title.strip():
            message["customTitle"] = custom_title.strip()
        if tags:
            message["tags"] = list(tags)

        reply = await self._send(message)
        if wait:
            if reply.get("success"):
                status = CaptureStatus(phase=CapturePhase.SUCCESS, title=reply.get("title"))
                return self.render(status)
            return self.render_error(reply.get("error") or "Save failed")
        if reply.get("started"):
            return RenderedView(view=View.SAVING, text="Saving page...")
        return self.render_error(reply.get("error") or "Save failed")

    def render_error(self, message: str) -> RenderedView:
        rendered = RenderedView(view=View.ERROR, text=message)
        self.current = rendered
        return rendered

    async def test_connection(self, api_url: str, api_key: str) -> RenderedView:
        reply = await self._send(
            {"action": "testConnection", "apiUrl": api_url, "apiKey": api_key}
        )
        if reply.get("success"):
            return RenderedView(view=View.SETTINGS, text=reply.get("message") or "Connected")
        return RenderedView(view=View.SETTINGS, text=reply.get("error") or "Connection failed")

    async def save_settings(
        self, api_url: str, api_key: str | None = None
    ) -> tuple[bool, RenderedView]:
        """
        Save the API URL, and the API key when given (only if it tests valid).

        Returns:
            Whether anything was saved, and the view to show
        """
        message: Message = {"action": "saveSettings", "apiUrl": api_url}
        if api_key:
            message["apiKey"] = api_key
        reply = await self._send(message)
        if reply.get("success"):
            return True, RenderedView(view=View.SETTINGS, text=reply.get("message") or "Saved")
        return False, RenderedView(view=View.SETTINGS, text=reply.get("error") or "Save failed")


__all__ = ["NO_REPLY", "ControlSurface", "RenderedView", "View"]
