"""
Coordinator: the background context's message router.

The control surface never calls core objects directly. It sends a message
on the runtime channel and the coordinator answers:

    login            {apiUrl, username, password} -> {success, userName} | {success: False, error}
    logout           {}                           -> {success: True}
    capture          {targetId, customTitle?, tags?, wait?}
                                                  -> {started: True} | {started: False, error}
                                                     (with wait: {success, taskId, title} | {success: False, error})
    testConnection   {apiUrl, apiKey}             -> {success, message} | {success: False, error}
    saveSettings     {apiUrl, apiKey?}            -> {success: True, message?} | {success: False, error}

``build_coordinator`` wires a full set of components from a ClipperConfig.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from pydantic import ValidationError

from webclipper.core.api.client import ApiClient
from webclipper.core.capture.models import CaptureRequest, UploadResult
from webclipper.core.capture.orchestrator import BUSY_MESSAGE, CaptureOrchestrator
from webclipper.core.capture.status import StatusPublisher
from webclipper.core.capture.upload import UploadPipeline
from webclipper.core.config.models import ClipperConfig
from webclipper.core.errors import ClipperError, describe_error
from webclipper.core.messaging.bus import ContextKind, Message, MessageBus, Sender
from webclipper.core.page.host import HttpPageLoader, PageHost
from webclipper.core.session.models import AuthMode
from webclipper.core.session.store import SessionStore
from webclipper.core.storage.base import KeyValueStore

logger = logging.getLogger(__name__)

Handler = Callable[[Message], Awaitable[Message]]


class Coordinator:
    """
    Routes runtime-channel messages to the API client and the orchestrator.

    Messages sent by page contexts are left alone: they are capture signals
    meant for the orchestrator's waiter.
    """

    def __init__(
        self,
        bus: MessageBus,
        sessions: SessionStore,
        api: ApiClient,
        orchestrator: CaptureOrchestrator,
        *,
        closeables: list[Callable[[], Awaitable[None]]] | None = None,
    ) -> None:
        self.bus = bus
        self.sessions = sessions
        self.api = api
        self.orchestrator = orchestrator
        self._closeables = closeables or []
        self._capture_task: asyncio.Task[None] | None = None
        self._handlers: dict[str, Handler] = {
            "login": self._login,
            "logout": self._logout,
            "capture": self._capture,
            "testConnection": self._test_connection,
            "saveSettings": self._save_settings,
        }

    @property
    def capture_task(self) -> asyncio.Task[None] | None:
        """The task running the current (or last) capture attempt."""
        return self._capture_task

    def start(self) -> None:
        """Start listening on the runtime channel."""
        self.bus.add_listener(self.handle_message)

    def stop(self) -> None:
        self.bus.remove_listener(self.handle_message)

    async def aclose(self) -> None:
        """Stop listening, cancel an in-flight capture and close HTTP clients."""
        self.stop()
        task = self._capture_task
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        for close in self._closeables:
            await close()

    async def handle_message(self, message: Message, sender: Sender) -> Message | None:
        if sender.kind == ContextKind.PAGE:
            return None
        handler = self._handlers.get(str(message.get("action")))
        if handler is None:
            return None
        logger.debug("Handling %s", message.get("action"))
        return await handler(message)

    async def _login(self, message: Message) -> Message:
        api_url = message.get("apiUrl") or self.sessions.read().api_url
        try:
            session = await self.api.login(
                api_url, message.get("username") or "", message.get("password") or ""
            )
        except ClipperError as e:
            return {"success": False, "error": describe_error(e)}
        return {"success": True, "userName": session.user_label}

    async def _logout(self, message: Message) -> Message:
        self.sessions.logout()
        logger.info("Logged out")
        return {"success": True}

    async def _capture(self, message: Message) -> Message:
        running = self._capture_task is not None and not self._capture_task.done()
        if running or self.orchestrator.is_busy:
            return {"started": False, "error": BUSY_MESSAGE}

        try:
            request = CaptureRequest(
                target_id=message.get("targetId"),
                custom_title=message.get("customTitle"),
                tags=message.get("tags") or [],
            )
        except ValidationError:
            return {"started": False, "error": "No active tab"}

        task = asyncio.get_running_loop().create_task(self.orchestrator.run_capture(request))
        self._capture_task = task
        if not message.get("wait"):
            return {"started": True}

        await task
        outcome = self.orchestrator.last_outcome
        if isinstance(outcome, UploadResult):
            return {"success": True, "taskId": outcome.task_id, "title": outcome.title}
        return {"success": False, "error": outcome or "Save failed"}

    async def _test_connection(self, message: Message) -> Message:
        api_url = message.get("apiUrl") or self.sessions.read().api_url
        try:
            user = await self.api.test_api_key(api_url, message.get("apiKey") or "")
        except ClipperError as e:
            return {"success": False, "error": describe_error(e)}
        return {"success": True, "message": f"Connected as {user}", "userName": user}

    async def _save_settings(self, message: Message) -> Message:
        api_url = str(message.get("apiUrl") or "").strip().rstrip("/")
        if not api_url:
            return {"success": False, "error": "API URL is required"}

        api_key = message.get("apiKey")
        if not api_key:
            self.sessions.update(api_url=api_url)
            return {"success": True, "message": "Saved"}

        try:
            user = await self.api.test_api_key(api_url, api_key)
        except ClipperError as e:
            return {"success": False, "error": describe_error(e)}

        self.sessions.update(
            api_url=api_url,
            auth_mode=AuthMode.API_KEY,
            api_key=api_key,
            user_label=user,
            access_token=None,
            refresh_token=None,
        )
        logger.info("Saved API key for %s", user)
        return {"success": True, "message": f"Connected as {user}"}


@dataclass
class Runtime:
    """A wired set of components sharing one bus and one store."""

    bus: MessageBus
    storage: KeyValueStore
    sessions: SessionStore
    api: ApiClient
    host: PageHost
    pipeline: UploadPipeline
    publisher: StatusPublisher
    orchestrator: CaptureOrchestrator
    coordinator: Coordinator
    loader: HttpPageLoader


def build_coordinator(
    config: ClipperConfig,
    storage: KeyValueStore,
    *,
    bus: MessageBus | None = None,
    api: ApiClient | None = None,
    host: PageHost | None = None,
    pipeline: UploadPipeline | None = None,
    loader: HttpPageLoader | None = None,
) -> Runtime:
    """
    Wire every component from configuration and start the coordinator.

    Collaborators may be passed in (tests inject clients with mock transports).

    Args:
        config: Loaded configuration
        storage: Key/value store shared by all contexts

    Returns:
        The wired runtime; call ``runtime.coordinator.aclose()`` when done
    """
    bus = bus or MessageBus()
    sessions = SessionStore(storage, default_api_url=config.api.default_url)
    api = api or ApiClient(
        sessions,
        timeout=config.api.request_timeout,
        api_key_prefix=config.api.api_key_prefix,
    )
    loader = loader or HttpPageLoader(timeout=config.api.request_timeout)
    host = host or PageHost(
        bus,
        loader=loader,
        snapshot_options=config.snapshot,
        markdown_options=config.markdown,
        internal_schemes=config.capture.internal_schemes,
    )
    pipeline = pipeline or UploadPipeline(
        api,
        timeout=config.api.request_timeout,
        default_title=config.capture.default_title,
    )
    publisher = StatusPublisher(storage)
    orchestrator = CaptureOrchestrator(
        bus,
        host,
        pipeline,
        publisher,
        timeout=config.capture.timeout_seconds,
        internal_schemes=config.capture.internal_schemes,
        extract_markdown=config.capture.extract_markdown,
    )
    coordinator = Coordinator(
        bus,
        sessions,
        api,
        orchestrator,
        closeables=[pipeline.aclose, loader.aclose, api.aclose],
    )
    coordinator.start()
    return Runtime(
        bus=bus,
        storage=storage,
        sessions=sessions,
        api=api,
        host=host,
        pipeline=pipeline,
        publisher=publisher,
        orchestrator=orchestrator,
        coordinator=coordinator,
        loader=loader,
    )


__all__ = ["Coordinator", "Runtime", "build_coordinator"]
