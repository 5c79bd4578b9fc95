"""
Message passing between execution contexts.

The coordinator, each page agent and the control surface share no objects.
They talk through this bus, which mirrors a browser extension's messaging:

- the *runtime channel* delivers messages to coordinator-side listeners
  (``send_message``);
- a *tab channel* delivers messages to the agent injected into one tab
  (``send_to_tab``).

Payloads are plain dicts and are deep-copied on every hop so no context can
observe another context's mutations. A listener may return a reply (a dict,
or an awaitable resolving to one); the first non-None reply is returned to
the sender.
"""

from __future__ import annotations

import copy
import inspect
import logging
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import Any, Union

from pydantic import BaseModel, ConfigDict

from webclipper.core.errors import ClipperError

logger = logging.getLogger(__name__)

Message = dict[str, Any]


class ContextKind(str, Enum):
    """Kinds of execution context."""

    COORDINATOR = "coordinator"
    PAGE = "page"
    SURFACE = "surface"


class Sender(BaseModel):
    """Identity of the context a message came from."""

    kind: ContextKind
    tab_id: int | None = None

    model_config = ConfigDict(frozen=True)


COORDINATOR = Sender(kind=ContextKind.COORDINATOR)
SURFACE = Sender(kind=ContextKind.SURFACE)


def page_sender(tab_id: int) -> Sender:
    """Sender identity of the agent running in a tab."""
    return Sender(kind=ContextKind.PAGE, tab_id=tab_id)


Reply = Union[Message, None]
Listener = Callable[[Message, Sender], Union[Reply, Awaitable[Reply]]]


class MessageDeliveryError(ClipperError):
    """Raised when a tab has no agent listening."""


class MessageBus:
    """
    In-process router for cross-context messages.

    Example:
        >>> bus = MessageBus()
        >>> bus.add_listener(lambda msg, sender: {"pong": True} if msg["action"] == "ping" else None)
        >>> await bus.send_message({"action": "ping"}, SURFACE)
        {'pong': True}
    """

    def __init__(self) -> None:
        self._runtime: list[Listener] = []
        self._tabs: dict[int, list[Listener]] = {}

    def add_listener(self, listener: Listener) -> None:
        """Register a runtime-channel listener."""
        if listener not in self._runtime:
            self._runtime.append(listener)

    def remove_listener(self, listener: Listener) -> None:
        """Deregister a runtime-channel listener (no-op if absent)."""
        if listener in self._runtime:
            self._runtime.remove(listener)

    def has_listener(self, listener: Listener) -> bool:
        """Whether a listener is currently registered on the runtime channel."""
        return listener in self._runtime

    @property
    def listener_count(self) -> int:
        """Number of runtime-channel listeners."""
        return len(self._runtime)

    def add_tab_listener(self, tab_id: int, listener: Listener) -> None:
        """Register a listener inside a tab."""
        listeners = self._tabs.setdefault(tab_id, [])
        if listener not in listeners:
            listeners.append(listener)

    def remove_tab_listener(self, tab_id: int, listener: Listener) -> None:
        """Deregister a listener inside a tab."""
        listeners = self._tabs.get(tab_id, [])
        if listener in listeners:
            listeners.remove(listener)

    def close_tab(self, tab_id: int) -> None:
        """Drop every listener registered inside a tab."""
        self._tabs.pop(tab_id, None)

    async def send_message(self, message: Message, sender: Sender) -> Reply:
        """
        Deliver a message on the runtime channel.

        Args:
            message: Payload with an ``action`` key
            sender: Identity of the sending context

        Returns:
            First non-None reply, or None
        """
        logger.debug("runtime <- %s from %s", message.get("action"), sender.kind.value)
        return await self._dispatch(list(self._runtime), message, sender)

    async def send_to_tab(
        self, tab_id: int, message: Message, sender: Sender = COORDINATOR
    ) -> Reply:
        """
        Deliver a message to the agent inside a tab.

        Args:
            tab_id: Target tab
            message: Payload with an ``action`` key
            sender: Identity of the sending context

        Returns:
            First non-None reply, or None

        Raises:
            MessageDeliveryError: If nothing listens in the tab
        """
        listeners = list(self._tabs.get(tab_id, []))
        if not listeners:
            raise MessageDeliveryError(
                "Could not establish connection. Receiving end does not exist.",
                tab_id=tab_id,
                action=message.get("action"),
            )
        logger.debug("tab %d <- %s", tab_id, message.get("action"))
        return await self._dispatch(listeners, message, sender)

    @staticmethod
    async def _dispatch(listeners: list[Listener], message: Message, sender: Sender) -> Reply:
        reply: Reply = None
        for listener in listeners:
            result = listener(copy.deepcopy(message), sender)
            if inspect.isawaitable(result):
                result = await result
            if result is not None and reply is None:
                reply = copy.deepcopy(result)
        return reply


__all__ = [
    "COORDINATOR",
    "SURFACE",
    "ContextKind",
    "Listener",
    "Message",
    "MessageBus",
    "MessageDeliveryError",
    "Reply",
    "Sender",
    "page_sender",
]
