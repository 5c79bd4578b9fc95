"""
One-shot wait for a signal from a page context.

A capture is started by a fire-and-forget message to the page; the result
arrives later as a separate message. ``SignalWaiter`` turns that pair into a
cancellable future with an attached timer:

- its runtime listener only matches messages sent by the target tab;
- it resolves exactly once: completion, page error, or timeout;
- its listener is deregistered on every resolution path, *before* the
  future is resolved, so a signal arriving after a timeout matches nothing.

Example:
    >>> async with SignalWaiter(bus, tab_id=7, timeout=120) as waiter:
    ...     await bus.send_to_tab(7, {"action": "startCapture"})
    ...     message = await waiter.wait()
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from webclipper.core.errors import CaptureTimeoutError, ExtractionError
from webclipper.core.messaging.bus import ContextKind, Message, MessageBus, Sender

logger = logging.getLogger(__name__)


class SignalWaiter:
    """
    Await the first completion/error signal from one tab, bounded by a timeout.

    Attributes:
        tab_id: Tab whose signals are matched
        timeout: Seconds before the wait fails with CaptureTimeoutError
        complete_action: Action name of the success signal
        error_action: Action name of the failure signal
    """

    def __init__(
        self,
        bus: MessageBus,
        tab_id: int,
        *,
        timeout: float,
        complete_action: str = "captureComplete",
        error_action: str = "captureError",
    ) -> None:
        self.bus = bus
        self.tab_id = tab_id
        self.timeout = timeout
        self.complete_action = complete_action
        self.error_action = error_action
        self._future: asyncio.Future[Message] | None = None
        self._timer: asyncio.TimerHandle | None = None

    @property
    def registered(self) -> bool:
        """Whether the runtime listener is currently registered."""
        return self.bus.has_listener(self._on_message)

    @property
    def done(self) -> bool:
        """Whether the wait has resolved."""
        return self._future is not None and self._future.done()

    def start(self) -> None:
        """
        Register the listener and arm the timer.

        Must be called from a running event loop, before the start signal is sent
        so a fast reply cannot be missed.

        Raises:
            RuntimeError: If already started
        """
        if self._future is not None:
            raise RuntimeError("SignalWaiter already started")
        loop = asyncio.get_running_loop()
        self._future = loop.create_future()
        self.bus.add_listener(self._on_message)
        self._timer = loop.call_later(self.timeout, self._on_timeout)

    def cancel(self) -> None:
        """Deregister the listener and disarm the timer. Safe to call repeatedly."""
        self.bus.remove_listener(self._on_message)
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def fail(self, error: BaseException) -> None:
        """Resolve the wait with an error raised by the caller (e.g. delivery failed)."""
        self._resolve(error=error)

    async def wait(self) -> Message:
        """
        Wait for the outcome.

        Returns:
            The completion message

        Raises:
            ExtractionError: If the page reported an error
            CaptureTimeoutError: If no signal arrived in time
            RuntimeError: If the waiter was never started
        """
        if self._future is None:
            raise RuntimeError("SignalWaiter.wait() called before start()")
        try:
            return await self._future
        finally:
            self.cancel()

    async def __aenter__(self) -> SignalWaiter:
        self.start()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        self.cancel()

    def _on_message(self, message: Message, sender: Sender) -> None:
        if sender.kind != ContextKind.PAGE or sender.tab_id != self.tab_id:
            return None
        action = message.get("action")
        if action == self.complete_action:
            self._resolve(result=message)
        elif action == self.error_action:
            self._resolve(error=ExtractionError(message.get("error") or "Capture failed"))
        return None

    def _on_timeout(self) -> None:
        self._timer = None
        logger.warning("No capture signal from tab %d after %.1fs", self.tab_id, self.timeout)
        self._resolve(error=CaptureTimeoutError(self.timeout))

    def _resolve(self, result: Message | None = None, error: BaseException | None = None) -> None:
        self.cancel()
        if self._future is None or self._future.done():
            return
        if error is not None:
            self._future.set_exception(error)
        else:
            self._future.set_result(result or {})
