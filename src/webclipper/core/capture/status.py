"""
Persisted capture status: one writer, any number of observers.

The orchestrator is the only writer. Within an attempt the status only
moves forward::

    idle/success/error --begin--> saving --succeed--> success
                                         --fail-----> error

``fail`` may also record an attempt rejected before it started (for example
a browser-internal page), which writes ``error`` without passing through
``saving``. Observers never talk to the writer: they watch the store.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from webclipper.core.capture.models import CapturePhase, CaptureStatus
from webclipper.core.errors import InvalidTransitionError
from webclipper.core.session.store import CAPTURE_STATUS_KEYS
from webclipper.core.storage.base import KeyValueStore, StorageChange

logger = logging.getLogger(__name__)

STATUS_KEY, TITLE_KEY, ERROR_KEY = CAPTURE_STATUS_KEYS


def read_status(storage: KeyValueStore) -> CaptureStatus:
    """Read the current capture status from the store."""
    return CaptureStatus.from_storage(storage.get(CAPTURE_STATUS_KEYS))


class StatusPublisher:
    """
    Sole writer of the capture status keys.

    Example:
        >>> publisher = StatusPublisher(store)
        >>> publisher.begin()
        >>> publisher.succeed("My page")
        >>> read_status(store).phase
        <CapturePhase.SUCCESS: 'success'>
    """

    def __init__(self, storage: KeyValueStore) -> None:
        self.storage = storage
        self._in_attempt = False

    @property
    def in_attempt(self) -> bool:
        """Whether an attempt has begun and not yet finished."""
        return self._in_attempt

    def current(self) -> CaptureStatus:
        return read_status(self.storage)

    def begin(self) -> None:
        """
        Start an attempt: clear the previous title and error, then write ``saving``.

        Raises:
            InvalidTransitionError: If an attempt is already running
        """
        if self._in_attempt:
            raise InvalidTransitionError("A capture attempt is already in progress")
        self.storage.apply(
            {STATUS_KEY: CapturePhase.SAVING.value}, remove=[TITLE_KEY, ERROR_KEY]
        )
        self._in_attempt = True
        logger.debug("Capture status -> saving")

    def succeed(self, title: str) -> None:
        """
        Finish the attempt successfully.

        Raises:
            InvalidTransitionError: If no attempt is running
        """
        if not self._in_attempt:
            raise InvalidTransitionError("Cannot mark success without a running attempt")
        self.storage.set({STATUS_KEY: CapturePhase.SUCCESS.value, TITLE_KEY: title})
        self._in_attempt = False
        logger.debug("Capture status -> success")

    def fail(self, message: str) -> None:
        """Finish the running attempt, or record a rejected one, as ``error``."""
        self.storage.apply(
            {STATUS_KEY: CapturePhase.ERROR.value, ERROR_KEY: message}, remove=[TITLE_KEY]
        )
        self._in_attempt = False
        logger.debug("Capture status -> error: %s", message)

    def reset(self) -> None:
        """
        Return to ``idle`` by removing every status key.

        Raises:
            InvalidTransitionError: If an attempt is running
        """
        if self._in_attempt:
            raise InvalidTransitionError("Cannot reset status during a capture attempt")
        self.storage.remove(CAPTURE_STATUS_KEYS)


class StatusObserver:
    """
    Forwards capture status changes from the store to a render callback.

    Only changes touching a ``capture_*`` key trigger a render; the callback
    always receives the full status read back from the store.
    """

    def __init__(
        self,
        storage: KeyValueStore,
        render: Callable[[CaptureStatus], object] | None = None,
    ) -> None:
        self.storage = storage
        self.render = render
        self._subscribed = False

    def read(self) -> CaptureStatus:
        return read_status(self.storage)

    def start(self) -> None:
        if not self._subscribed:
            self.storage.add_listener(self._on_change)
            self._subscribed = True

    def stop(self) -> None:
        if self._subscribed:
            self.storage.remove_listener(self._on_change)
            self._subscribed = False

    def __enter__(self) -> StatusObserver:
        self.start()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.stop()

    def _on_change(self, changes: dict[str, StorageChange]) -> None:
        if not any(key in changes for key in CAPTURE_STATUS_KEYS):
            return
        if self.render is not None:
            self.render(self.read())
