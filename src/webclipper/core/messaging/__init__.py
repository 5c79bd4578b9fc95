"""
Cross-context messaging: the bus and the one-shot signal waiter.
"""

from webclipper.core.messaging.bus import (
    COORDINATOR,
    SURFACE,
    ContextKind,
    Listener,
    Message,
    MessageBus,
    MessageDeliveryError,
    Sender,
    page_sender,
)
from webclipper.core.messaging.waiter import SignalWaiter

__all__ = [
    "COORDINATOR",
    "SURFACE",
    "ContextKind",
    "Listener",
    "Message",
    "MessageBus",
    "MessageDeliveryError",
    "Sender",
    "SignalWaiter",
    "page_sender",
]
