"""
webclipper - Save web pages as tasks.

Captures the open page as a self-contained HTML snapshot (plus an optional
Markdown summary) and stores it as a task with an attached resource in a
remote task service.
"""

__version__ = "0.4.0.dev0"

# Re-export core models for convenience
from webclipper.core.capture.models import CapturePhase, CaptureRequest, CaptureStatus
from webclipper.core.config.models import ClipperConfig
from webclipper.core.session.models import AuthMode, Session

__all__ = [
    "AuthMode",
    "CapturePhase",
    "CaptureRequest",
    "CaptureStatus",
    "ClipperConfig",
    "Session",
    "__version__",
]
