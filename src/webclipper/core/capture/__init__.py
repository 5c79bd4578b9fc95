"""
Capture: orchestration, upload transaction and persisted status.
"""

from webclipper.core.capture.models import (
    CapturePayload,
    CapturePhase,
    CaptureRequest,
    CaptureStatus,
    StepResult,
    UploadResult,
)
from webclipper.core.capture.orchestrator import BUSY_MESSAGE, CaptureOrchestrator
from webclipper.core.capture.status import StatusObserver, StatusPublisher, read_status
from webclipper.core.capture.upload import (
    UploadPipeline,
    UploadStage,
    UploadTransaction,
    build_task_description,
)

__all__ = [
    "BUSY_MESSAGE",
    "CaptureOrchestrator",
    "CapturePayload",
    "CapturePhase",
    "CaptureRequest",
    "CaptureStatus",
    "StatusObserver",
    "StatusPublisher",
    "StepResult",
    "UploadPipeline",
    "UploadResult",
    "UploadStage",
    "UploadTransaction",
    "build_task_description",
    "read_status",
]
