"""
Capture data models.

Per-attempt values (request, payload, upload result) are transient; only
CaptureStatus is persisted, as the three ``capture_*`` keys of the store.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator


class CapturePhase(str, Enum):
    """Phases of the persisted capture status."""

    IDLE = "idle"
    SAVING = "saving"
    SUCCESS = "success"
    ERROR = "error"


class CaptureRequest(BaseModel):
    """
    A user's request to capture one tab.

    Example:
        >>> CaptureRequest(target_id=3, custom_title="  ", tags=["read"]).custom_title is None
        True
    """

    target_id: int = Field(..., description="Tab to capture")
    custom_title: str | None = Field(
        default=None,
        description="Task title overriding the page title"
    )
    tags: list[str] = Field(default_factory=list, description="Tags for the created task")

    @field_validator("custom_title")
    @classmethod
    def blank_title_is_none(cls, v: str | None) -> str | None:
        if v is None or not v.strip():
            return None
        return v.strip()


class CapturePayload(BaseModel):
    """Everything the upload pipeline needs about a captured page."""

    title: str = ""
    source_url: str = ""
    html_content: bytes
    suggested_filename: str
    markdown: str | None = None


class UploadResult(BaseModel):
    """The task created by a successful upload."""

    task_id: str
    title: str


class CaptureStatus(BaseModel):
    """
    Persisted status of the latest capture attempt.

    Attributes:
        phase: Current phase
        title: Title of the created task (success only)
        error_message: User-facing failure message (error only)
    """

    phase: CapturePhase = CapturePhase.IDLE
    title: str | None = None
    error_message: str | None = None

    @classmethod
    def from_storage(cls, values: dict[str, Any]) -> CaptureStatus:
        """Build a status from the raw ``capture_*`` keys (unknown phases read as idle)."""
        try:
            phase = CapturePhase(values.get("capture_status") or CapturePhase.IDLE.value)
        except ValueError:
            phase = CapturePhase.IDLE
        return cls(
            phase=phase,
            title=values.get("capture_title"),
            error_message=values.get("capture_error"),
        )


class StepResult(BaseModel):
    """
    Outcome of one orchestration step.

    A soft failure (``fatal=False``) degrades the capture; a hard failure
    aborts it.
    """

    ok: bool
    value: Any = None
    error: str | None = None
    fatal: bool = False

    @classmethod
    def success(cls, value: Any = None) -> StepResult:
        return cls(ok=True, value=value)

    @classmethod
    def soft_failure(cls, error: str) -> StepResult:
        return cls(ok=False, error=error, fatal=False)

    @classmethod
    def hard_failure(cls, error: str) -> StepResult:
        return cls(ok=False, error=error, fatal=True)
