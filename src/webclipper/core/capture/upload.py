"""
Upload transaction pipeline.

A captured page becomes a task in four strictly ordered stages:

1. prepare   - register a resource and obtain a one-time upload URL
2. transfer  - PUT the HTML bytes to that URL (no credentials)
3. confirm   - tell the service the bytes have arrived
4. task      - create the task that references the resource

A task is only created once the resource is confirmed, so a user never sees
a task pointing at a missing attachment. A failure after ``prepare`` leaves
the registered resource orphaned on the server; nothing is rolled back.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any

import httpx
from pydantic import BaseModel

from webclipper.core.api.client import ApiClient
from webclipper.core.capture.models import CapturePayload, UploadResult
from webclipper.core.errors import (
    ApiError,
    AuthError,
    NetworkError,
    UploadError,
    UploadErrorKind,
)

logger = logging.getLogger(__name__)

UPLOAD_PATH = "/resources/upload"
TASK_PATH = "/todolist"
HTML_MIME_TYPE = "text/html"
DEFAULT_TASK_TITLE = "Untitled Page"


class UploadStage(str, Enum):
    """How far an upload transaction got."""

    PENDING = "pending"
    PREPARED = "prepared"
    TRANSFERRED = "transferred"
    CONFIRMED = "confirmed"
    TASK_CREATED = "task_created"


class UploadTransaction(BaseModel):
    """
    State of one upload attempt.

    Anything short of TASK_CREATED is a failed attempt.
    """

    resource_id: str | None = None
    upload_url: str | None = None
    stage: UploadStage = UploadStage.PENDING

    @property
    def committed(self) -> bool:
        return self.stage is UploadStage.TASK_CREATED


def build_task_description(source_url: str | None, markdown: str | None) -> str:
    """
    Compose the task description from the source URL and the Markdown summary.

    Example:
        >>> build_task_description("https://x", "# Title\\nbody")
        'Source: https://x\\n\\n---\\n\\n# Title\\nbody'
        >>> build_task_description("https://x", None)
        'Source: https://x'
        >>> build_task_description(None, None)
        ''
    """
    description = f"Source: {source_url}" if source_url else ""
    if markdown:
        description = f"{description}\n\n---\n\n{markdown}" if description else markdown
    return description


class UploadPipeline:
    """
    Runs the four-stage upload for a captured page.

    Authenticated stages go through the ApiClient (credential attachment and
    renewal); the transfer goes straight to the presigned URL.

    Example:
        >>> pipeline = UploadPipeline(api)
        >>> result = await pipeline.upload(payload, tags=["reading"])
        >>> result.task_id
        '42'
    """

    def __init__(
        self,
        api: ApiClient,
        *,
        http: httpx.AsyncClient | None = None,
        timeout: float = 30.0,
        default_title: str = DEFAULT_TASK_TITLE,
        upload_method: str = "chrome-extension",
    ) -> None:
        self.api = api
        self.default_title = default_title
        self.upload_method = upload_method
        self._owns_http = http is None
        self._http = http or httpx.AsyncClient(timeout=timeout)
        self.last_transaction: UploadTransaction | None = None

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()

    async def upload(self, payload: CapturePayload, tags: list[str] | None = None) -> UploadResult:
        """
        Upload a captured page and create its task.

        Args:
            payload: Captured page
            tags: Tags for the task (sent only when non-empty)

        Returns:
            The created task

        Raises:
            UploadError: Naming the stage that failed
        """
        transaction = UploadTransaction()
        self.last_transaction = transaction

        try:
            await self._prepare(transaction, payload)
            await self._transfer(transaction, payload)
            await self._confirm(transaction)
            result = await self._create_task(transaction, payload, tags)
        finally:
            if transaction.resource_id is not None and not transaction.committed:
                # No rollback endpoint: the resource stays on the server
                logger.warning(
                    "Resource %s left without a task (stage: %s)",
                    transaction.resource_id,
                    transaction.stage.value,
                )
        logger.info("Created task %s (%s)", result.task_id, result.title)
        return result

    async def _call(self, stage: str, path: str, json: Any = None) -> Any:
        try:
            response = await self.api.call(path, "POST", json=json)
        except (AuthError, ApiError, NetworkError) as e:
            raise UploadError(stage, e.message) from e
        try:
            return response.json()
        except ValueError:
            return None

    async def _prepare(self, transaction: UploadTransaction, payload: CapturePayload) -> None:
        body = await self._call(
            "prepare",
            UPLOAD_PATH,
            {
                "originalName": payload.suggested_filename,
                "mimeType": HTML_MIME_TYPE,
                "fileSize": len(payload.html_content),
                "uploadMethod": self.upload_method,
                "path": "/",
            },
        )
        resource = body.get("resource") if isinstance(body, dict) else None
        resource_id = resource.get("id") if isinstance(resource, dict) else None
        upload_url = body.get("uploadUrl") if isinstance(body, dict) else None
        if resource_id is None or not upload_url:
            raise UploadError("prepare", "Malformed response from server")

        transaction.resource_id = str(resource_id)
        transaction.upload_url = str(upload_url)
        transaction.stage = UploadStage.PREPARED
        logger.debug("Prepared resource %s", transaction.resource_id)

    async def _transfer(self, transaction: UploadTransaction, payload: CapturePayload) -> None:
        if not transaction.upload_url:
            raise UploadError(
                "transfer", "No upload URL prepared", kind=UploadErrorKind.TRANSFER_FAILED
            )
        try:
            response = await self._http.put(
                transaction.upload_url,
                content=payload.html_content,
                headers={"Content-Type": HTML_MIME_TYPE},
            )
        except httpx.RequestError as e:
            raise UploadError(
                "transfer", "File upload failed", kind=UploadErrorKind.TRANSFER_FAILED
            ) from NetworkError("Cannot reach server", error=str(e))

        if not response.is_success:
            raise UploadError(
                "transfer",
                "File upload failed",
                kind=UploadErrorKind.TRANSFER_FAILED,
                status=response.status_code,
            )
        transaction.stage = UploadStage.TRANSFERRED
        logger.debug("Transferred %d bytes", len(payload.html_content))

    async def _confirm(self, transaction: UploadTransaction) -> None:
        await self._call("confirm", f"/resources/{transaction.resource_id}/confirm")
        transaction.stage = UploadStage.CONFIRMED

    async def _create_task(
        self,
        transaction: UploadTransaction,
        payload: CapturePayload,
        tags: list[str] | None,
    ) -> UploadResult:
        title = payload.title or self.default_title
        task: dict[str, Any] = {
            "title": title,
            "description": build_task_description(payload.source_url, payload.markdown),
            "status": "todo",
            "resourceIds": [transaction.resource_id],
        }
        if tags:
            task["tags"] = list(tags)

        body = await self._call("task", TASK_PATH, task)
        transaction.stage = UploadStage.TASK_CREATED
        if not isinstance(body, dict):
            body = {}
        task_id = body.get("id")
        return UploadResult(
            task_id="" if task_id is None else str(task_id),
            title=str(body.get("title") or title),
        )


__all__ = [
    "DEFAULT_TASK_TITLE",
    "UploadPipeline",
    "UploadStage",
    "UploadTransaction",
    "build_task_description",
]
