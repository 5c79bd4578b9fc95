"""
Capture orchestrator.

Runs one capture attempt end to end on the coordinator side:

1. resolve the tab and reject browser-internal pages
2. publish ``saving``
3. ask the page for a Markdown summary (soft: failure only degrades)
4. inject the snapshot agent, send ``startCapture`` and wait for the
   page's completion signal, bounded by the capture timeout (hard: failure
   aborts the attempt)
5. upload the snapshot and create the task
6. publish ``success`` or ``error``

``run_capture`` never raises: every failure ends as one ``error`` status
write, so the persisted status is consistent whatever happens.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable

from webclipper.core.capture.models import CapturePayload, CaptureRequest, StepResult, UploadResult
from webclipper.core.capture.status import StatusPublisher
from webclipper.core.capture.upload import UploadPipeline
from webclipper.core.errors import CaptureRejectedError, ClipperError, describe_error
from webclipper.core.messaging.bus import Message, MessageBus
from webclipper.core.messaging.waiter import SignalWaiter
from webclipper.core.page.agent import Feature, build_snapshot_filename
from webclipper.core.page.host import (
    DEFAULT_INTERNAL_SCHEMES,
    INTERNAL_PAGE_MESSAGE,
    PageHost,
    is_internal_url,
)
from webclipper.core.page.models import Tab

logger = logging.getLogger(__name__)

BUSY_MESSAGE = "A capture is already in progress"
TAB_CLOSED_MESSAGE = "Tab is no longer open"


class CaptureOrchestrator:
    """
    Drives capture attempts, one at a time.

    Attributes:
        timeout: Seconds to wait for the page's capture signal
        last_outcome: Result of the most recent attempt (UploadResult on
            success, the user-facing error message on failure)
    """

    def __init__(
        self,
        bus: MessageBus,
        host: PageHost,
        pipeline: UploadPipeline,
        publisher: StatusPublisher,
        *,
        timeout: float = 120.0,
        internal_schemes: Iterable[str] = DEFAULT_INTERNAL_SCHEMES,
        extract_markdown: bool = True,
    ) -> None:
        self.bus = bus
        self.host = host
        self.pipeline = pipeline
        self.publisher = publisher
        self.timeout = timeout
        self.internal_schemes = tuple(internal_schemes)
        self.extract_markdown = extract_markdown
        self.last_outcome: UploadResult | str | None = None
        self._busy = False

    @property
    def is_busy(self) -> bool:
        """Whether an attempt is in flight."""
        return self._busy

    async def run_capture(self, request: CaptureRequest) -> None:
        """
        Run one capture attempt.

        A call made while another attempt is in flight is ignored (the
        coordinator rejects such requests before they get here).

        Args:
            request: Tab to capture, optional title override and tags
        """
        if self._busy:
            logger.warning("Ignoring capture of tab %d: %s", request.target_id, BUSY_MESSAGE)
            return

        self._busy = True
        self.last_outcome = None
        try:
            await self._attempt(request)
        finally:
            self._busy = False

    async def _attempt(self, request: CaptureRequest) -> None:
        try:
            tab = self._resolve_tab(request.target_id)
        except CaptureRejectedError as e:
            logger.info("Capture rejected: %s", e.message)
            self._finish_error(e.message)
            return

        self.publisher.begin()
        try:
            outcome = await self._capture(tab, request)
        except asyncio.CancelledError:
            self._finish_error("Capture cancelled")
            raise
        except ClipperError as e:
            logger.warning("Capture of tab %d failed: %s", tab.id, e)
            self._finish_error(describe_error(e))
            return
        except Exception as e:
            logger.exception("Unexpected error capturing tab %d", tab.id)
            self._finish_error(describe_error(e))
            return

        if not outcome.ok:
            self._finish_error(outcome.error or "Capture failed")
            return
        self.publisher.succeed(outcome.value.title)
        self.last_outcome = outcome.value

    def _finish_error(self, message: str) -> None:
        self.publisher.fail(message)
        self.last_outcome = message

    def _resolve_tab(self, tab_id: int) -> Tab:
        try:
            tab = self.host.get_tab(tab_id)
        except KeyError:
            raise CaptureRejectedError("No active tab", tab_id=tab_id) from None
        if is_internal_url(tab.url, self.internal_schemes):
            raise CaptureRejectedError(INTERNAL_PAGE_MESSAGE, tab_id=tab_id, url=tab.url)
        return tab

    async def _capture(self, tab: Tab, request: CaptureRequest) -> StepResult:
        markdown = StepResult.success(None)
        if self.extract_markdown:
            markdown = await self._extract_markdown(tab.id)

        snapshot = await self._snapshot(tab.id)
        if snapshot.fatal:
            return snapshot

        signal: Message = snapshot.value
        title = request.custom_title or signal.get("title") or tab.title
        payload = CapturePayload(
            title=title,
            source_url=signal.get("url") or tab.url,
            html_content=str(signal.get("html") or "").encode("utf-8"),
            suggested_filename=signal.get("filename") or build_snapshot_filename(title),
            markdown=markdown.value if markdown.ok else None,
        )
        result = await self.pipeline.upload(payload, tags=request.tags or None)
        return StepResult.success(result)

    async def _extract_markdown(self, tab_id: int) -> StepResult:
        try:
            self.host.inject(tab_id, Feature.MARKDOWN)
            reply = await asyncio.wait_for(
                self.bus.send_to_tab(tab_id, {"action": "extractMarkdown"}),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            step = StepResult.soft_failure("Markdown extraction timed out")
        except KeyError:
            step = StepResult.soft_failure(TAB_CLOSED_MESSAGE)
        except ClipperError as e:
            step = StepResult.soft_failure(e.message)
        except Exception as e:
            logger.debug("Markdown step for tab %d raised", tab_id, exc_info=True)
            step = StepResult.soft_failure(describe_error(e))
        else:
            if reply and reply.get("success"):
                return StepResult.success(reply.get("markdown") or None)
            step = StepResult.soft_failure((reply or {}).get("error") or "No reply from page")

        logger.warning("Continuing without Markdown for tab %d: %s", tab_id, step.error)
        return step

    async def _snapshot(self, tab_id: int) -> StepResult:
        try:
            self.host.inject(tab_id, Feature.SNAPSHOT)
            async with SignalWaiter(self.bus, tab_id, timeout=self.timeout) as waiter:
                try:
                    await self.bus.send_to_tab(tab_id, {"action": "startCapture"})
                except ClipperError as e:
                    waiter.fail(e)
                signal = await waiter.wait()
        except KeyError:
            return StepResult.hard_failure(TAB_CLOSED_MESSAGE)
        except ClipperError as e:
            logger.warning("Snapshot of tab %d failed: %s", tab_id, e)
            return StepResult.hard_failure(describe_error(e))
        return StepResult.success(signal)


__all__ = ["BUSY_MESSAGE", "TAB_CLOSED_MESSAGE", "CaptureOrchestrator"]
