"""
Page agent: the code injected into a tab.

An agent owns one loaded document. Features are installed on demand:

- ``markdown`` answers ``extractMarkdown`` with a synchronous reply;
- ``snapshot`` answers ``startCapture`` with nothing and later reports the
  outcome as a separate ``captureComplete`` or ``captureError`` message on
  the runtime channel.

Installing a feature twice leaves a single listener in place.
"""

from __future__ import annotations

import asyncio
import logging
import re
from datetime import datetime, timezone
from enum import Enum

from webclipper.core.errors import ExtractionError
from webclipper.core.messaging.bus import Message, MessageBus, Sender, page_sender
from webclipper.core.page.engines import MarkdownEngine, SnapshotEngine
from webclipper.core.page.models import MarkdownOptions, PageDocument, SnapshotOptions

logger = logging.getLogger(__name__)

_UNSAFE_FILENAME_CHARS = re.compile(r"[^a-zA-Z0-9\u4e00-\u9fff\s_-]")
MAX_FILENAME_STEM = 100


class Feature(str, Enum):
    """Injectable page features."""

    MARKDOWN = "markdown"
    SNAPSHOT = "snapshot"


def build_snapshot_filename(title: str, now: datetime | None = None) -> str:
    """
    Build the upload filename for a snapshot.

    Characters outside letters, digits, CJK ideographs, whitespace, ``_`` and
    ``-`` become ``_``; the stem is capped at 100 characters and suffixed with
    a second-resolution UTC timestamp.

    Example:
        >>> build_snapshot_filename("A/B: c", datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc))
        'A_B_ c_2024-01-02T03-04-05.html'
    """
    stem = _UNSAFE_FILENAME_CHARS.sub("_", title or "Untitled")[:MAX_FILENAME_STEM]
    stamp = (now or datetime.now(timezone.utc)).strftime("%Y-%m-%dT%H-%M-%S")
    return f"{stem}_{stamp}.html"


class PageAgent:
    """
    Agent living inside one tab.

    Attributes:
        tab_id: Tab the agent is injected into
        document: The page it operates on
    """

    def __init__(
        self,
        tab_id: int,
        document: PageDocument,
        bus: MessageBus,
        *,
        snapshot_engine: SnapshotEngine,
        markdown_engine: MarkdownEngine,
        snapshot_options: SnapshotOptions | None = None,
        markdown_options: MarkdownOptions | None = None,
    ) -> None:
        self.tab_id = tab_id
        self.document = document
        self.bus = bus
        self.snapshot_engine = snapshot_engine
        self.markdown_engine = markdown_engine
        self.snapshot_options = snapshot_options or SnapshotOptions()
        self.markdown_options = markdown_options or MarkdownOptions()
        self._installed: set[Feature] = set()
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def installed(self) -> frozenset[Feature]:
        return frozenset(self._installed)

    @property
    def sender(self) -> Sender:
        return page_sender(self.tab_id)

    def install(self, feature: Feature) -> None:
        """Install a feature's listener; a no-op if it is already installed."""
        if feature in self._installed:
            return
        listener = self._on_markdown if feature is Feature.MARKDOWN else self._on_start_capture
        self.bus.add_tab_listener(self.tab_id, listener)
        self._installed.add(feature)
        logger.debug("Installed %s agent in tab %d", feature.value, self.tab_id)

    def close(self) -> None:
        """Remove listeners and cancel any capture still running."""
        self.bus.remove_tab_listener(self.tab_id, self._on_markdown)
        self.bus.remove_tab_listener(self.tab_id, self._on_start_capture)
        self._installed.clear()
        for task in list(self._tasks):
            task.cancel()

    async def _on_markdown(self, message: Message, sender: Sender) -> Message | None:
        if message.get("action") != "extractMarkdown":
            return None
        try:
            markdown = await asyncio.to_thread(
                self.markdown_engine.extract, self.document, self.markdown_options
            )
        except ExtractionError as e:
            return {"success": False, "error": e.message or "Markdown extraction failed"}
        except Exception as e:
            logger.exception("Markdown engine crashed in tab %d", self.tab_id)
            return {"success": False, "error": str(e) or "Markdown extraction failed"}
        return {"success": True, "markdown": markdown}

    def _on_start_capture(self, message: Message, sender: Sender) -> None:
        if message.get("action") != "startCapture":
            return None
        task = asyncio.get_running_loop().create_task(self._capture())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return None

    async def _capture(self) -> None:
        try:
            data = await asyncio.to_thread(
                self.snapshot_engine.get_page_data, self.document, self.snapshot_options
            )
        except Exception as e:
            # Every failure inside the page is reported back as a signal
            if not isinstance(e, ExtractionError):
                logger.exception("Snapshot engine crashed in tab %d", self.tab_id)
            error = e.message if isinstance(e, ExtractionError) else str(e)
            await self.bus.send_message(
                {"action": "captureError", "error": error or "Capture failed"}, self.sender
            )
            return

        title = self.document.title or data.title or "Untitled"
        await self.bus.send_message(
            {
                "action": "captureComplete",
                "title": title,
                "url": self.document.url,
                "html": data.content,
                "filename": build_snapshot_filename(title),
            },
            self.sender,
        )
