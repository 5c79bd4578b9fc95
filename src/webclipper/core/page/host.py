"""
Page host: opens tabs and injects agents into them.

The host plays the browser's role. It loads a URL into a tab, keeps the
loaded document, and on request injects a page agent carrying one feature.
Browser-internal pages are opened but never loaded, and refuse injection.
"""

from __future__ import annotations

import itertools
import logging
from collections.abc import Iterable
from typing import Protocol

import httpx

from webclipper.core.errors import CaptureRejectedError, ExtractionError, NetworkError
from webclipper.core.messaging.bus import MessageBus
from webclipper.core.page.agent import Feature, PageAgent
from webclipper.core.page.engines import (
    LxmlSnapshotEngine,
    MarkdownEngine,
    SnapshotEngine,
    TrafilaturaMarkdownEngine,
    extract_title,
)
from webclipper.core.page.models import MarkdownOptions, PageDocument, SnapshotOptions, Tab

logger = logging.getLogger(__name__)

DEFAULT_INTERNAL_SCHEMES = ("chrome://", "chrome-extension://")
INTERNAL_PAGE_MESSAGE = "Cannot capture browser internal pages"


def is_internal_url(url: str, schemes: Iterable[str] = DEFAULT_INTERNAL_SCHEMES) -> bool:
    """
    Check whether a URL points at a browser-internal page.

    Example:
        >>> is_internal_url("chrome://settings")
        True
        >>> is_internal_url("https://example.com")
        False
    """
    return any(url.startswith(scheme) for scheme in schemes)


class PageLoader(Protocol):
    """Fetches a page into a document."""

    async def load(self, url: str) -> PageDocument:
        ...


class HttpPageLoader:
    """
    Load pages over HTTP with httpx.

    Redirects are followed; the document keeps the final URL.
    """

    def __init__(self, http: httpx.AsyncClient | None = None, *, timeout: float = 30.0) -> None:
        self._owns_http = http is None
        self._http = http or httpx.AsyncClient(timeout=timeout, follow_redirects=True)

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()

    async def load(self, url: str) -> PageDocument:
        """
        Fetch a page.

        Raises:
            NetworkError: If the page cannot be reached
            ExtractionError: If the server answers with an error status
        """
        try:
            response = await self._http.get(url)
        except httpx.RequestError as e:
            raise NetworkError(f"Cannot load {url}", url=url, error=str(e)) from e
        if not response.is_success:
            raise ExtractionError(f"Page returned HTTP {response.status_code}", url=url)
        markup = response.text
        return PageDocument(url=str(response.url), title=extract_title(markup), html=markup)


class PageHost:
    """
    Registry of open tabs and their injected agents.

    Example:
        >>> host = PageHost(bus)
        >>> tab = host.add_document(PageDocument(url="https://example.com", html="<html>..."))
        >>> host.inject(tab.id, Feature.SNAPSHOT)
    """

    def __init__(
        self,
        bus: MessageBus,
        *,
        loader: PageLoader | None = None,
        snapshot_engine: SnapshotEngine | None = None,
        markdown_engine: MarkdownEngine | None = None,
        snapshot_options: SnapshotOptions | None = None,
        markdown_options: MarkdownOptions | None = None,
        internal_schemes: Iterable[str] = DEFAULT_INTERNAL_SCHEMES,
    ) -> None:
        self.bus = bus
        self.loader = loader
        self.snapshot_engine = snapshot_engine or LxmlSnapshotEngine()
        self.markdown_engine = markdown_engine or TrafilaturaMarkdownEngine()
        self.snapshot_options = snapshot_options or SnapshotOptions()
        self.markdown_options = markdown_options or MarkdownOptions()
        self.internal_schemes = tuple(internal_schemes)
        self._ids = itertools.count(1)
        self._documents: dict[int, PageDocument] = {}
        self._agents: dict[int, PageAgent] = {}

    def add_document(self, document: PageDocument) -> Tab:
        """Open a tab on an already-loaded document."""
        tab_id = next(self._ids)
        self._documents[tab_id] = document
        logger.debug("Opened tab %d on %s", tab_id, document.url)
        return self.get_tab(tab_id)

    async def open_tab(self, url: str) -> Tab:
        """
        Open a tab and load a URL into it.

        Internal pages are opened without loading.

        Raises:
            ValueError: If the URL loads nothing and no loader is configured
            NetworkError: If the page cannot be fetched
        """
        if is_internal_url(url, self.internal_schemes):
            return self.add_document(PageDocument(url=url))
        if self.loader is None:
            raise ValueError("PageHost has no loader configured")
        return self.add_document(await self.loader.load(url))

    def get_tab(self, tab_id: int) -> Tab:
        """
        Look up a tab.

        Raises:
            KeyError: If the tab is not open
        """
        document = self._documents[tab_id]
        return Tab(id=tab_id, url=document.url, title=document.title)

    def tabs(self) -> list[Tab]:
        return [self.get_tab(tab_id) for tab_id in self._documents]

    def inject(self, tab_id: int, feature: Feature) -> PageAgent:
        """
        Inject a feature into a tab, creating its agent on first use.

        Raises:
            KeyError: If the tab is not open
            CaptureRejectedError: If the tab shows an internal page
        """
        document = self._documents[tab_id]
        if is_internal_url(document.url, self.internal_schemes):
            raise CaptureRejectedError(INTERNAL_PAGE_MESSAGE, tab_id=tab_id)
        agent = self._agents.get(tab_id)
        if agent is None:
            agent = PageAgent(
                tab_id,
                document,
                self.bus,
                snapshot_engine=self.snapshot_engine,
                markdown_engine=self.markdown_engine,
                snapshot_options=self.snapshot_options,
                markdown_options=self.markdown_options,
            )
            self._agents[tab_id] = agent
        agent.install(feature)
        return agent

    def close_tab(self, tab_id: int) -> None:
        """Close a tab, tearing down its agent."""
        agent = self._agents.pop(tab_id, None)
        if agent is not None:
            agent.close()
        self._documents.pop(tab_id, None)
        self.bus.close_tab(tab_id)
