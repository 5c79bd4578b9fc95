"""
Extraction engines that run inside a page context.

Two collaborators turn a loaded page into capture material:

- a snapshot engine serialises the page into self-contained HTML;
- a markdown engine extracts the readable article and converts it to Markdown.

Both are protocols; the defaults here use lxml and trafilatura. Engines
signal failure by raising ExtractionError and are called off the event loop.
"""

from __future__ import annotations

import logging
from typing import Protocol, runtime_checkable

import trafilatura
from lxml import etree
from lxml import html as lxml_html

from webclipper.core.errors import ExtractionError
from webclipper.core.page.models import MarkdownOptions, PageData, PageDocument, SnapshotOptions

logger = logging.getLogger(__name__)

# Elements whose whitespace is significant and must survive compaction
_PRESERVE_WHITESPACE = {"pre", "textarea", "script", "style", "code"}


@runtime_checkable
class SnapshotEngine(Protocol):
    """Serialises a page into a self-contained HTML document."""

    def get_page_data(self, document: PageDocument, options: SnapshotOptions) -> PageData:
        """Return the snapshot or raise ExtractionError."""
        ...


@runtime_checkable
class MarkdownEngine(Protocol):
    """Extracts a page's readable content as Markdown."""

    def extract(self, document: PageDocument, options: MarkdownOptions) -> str:
        """Return Markdown or raise ExtractionError."""
        ...


def parse_html(markup: str) -> lxml_html.HtmlElement:
    """
    Parse a full HTML document.

    Raises:
        ExtractionError: If the markup is empty or unparseable
    """
    if not markup or not markup.strip():
        raise ExtractionError("Page has no content to capture")
    try:
        return lxml_html.document_fromstring(markup)
    except (etree.ParserError, ValueError) as e:
        raise ExtractionError(f"Could not parse page: {e}") from e


def extract_title(markup: str) -> str:
    """Return the document's <title> text, or "" if it has none."""
    try:
        tree = parse_html(markup)
    except ExtractionError:
        return ""
    return (tree.findtext(".//title") or "").strip()


class LxmlSnapshotEngine:
    """
    Snapshot engine built on lxml.

    Honours the removal options (scripts, videos, frames, hidden elements),
    pins relative URLs with a <base> element and compacts whitespace.
    """

    def get_page_data(self, document: PageDocument, options: SnapshotOptions) -> PageData:
        tree = parse_html(document.html)

        selectors: list[str] = []
        if options.block_scripts:
            selectors.append("//script")
        if options.block_videos:
            selectors.append("//video")
        if options.remove_frames:
            selectors.extend(["//iframe", "//frame"])
        if options.remove_hidden_elements:
            selectors.extend(["//body//*[@hidden]", "//body//*[@aria-hidden='true']"])
        if selectors:
            for element in tree.xpath(" | ".join(selectors)):
                element.drop_tree()

        if options.remove_hidden_elements:
            for element in tree.xpath("//body//*[@style]"):
                style = element.get("style", "").replace(" ", "").lower()
                if "display:none" in style or "visibility:hidden" in style:
                    element.drop_tree()

        self._pin_base_url(tree, document.url)
        if options.compress_html:
            self._compact(tree)

        content = lxml_html.tostring(tree, encoding="unicode", doctype="<!DOCTYPE html>")
        title = (tree.findtext(".//title") or document.title or "").strip()
        logger.debug("Snapshot of %s: %d characters", document.url, len(content))
        return PageData(content=content, title=title)

    @staticmethod
    def _pin_base_url(tree: lxml_html.HtmlElement, url: str) -> None:
        heads = tree.xpath("//head")
        if not heads or heads[0].xpath("base"):
            return
        heads[0].insert(0, lxml_html.Element("base", href=url))

    @staticmethod
    def _compact(tree: lxml_html.HtmlElement) -> None:
        for element in tree.iter():
            if not isinstance(element.tag, str):
                continue
            preserved = any(
                ancestor.tag in _PRESERVE_WHITESPACE for ancestor in element.iterancestors()
            )
            if element.tag not in _PRESERVE_WHITESPACE and not preserved:
                if element.text is not None and not element.text.strip():
                    element.text = " " if element.text else None
            if not preserved and element.tail is not None and not element.tail.strip():
                element.tail = " " if element.tail else None


class TrafilaturaMarkdownEngine:
    """
    Markdown engine built on trafilatura's readable-content extraction.

    The article title, when known, is prepended as a level-one heading.
    """

    def extract(self, document: PageDocument, options: MarkdownOptions) -> str:
        try:
            content = trafilatura.extract(
                document.html,
                url=document.url,
                output_format="markdown",
                include_formatting=True,
                include_links=options.include_links,
                include_tables=options.include_tables,
            )
        except (etree.LxmlError, ValueError, TypeError) as e:
            raise ExtractionError(f"Markdown extraction failed: {e}") from e

        if not content or not content.strip():
            logger.debug("trafilatura found no main content in %s", document.url)
            raise ExtractionError("Could not extract readable content from this page")

        title = self._title(document)
        heading = f"# {title}\n\n" if title else ""
        return heading + content.strip()

    @staticmethod
    def _title(document: PageDocument) -> str:
        metadata = trafilatura.extract_metadata(document.html, default_url=document.url)
        if metadata is not None and metadata.title:
            return str(metadata.title).strip()
        return document.title.strip()
