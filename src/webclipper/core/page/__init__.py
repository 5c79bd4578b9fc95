"""
Page contexts: tabs, injected agents and the extraction engines they run.
"""

from webclipper.core.page.agent import Feature, PageAgent, build_snapshot_filename
from webclipper.core.page.engines import (
    LxmlSnapshotEngine,
    MarkdownEngine,
    SnapshotEngine,
    TrafilaturaMarkdownEngine,
)
from webclipper.core.page.host import (
    INTERNAL_PAGE_MESSAGE,
    HttpPageLoader,
    PageHost,
    PageLoader,
    is_internal_url,
)
from webclipper.core.page.models import (
    MarkdownOptions,
    PageData,
    PageDocument,
    SnapshotOptions,
    Tab,
)

__all__ = [
    "INTERNAL_PAGE_MESSAGE",
    "Feature",
    "HttpPageLoader",
    "LxmlSnapshotEngine",
    "MarkdownEngine",
    "MarkdownOptions",
    "PageAgent",
    "PageData",
    "PageDocument",
    "PageHost",
    "PageLoader",
    "SnapshotEngine",
    "SnapshotOptions",
    "Tab",
    "TrafilaturaMarkdownEngine",
    "build_snapshot_filename",
    "is_internal_url",
]
