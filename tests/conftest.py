"""
Pytest configuration and shared fixtures.

Provides an in-memory store, a session store, a fake task service served
through httpx.MockTransport, stub extraction engines and a fully wired
runtime used across the test suite.
"""

from __future__ import annotations

import json
import threading
from collections.abc import Callable
from typing import Any

import httpx
import pytest
import pytest_asyncio

from webclipper.core.api.client import ApiClient
from webclipper.core.config import loader
from webclipper.core.config.models import ClipperConfig
from webclipper.core.coordinator import Runtime, build_coordinator
from webclipper.core.errors import ExtractionError
from webclipper.core.page.host import PageHost
from webclipper.core.page.models import MarkdownOptions, PageData, PageDocument, SnapshotOptions
from webclipper.core.session.models import AuthMode
from webclipper.core.session.store import SessionStore
from webclipper.core.storage.memory import MemoryStore

API_URL = "http://api.test"
UPLOAD_URL = "http://storage.test/upload/res-1"

Responder = Callable[[httpx.Request], httpx.Response]

# ==============================================================================
# Fake task service
# ==============================================================================


class FakeTaskService:
    """
    Scriptable stand-in for the remote task service.

    Routes are keyed by (method, path). Each route holds a queue of
    responders; the last one repeats once the others are used up.
    """

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self._routes: dict[tuple[str, str], list[Responder]] = {}

    def on(
        self,
        method: str,
        path: str,
        status: int = 200,
        json_body: Any = None,
        responder: Responder | None = None,
    ) -> FakeTaskService:
        """Queue a response for a route (a fresh httpx.Response per request)."""
        if responder is None:

            def responder(request: httpx.Request) -> httpx.Response:
                if json_body is None:
                    return httpx.Response(status)
                return httpx.Response(status, json=json_body)

        self._routes.setdefault((method.upper(), path), []).append(responder)
        return self

    def fail_connect(self, method: str, path: str) -> FakeTaskService:
        """Make a route raise a transport error."""

        def responder(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        return self.on(method, path, responder=responder)

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        queue = self._routes.get((request.method, request.url.path))
        if not queue:
            return httpx.Response(404, json={"message": f"No route {request.url.path}"})
        responder = queue.pop(0) if len(queue) > 1 else queue[0]
        return responder(request)

    def calls(self, method: str, path: str) -> list[httpx.Request]:
        return [
            r for r in self.requests if r.method == method.upper() and r.url.path == path
        ]

    def paths(self) -> list[str]:
        return [f"{r.method} {r.url.path}" for r in self.requests]

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handle))

    def happy_upload(self, task_id: int = 42, title: str = "Example Article") -> FakeTaskService:
        """Script a full successful upload transaction."""
        self.on(
            "POST",
            "/resources/upload",
            json_body={"resource": {"id": "res-1"}, "uploadUrl": UPLOAD_URL},
        )
        self.on("PUT", "/upload/res-1", 200)
        self.on("POST", "/resources/res-1/confirm", json_body={"ok": True})
        self.on("POST", "/todolist", 201, json_body={"id": task_id, "title": title})
        return self


def request_json(request: httpx.Request) -> Any:
    return json.loads(request.content)


# ==============================================================================
# Stub extraction engines
# ==============================================================================


class StubSnapshotEngine:
    """Snapshot engine returning canned HTML, optionally blocking until released."""

    def __init__(
        self,
        content: str = "<html><body>snapshot</body></html>",
        error: Exception | None = None,
        release: threading.Event | None = None,
    ) -> None:
        self.content = content
        self.error = error
        self.release = release
        self.calls = 0

    def get_page_data(self, document: PageDocument, options: SnapshotOptions) -> PageData:
        self.calls += 1
        if self.release is not None:
            self.release.wait(5)
        if self.error is not None:
            raise self.error
        return PageData(content=self.content, title=document.title)


class StubMarkdownEngine:
    """Markdown engine returning canned Markdown or failing."""

    def __init__(
        self,
        markdown: str = "# Example Article\n\nBody text",
        fail: bool = False,
        error: Exception | None = None,
    ) -> None:
        self.markdown = markdown
        self.fail = fail
        self.error = error
        self.calls = 0

    def extract(self, document: PageDocument, options: MarkdownOptions) -> str:
        self.calls += 1
        if self.error is not None:
            raise self.error
        if self.fail:
            raise ExtractionError("Could not extract readable content from this page")
        return self.markdown


# ==============================================================================
# Fixtures
# ==============================================================================


@pytest.fixture(autouse=True)
def clear_config_cache():
    """Config is cached per process; start every test from a clean slate."""
    loader.clear_cache()
    yield
    loader.clear_cache()


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def sessions(store: MemoryStore) -> SessionStore:
    return SessionStore(store, default_api_url=API_URL)


@pytest.fixture
def api_key_session(sessions: SessionStore) -> SessionStore:
    """Session authenticated with an API key."""
    sessions.update(
        api_url=API_URL, auth_mode=AuthMode.API_KEY, api_key="ak_test", user_label="bob"
    )
    return sessions


@pytest.fixture
def login_session(sessions: SessionStore) -> SessionStore:
    """Session authenticated with a login token pair."""
    sessions.update(
        api_url=API_URL,
        auth_mode=AuthMode.LOGIN_TOKEN,
        access_token="old-access",
        refresh_token="refresh-1",
        user_label="alice",
    )
    return sessions


@pytest.fixture
def service() -> FakeTaskService:
    return FakeTaskService()


@pytest_asyncio.fixture
async def api(sessions: SessionStore, service: FakeTaskService):
    http = service.client()
    yield ApiClient(sessions, http=http)
    await http.aclose()


@pytest.fixture
def article_html() -> str:
    paragraphs = "".join(
        f"<p>Paragraph {i} explains how snapshots keep pages readable long after "
        f"the original site has changed or disappeared from the web.</p>"
        for i in range(1, 7)
    )
    return (
        "<!DOCTYPE html><html><head><title>Example Article</title>"
        "<script>track()</script></head>"
        f"<body><article><h1>Example Article</h1>{paragraphs}</article>"
        "<video src='clip.mp4'></video>"
        "<div hidden>secret</div><div style='display: none'>gone</div>"
        "</body></html>"
    )


@pytest.fixture
def config() -> ClipperConfig:
    config = ClipperConfig()
    config.api.default_url = API_URL
    config.capture.timeout_seconds = 2.0
    return config


@pytest.fixture
def snapshot_engine() -> StubSnapshotEngine:
    return StubSnapshotEngine()


@pytest.fixture
def markdown_engine() -> StubMarkdownEngine:
    return StubMarkdownEngine()


@pytest_asyncio.fixture
async def runtime(
    config: ClipperConfig,
    store: MemoryStore,
    service: FakeTaskService,
    snapshot_engine: StubSnapshotEngine,
    markdown_engine: StubMarkdownEngine,
):
    """Coordinator and collaborators wired against the fake service."""
    rt = build_runtime(config, store, service, snapshot_engine, markdown_engine)
    yield rt
    await rt.coordinator.aclose()


def build_runtime(
    config: ClipperConfig,
    store: MemoryStore,
    service: FakeTaskService,
    snapshot_engine: Any,
    markdown_engine: Any,
) -> Runtime:
    from webclipper.core.capture.upload import UploadPipeline
    from webclipper.core.messaging.bus import MessageBus
    from webclipper.core.page.host import HttpPageLoader

    bus = MessageBus()
    sessions = SessionStore(store, default_api_url=config.api.default_url)
    api = ApiClient(sessions, http=service.client())
    host = PageHost(
        bus,
        loader=HttpPageLoader(service.client()),
        snapshot_engine=snapshot_engine,
        markdown_engine=markdown_engine,
    )
    pipeline = UploadPipeline(api, http=service.client())
    return build_coordinator(
        config,
        store,
        bus=bus,
        api=api,
        host=host,
        pipeline=pipeline,
        loader=host.loader,
    )


def open_page(
    runtime: Runtime,
    url: str = "https://example.com/article",
    title: str = "Example Article",
) -> int:
    """Open a tab on a canned document and return its id."""
    html = f"<html><head><title>{title}</title></head><body>x</body></html>"
    tab = runtime.host.add_document(PageDocument(url=url, title=title, html=html))
    return tab.id
