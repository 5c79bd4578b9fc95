"""Tests for the coordinator's runtime-channel protocol."""

import asyncio
import threading

import pytest

from webclipper.core.capture import BUSY_MESSAGE, CapturePhase, read_status
from webclipper.core.coordinator import Runtime
from webclipper.core.messaging import SURFACE, page_sender
from webclipper.core.page import Feature, PageDocument
from webclipper.core.session import AuthMode, SessionStore
from webclipper.core.storage import MemoryStore
from webclipper.core.surface import ControlSurface, RenderedView, View

from conftest import API_URL, FakeTaskService, StubSnapshotEngine, open_page


async def send(runtime: Runtime, message: dict) -> dict | None:
    return await runtime.bus.send_message(message, SURFACE)


class TestAuthMessages:
    """Tests for login, logout and the ignored senders."""

    @pytest.mark.asyncio
    async def test_login(
        self, runtime: Runtime, service: FakeTaskService, store: MemoryStore
    ) -> None:
        service.on(
            "POST",
            "/auth/v2/login",
            json_body={"accessToken": "a1", "refreshToken": "r1", "userName": "Alice"},
        )

        reply = await send(
            runtime,
            {"action": "login", "apiUrl": API_URL, "username": "alice", "password": "pw"},
        )

        assert reply == {"success": True, "userName": "Alice"}
        session = runtime.sessions.read()
        assert session.auth_mode is AuthMode.LOGIN_TOKEN
        assert session.credential == "a1"

    @pytest.mark.asyncio
    async def test_login_rejected(self, runtime: Runtime, service: FakeTaskService) -> None:
        service.on("POST", "/auth/v2/login", 401)

        reply = await send(
            runtime,
            {"action": "login", "apiUrl": API_URL, "username": "alice", "password": "bad"},
        )

        assert reply == {"success": False, "error": "Invalid username or password"}
        assert not runtime.sessions.read().is_authenticated

    @pytest.mark.asyncio
    async def test_login_unreachable(self, runtime: Runtime, service: FakeTaskService) -> None:
        service.fail_connect("POST", "/auth/v2/login")

        reply = await send(
            runtime, {"action": "login", "username": "alice", "password": "pw"}
        )

        assert reply == {"success": False, "error": "Cannot reach server"}

    @pytest.mark.asyncio
    async def test_logout(
        self, login_session: SessionStore, runtime: Runtime, store: MemoryStore
    ) -> None:
        store.set({"capture_status": "success", "capture_title": "Docs"})

        assert await send(runtime, {"action": "logout"}) == {"success": True}

        assert store.get() == {"api_url": API_URL}

    @pytest.mark.asyncio
    async def test_page_senders_are_ignored(
        self, login_session: SessionStore, runtime: Runtime
    ) -> None:
        """Test that a page cannot drive the coordinator."""
        reply = await runtime.bus.send_message({"action": "logout"}, page_sender(1))

        assert reply is None
        assert runtime.sessions.read().is_authenticated

    @pytest.mark.asyncio
    async def test_unknown_action(self, runtime: Runtime) -> None:
        assert await send(runtime, {"action": "dance"}) is None


class TestCaptureMessages:
    """Tests for the capture message in both reply modes."""

    @pytest.mark.asyncio
    async def test_capture_started(
        self,
        api_key_session: SessionStore,
        runtime: Runtime,
        service: FakeTaskService,
        store: MemoryStore,
    ) -> None:
        service.happy_upload()
        tab_id = open_page(runtime)

        reply = await send(runtime, {"action": "capture", "targetId": tab_id})
        assert reply == {"started": True}

        await runtime.coordinator.capture_task
        assert read_status(store).phase is CapturePhase.SUCCESS

    @pytest.mark.asyncio
    async def test_capture_wait(
        self, api_key_session: SessionStore, runtime: Runtime, service: FakeTaskService
    ) -> None:
        service.happy_upload(task_id=42, title="Example Article")
        tab_id = open_page(runtime)

        reply = await send(
            runtime, {"action": "capture", "targetId": tab_id, "wait": True, "tags": ["x"]}
        )

        assert reply == {"success": True, "taskId": "42", "title": "Example Article"}

    @pytest.mark.asyncio
    async def test_capture_wait_failure(
        self, api_key_session: SessionStore, runtime: Runtime
    ) -> None:
        tab = runtime.host.add_document(PageDocument(url="chrome://settings"))

        reply = await send(runtime, {"action": "capture", "targetId": tab.id, "wait": True})

        assert reply == {"success": False, "error": "Cannot capture browser internal pages"}

    @pytest.mark.asyncio
    async def test_capture_without_target(self, runtime: Runtime) -> None:
        reply = await send(runtime, {"action": "capture"})

        assert reply == {"started": False, "error": "No active tab"}
        assert runtime.coordinator.capture_task is None


class TestSettingsMessages:
    """Tests for API key connection checks and saving settings."""

    @pytest.mark.asyncio
    async def test_test_connection(self, runtime: Runtime, service: FakeTaskService) -> None:
        service.on("GET", "/auth/profile", json_body={"username": "bob"})

        reply = await send(
            runtime, {"action": "testConnection", "apiUrl": API_URL, "apiKey": "ak_1"}
        )

        assert reply == {"success": True, "message": "Connected as bob", "userName": "bob"}
        assert runtime.sessions.read().api_key is None

    @pytest.mark.asyncio
    async def test_test_connection_bad_prefix(
        self, runtime: Runtime, service: FakeTaskService
    ) -> None:
        reply = await send(
            runtime, {"action": "testConnection", "apiUrl": API_URL, "apiKey": "sk_1"}
        )

        assert reply == {"success": False, "error": "API key must start with 'ak_'"}
        assert service.requests == []

    @pytest.mark.asyncio
    async def test_save_settings_switches_to_api_key(
        self, login_session: SessionStore, runtime: Runtime, service: FakeTaskService
    ) -> None:
        service.on("GET", "/auth/profile", json_body={"username": "bob"})

        reply = await send(
            runtime,
            {"action": "saveSettings", "apiUrl": "http://other.test/", "apiKey": "ak_new"},
        )

        assert reply == {"success": True, "message": "Connected as bob"}
        session = runtime.sessions.read()
        assert session.api_url == "http://other.test"
        assert session.auth_mode is AuthMode.API_KEY
        assert session.credential == "ak_new"
        assert session.user_label == "bob"
        assert session.access_token is None
        assert session.refresh_token is None

    @pytest.mark.asyncio
    async def test_save_settings_keeps_session_on_invalid_key(
        self, login_session: SessionStore, runtime: Runtime, service: FakeTaskService
    ) -> None:
        """Test that a rejected key is never stored."""
        service.on("GET", "/auth/profile", 401)

        reply = await send(
            runtime, {"action": "saveSettings", "apiUrl": API_URL, "apiKey": "ak_bad"}
        )

        assert reply == {"success": False, "error": "Invalid API key"}
        session = runtime.sessions.read()
        assert session.auth_mode is AuthMode.LOGIN_TOKEN
        assert session.api_key is None
        assert session.credential == "old-access"

    @pytest.mark.asyncio
    async def test_save_settings_url_only(
        self, login_session: SessionStore, runtime: Runtime, service: FakeTaskService
    ) -> None:
        reply = await send(runtime, {"action": "saveSettings", "apiUrl": "http://other.test"})

        assert reply == {"success": True, "message": "Saved"}
        assert runtime.sessions.read().api_url == "http://other.test"
        assert runtime.sessions.read().auth_mode is AuthMode.LOGIN_TOKEN
        assert service.requests == []

    @pytest.mark.asyncio
    async def test_save_settings_requires_url(self, runtime: Runtime) -> None:
        reply = await send(runtime, {"action": "saveSettings", "apiUrl": "  "})

        assert reply == {"success": False, "error": "API URL is required"}
        assert runtime.sessions.read().api_url == API_URL

    @pytest.mark.asyncio
    async def test_save_settings_trims_url(self, runtime: Runtime) -> None:
        reply = await send(
            runtime, {"action": "saveSettings", "apiUrl": "  http://other.test/ "}
        )

        assert reply == {"success": True, "message": "Saved"}
        assert runtime.sessions.read().api_url == "http://other.test"


class TestSurfaceRoundTrip:
    """Tests for the control surface talking to a live coordinator."""

    @pytest.mark.asyncio
    async def test_capture_and_close(
        self,
        api_key_session: SessionStore,
        runtime: Runtime,
        service: FakeTaskService,
        store: MemoryStore,
    ) -> None:
        service.happy_upload(title="Example Article")
        closes: list[bool] = []
        views: list[RenderedView] = []
        surface = ControlSurface(
            runtime.bus,
            store,
            on_close=lambda: closes.append(True),
            on_render=views.append,
            success_close_delay=0.01,
        )
        surface.watch()
        tab = runtime.host.get_tab(open_page(runtime))

        view = await surface.capture(tab)
        assert view == RenderedView(view=View.SAVING, text="Saving page...")
        await runtime.coordinator.capture_task
        await asyncio.sleep(0.05)

        assert [v.view for v in views] == [View.SAVING, View.SUCCESS]
        assert views[-1].text == "Saved: Example Article"
        assert closes == [True]

    @pytest.mark.asyncio
    async def test_login_and_settings(
        self, runtime: Runtime, service: FakeTaskService, store: MemoryStore
    ) -> None:
        service.on(
            "POST",
            "/auth/v2/login",
            json_body={"accessToken": "a1", "refreshToken": "r1", "userName": "Alice"},
        )
        service.on("GET", "/auth/profile", 401)
        surface = ControlSurface(runtime.bus, store)

        logged_in = await surface.login(API_URL, "alice", "pw")
        saved, settings = await surface.save_settings(API_URL, "ak_bad")
        logged_out = await surface.logout()

        assert logged_in == RenderedView(view=View.READY, text="Logged in as Alice")
        assert saved is False
        assert settings == RenderedView(view=View.SETTINGS, text="Invalid API key")
        assert logged_out.view is View.LOGIN
        assert not runtime.sessions.read().is_authenticated


class TestInFlightCapture:
    """Tests with a capture held open until released."""

    @pytest.fixture
    def release(self) -> threading.Event:
        return threading.Event()

    @pytest.fixture
    def snapshot_engine(self, release: threading.Event) -> StubSnapshotEngine:
        return StubSnapshotEngine(release=release)

    @pytest.mark.asyncio
    async def test_second_capture_is_busy(
        self,
        api_key_session: SessionStore,
        runtime: Runtime,
        service: FakeTaskService,
        release: threading.Event,
    ) -> None:
        service.happy_upload()
        tab_id = open_page(runtime)

        assert await send(runtime, {"action": "capture", "targetId": tab_id}) == {
            "started": True
        }
        reply = await send(runtime, {"action": "capture", "targetId": tab_id})

        assert reply == {"started": False, "error": BUSY_MESSAGE}
        release.set()
        await runtime.coordinator.capture_task
        assert len(service.calls("POST", "/todolist")) == 1

    @pytest.mark.asyncio
    async def test_aclose_cancels_capture(
        self,
        api_key_session: SessionStore,
        runtime: Runtime,
        store: MemoryStore,
        release: threading.Event,
    ) -> None:
        tab_id = open_page(runtime)
        await send(runtime, {"action": "capture", "targetId": tab_id})
        await asyncio.sleep(0.05)

        await runtime.coordinator.aclose()

        assert runtime.coordinator.capture_task.cancelled()
        assert read_status(store).error_message == "Capture cancelled"
        assert runtime.bus.listener_count == 0

        release.set()
        agent = runtime.host.inject(tab_id, Feature.SNAPSHOT)
        await asyncio.gather(*agent._tasks, return_exceptions=True)
