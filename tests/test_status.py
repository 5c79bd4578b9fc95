"""Tests for the capture status publisher, observer and surface rendering."""

import asyncio
from unittest.mock import Mock

import pytest

from webclipper.core.capture import (
    CapturePhase,
    CaptureStatus,
    StatusObserver,
    StatusPublisher,
    read_status,
)
from webclipper.core.errors import InvalidTransitionError
from webclipper.core.messaging import MessageBus
from webclipper.core.page import Tab
from webclipper.core.session import AuthMode, Session
from webclipper.core.storage import MemoryStore
from webclipper.core.surface import NO_REPLY, ControlSurface, RenderedView, View

from conftest import API_URL


class TestStatusPublisher:
    """Tests for status transitions."""

    def test_fresh_store_is_idle(self, store: MemoryStore) -> None:
        assert read_status(store) == CaptureStatus()

    def test_begin_clears_previous_outcome(self, store: MemoryStore) -> None:
        store.set({"capture_status": "error", "capture_error": "old", "capture_title": "x"})
        publisher = StatusPublisher(store)

        publisher.begin()

        assert store.get(["capture_status", "capture_title", "capture_error"]) == {
            "capture_status": "saving"
        }
        assert publisher.in_attempt

    def test_begin_is_a_single_change(self, store: MemoryStore) -> None:
        """Test that observers never see the stale error next to saving."""
        store.set({"capture_status": "error", "capture_error": "old"})
        seen: list = []
        store.add_listener(lambda changes: seen.append(read_status(store)))

        StatusPublisher(store).begin()

        assert seen == [CaptureStatus(phase=CapturePhase.SAVING)]

    def test_success(self, store: MemoryStore) -> None:
        publisher = StatusPublisher(store)
        publisher.begin()

        publisher.succeed("Docs")

        assert publisher.current() == CaptureStatus(phase=CapturePhase.SUCCESS, title="Docs")
        assert not publisher.in_attempt

    def test_failure_drops_title(self, store: MemoryStore) -> None:
        publisher = StatusPublisher(store)
        publisher.begin()

        publisher.fail("Capture timed out")

        status = publisher.current()
        assert status.phase is CapturePhase.ERROR
        assert status.error_message == "Capture timed out"
        assert status.title is None

    def test_rejection_without_attempt(self, store: MemoryStore) -> None:
        """Test that a rejected request goes straight to error."""
        StatusPublisher(store).fail("Cannot capture browser internal pages")

        assert read_status(store).phase is CapturePhase.ERROR

    def test_invalid_transitions(self, store: MemoryStore) -> None:
        publisher = StatusPublisher(store)

        with pytest.raises(InvalidTransitionError):
            publisher.succeed("x")

        publisher.begin()
        with pytest.raises(InvalidTransitionError):
            publisher.begin()
        with pytest.raises(InvalidTransitionError):
            publisher.reset()

    def test_reset_returns_to_idle(self, store: MemoryStore) -> None:
        publisher = StatusPublisher(store)
        publisher.begin()
        publisher.succeed("Docs")

        publisher.reset()

        assert read_status(store).phase is CapturePhase.IDLE


class TestStatusObserver:
    """Tests for forwarding store changes to a renderer."""

    def test_renders_capture_changes_only(self, store: MemoryStore) -> None:
        rendered: list[CaptureStatus] = []
        publisher = StatusPublisher(store)

        with StatusObserver(store, rendered.append):
            store.set({"api_url": "https://other.test"})
            publisher.begin()
            publisher.succeed("Docs")

        publisher.reset()

        assert [s.phase for s in rendered] == [CapturePhase.SAVING, CapturePhase.SUCCESS]
        assert rendered[-1].title == "Docs"

    def test_stop_is_idempotent(self, store: MemoryStore) -> None:
        render = Mock()
        observer = StatusObserver(store, render)
        observer.start()
        observer.start()
        StatusPublisher(store).fail("x")
        observer.stop()
        observer.stop()

        StatusPublisher(store).fail("y")

        render.assert_called_once_with(
            CaptureStatus(phase=CapturePhase.ERROR, error_message="x")
        )


class TestInitialView:
    """Tests for choosing the view the surface opens with."""

    def test_unauthenticated_shows_login(self) -> None:
        status = CaptureStatus(phase=CapturePhase.SAVING)
        assert ControlSurface.initial_view(Session(api_url=API_URL), status) is View.LOGIN

    def test_saving_resumes_progress_view(self) -> None:
        session = Session(api_url=API_URL, auth_mode=AuthMode.API_KEY, api_key="ak_1")
        status = CaptureStatus(phase=CapturePhase.SAVING)
        assert ControlSurface.initial_view(session, status) is View.SAVING

    def test_finished_attempts_show_ready(self) -> None:
        session = Session(api_url=API_URL, auth_mode=AuthMode.API_KEY, api_key="ak_1")
        for phase in (CapturePhase.IDLE, CapturePhase.SUCCESS, CapturePhase.ERROR):
            assert ControlSurface.initial_view(session, CaptureStatus(phase=phase)) is View.READY


class TestSurfaceRender:
    """Tests for status rendering and the one-shot close."""

    def test_saving_and_error_views(self, store: MemoryStore) -> None:
        surface = ControlSurface(MessageBus(), store)

        saving = surface.render(CaptureStatus(phase=CapturePhase.SAVING))
        error = surface.render(CaptureStatus(phase=CapturePhase.ERROR, error_message="Boom"))
        fallback = surface.render(CaptureStatus(phase=CapturePhase.ERROR))

        assert saving == RenderedView(view=View.SAVING, text="Saving page...")
        assert error == RenderedView(view=View.ERROR, text="Boom")
        assert fallback.text == "Save failed"
        assert not surface.close_scheduled

    @pytest.mark.asyncio
    async def test_success_closes_once(self, store: MemoryStore) -> None:
        """Test that rendering success repeatedly closes the surface exactly once."""
        closes: list[bool] = []
        surface = ControlSurface(
            MessageBus(), store, on_close=lambda: closes.append(True), success_close_delay=0.01
        )
        success = CaptureStatus(phase=CapturePhase.SUCCESS, title="Docs")

        first = surface.render(success)
        second = surface.render(success)
        await asyncio.sleep(0.05)

        assert first == second == RenderedView(view=View.SUCCESS, text="Saved: Docs")
        assert closes == [True]
        assert surface.closed

    @pytest.mark.asyncio
    async def test_watch_follows_store(self, store: MemoryStore) -> None:
        views: list[RenderedView] = []
        surface = ControlSurface(
            MessageBus(), store, on_render=views.append, success_close_delay=10
        )
        surface.watch()
        publisher = StatusPublisher(store)

        publisher.begin()
        publisher.succeed("Docs")
        surface.close()
        publisher.reset()

        assert [v.view for v in views] == [View.SAVING, View.SUCCESS]


class TestSurfaceActions:
    """Tests for surface actions that do not need a coordinator."""

    @pytest.mark.asyncio
    async def test_internal_page_refused_without_message(self, store: MemoryStore) -> None:
        bus = MessageBus()
        sent: list = []
        bus.add_listener(lambda msg, sender: sent.append(msg))
        surface = ControlSurface(bus, store)

        view = await surface.capture(Tab(id=1, url="chrome://settings"))

        assert view == RenderedView(view=View.ERROR, text="Cannot capture browser internal pages")
        assert sent == []

    @pytest.mark.asyncio
    async def test_no_reply_is_an_error(self, store: MemoryStore) -> None:
        surface = ControlSurface(MessageBus(), store)

        view = await surface.capture(Tab(id=1, url="https://example.com"))

        assert view == RenderedView(view=View.ERROR, text=NO_REPLY)

    @pytest.mark.asyncio
    async def test_login_requires_both_fields(self, store: MemoryStore) -> None:
        surface = ControlSurface(MessageBus(), store)

        view = await surface.login(API_URL, "alice", "")

        assert view == RenderedView(view=View.LOGIN, text="Please enter username and password")
