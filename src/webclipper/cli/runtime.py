"""
Shared plumbing for CLI commands: storage location, logging and the
in-process runtime each command talks to.
"""

from __future__ import annotations

import asyncio
import logging
import sys
from collections.abc import AsyncIterator, Callable, Coroutine
from contextlib import asynccontextmanager
from typing import Any, TypeVar

from webclipper.core.config.loader import get_data_dir
from webclipper.core.config.models import ClipperConfig
from webclipper.core.coordinator import Runtime, build_coordinator
from webclipper.core.storage.json_file import JsonFileStore
from webclipper.core.surface import ControlSurface, RenderedView

STATE_FILE = "state.json"

T = TypeVar("T")


def setup_logging(debug: bool = False, level: str = "WARNING") -> None:
    """
    Configure logging for CLI commands.

    Args:
        debug: If True, enable DEBUG level logging
        level: Level name used when debug is off
    """
    logging.basicConfig(
        level=logging.DEBUG if debug else getattr(logging, level.upper(), logging.WARNING),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )


def open_storage(config: ClipperConfig) -> JsonFileStore:
    """Open the persisted state shared by every webclip invocation."""
    return JsonFileStore(get_data_dir(config) / STATE_FILE)


def run_async(func: Callable[..., Coroutine[Any, Any, T]], *args: Any) -> T:
    """
    Run an async function from Typer's sync command context.

    Example:
        view = run_async(_login, username, password)
    """
    return asyncio.run(func(*args))


@asynccontextmanager
async def open_runtime(
    config: ClipperConfig, storage: JsonFileStore | None = None
) -> AsyncIterator[Runtime]:
    """
    Wire the coordinator and its collaborators for the duration of a command.

    The coordinator is closed on exit, cancelling any capture still running.
    """
    runtime = build_coordinator(config, storage or open_storage(config))
    try:
        yield runtime
    finally:
        await runtime.coordinator.aclose()


def make_surface(
    runtime: Runtime,
    config: ClipperConfig,
    on_render: Callable[[RenderedView], object] | None = None,
) -> ControlSurface:
    """Build the control surface bound to a runtime's bus and store."""
    return ControlSurface(
        runtime.bus,
        runtime.storage,
        on_render=on_render,
        success_close_delay=config.capture.success_close_delay,
        internal_schemes=config.capture.internal_schemes,
    )
