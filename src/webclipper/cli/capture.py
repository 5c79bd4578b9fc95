"""
webclip CLI - Capture a page.

Loads the page, snapshots it and saves it as a task with the snapshot
attached.

Examples:
    webclip capture https://example.com/article
    webclip capture https://example.com/article --title "Read later" --tag reading
    webclip capture https://example.com/article --no-wait
"""

import typer
from rich.console import Console

from webclipper.cli.errors import ExitCode, print_error, print_not_logged_in_error
from webclipper.cli.runtime import make_surface, open_runtime, run_async
from webclipper.core.config.loader import load_config
from webclipper.core.errors import ClipperError, describe_error
from webclipper.core.surface import RenderedView, View

console = Console()

_STYLES = {
    View.SAVING: "yellow",
    View.SUCCESS: "green",
    View.ERROR: "red",
}


def _print_view(view: RenderedView) -> None:
    style = _STYLES.get(view.view, "white")
    console.print(f"[{style}]{view.view.value}[/{style}] {view.text}".rstrip())


def capture(
    url: str = typer.Argument(..., help="Address of the page to save"),
    title: str | None = typer.Option(
        None,
        "--title",
        "-t",
        help="Task title (defaults to the page title)",
    ),
    tags: list[str] | None = typer.Option(
        None,
        "--tag",
        help="Tag for the created task (can be repeated)",
    ),
    wait: bool = typer.Option(
        True,
        "--wait/--no-wait",
        help="Wait for the result reply, or follow status updates as they are saved",
    ),
) -> None:
    """
    Save a web page as a task.

    With --no-wait the capture is started fire-and-forget and its progress is
    followed through the saved capture status.
    """
    config = load_config()

    async def _capture() -> RenderedView | None:
        async with open_runtime(config) as runtime:
            if not runtime.sessions.read().is_authenticated:
                return None

            surface = make_surface(runtime, config, on_render=None if wait else _print_view)
            try:
                tab = await runtime.host.open_tab(url)
            except ClipperError as e:
                return surface.render_error(describe_error(e))

            if wait:
                return await surface.capture(tab, custom_title=title, tags=tags, wait=True)

            surface.watch()
            try:
                view = await surface.capture(tab, custom_title=title, tags=tags)
                task = runtime.coordinator.capture_task
                if view.view is View.SAVING and task is not None:
                    await task
            finally:
                surface.unwatch()
            return surface.current or view

    try:
        view = run_async(_capture)
    except KeyboardInterrupt:
        console.print("[yellow]Capture interrupted[/yellow]")
        raise typer.Exit(ExitCode.SIGINT) from None

    if view is None:
        print_not_logged_in_error()
        raise typer.Exit(ExitCode.USER_ERROR)

    if view.view is View.ERROR:
        print_error(view.text)
        raise typer.Exit(ExitCode.GENERAL_ERROR)

    if wait:
        console.print(f"[green]✓[/green] {view.text}")
