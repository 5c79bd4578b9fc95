"""
webclip CLI - Show session and capture status.

Examples:
    webclip status
    webclip status --json
    webclip status --watch
    webclip status --clear
"""

import json
import time

import typer
from rich.console import Console
from rich.table import Table

from webclipper.cli.errors import ExitCode
from webclipper.cli.runtime import open_storage
from webclipper.core.capture.models import CapturePhase, CaptureStatus
from webclipper.core.capture.status import StatusObserver, StatusPublisher, read_status
from webclipper.core.config.loader import load_config
from webclipper.core.session.store import SessionStore
from webclipper.core.storage.json_file import JsonFileStore
from webclipper.core.surface import ControlSurface

console = Console()

_PHASE_STYLES = {
    "idle": "dim",
    "saving": "yellow",
    "success": "green",
    "error": "red",
}


def _print_capture(capture: CaptureStatus) -> None:
    style = _PHASE_STYLES.get(capture.phase.value, "white")
    detail = capture.title or capture.error_message or ""
    console.print(f"[{style}]{capture.phase.value}[/{style}] {detail}".rstrip())


def _watch(storage: JsonFileStore, interval: float) -> CaptureStatus:
    """
    Follow a capture running in another process until it finishes.

    The state file is polled; each capture status change is printed.

    Returns:
        The final capture status
    """
    _print_capture(read_status(storage))
    with StatusObserver(storage, _print_capture):
        while True:
            storage.poll()
            capture = read_status(storage)
            if capture.phase is not CapturePhase.SAVING:
                return capture
            time.sleep(interval)


def status(
    json_output: bool = typer.Option(
        False,
        "--json",
        help="Output as JSON",
    ),
    watch: bool = typer.Option(
        False,
        "--watch",
        "-w",
        help="Follow a capture in progress until it finishes",
    ),
    interval: float = typer.Option(
        0.5,
        "--interval",
        help="Seconds between polls with --watch",
        min=0.01,
    ),
    clear: bool = typer.Option(
        False,
        "--clear",
        help="Reset the last capture status to idle (e.g. after an interrupted capture)",
    ),
) -> None:
    """
    Show who is signed in and how the last capture went.
    """
    config = load_config()
    storage = open_storage(config)

    if clear:
        StatusPublisher(storage).reset()
        console.print("[green]✓[/green] Capture status cleared")
        return

    if watch:
        try:
            final = _watch(storage, interval)
        except KeyboardInterrupt:
            console.print("\n[yellow]Watching stopped by user[/yellow]")
            raise typer.Exit(ExitCode.SIGINT) from None
        if final.phase is CapturePhase.ERROR:
            raise typer.Exit(ExitCode.GENERAL_ERROR)
        return

    session = SessionStore(storage, default_api_url=config.api.default_url).read()
    capture = read_status(storage)
    view = ControlSurface.initial_view(session, capture)

    if json_output:
        data = {
            "api_url": session.api_url,
            "auth_mode": session.auth_mode.value,
            "logged_in": session.is_authenticated,
            "user": session.user_label,
            "view": view.value,
            "capture": capture.model_dump(mode="json"),
        }
        console.print(json.dumps(data, indent=2))
        return

    table = Table(show_header=False, box=None)
    table.add_column("Field", style="bold")
    table.add_column("Value")
    table.add_row("API URL", session.api_url)
    if session.is_authenticated:
        table.add_row("Signed in", f"{session.user_label or 'unknown'} ({session.auth_mode.value})")
    else:
        table.add_row("Signed in", "[yellow]no[/yellow]  (webclip login)")

    style = _PHASE_STYLES.get(capture.phase.value, "white")
    table.add_row("Last capture", f"[{style}]{capture.phase.value}[/{style}]")
    if capture.title:
        table.add_row("Task", capture.title)
    if capture.error_message:
        table.add_row("Error", f"[red]{capture.error_message}[/red]")
    console.print(table)
