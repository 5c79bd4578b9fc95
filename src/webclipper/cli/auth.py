"""
webclip CLI - Sign in and out.

Examples:
    webclip login -u alice
    webclip login -u alice --api-url https://tasks.example.com
    webclip logout
"""

import typer
from rich.console import Console

from webclipper.cli.errors import ExitCode, print_error, print_unreachable_error
from webclipper.cli.runtime import make_surface, open_runtime, run_async
from webclipper.core.config.loader import load_config
from webclipper.core.errors import CANNOT_REACH_SERVER
from webclipper.core.surface import RenderedView, View

console = Console()


def login(
    username: str = typer.Option(..., "--username", "-u", prompt=True, help="Account name"),
    password: str = typer.Option(
        ..., "--password", "-p", prompt=True, hide_input=True, help="Account password"
    ),
    api_url: str | None = typer.Option(
        None,
        "--api-url",
        help="Task service URL (defaults to the saved URL)",
    ),
) -> None:
    """
    Sign in with username and password.

    The URL you sign in against is remembered for later commands. Signing in
    replaces any saved API key.
    """
    config = load_config()

    async def _login() -> tuple[RenderedView, str]:
        async with open_runtime(config) as runtime:
            target = (api_url or runtime.sessions.read().api_url).rstrip("/")
            surface = make_surface(runtime, config)
            return await surface.login(target, username, password), target

    view, target = run_async(_login)
    if view.view is not View.READY:
        if view.text == CANNOT_REACH_SERVER:
            print_unreachable_error(target)
        else:
            print_error(view.text, solution="webclip login  # check username and password")
        raise typer.Exit(ExitCode.USER_ERROR)

    console.print(f"[green]✓[/green] {view.text}")
    console.print(f"[dim]  → {target}[/dim]")


def logout() -> None:
    """Forget stored credentials and the last capture status."""
    config = load_config()

    async def _logout() -> RenderedView:
        async with open_runtime(config) as runtime:
            return await make_surface(runtime, config).logout()

    run_async(_logout)
    console.print("[green]✓[/green] Logged out")
