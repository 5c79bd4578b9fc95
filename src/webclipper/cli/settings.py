"""
webclip CLI - Connection settings.

Examples:
    webclip settings show
    webclip settings set-url https://tasks.example.com
    webclip settings test ak_0123456789
    webclip settings api-key ak_0123456789 --api-url https://tasks.example.com
"""

import typer
from rich.console import Console

from webclipper.cli.errors import ExitCode, print_error
from webclipper.cli.runtime import make_surface, open_runtime, open_storage, run_async
from webclipper.core.config.loader import load_config
from webclipper.core.session.store import SessionStore
from webclipper.core.surface import RenderedView

console = Console()
app = typer.Typer(
    name="settings",
    help="View and change connection settings",
    no_args_is_help=True,
)


def mask_secret(value: str | None) -> str:
    """
    Shorten a secret for display.

    Example:
        >>> mask_secret("ak_0123456789abcdef")
        'ak_01...cdef'
    """
    if not value:
        return "-"
    if len(value) <= 9:
        return "*" * len(value)
    return f"{value[:5]}...{value[-4:]}"


@app.command()
def show() -> None:
    """Show the saved API URL and credentials (secrets masked)."""
    config = load_config()
    session = SessionStore(open_storage(config), default_api_url=config.api.default_url).read()

    console.print(f"[bold]API URL:[/bold]   {session.api_url}")
    console.print(f"[bold]Auth mode:[/bold] {session.auth_mode.value}")
    console.print(f"[bold]User:[/bold]      {session.user_label or '-'}")
    console.print(f"[bold]API key:[/bold]   {mask_secret(session.api_key)}")


@app.command("set-url")
def set_url(
    url: str = typer.Argument(..., help="Task service base URL"),
) -> None:
    """Change the task service URL."""
    config = load_config()

    async def _save() -> tuple[bool, RenderedView]:
        async with open_runtime(config) as runtime:
            return await make_surface(runtime, config).save_settings(url)

    saved, view = run_async(_save)
    if not saved:
        print_error(view.text)
        raise typer.Exit(ExitCode.USER_ERROR)
    console.print(f"[green]✓[/green] {view.text}: {url.strip().rstrip('/')}")


@app.command()
def test(
    api_key: str = typer.Argument(..., help="API key to check (starts with ak_)"),
    api_url: str | None = typer.Option(None, "--api-url", help="Task service URL"),
) -> None:
    """Check an API key against the server without saving it."""
    config = load_config()

    async def _test() -> RenderedView:
        async with open_runtime(config) as runtime:
            target = api_url or runtime.sessions.read().api_url
            return await make_surface(runtime, config).test_connection(target, api_key)

    view = run_async(_test)
    if not view.text.startswith("Connected as "):
        print_error(view.text)
        raise typer.Exit(ExitCode.USER_ERROR)
    console.print(f"[green]✓[/green] {view.text}")


@app.command("api-key")
def api_key(
    key: str = typer.Argument(..., help="API key (starts with ak_)"),
    api_url: str | None = typer.Option(None, "--api-url", help="Task service URL"),
) -> None:
    """
    Authenticate with an API key.

    The key is tested first and only saved if the server accepts it.
    """
    config = load_config()

    async def _save() -> tuple[bool, RenderedView]:
        async with open_runtime(config) as runtime:
            target = api_url or runtime.sessions.read().api_url
            return await make_surface(runtime, config).save_settings(target, key)

    saved, view = run_async(_save)
    if not saved:
        print_error(view.text, reason="The API key was not saved")
        raise typer.Exit(ExitCode.USER_ERROR)
    console.print(f"[green]✓[/green] {view.text}")
