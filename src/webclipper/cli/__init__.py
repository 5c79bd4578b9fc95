"""
webclip CLI - Main application entry point.

This module sets up the Typer CLI application with all subcommands.
"""

import typer
from rich.console import Console

from webclipper import __version__
from webclipper.cli import auth, capture, settings, status
from webclipper.cli.runtime import setup_logging
from webclipper.core.config.env import load_layered_env
from webclipper.core.config.loader import load_config

# Help panel names for command grouping
PANEL_CAPTURE = "Save Pages"
PANEL_ACCOUNT = "Account and Settings"

# Create the main Typer app
app = typer.Typer(
    name="webclip",
    help="Save web pages as tasks with the page attached",
    no_args_is_help=True,
    add_completion=False,
    context_settings={"help_option_names": ["--help", "-h"]},
)

console = Console()


@app.callback()
def main(
    ctx: typer.Context,
    debug: bool = typer.Option(
        False,
        "--debug",
        help="Enable debug output with detailed logging",
    ),
) -> None:
    """
    webclip - save the page you are reading as a task.

    Quick Start:
        1. webclip login -u alice                  # Sign in
        2. webclip capture https://example.com     # Save a page
        3. webclip status                          # See how it went

    API keys:
        webclip settings api-key ak_...            # Use an API key instead
    """
    # Load layered env files early so WEBCLIPPER_* settings apply to all commands.
    # Precedence: OS env > project .env > user .env
    load_layered_env()

    config = load_config()
    setup_logging(debug, config.logging.level)

    # Store debug flag in context for subcommands
    ctx.obj = {"debug": debug}


# =============================================================================
# Save Pages
# =============================================================================

app.command(name="capture", rich_help_panel=PANEL_CAPTURE)(capture.capture)
app.command(name="status", rich_help_panel=PANEL_CAPTURE)(status.status)

# =============================================================================
# Account and Settings
# =============================================================================

app.command(name="login", rich_help_panel=PANEL_ACCOUNT)(auth.login)
app.command(name="logout", rich_help_panel=PANEL_ACCOUNT)(auth.logout)
app.add_typer(settings.app, name="settings", rich_help_panel=PANEL_ACCOUNT)


@app.command(rich_help_panel=PANEL_ACCOUNT)
def version() -> None:
    """Show webclip version and exit."""
    console.print(f"webclip version {__version__}")
    raise typer.Exit(0)


def cli_main() -> None:
    """Main CLI entry point."""
    app()


__all__ = ["app", "cli_main"]
