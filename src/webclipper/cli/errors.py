"""
Standardized error handling and exit codes for the webclip CLI.

Every command reports failures through ``print_error`` so messages share one
layout: the problem, optionally why it happened, optionally what to try.
"""

from enum import IntEnum

from rich.console import Console

console = Console()


class ExitCode(IntEnum):
    """Standard exit codes for webclip operations."""

    SUCCESS = 0
    """Operation completed successfully."""

    GENERAL_ERROR = 1
    """The capture or request failed."""

    USER_ERROR = 2
    """Missing login, bad credentials or invalid input (actionable by user)."""

    SIGINT = 130
    """Terminated by SIGINT (Ctrl+C) - Unix standard."""


def print_error(
    problem: str,
    *,
    reason: str | None = None,
    solution: str | None = None,
) -> None:
    """
    Print a standardized error message with actionable guidance.

    Args:
        problem: Brief description of what went wrong
        reason: Optional explanation of why it happened
        solution: Optional command or action to fix it

    Example:
        >>> print_error(
        ...     "Not logged in",
        ...     solution="webclip login",
        ... )
    """
    console.print(f"[red]Error:[/red] {problem}")

    if reason:
        console.print(f"[dim]{reason}[/dim]")

    if solution:
        console.print(f"[cyan]→ Try:[/cyan] {solution}")


def print_not_logged_in_error() -> None:
    """Print error when a command needs credentials and none are stored."""
    print_error(
        "Not logged in",
        reason="Saving pages needs an account or an API key",
        solution="webclip login  # or: webclip settings api-key ak_...",
    )


def print_unreachable_error(api_url: str) -> None:
    """Print error when the task service cannot be reached."""
    print_error(
        "Cannot reach server",
        reason=f"No response from {api_url}",
        solution="webclip settings set-url <url>  # check the API URL",
    )
