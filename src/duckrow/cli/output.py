"""Output utilities for CLI commands.

Everything meant for a human goes to stderr.
"""

from typing import Any

import click
from rich.console import Console
from rich.table import Table


def user_output(message: Any = "", nl: bool = True) -> None:
    """Print a message for the user on stderr."""
    click.echo(message, nl=nl, err=True)


def truncate_commit(commit: str) -> str:
    """Return the 7-character short form of a commit hash."""
    if len(commit) > 7:
        return commit[:7]
    return commit


def print_table(table: Table) -> None:
    """Render a rich table for the user on stderr."""
    console = Console(stderr=True, width=200)
    console.print(table)
