"""CLI error reporting with styled output.

Expected failures become a red "Error:" line, optional hints, and exit code 1.
Tracebacks are reserved for bugs.
"""

from collections.abc import Callable, Sequence
from functools import wraps
from typing import Any, NoReturn

import click

from duckrow.cli.output import user_output
from duckrow.core.agents import UnknownAgentError
from duckrow.core.clone_error import CloneError
from duckrow.core.config import ConfigError
from duckrow.core.installer import PostCloneError
from duckrow.core.lockfile import LockFileError
from duckrow.core.registry import ManifestError, RegistryError
from duckrow.core.remover import SkillNotInstalledError
from duckrow.core.skills import SkillParseError
from duckrow.core.source import SourceParseError

DOMAIN_ERRORS: tuple[type[Exception], ...] = (
    ConfigError,
    LockFileError,
    ManifestError,
    PostCloneError,
    RegistryError,
    SkillNotInstalledError,
    SkillParseError,
    SourceParseError,
    UnknownAgentError,
)


def fail(message: str, hints: Sequence[str] = ()) -> NoReturn:
    """Print a styled error with optional hints and exit with status 1."""
    user_output(click.style("Error: ", fg="red") + message)
    for hint in hints:
        user_output(f"  hint: {hint}")
    raise SystemExit(1)


def report_clone_error(error: CloneError) -> NoReturn:
    """Show the classified kind, the exact command and the hints, then exit."""
    user_output(click.style("Error: ", fg="red") + str(error))
    user_output(f"  kind:    {error.kind}")
    user_output(f"  command: {error.command}")
    for hint in error.hints:
        user_output(f"  hint: {hint}")
    raise SystemExit(1)


def domain_error_boundary(func: Callable) -> Callable:
    """Decorator turning expected domain errors into styled CLI errors.

    Anything that is not a known domain error propagates unchanged.
    """

    @wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return func(*args, **kwargs)
        except CloneError as e:
            report_clone_error(e)
        except DOMAIN_ERRORS as e:
            fail(str(e))

    return wrapper
