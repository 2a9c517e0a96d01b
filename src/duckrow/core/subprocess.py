"""Subprocess execution for git commands.

run_with_timeout captures the combined output of a bounded command so a
failure can be classified instead of raised.
"""

import os
import subprocess
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class CommandOutcome:
    """Result of a command run through run_with_timeout."""

    returncode: int
    output: str
    timed_out: bool = False

    @property
    def succeeded(self) -> bool:
        return self.returncode == 0 and not self.timed_out


def git_environment(extra: Mapping[str, str] | None = None) -> dict[str, str]:
    """Build the environment for non-interactive git invocations.

    GIT_TERMINAL_PROMPT=0 makes git fail fast instead of waiting for credentials.
    """
    env = dict(os.environ)
    env["GIT_TERMINAL_PROMPT"] = "0"
    if extra:
        env.update(extra)
    return env


def run_with_timeout(
    cmd: Sequence[str],
    *,
    timeout: float,
    cwd: Path | None = None,
    env: Mapping[str, str] | None = None,
) -> CommandOutcome:
    """Run a command and capture stdout and stderr interleaved.

    Never raises for a failing command: the caller inspects the outcome and
    decides how to classify it. A missing binary is reported as exit code 127.
    """
    try:
        result = subprocess.run(
            list(cmd),
            cwd=cwd,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            encoding="utf-8",
            errors="replace",
            check=False,
            timeout=timeout,
            env=dict(env) if env is not None else None,
        )
    except subprocess.TimeoutExpired as e:
        partial = e.output or ""
        if isinstance(partial, bytes):
            partial = partial.decode("utf-8", errors="replace")
        message = f"{partial}\ncommand timed out after {int(timeout)} seconds".strip()
        return CommandOutcome(returncode=-1, output=message, timed_out=True)
    except FileNotFoundError:
        return CommandOutcome(returncode=127, output=f"{cmd[0]}: command not found")

    return CommandOutcome(returncode=result.returncode, output=result.stdout or "")
