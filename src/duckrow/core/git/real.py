"""Production Git implementation using subprocess.

This module provides the real Git implementation that executes actual git
commands via subprocess. Every command runs non-interactively with a bounded
timeout.
"""

import logging
import shutil
from pathlib import Path

from duckrow.core.clone_error import (
    CLONE_TIMEOUT_SECONDS,
    PULL_TIMEOUT_SECONDS,
    classify_clone_error,
    format_clone_command,
)
from duckrow.core.git.abc import Git, parse_ls_remote_commit
from duckrow.core.subprocess import git_environment, run_with_timeout

logger = logging.getLogger(__name__)

LS_REMOTE_TIMEOUT_SECONDS = 30


class RealGit(Git):
    """Production implementation using subprocess.

    All git operations execute actual git commands via subprocess.
    """

    def clone(self, url: str, dest: Path, *, ref: str | None = None, shallow: bool = True) -> None:
        args = ["git", "clone"]
        if shallow:
            args.extend(["--depth", "1"])
        if ref:
            args.extend(["--branch", ref])
        args.extend([url, str(dest)])

        logger.debug("Running: %s", " ".join(args))
        outcome = run_with_timeout(args, timeout=CLONE_TIMEOUT_SECONDS, env=git_environment())
        if not outcome.succeeded:
            _discard(dest)
            raise classify_clone_error(
                url,
                format_clone_command(url, ref, shallow=shallow),
                outcome.output,
                timed_out=outcome.timed_out,
            )

    def clone_at_commit(self, url: str, dest: Path, commit: str) -> None:
        env = git_environment()
        steps = [
            ["git", "init", "--quiet", str(dest)],
            ["git", "-C", str(dest), "remote", "add", "origin", url],
            ["git", "-C", str(dest), "fetch", "--depth", "1", "origin", commit],
            ["git", "-C", str(dest), "checkout", "--quiet", "FETCH_HEAD"],
        ]
        for args in steps:
            logger.debug("Running: %s", " ".join(args))
            outcome = run_with_timeout(args, timeout=CLONE_TIMEOUT_SECONDS, env=env)
            if not outcome.succeeded:
                _discard(dest)
                raise classify_clone_error(
                    url,
                    " ".join(args),
                    outcome.output,
                    timed_out=outcome.timed_out,
                )

    def pull(self, repo_dir: Path) -> None:
        args = ["git", "-C", str(repo_dir), "pull", "--ff-only"]
        outcome = run_with_timeout(args, timeout=PULL_TIMEOUT_SECONDS, env=git_environment())
        if not outcome.succeeded:
            raise classify_clone_error(
                self._remote_url(repo_dir) or str(repo_dir),
                " ".join(args),
                outcome.output,
                timed_out=outcome.timed_out,
            )

    def resolve_head(self, repo_dir: Path) -> str | None:
        outcome = run_with_timeout(
            ["git", "-C", str(repo_dir), "rev-parse", "HEAD^{commit}"],
            timeout=PULL_TIMEOUT_SECONDS,
            env=git_environment(),
        )
        if not outcome.succeeded:
            return None
        values = outcome.output.strip().splitlines()
        if not values:
            return None
        return values[0].strip() or None

    def path_commit(self, repo_dir: Path, sub_path: str) -> str | None:
        args = ["git", "-C", str(repo_dir), "log", "-1", "--format=%H"]
        if sub_path and sub_path != ".":
            args.extend(["--", sub_path])
        outcome = run_with_timeout(args, timeout=PULL_TIMEOUT_SECONDS, env=git_environment())
        if not outcome.succeeded:
            return None
        commit = outcome.output.strip()
        return commit or None

    def ls_remote(self, url: str, ref: str | None = None) -> str | None:
        args = ["git", "ls-remote", url, ref or "HEAD"]
        outcome = run_with_timeout(args, timeout=LS_REMOTE_TIMEOUT_SECONDS, env=git_environment())
        if not outcome.succeeded:
            raise classify_clone_error(
                url, " ".join(args), outcome.output, timed_out=outcome.timed_out
            )
        return parse_ls_remote_commit(outcome.output)

    def _remote_url(self, repo_dir: Path) -> str | None:
        outcome = run_with_timeout(
            ["git", "-C", str(repo_dir), "remote", "get-url", "origin"],
            timeout=PULL_TIMEOUT_SECONDS,
            env=git_environment(),
        )
        if not outcome.succeeded:
            return None
        return outcome.output.strip() or None


def _discard(dest: Path) -> None:
    """Remove a partially written clone directory."""
    if dest.exists():
        shutil.rmtree(dest, ignore_errors=True)
