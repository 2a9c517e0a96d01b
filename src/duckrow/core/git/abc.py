"""High-level git operations interface.

This module provides a clean abstraction over git subprocess calls, making the
install and registry code testable without a network.

Architecture:
- Git: Abstract base class defining the interface
- RealGit: Production implementation using subprocess
"""

from abc import ABC, abstractmethod
from pathlib import Path


def parse_ls_remote_commit(output: str) -> str | None:
    """Pick the commit from `git ls-remote` output.

    A peeled tag line (`<sha>\\trefs/tags/v1^{}`) points at the commit itself and
    wins; otherwise the first listed commit is used.
    """
    fallback: str | None = None
    for raw_line in output.splitlines():
        line = raw_line.strip()
        if not line:
            continue
        parts = line.split(maxsplit=1)
        commit = parts[0].strip()
        if not commit:
            continue
        ref = parts[1].strip() if len(parts) > 1 else ""
        if ref.endswith("^{}"):
            return commit
        if fallback is None:
            fallback = commit
    return fallback


class Git(ABC):
    """Abstract interface for git operations.

    All implementations (real and fake) must implement this interface.
    Clone, fetch and pull failures are raised as CloneError.
    """

    @abstractmethod
    def clone(self, url: str, dest: Path, *, ref: str | None = None, shallow: bool = True) -> None:
        """Clone url into dest, checking out ref (branch or tag) when given.

        Raises:
            CloneError: If git fails or times out
        """
        ...

    @abstractmethod
    def clone_at_commit(self, url: str, dest: Path, commit: str) -> None:
        """Materialize exactly one commit of url into dest.

        Raises:
            CloneError: If the repository or the commit cannot be fetched
        """
        ...

    @abstractmethod
    def pull(self, repo_dir: Path) -> None:
        """Fast-forward an existing clone to its upstream.

        Raises:
            CloneError: If the pull fails or times out
        """
        ...

    @abstractmethod
    def resolve_head(self, repo_dir: Path) -> str | None:
        """Return the commit checked out in repo_dir, or None if unresolvable."""
        ...

    @abstractmethod
    def path_commit(self, repo_dir: Path, sub_path: str) -> str | None:
        """Return the last commit touching sub_path, or None if unresolvable."""
        ...

    @abstractmethod
    def ls_remote(self, url: str, ref: str | None = None) -> str | None:
        """Resolve ref (default HEAD) on the remote without cloning.

        Returns:
            The commit hash, or None when the remote has no such ref

        Raises:
            CloneError: If the remote cannot be queried
        """
        ...
