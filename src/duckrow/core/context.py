"""Application context with dependency injection."""

import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

import click

from duckrow.cli.output import user_output
from duckrow.core.agents import BUILTIN_AGENTS, AgentSystem
from duckrow.core.config import ConfigStore, DuckrowConfig, FilesystemConfigStore
from duckrow.core.env import EnvResolver
from duckrow.core.git.abc import Git
from duckrow.core.git.real import RealGit
from duckrow.core.installer import Installer
from duckrow.core.registry import RegistryStore
from duckrow.core.remover import Remover


@dataclass(frozen=True)
class DuckrowContext:
    """Immutable context holding all dependencies for duckrow operations.

    Created at the CLI entry point and threaded through every command. The
    config store is the only handle on user configuration; no component reads
    it through a global.
    """

    git: Git
    config_store: ConfigStore
    agents: tuple[AgentSystem, ...]
    cwd: Path
    environ: Mapping[str, str]

    def load_config(self) -> DuckrowConfig:
        return self.config_store.load()

    def registry_store(self) -> RegistryStore:
        return RegistryStore(self.git, self.config_store.registries_dir())

    def installer(self) -> Installer:
        return Installer(self.git, self.agents)

    def remover(self) -> Remover:
        return Remover(self.agents)

    def env_resolver(self, project_dir: Path) -> EnvResolver:
        return EnvResolver(project_dir, self.config_store.config_dir(), self.environ)

    @staticmethod
    def for_test(
        git: Git | None = None,
        config_store: ConfigStore | None = None,
        agents: tuple[AgentSystem, ...] | None = None,
        cwd: Path | None = None,
        environ: Mapping[str, str] | None = None,
    ) -> "DuckrowContext":
        """Create test context with optional pre-configured dependencies.

        Args:
            git: Optional Git implementation. If None, creates empty FakeGit.
            config_store: Optional ConfigStore. If None, creates an empty
                InMemoryConfigStore.
            agents: Optional agent list. If None, uses the built-in agents.
            cwd: Optional working directory. If None, uses Path("/test/default/cwd").
            environ: Optional environment mapping. If None, uses an empty mapping.

        Returns:
            DuckrowContext configured for tests
        """
        from tests.fakes.git import FakeGit

        from duckrow.core.config import InMemoryConfigStore

        return DuckrowContext(
            git=git if git is not None else FakeGit(),
            config_store=config_store if config_store is not None else InMemoryConfigStore(),
            agents=agents if agents is not None else BUILTIN_AGENTS,
            cwd=cwd if cwd is not None else Path("/test/default/cwd"),
            environ=environ if environ is not None else {},
        )


def safe_cwd() -> tuple[Path | None, str | None]:
    """Get current working directory, detecting if it no longer exists.

    Returns:
        (path, None) on success, (None, error_message) if the directory is gone
    """
    try:
        return (Path.cwd(), None)
    except (FileNotFoundError, OSError):
        return (None, "Current working directory no longer exists")


def create_context() -> DuckrowContext:
    """Create production context with real implementations.

    Called at the CLI entry point to create the context for the entire
    command execution.
    """
    cwd, error_msg = safe_cwd()
    if cwd is None:
        assert error_msg is not None
        user_output(click.style("Error: ", fg="red") + error_msg)
        user_output("\nPlease change to a valid directory and try again.")
        raise SystemExit(1)

    return DuckrowContext(
        git=RealGit(),
        config_store=FilesystemConfigStore(),
        agents=BUILTIN_AGENTS,
        cwd=cwd,
        environ=os.environ,
    )
