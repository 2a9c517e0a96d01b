"""Helpers for running CLI commands against fakes in a temporary project."""

from collections.abc import Mapping, Sequence
from pathlib import Path

from click.testing import CliRunner, Result

from duckrow.cli.cli import cli
from duckrow.core.agents import AgentSystem
from duckrow.core.config import DuckrowConfig, InMemoryConfigStore
from duckrow.core.context import DuckrowContext
from tests.fakes.git import FakeGit


def project_context(
    tmp_path: Path,
    git: FakeGit | None = None,
    config: DuckrowConfig | None = None,
    environ: Mapping[str, str] | None = None,
    agents: tuple[AgentSystem, ...] | None = None,
) -> DuckrowContext:
    """Context whose project is tmp_path/project and whose config dir is tmp_path/duckrow."""
    project = tmp_path / "project"
    project.mkdir(exist_ok=True)
    return DuckrowContext.for_test(
        git=git,
        config_store=InMemoryConfigStore(config, config_dir=tmp_path / "duckrow"),
        cwd=project,
        environ=environ if environ is not None else {},
        agents=agents,
    )


def invoke(ctx: DuckrowContext, args: Sequence[str]) -> Result:
    return CliRunner().invoke(cli, list(args), obj=ctx)
