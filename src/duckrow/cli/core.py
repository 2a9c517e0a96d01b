"""Helpers shared by CLI commands."""

from pathlib import Path

from duckrow.cli.output import user_output
from duckrow.core.agents import AgentSystem, agents_by_names, universal_agents
from duckrow.core.config import DuckrowConfig
from duckrow.core.context import DuckrowContext
from duckrow.core.hydrator import hydrate_registry_commits


def resolve_target_dir(ctx: DuckrowContext, directory: str | None) -> Path:
    """The project directory a command operates on (--dir, else cwd)."""
    if directory:
        return Path(directory).expanduser().resolve()
    return ctx.cwd


def split_agent_names(agents_flag: str | None) -> list[str]:
    if not agents_flag:
        return []
    return [name.strip() for name in agents_flag.split(",") if name.strip()]


def resolve_skill_agents(
    ctx: DuckrowContext, agents_flag: str | None
) -> tuple[AgentSystem, ...] | None:
    """Universal agents plus those named in --agents; None when the flag is absent."""
    names = split_agent_names(agents_flag)
    if not names:
        return None
    selected = list(universal_agents(ctx.agents))
    for agent in agents_by_names(ctx.agents, names):
        if agent not in selected:
            selected.append(agent)
    return tuple(selected)


def registry_commits(ctx: DuckrowContext, config: DuckrowConfig) -> dict[str, str]:
    """Hydrate the registry commit map, printing warnings for unresolvable sources."""
    result = hydrate_registry_commits(
        config.registries,
        ctx.registry_store(),
        ctx.git,
        config.settings.clone_url_overrides,
    )
    for warning in result.warnings:
        user_output(f"Warning: {warning}")
    return result.commits
