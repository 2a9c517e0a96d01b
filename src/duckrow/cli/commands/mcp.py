"""MCP server install and uninstall commands."""

from pathlib import Path

import click

from duckrow.cli.core import resolve_target_dir, split_agent_names
from duckrow.cli.errors import domain_error_boundary, fail
from duckrow.cli.output import user_output
from duckrow.core.agents import (
    AgentSystem,
    agents_by_names,
    detect_agents_in_folder,
    mcp_capable_agents,
)
from duckrow.core.context import DuckrowContext
from duckrow.core.env import ENV_FILE_NAME, ensure_gitignore
from duckrow.core.lockfile import (
    LockedMCP,
    add_or_update_mcp_lock_entry,
    read_lock_file,
    remove_mcp_lock_entry,
)
from duckrow.core.mcp_config import (
    MCPAgentResult,
    compute_config_hash,
    extract_required_env,
    install_mcp_config,
    uninstall_mcp_config,
)


@click.group("mcp")
def mcp_group() -> None:
    """Install MCP servers from registries into agent config files."""


def _select_agents(
    ctx: DuckrowContext, target_dir: Path, agents_flag: str | None
) -> list[AgentSystem]:
    names = split_agent_names(agents_flag)
    if names:
        selected = agents_by_names(ctx.agents, names)
        capable = mcp_capable_agents(selected)
        unsupported = [a.name for a in selected if a not in capable]
        if unsupported:
            fail(f"Agents without MCP support: {', '.join(unsupported)}")
        return capable
    return detect_agents_in_folder(mcp_capable_agents(ctx.agents), target_dir, ctx.environ)


def _print_results(name: str, results: list[MCPAgentResult]) -> int:
    errors = 0
    for result in results:
        if result.action == "wrote":
            user_output(f"✓ {name}: wrote {result.config_path}")
        elif result.action == "removed":
            user_output(f"✓ {name}: removed from {result.config_path}")
        elif result.action == "skipped":
            user_output(f"- {name}: skipped {result.config_path} ({result.message})")
        else:
            errors += 1
            user_output(
                click.style("Error: ", fg="red") + f"{name}: {result.config_path}: {result.message}"
            )
    return errors


@mcp_group.command("install")
@click.argument("name")
@click.option("-d", "--dir", "directory", help="Project directory (default: current directory).")
@click.option("--registry", help="Only search this registry (name or repo URL).")
@click.option("--agents", help="Comma-separated MCP-capable agents (default: detected agents).")
@click.option("--force", is_flag=True, help="Overwrite an existing entry with the same name.")
@click.option("--no-lock", is_flag=True, help="Do not record the install in duckrow.lock.json.")
@domain_error_boundary
@click.pass_obj
def install_mcp(
    ctx: DuckrowContext,
    name: str,
    directory: str | None,
    registry: str | None,
    agents: str | None,
    force: bool,
    no_lock: bool,
) -> None:
    """Write a registry MCP server into each agent's MCP config file."""
    target_dir = resolve_target_dir(ctx, directory)
    config = ctx.load_config()
    match = ctx.registry_store().find_mcp(config.registries, name, registry)

    selected = _select_agents(ctx, target_dir, agents)
    if not selected:
        fail(
            "No MCP-capable agents detected in this project",
            hints=["Choose agents explicitly: --agents claude-code,cursor"],
        )

    results = install_mcp_config(match.entry, target_dir, selected, force=force)
    errors = _print_results(name, results)

    required_env = extract_required_env(match.entry)
    if not no_lock:
        configured = [r.agent for r in results if r.action != "error"]
        add_or_update_mcp_lock_entry(
            target_dir,
            LockedMCP(
                name=match.entry.name,
                registry=match.registry_name,
                config_hash=compute_config_hash(match.entry),
                agents=configured,
                required_env=required_env,
                env=dict(match.entry.env),
            ),
        )

    if required_env:
        _, missing = ctx.env_resolver(target_dir).resolve_env(required_env)
        if missing:
            user_output(f"\n{name} needs these variables, which are not set yet:")
            for var in missing:
                user_output(f"  {var}")
            user_output(f"Set them in your environment or in {target_dir / ENV_FILE_NAME}")
        if ensure_gitignore(target_dir):
            user_output(f"Added {ENV_FILE_NAME} to .gitignore")

    if errors:
        raise SystemExit(1)


@mcp_group.command("uninstall")
@click.argument("name")
@click.option("-d", "--dir", "directory", help="Project directory (default: current directory).")
@click.option("--no-lock", is_flag=True, help="Leave duckrow.lock.json untouched.")
@domain_error_boundary
@click.pass_obj
def uninstall_mcp(ctx: DuckrowContext, name: str, directory: str | None, no_lock: bool) -> None:
    """Remove an MCP server entry from agent config files."""
    target_dir = resolve_target_dir(ctx, directory)
    lock = read_lock_file(target_dir)
    locked = lock.find_mcp(name) if lock is not None else None

    if locked is not None and locked.agents:
        agents = mcp_capable_agents(agents_by_names(ctx.agents, locked.agents))
    else:
        agents = mcp_capable_agents(ctx.agents)

    errors = _print_results(name, uninstall_mcp_config(name, target_dir, agents))
    if not no_lock:
        remove_mcp_lock_entry(target_dir, name)
    if errors:
        raise SystemExit(1)
