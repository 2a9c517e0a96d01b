"""Skill install, uninstall and list commands."""

from datetime import UTC, datetime
from pathlib import Path

import click
from rich.table import Table

from duckrow.cli.core import resolve_skill_agents, resolve_target_dir
from duckrow.cli.errors import domain_error_boundary, fail
from duckrow.cli.output import print_table, truncate_commit, user_output
from duckrow.core.context import DuckrowContext
from duckrow.core.installer import InstallOptions, InstallResult
from duckrow.core.lockfile import (
    LockedSkill,
    LockFile,
    add_or_update_lock_entry,
    read_lock_file,
    remove_lock_entry,
    write_lock_file,
)
from duckrow.core.skills import sanitize_name, scan_installed_skills
from duckrow.core.source import parse_source

_DIRECT_SOURCE_PREFIXES = ("https://", "http://", "git@", "ssh://", "./", "../", "/", "~")


def is_direct_source(arg: str) -> bool:
    """Registry names never contain "/"; anything path- or URL-shaped is a source."""
    return arg.startswith(_DIRECT_SOURCE_PREFIXES) or "/" in arg or arg == "."


def _track_folder(ctx: DuckrowContext, target_dir: Path) -> None:
    config = ctx.load_config()
    if not config.settings.auto_add_current_dir:
        return
    updated = config.with_folder(str(target_dir), added_at=datetime.now(UTC).isoformat())
    if updated is not config:
        ctx.config_store.save(updated)


def _record_installs(target_dir: Path, result: InstallResult, existing: LockFile | None) -> None:
    for skill in result.installed:
        if not skill.commit:
            continue
        if existing is not None:
            previous = existing.find_skill(skill.name)
            if previous is not None and previous.source != skill.source:
                user_output(
                    f"Warning: skill {skill.name!r} source changed "
                    f"from {previous.source!r} to {skill.source!r}"
                )
        add_or_update_lock_entry(
            target_dir,
            LockedSkill(
                name=skill.name,
                source=skill.source,
                commit=skill.commit,
                ref=skill.ref,
                agents=list(skill.agents),
            ),
        )


@click.command("install")
@click.argument("source")
@click.option("-d", "--dir", "directory", help="Project directory (default: current directory).")
@click.option("--registry", help="Only search this registry (name or repo URL).")
@click.option("--agents", help="Comma-separated agents to link in addition to universal ones.")
@click.option("--internal", is_flag=True, help="Include skills marked metadata.internal.")
@click.option("--no-lock", is_flag=True, help="Do not record the install in duckrow.lock.json.")
@domain_error_boundary
@click.pass_obj
def install_cmd(
    ctx: DuckrowContext,
    source: str,
    directory: str | None,
    registry: str | None,
    agents: str | None,
    internal: bool,
    no_lock: bool,
) -> None:
    """Install skills from a source or by registry name.

    \b
    SOURCE may be:
      owner/repo, owner/repo/sub/path, owner/repo@skill
      https://host/owner/repo[/tree/ref/path], git@host:owner/repo.git
      ./local/path
      a skill name from a configured registry
    """
    target_dir = resolve_target_dir(ctx, directory)
    config = ctx.load_config()
    overrides = config.settings.clone_url_overrides
    options = InstallOptions(
        target_dir=target_dir,
        include_internal=internal,
        target_agents=resolve_skill_agents(ctx, agents),
    )

    if is_direct_source(source):
        if registry:
            fail("--registry cannot be used with a direct source")
        parsed = parse_source(source, overrides)
        result = ctx.installer().install_from_source(parsed, options)
    else:
        result = ctx.installer().install_from_registry(
            source,
            config.registries,
            ctx.registry_store(),
            options,
            registry=registry,
            overrides=overrides,
        )

    existing = None if no_lock else read_lock_file(target_dir)
    for skill in result.installed:
        user_output(f"✓ Installed: {click.style(skill.name, fg='green')}")
        user_output(f"  Path: {skill.path}")
        if skill.commit:
            user_output(f"  Commit: {truncate_commit(skill.commit)}")
        if skill.agents:
            user_output(f"  Agents: {', '.join(skill.agents)}")

    if not no_lock:
        _record_installs(target_dir, result, existing)
    _track_folder(ctx, target_dir)


@click.command("uninstall")
@click.argument("name", required=False)
@click.option("-d", "--dir", "directory", help="Project directory (default: current directory).")
@click.option("--all", "remove_all", is_flag=True, help="Remove every installed skill.")
@click.option("--no-lock", is_flag=True, help="Leave duckrow.lock.json untouched.")
@domain_error_boundary
@click.pass_obj
def uninstall_cmd(
    ctx: DuckrowContext, name: str | None, directory: str | None, remove_all: bool, no_lock: bool
) -> None:
    """Remove an installed skill and its agent links."""
    target_dir = resolve_target_dir(ctx, directory)
    remover = ctx.remover()

    if remove_all:
        if name:
            fail("Pass either a skill name or --all, not both")
        results = remover.remove_all(target_dir)
        if not results:
            user_output("No skills installed.")
            return
        for removed in results:
            user_output(f"✓ Removed: {removed.name}")
        if not no_lock:
            lock = read_lock_file(target_dir)
            if lock is not None:
                write_lock_file(target_dir, lock.model_copy(update={"skills": []}))
        return

    if not name:
        available = remover.list_removable(target_dir)
        fail(
            "Skill name is required",
            hints=[f"Installed: {', '.join(available)}"] if available else [],
        )

    removed = remover.remove(sanitize_name(name), target_dir)
    user_output(f"✓ Removed: {removed.name}")
    for agent in removed.removed_links:
        user_output(f"  Unlinked: {agent}")
    if not no_lock:
        remove_lock_entry(target_dir, removed.name)


@click.command("list")
@click.option("-d", "--dir", "directory", help="Project directory (default: current directory).")
@domain_error_boundary
@click.pass_obj
def list_cmd(ctx: DuckrowContext, directory: str | None) -> None:
    """List skills and MCP servers installed in a project."""
    target_dir = resolve_target_dir(ctx, directory)
    skills_dirs = [d for agent in ctx.agents for d in agent.all_skills_dirs()]
    agent_dirs = {agent.display_name: agent.all_skills_dirs() for agent in ctx.agents}
    installed = scan_installed_skills(target_dir, skills_dirs, agent_dirs)
    lock = read_lock_file(target_dir)

    if not installed and (lock is None or not lock.mcps):
        user_output("No skills installed.")
        return

    if installed:
        table = Table(show_header=True, header_style="bold")
        table.add_column("skill", style="cyan", no_wrap=True)
        table.add_column("version", no_wrap=True)
        table.add_column("commit", no_wrap=True)
        table.add_column("agents")
        for skill in installed:
            locked = lock.find_skill(skill.name) if lock is not None else None
            commit = truncate_commit(locked.commit) if locked is not None else "-"
            table.add_row(skill.name, skill.version or "-", commit, ", ".join(skill.agents))
        print_table(table)

    if lock is not None and lock.mcps:
        table = Table(show_header=True, header_style="bold")
        table.add_column("mcp", style="cyan", no_wrap=True)
        table.add_column("registry", no_wrap=True)
        table.add_column("agents")
        table.add_column("required env")
        for mcp in lock.mcps:
            table.add_row(
                mcp.name, mcp.registry or "-", ", ".join(mcp.agents), ", ".join(mcp.required_env)
            )
        print_table(table)
