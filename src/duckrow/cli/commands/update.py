"""Outdated, update and sync commands."""

import click
from rich.table import Table

from duckrow.cli.core import registry_commits, resolve_target_dir
from duckrow.cli.errors import domain_error_boundary, fail
from duckrow.cli.output import print_table, truncate_commit, user_output
from duckrow.core.agents import agents_by_names, mcp_capable_agents
from duckrow.core.context import DuckrowContext
from duckrow.core.lockfile import LockFile, read_lock_file
from duckrow.core.mcp_config import install_mcp_config
from duckrow.core.registry import RegistryError
from duckrow.core.updates import (
    BatchResult,
    apply_updates,
    check_for_updates,
    fetch_unmatched_commits,
    sync_from_lock,
)


def _require_lock(lock: LockFile | None) -> LockFile:
    if lock is None:
        fail(
            "No duckrow.lock.json found",
            hints=["Install a skill first: duckrow install <source>"],
        )
    return lock


def _report_batch(label: str, result: BatchResult) -> None:
    for name, message in result.errors:
        user_output(click.style("Error: ", fg="red") + f"{name}: {message}")
    user_output(
        f"\n{label}: {len(result.succeeded)} succeeded, "
        f"{len(result.skipped)} skipped, {len(result.errors)} errors"
    )


@click.command("outdated")
@click.option("-d", "--dir", "directory", help="Project directory (default: current directory).")
@domain_error_boundary
@click.pass_obj
def outdated_cmd(ctx: DuckrowContext, directory: str | None) -> None:
    """Show locked skills whose registry has a newer commit."""
    target_dir = resolve_target_dir(ctx, directory)
    lock = _require_lock(read_lock_file(target_dir))
    if not lock.skills:
        user_output("No skills in lock file.")
        return

    config = ctx.load_config()
    commits = registry_commits(ctx, config)
    fetched = fetch_unmatched_commits(lock, commits, ctx.git, config.settings.clone_url_overrides)
    updates = check_for_updates(lock, commits, fetched)

    table = Table(show_header=True, header_style="bold")
    table.add_column("skill", style="cyan", no_wrap=True)
    table.add_column("installed", no_wrap=True)
    table.add_column("available", no_wrap=True)
    table.add_column("status", no_wrap=True)
    for update in updates:
        if update.has_update:
            status = click.style("update available", fg="yellow")
        elif update.available_commit:
            status = "up to date"
        else:
            status = "unknown"
        table.add_row(
            update.name,
            truncate_commit(update.installed_commit) or "-",
            truncate_commit(update.available_commit) or "-",
            status,
        )
    print_table(table)


@click.command("update")
@click.argument("name", required=False)
@click.option("--all", "update_all", is_flag=True, help="Update every locked skill.")
@click.option("-d", "--dir", "directory", help="Project directory (default: current directory).")
@click.option("--dry-run", is_flag=True, help="Show what would change without touching files.")
@domain_error_boundary
@click.pass_obj
def update_cmd(
    ctx: DuckrowContext, name: str | None, update_all: bool, directory: str | None, dry_run: bool
) -> None:
    """Reinstall skills whose registry commit moved and record the new commit."""
    if not name and not update_all:
        fail("Specify a skill name or --all")
    if name and update_all:
        fail("Pass either a skill name or --all, not both")

    target_dir = resolve_target_dir(ctx, directory)
    lock = _require_lock(read_lock_file(target_dir))
    config = ctx.load_config()

    if name:
        entry = lock.find_skill(name)
        if entry is None:
            fail(f"Skill {name!r} is not in the lock file")
        lock_view = lock.model_copy(update={"skills": [entry]})
    else:
        lock_view = lock

    commits = registry_commits(ctx, config)
    fetched = fetch_unmatched_commits(
        lock_view, commits, ctx.git, config.settings.clone_url_overrides
    )
    updates = check_for_updates(lock_view, commits, fetched)

    if dry_run:
        for update in updates:
            if update.has_update:
                user_output(
                    f"update: {update.name} {truncate_commit(update.installed_commit)} -> "
                    f"{truncate_commit(update.available_commit)}"
                )
            else:
                user_output(f"skip: {update.name} (up to date)")
        return

    result = apply_updates(
        updates,
        lock,
        target_dir,
        ctx.installer(),
        ctx.remover(),
        ctx.agents,
        config.settings.clone_url_overrides,
    )
    for updated in result.succeeded:
        user_output(f"✓ Updated: {updated}")
    _report_batch("Update", result)
    if not result.ok:
        raise SystemExit(1)


@click.command("sync")
@click.option("-d", "--dir", "directory", help="Project directory (default: current directory).")
@click.option("--force", is_flag=True, help="Reinstall skills and MCP stanzas that already exist.")
@domain_error_boundary
@click.pass_obj
def sync_cmd(ctx: DuckrowContext, directory: str | None, force: bool) -> None:
    """Install everything recorded in duckrow.lock.json at its pinned commit."""
    target_dir = resolve_target_dir(ctx, directory)
    lock = _require_lock(read_lock_file(target_dir))
    config = ctx.load_config()

    result = sync_from_lock(
        lock,
        target_dir,
        ctx.installer(),
        ctx.agents,
        config.settings.clone_url_overrides,
        force=force,
    )
    for synced in result.succeeded:
        user_output(f"✓ Installed: {synced}")

    mcp_errors = 0
    store = ctx.registry_store()
    for locked in lock.mcps:
        try:
            match = store.find_mcp(config.registries, locked.name, locked.registry or None)
        except RegistryError as e:
            user_output(click.style("Error: ", fg="red") + f"{locked.name}: {e}")
            mcp_errors += 1
            continue
        named = agents_by_names(ctx.agents, locked.agents) if locked.agents else ctx.agents
        agents = mcp_capable_agents(named)
        for outcome in install_mcp_config(match.entry, target_dir, agents, force=force):
            if outcome.action == "error":
                mcp_errors += 1
                user_output(
                    click.style("Error: ", fg="red")
                    + f"{locked.name} ({outcome.config_path}): {outcome.message}"
                )
            elif outcome.action == "wrote":
                user_output(f"✓ Configured MCP: {locked.name} in {outcome.config_path}")

    _report_batch("Sync", result)
    if not result.ok or mcp_errors:
        raise SystemExit(1)
