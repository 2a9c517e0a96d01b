"""Registry management commands."""

import click
from rich.table import Table

from duckrow.cli.errors import domain_error_boundary, fail
from duckrow.cli.output import print_table, user_output
from duckrow.core.config import RegistryConfig
from duckrow.core.context import DuckrowContext
from duckrow.core.registry import RegistryError


@click.group("registry")
def registry_group() -> None:
    """Manage registries (git repositories with a duckrow.json manifest)."""


@registry_group.command("add")
@click.argument("repo_url")
@domain_error_boundary
@click.pass_obj
def add_registry(ctx: DuckrowContext, repo_url: str) -> None:
    """Clone a registry and add it to the user config."""
    config = ctx.load_config()
    existing = config.find_registry(repo_url)
    if existing is not None:
        fail(f"Registry {existing.name!r} ({existing.repo}) is already configured")

    manifest = ctx.registry_store().add(repo_url)
    ctx.config_store.save(config.with_registry(RegistryConfig(name=manifest.name, repo=repo_url)))

    for warning in manifest.warnings:
        user_output(f"Warning: {warning}")
    user_output(
        f"✓ Added registry: {click.style(manifest.name, fg='green')} "
        f"({len(manifest.skills)} skills, {len(manifest.mcps)} MCP servers)"
    )


@registry_group.command("list")
@domain_error_boundary
@click.pass_obj
def list_registries(ctx: DuckrowContext) -> None:
    """List configured registries."""
    config = ctx.load_config()
    if not config.registries:
        user_output("No registries configured.")
        return

    store = ctx.registry_store()
    table = Table(show_header=True, header_style="bold")
    table.add_column("name", style="cyan", no_wrap=True)
    table.add_column("repo", no_wrap=True)
    table.add_column("skills", justify="right")
    table.add_column("mcps", justify="right")
    for registry in config.registries:
        skills = len(store.list_skills([registry]))
        mcps = len(store.list_mcps([registry]))
        table.add_row(registry.name, registry.repo, str(skills), str(mcps))
    print_table(table)


@registry_group.command("refresh")
@click.argument("name", required=False)
@domain_error_boundary
@click.pass_obj
def refresh_registries(ctx: DuckrowContext, name: str | None) -> None:
    """Pull the latest manifest for one registry, or all of them."""
    config = ctx.load_config()
    if name:
        registry = config.find_registry(name)
        if registry is None:
            fail(f"Registry {name!r} not found")
        registries = [registry]
    else:
        registries = list(config.registries)

    if not registries:
        user_output("No registries configured.")
        return

    failed = 0
    for result in ctx.registry_store().refresh_all(registries):
        if result.ok:
            assert result.manifest is not None
            user_output(f"✓ Refreshed: {result.registry.name}")
            for warning in result.manifest.warnings:
                user_output(f"  Warning: {warning}")
        else:
            failed += 1
            message = f"{result.registry.name}: {result.error}"
            user_output(click.style("Error: ", fg="red") + message)

    if failed:
        raise SystemExit(1)


@registry_group.command("remove")
@click.argument("name")
@domain_error_boundary
@click.pass_obj
def remove_registry(ctx: DuckrowContext, name: str) -> None:
    """Remove a registry from the config and delete its clone."""
    config = ctx.load_config()
    registry = config.find_registry(name)
    if registry is None:
        fail(f"Registry {name!r} not found")

    try:
        ctx.registry_store().remove(registry.repo)
    except RegistryError as e:
        user_output(f"Warning: {e}")

    ctx.config_store.save(config.without_registry(registry.repo))
    user_output(f"✓ Removed registry: {registry.name}")
