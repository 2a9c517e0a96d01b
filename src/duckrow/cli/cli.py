import logging
import os

import click

from duckrow.cli.commands.env import env_cmd
from duckrow.cli.commands.mcp import mcp_group
from duckrow.cli.commands.registry import registry_group
from duckrow.cli.commands.skill import install_cmd, list_cmd, uninstall_cmd
from duckrow.cli.commands.update import outdated_cmd, sync_cmd, update_cmd
from duckrow.core.context import create_context

if os.getenv("DUCKROW_DEBUG"):
    logging.basicConfig(level=logging.DEBUG, format="[DEBUG %(name)s:%(lineno)d] %(message)s")

CONTEXT_SETTINGS = dict(help_option_names=["-h", "--help"])  # terse help flags


@click.group(context_settings=CONTEXT_SETTINGS)
@click.version_option(package_name="duckrow")
@click.pass_context
def cli(ctx: click.Context) -> None:
    """Install skills and MCP servers from git registries into projects."""
    # Only create context if not already provided (e.g., by tests)
    if ctx.obj is None:
        ctx.obj = create_context()


cli.add_command(env_cmd)
cli.add_command(install_cmd)
cli.add_command(list_cmd)
cli.add_command(mcp_group)
cli.add_command(outdated_cmd)
cli.add_command(registry_group)
cli.add_command(sync_cmd)
cli.add_command(uninstall_cmd)
cli.add_command(update_cmd)


def main() -> None:
    """CLI entry point used by the `duckrow` console script."""
    cli()
