"""Runtime environment wrapper for MCP servers.

MCP stanzas written by `duckrow mcp install` launch the server through
`duckrow env --mcp <name> -- <command> <args...>`. This command sets every
variable the server's manifest entry declares, expanding `$VAR` references
from the resolver, and replaces the current process with the server.
"""

import os
from pathlib import Path

import click

from duckrow.cli.core import resolve_target_dir
from duckrow.cli.errors import domain_error_boundary, fail
from duckrow.cli.output import user_output
from duckrow.core.context import DuckrowContext
from duckrow.core.env import ENV_FILE_NAME
from duckrow.core.lockfile import read_lock_file
from duckrow.core.mcp_config import referenced_env_names, substitute_env
from duckrow.core.registry import RegistryError


def _declared_env(ctx: DuckrowContext, target_dir: Path, mcp_name: str) -> dict[str, str]:
    """The env mapping declared for mcp_name, from the lock or a cached registry."""
    lock = read_lock_file(target_dir)
    locked = lock.find_mcp(mcp_name) if lock is not None else None
    if locked is not None:
        if locked.env:
            return dict(locked.env)
        # Entries written before env was recorded only carry the names.
        return {name: f"${{{name}}}" for name in locked.required_env}

    try:
        match = ctx.registry_store().find_mcp(ctx.load_config().registries, mcp_name)
    except RegistryError as e:
        user_output(f"Warning: MCP {mcp_name!r} is not in the lock file ({e}); no variables set")
        return {}
    return dict(match.entry.env)


@click.command(
    "env",
    context_settings=dict(ignore_unknown_options=True, allow_interspersed_args=False),
)
@click.option("--mcp", "mcp_name", required=True, help="MCP server name in duckrow.lock.json.")
@click.option("-d", "--dir", "directory", help="Project directory (default: current directory).")
@click.argument("command", nargs=-1, type=click.UNPROCESSED)
@domain_error_boundary
@click.pass_obj
def env_cmd(
    ctx: DuckrowContext, mcp_name: str, directory: str | None, command: tuple[str, ...]
) -> None:
    """Run COMMAND with the MCP server's declared variables set."""
    if not command:
        fail("A command to run is required", hints=["duckrow env --mcp <name> -- <command>"])

    target_dir = resolve_target_dir(ctx, directory)
    declared = _declared_env(ctx, target_dir, mcp_name)

    resolved, missing = ctx.env_resolver(target_dir).resolve_env(referenced_env_names(declared))
    if missing:
        user_output(
            f"Warning: {mcp_name} is missing {', '.join(missing)} "
            f"(set them in the environment or {ENV_FILE_NAME})"
        )

    args = list(command)
    os.execvpe(args[0], args, {**ctx.environ, **resolved, **substitute_env(declared, resolved)})
