"""Tests for the mcp command group and the env wrapper."""

import json
from pathlib import Path
from typing import Any

import pytest

from duckrow.core.agents import AgentSystem
from duckrow.core.config import DuckrowConfig, RegistryConfig
from duckrow.core.context import DuckrowContext
from duckrow.core.lockfile import LockedMCP, LockFile, read_lock_file, write_lock_file
from duckrow.core.registry import RegistryStore
from tests.fakes.git import FakeGit
from tests.test_utils.cli_helpers import invoke, project_context
from tests.test_utils.repos import ACME_REGISTRY_URL, registry_repo

DB = {"name": "db", "command": "npx", "args": ["db-server"], "env": {"API_KEY": "$DB_API_KEY"}}

# Detected only through its config signal, never through the home directory.
LOCAL_AGENT = AgentSystem(
    name="local-agent",
    display_name="Local Agent",
    universal=False,
    skills_dir=".local-agent/skills",
    config_signals=("LOCAL.md",),
    mcp_config_path=".local-agent/mcp.json",
)


def _context(
    tmp_path: Path,
    environ: dict[str, str] | None = None,
    agents: tuple[AgentSystem, ...] | None = None,
) -> DuckrowContext:
    git = FakeGit(repos={ACME_REGISTRY_URL: registry_repo("acme", mcps=[DB])})
    RegistryStore(git, tmp_path / "duckrow" / "registries").add(ACME_REGISTRY_URL)
    config = DuckrowConfig().with_registry(RegistryConfig(name="acme", repo=ACME_REGISTRY_URL))
    return project_context(tmp_path, git, config, environ=environ, agents=agents)


def _read(path: Path) -> dict[str, Any]:
    return json.loads(path.read_text(encoding="utf-8"))


def test_install_writes_config_lock_and_gitignore(tmp_path: Path) -> None:
    """Test a stdio MCP install for an explicit agent."""
    ctx = _context(tmp_path)

    result = invoke(ctx, ["mcp", "install", "db", "--agents", "claude-code"])

    assert result.exit_code == 0, result.output
    assert "✓ db: wrote .mcp.json" in result.output
    stanza = _read(ctx.cwd / ".mcp.json")["mcpServers"]["db"]
    assert stanza == {
        "command": "duckrow",
        "args": ["env", "--mcp", "db", "--", "npx", "db-server"],
    }

    lock = read_lock_file(ctx.cwd)
    assert lock is not None
    locked = lock.find_mcp("db")
    assert locked is not None
    assert locked.registry == "acme"
    assert locked.agents == ["claude-code"]
    assert locked.required_env == ["DB_API_KEY"]
    assert locked.config_hash.startswith("sha256:")

    assert "DB_API_KEY" in result.output
    assert "Added .env.duckrow to .gitignore" in result.output
    assert (ctx.cwd / ".gitignore").read_text(encoding="utf-8") == ".env.duckrow\n"


def test_install_with_variables_already_set(tmp_path: Path) -> None:
    """Test that no missing-variable notice is shown when the value resolves."""
    ctx = _context(tmp_path, environ={"DB_API_KEY": "secret"})

    result = invoke(ctx, ["mcp", "install", "db", "--agents", "claude-code"])

    assert result.exit_code == 0, result.output
    assert "not set yet" not in result.output


def test_install_skips_existing_entry_without_force(tmp_path: Path) -> None:
    """Test that a second install leaves the entry alone unless --force."""
    ctx = _context(tmp_path)
    invoke(ctx, ["mcp", "install", "db", "--agents", "claude-code"])

    skipped = invoke(ctx, ["mcp", "install", "db", "--agents", "claude-code"])
    forced = invoke(ctx, ["mcp", "install", "db", "--agents", "claude-code", "--force"])

    assert "- db: skipped .mcp.json (already exists, use --force)" in skipped.output
    assert "✓ db: wrote .mcp.json" in forced.output


def test_install_rejects_agent_without_mcp_support(tmp_path: Path) -> None:
    """Test that naming an agent with no MCP config fails."""
    result = invoke(_context(tmp_path), ["mcp", "install", "db", "--agents", "codex"])

    assert result.exit_code == 1
    assert "Agents without MCP support: codex" in result.output


def test_install_detects_agents_in_project(tmp_path: Path) -> None:
    """Test that agents active in the project are picked when --agents is absent."""
    ctx = _context(tmp_path, agents=(LOCAL_AGENT,))
    (ctx.cwd / "LOCAL.md").write_text("notes\n", encoding="utf-8")

    result = invoke(ctx, ["mcp", "install", "db"])

    assert result.exit_code == 0, result.output
    assert "db" in _read(ctx.cwd / ".local-agent" / "mcp.json")["mcpServers"]


def test_install_without_detected_agents(tmp_path: Path) -> None:
    """Test the error when no MCP-capable agent is active."""
    result = invoke(_context(tmp_path, agents=(LOCAL_AGENT,)), ["mcp", "install", "db"])

    assert result.exit_code == 1
    assert "No MCP-capable agents detected in this project" in result.output


def test_install_unknown_mcp(tmp_path: Path) -> None:
    """Test that an unknown MCP name lists what the registries offer."""
    result = invoke(_context(tmp_path), ["mcp", "install", "search", "--agents", "claude-code"])

    assert result.exit_code == 1
    assert "Available: db" in result.output


def test_uninstall_removes_entry_and_lock(tmp_path: Path) -> None:
    """Test that uninstall removes the stanza from the locked agents."""
    ctx = _context(tmp_path)
    invoke(ctx, ["mcp", "install", "db", "--agents", "claude-code"])

    result = invoke(ctx, ["mcp", "uninstall", "db"])

    assert result.exit_code == 0, result.output
    assert "✓ db: removed from .mcp.json" in result.output
    assert _read(ctx.cwd / ".mcp.json")["mcpServers"] == {}
    lock = read_lock_file(ctx.cwd)
    assert lock is not None
    assert lock.mcps == []


def test_env_injects_variables_and_execs(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Test that env resolves required variables and replaces the process."""
    calls: list[tuple[str, list[str], dict[str, str]]] = []

    def fake_execvpe(file: str, args: list[str], env: dict[str, str]) -> None:
        calls.append((file, args, env))

    monkeypatch.setattr("duckrow.cli.commands.env.os.execvpe", fake_execvpe)
    ctx = project_context(tmp_path, environ={"PATH": "/bin"})
    write_lock_file(ctx.cwd, LockFile(mcps=[LockedMCP(name="db", required_env=["DB_API_KEY"])]))
    (ctx.cwd / ".env.duckrow").write_text("DB_API_KEY='secret'\n", encoding="utf-8")

    result = invoke(ctx, ["env", "--mcp", "db", "--", "npx", "db-server", "--port", "1"])

    assert result.exit_code == 0, result.output
    assert calls == [
        (
            "npx",
            ["npx", "db-server", "--port", "1"],
            {"PATH": "/bin", "DB_API_KEY": "secret"},
        )
    ]


def test_env_warns_about_missing_variables(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    """Test that unresolved variables are reported before exec."""
    calls: list[str] = []
    monkeypatch.setattr(
        "duckrow.cli.commands.env.os.execvpe", lambda file, args, env: calls.append(file)
    )
    ctx = project_context(tmp_path)
    write_lock_file(ctx.cwd, LockFile(mcps=[LockedMCP(name="db", required_env=["DB_API_KEY"])]))

    result = invoke(ctx, ["env", "--mcp", "db", "--", "npx"])

    assert "Warning: db is missing DB_API_KEY" in result.output
    assert calls == ["npx"]


def test_env_requires_command(tmp_path: Path) -> None:
    """Test that env without a command fails."""
    result = invoke(project_context(tmp_path), ["env", "--mcp", "db"])

    assert result.exit_code == 1
    assert "A command to run is required" in result.output


def test_env_sets_declared_keys_with_substitution(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    """Test that literal and $VAR-referencing manifest env values reach the server."""
    calls: list[dict[str, str]] = []
    monkeypatch.setattr(
        "duckrow.cli.commands.env.os.execvpe", lambda file, args, env: calls.append(env)
    )
    server = {
        "name": "gh",
        "command": "gh-mcp",
        "env": {"LOG_LEVEL": "debug", "TOKEN": "$GH_TOKEN", "AUTH": "Bearer ${GH_TOKEN}"},
    }
    git = FakeGit(repos={ACME_REGISTRY_URL: registry_repo("acme", mcps=[server])})
    RegistryStore(git, tmp_path / "duckrow" / "registries").add(ACME_REGISTRY_URL)
    config = DuckrowConfig().with_registry(RegistryConfig(name="acme", repo=ACME_REGISTRY_URL))
    ctx = project_context(tmp_path, git, config, environ={"GH_TOKEN": "secret"})

    installed = invoke(ctx, ["mcp", "install", "gh", "--agents", "claude-code"])
    assert installed.exit_code == 0, installed.output
    lock = read_lock_file(ctx.cwd)
    assert lock is not None
    locked = lock.find_mcp("gh")
    assert locked is not None
    assert locked.env == server["env"]

    result = invoke(ctx, ["env", "--mcp", "gh", "--", "gh-mcp"])

    assert result.exit_code == 0, result.output
    assert len(calls) == 1
    assert calls[0]["TOKEN"] == "secret"
    assert calls[0]["LOG_LEVEL"] == "debug"
    assert calls[0]["AUTH"] == "Bearer secret"


def test_env_leaves_out_keys_with_missing_references(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    """Test that a declared key referencing an unset variable is not set."""
    calls: list[dict[str, str]] = []
    monkeypatch.setattr(
        "duckrow.cli.commands.env.os.execvpe", lambda file, args, env: calls.append(env)
    )
    ctx = project_context(tmp_path, environ={})
    locked = LockedMCP(
        name="gh",
        required_env=["GH_TOKEN"],
        env={"LOG_LEVEL": "debug", "TOKEN": "$GH_TOKEN"},
    )
    write_lock_file(ctx.cwd, LockFile(mcps=[locked]))

    result = invoke(ctx, ["env", "--mcp", "gh", "--", "gh-mcp"])

    assert "Warning: gh is missing GH_TOKEN" in result.output
    assert calls == [{"LOG_LEVEL": "debug"}]


def test_env_without_lock_entry_reads_the_registry(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    """Test that a --no-lock install still gets its declared variables."""
    calls: list[dict[str, str]] = []
    monkeypatch.setattr(
        "duckrow.cli.commands.env.os.execvpe", lambda file, args, env: calls.append(env)
    )
    ctx = _context(tmp_path, environ={"DB_API_KEY": "k"})
    installed = invoke(ctx, ["mcp", "install", "db", "--agents", "claude-code", "--no-lock"])
    assert installed.exit_code == 0, installed.output

    result = invoke(ctx, ["env", "--mcp", "db", "--", "npx", "db-server"])

    assert result.exit_code == 0, result.output
    assert calls[0]["API_KEY"] == "k"
