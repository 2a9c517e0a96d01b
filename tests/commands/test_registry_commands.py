"""Tests for the registry command group."""

from pathlib import Path
from typing import Any

from duckrow.core.config import DuckrowConfig, RegistryConfig
from tests.fakes.git import FakeGit, make_clone_error
from tests.test_utils.cli_helpers import invoke, project_context
from tests.test_utils.repos import ACME_REGISTRY_URL, registry_repo

ACME = RegistryConfig(name="acme", repo=ACME_REGISTRY_URL)
REVIEW = {"name": "code-review", "source": "github.com/acme/skills/skills/code-review"}
LINT = {"name": "lint", "source": "github.com/acme/skills/skills/lint"}
DB = {"name": "db", "command": "npx", "args": ["-y", "db-server"]}


def _git(**kwargs: Any) -> FakeGit:
    return FakeGit(
        repos={ACME_REGISTRY_URL: registry_repo("acme", skills=[REVIEW], mcps=[DB])}, **kwargs
    )


def test_add_saves_registry(tmp_path: Path) -> None:
    """Test that add clones the registry and records it in the config."""
    ctx = project_context(tmp_path, _git())

    result = invoke(ctx, ["registry", "add", ACME_REGISTRY_URL])

    assert result.exit_code == 0, result.output
    assert "✓ Added registry: acme (1 skills, 1 MCP servers)" in result.output
    assert ctx.load_config().registries == [ACME]


def test_add_existing_registry_fails(tmp_path: Path) -> None:
    """Test that adding a configured registry is refused."""
    ctx = project_context(tmp_path, _git(), DuckrowConfig().with_registry(ACME))

    result = invoke(ctx, ["registry", "add", ACME_REGISTRY_URL])

    assert result.exit_code == 1
    assert "is already configured" in result.output


def test_add_unreachable_registry(tmp_path: Path) -> None:
    """Test that a clone failure leaves the config untouched."""
    ctx = project_context(tmp_path, FakeGit())

    result = invoke(ctx, ["registry", "add", ACME_REGISTRY_URL])

    assert result.exit_code == 1
    assert "kind:    not-found" in result.output
    assert ctx.load_config().registries == []


def test_list_empty_and_populated(tmp_path: Path) -> None:
    """Test list output before and after adding a registry."""
    ctx = project_context(tmp_path, _git())

    empty = invoke(ctx, ["registry", "list"])
    invoke(ctx, ["registry", "add", ACME_REGISTRY_URL])
    populated = invoke(ctx, ["registry", "list"])

    assert "No registries configured." in empty.output
    assert populated.exit_code == 0, populated.output
    assert "acme" in populated.output
    assert ACME_REGISTRY_URL in populated.output


def test_refresh_reports_each_registry(tmp_path: Path) -> None:
    """Test that refresh pulls the registry and reports success."""
    git = _git(pulled_repos={ACME_REGISTRY_URL: registry_repo("acme", skills=[REVIEW, LINT])})
    ctx = project_context(tmp_path, git)
    invoke(ctx, ["registry", "add", ACME_REGISTRY_URL])

    result = invoke(ctx, ["registry", "refresh"])

    assert result.exit_code == 0, result.output
    assert "✓ Refreshed: acme" in result.output
    assert len(git.pulls) == 1


def test_refresh_failure_exits_nonzero(tmp_path: Path) -> None:
    """Test that a failed pull is reported and sets the exit code."""
    error = make_clone_error(ACME_REGISTRY_URL, "Could not resolve host")
    git = _git(pull_errors={ACME_REGISTRY_URL: error})
    ctx = project_context(tmp_path, git)
    invoke(ctx, ["registry", "add", ACME_REGISTRY_URL])

    result = invoke(ctx, ["registry", "refresh", "acme"])

    assert result.exit_code == 1
    assert "Error: acme:" in result.output


def test_refresh_unknown_name(tmp_path: Path) -> None:
    """Test refreshing a registry that is not configured."""
    result = invoke(project_context(tmp_path), ["registry", "refresh", "nope"])

    assert result.exit_code == 1
    assert "Registry 'nope' not found" in result.output


def test_remove_deletes_config_and_clone(tmp_path: Path) -> None:
    """Test that remove drops the config entry and the clone."""
    ctx = project_context(tmp_path, _git())
    invoke(ctx, ["registry", "add", ACME_REGISTRY_URL])

    result = invoke(ctx, ["registry", "remove", "acme"])

    assert result.exit_code == 0, result.output
    assert "✓ Removed registry: acme" in result.output
    assert ctx.load_config().registries == []
    assert not ctx.registry_store().registry_dir(ACME_REGISTRY_URL).exists()


def test_remove_without_clone_warns(tmp_path: Path) -> None:
    """Test that a configured registry with no clone is still removed from config."""
    ctx = project_context(tmp_path, _git(), DuckrowConfig().with_registry(ACME))

    result = invoke(ctx, ["registry", "remove", ACME_REGISTRY_URL])

    assert result.exit_code == 0, result.output
    assert "Warning: " in result.output
    assert ctx.load_config().registries == []
