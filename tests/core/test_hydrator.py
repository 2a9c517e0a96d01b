"""Tests for resolving registry skill sources to commits."""

from pathlib import Path
from typing import Any

from duckrow.core.config import RegistryConfig
from duckrow.core.hydrator import HydrationResult, hydrate_registry_commits
from duckrow.core.registry import RegistryStore
from tests.fakes.git import FakeGit, make_clone_error
from tests.test_utils.repos import (
    ACME_REGISTRY_URL,
    ACME_SKILLS_URL,
    COMMIT_1,
    COMMIT_3,
    registry_repo,
)

TOOLS_URL = "https://github.com/acme/tools.git"
EMPTY_URL = "https://github.com/acme/empty.git"
ACME = RegistryConfig(name="acme", repo=ACME_REGISTRY_URL)


def _hydrate(
    tmp_path: Path,
    skills: list[dict[str, str]],
    git_kwargs: dict[str, Any],
    overrides: dict[str, str] | None = None,
) -> tuple[FakeGit, HydrationResult]:
    git = FakeGit(repos={ACME_REGISTRY_URL: registry_repo("acme", skills=skills)}, **git_kwargs)
    store = RegistryStore(git, tmp_path)
    store.add(ACME_REGISTRY_URL)
    return git, hydrate_registry_commits([ACME], store, git, overrides)


def test_pinned_entries_skip_the_network(tmp_path: Path) -> None:
    """Test that manifest commits are used as-is."""
    source = "github.com/acme/skills/skills/a"

    git, result = _hydrate(tmp_path, [{"name": "a", "source": source, "commit": COMMIT_3}], {})

    assert result.commits == {source: COMMIT_3}
    assert result.warnings == []
    assert git.ls_remote_calls == []


def test_one_lookup_per_repository(tmp_path: Path) -> None:
    """Test that unpinned skills sharing a repo share one ls-remote."""
    skills = [
        {"name": "a", "source": "github.com/acme/skills/skills/a"},
        {"name": "b", "source": "github.com/acme/skills/skills/b"},
    ]

    git, result = _hydrate(tmp_path, skills, {"remote_heads": {ACME_SKILLS_URL: COMMIT_1}})

    assert result.commits == {
        "github.com/acme/skills/skills/a": COMMIT_1,
        "github.com/acme/skills/skills/b": COMMIT_1,
    }
    assert git.ls_remote_calls == [ACME_SKILLS_URL]


def test_failures_become_warnings(tmp_path: Path) -> None:
    """Test that lookup failures and bad sources are reported, not raised."""
    skills = [
        {"name": "ok", "source": "github.com/acme/skills/skills/ok"},
        {"name": "down", "source": "github.com/acme/tools/down"},
        {"name": "headless", "source": "github.com/acme/empty/x"},
        {"name": "bad", "source": "not a source"},
    ]

    _, result = _hydrate(
        tmp_path,
        skills,
        {
            "remote_heads": {ACME_SKILLS_URL: COMMIT_1, EMPTY_URL: None},
            "ls_remote_errors": {TOOLS_URL: make_clone_error(TOOLS_URL)},
        },
    )

    assert result.commits == {"github.com/acme/skills/skills/ok": COMMIT_1}
    joined = "\n".join(result.warnings)
    assert "acme/bad" in joined
    assert f"{TOOLS_URL}: Repository Not Found" in joined
    assert f"{EMPTY_URL}: remote has no HEAD" in joined


def test_clone_url_overrides_redirect_lookups(tmp_path: Path) -> None:
    """Test that ls-remote uses the overridden clone URL."""
    override = "git@github.com:acme/skills.git"
    skills = [{"name": "a", "source": "github.com/acme/skills/skills/a"}]

    git, result = _hydrate(
        tmp_path,
        skills,
        {"remote_heads": {override: COMMIT_1}},
        overrides={"acme/skills": override},
    )

    assert git.ls_remote_calls == [override]
    assert result.commits == {"github.com/acme/skills/skills/a": COMMIT_1}
