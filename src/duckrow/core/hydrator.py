"""Commit hydration: resolve registry skill sources to concrete commits.

Builds the ephemeral source -> commit map that update detection compares lock
entries against. Pinned manifest entries are taken as-is; unpinned ones are
resolved with one `git ls-remote` per source repository.
"""

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field

from duckrow.core.clone_error import CloneError
from duckrow.core.config import RegistryConfig
from duckrow.core.git.abc import Git
from duckrow.core.registry import RegistryStore
from duckrow.core.source import SourceParseError, parse_source

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HydrationResult:
    """Resolved commits keyed by manifest source, plus per-entry warnings."""

    commits: dict[str, str] = field(default_factory=dict)
    warnings: list[str] = field(default_factory=list)


def hydrate_registry_commits(
    registries: Sequence[RegistryConfig],
    store: RegistryStore,
    git: Git,
    overrides: Mapping[str, str] | None = None,
) -> HydrationResult:
    """Resolve every registry skill source to a commit, best-effort.

    Args:
        registries: Configured registries to read manifests from
        store: Registry store holding the local clones
        git: Git implementation used for remote lookups
        overrides: "owner/repo" -> clone URL overrides for private repos

    Returns:
        HydrationResult; sources that could not be resolved are absent from
        commits and described in warnings
    """
    commits: dict[str, str] = {}
    warnings: list[str] = []
    unpinned: dict[str, list[str]] = {}

    for item in store.list_skills(registries):
        entry = item.entry
        if entry.commit:
            commits[entry.source] = entry.commit
            continue
        try:
            parsed = parse_source(entry.source, overrides)
        except SourceParseError as e:
            warnings.append(f"{item.registry_name}/{entry.name}: {e}")
            continue
        if parsed.type != "git":
            warnings.append(f"{item.registry_name}/{entry.name}: not a git source")
            continue
        sources = unpinned.setdefault(parsed.clone_url, [])
        if entry.source not in sources:
            sources.append(entry.source)

    for clone_url, sources in unpinned.items():
        try:
            commit = git.ls_remote(clone_url)
        except CloneError as e:
            logger.warning("Could not resolve HEAD of %s: %s", clone_url, e)
            warnings.append(f"{clone_url}: {e.label}: {e.first_line()}")
            continue
        if commit is None:
            warnings.append(f"{clone_url}: remote has no HEAD")
            continue
        for source in sources:
            # Pinned entries from another registry win.
            commits.setdefault(source, commit)

    return HydrationResult(commits=commits, warnings=warnings)
