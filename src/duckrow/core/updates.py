"""Update detection and the batch operations built on it.

Updates compare each lock entry's pinned commit with the commit the registry
currently advertises for the same source. Entries no registry advertises are
checked against a fresh clone of their own repository instead. Applying an
update removes the skill, reinstalls it and rewrites its lock entry, in that
order. A crash between the remove and the relock leaves the lock entry
pointing at a skill that is no longer on disk; `sync` repairs that state.
"""

import logging
import tempfile
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path

from duckrow.core.agents import AgentSystem, UnknownAgentError, agents_by_names, universal_agents
from duckrow.core.clone_error import CloneError
from duckrow.core.git.abc import Git
from duckrow.core.installer import InstallOptions, Installer, PostCloneError
from duckrow.core.lockfile import LockedSkill, LockFile, add_or_update_lock_entry
from duckrow.core.remover import Remover, SkillNotInstalledError
from duckrow.core.skills import (
    CANONICAL_SKILLS_DIR,
    discover_skills,
    filter_skills,
    sanitize_name,
)
from duckrow.core.source import (
    ParsedSource,
    SourceParseError,
    normalized_source_key,
    parse_source,
)

logger = logging.getLogger(__name__)

_ITEM_ERRORS = (CloneError, PostCloneError, SourceParseError, UnknownAgentError)


@dataclass(frozen=True)
class UpdateInfo:
    """Update status of one lock entry.

    An empty available_commit means the registry gave no signal for the source.
    """

    name: str
    source: str
    installed_commit: str
    available_commit: str = ""

    @property
    def has_update(self) -> bool:
        return bool(self.available_commit) and self.available_commit != self.installed_commit


@dataclass(frozen=True)
class BatchResult:
    """Per-asset outcomes of a batch; one failure never aborts the rest."""

    succeeded: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    errors: list[tuple[str, str]] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


def build_normalized_index(commits: Mapping[str, str]) -> dict[str, str]:
    return {normalized_source_key(source): commit for source, commit in commits.items()}


def lookup_registry_commit(
    source: str, commits: Mapping[str, str], index: Mapping[str, str] | None = None
) -> str:
    """Find the registry commit for a lock source.

    Exact match first, then a host-agnostic, case-insensitive match that
    ignores trailing slashes and `.git`. Returns "" when neither matches.
    """
    commit = commits.get(source)
    if commit:
        return commit
    if index is None:
        index = build_normalized_index(commits)
    return index.get(normalized_source_key(source), "")


def check_for_updates(
    lock: LockFile,
    commits: Mapping[str, str],
    fetched: Mapping[str, str] | None = None,
) -> list[UpdateInfo]:
    """Compare every locked skill against the registry commit map.

    Args:
        lock: Lock file to check
        commits: Registry source -> commit map
        fetched: Skill name -> commit for entries the registry map does not
            cover, as returned by fetch_unmatched_commits
    """
    index = build_normalized_index(commits)
    fetched = fetched or {}
    return [
        UpdateInfo(
            name=skill.name,
            source=skill.source,
            installed_commit=skill.commit,
            available_commit=(
                lookup_registry_commit(skill.source, commits, index) or fetched.get(skill.name, "")
            ),
        )
        for skill in lock.skills
    ]


def fetch_unmatched_commits(
    lock: LockFile,
    commits: Mapping[str, str],
    git: Git,
    overrides: Mapping[str, str] | None = None,
) -> dict[str, str]:
    """Resolve commits for locked skills that no registry advertises.

    Entries are grouped by clone URL and ref, and each group is cloned once.
    A skill's commit is read from the clone the same way an install records
    it. Entries that cannot be parsed, fetched or found are left out.

    Returns:
        Skill name -> latest commit
    """
    index = build_normalized_index(commits)
    groups: dict[tuple[str, str], list[tuple[LockedSkill, ParsedSource]]] = {}
    for entry in lock.skills:
        if lookup_registry_commit(entry.source, commits, index):
            continue
        try:
            source = parse_source(entry.source, overrides)
        except SourceParseError as e:
            logger.debug("Cannot check %s for updates: %s", entry.name, e)
            continue
        if source.type != "git":
            continue
        groups.setdefault((source.clone_url, entry.ref or source.ref), []).append((entry, source))

    resolved: dict[str, str] = {}
    for (clone_url, ref), members in groups.items():
        with tempfile.TemporaryDirectory(prefix="duckrow-") as scratch:
            repo_dir = Path(scratch) / "repo"
            try:
                git.clone(clone_url, repo_dir, ref=ref or None)
            except CloneError as e:
                logger.warning("Could not fetch %s to check for updates: %s", clone_url, e)
                continue
            for entry, source in members:
                commit = _latest_skill_commit(git, repo_dir, entry.name, source.sub_path)
                if commit:
                    resolved[entry.name] = commit
    return resolved


def _latest_skill_commit(git: Git, repo_dir: Path, name: str, sub_path: str) -> str:
    matches = filter_skills(discover_skills(repo_dir, sub_path, include_internal=True), name)
    if not matches:
        return ""
    commit = git.path_commit(repo_dir, matches[0].path.relative_to(repo_dir).as_posix())
    if commit is None:
        commit = git.resolve_head(repo_dir)
    return commit or ""


def _target_agents(
    entry: LockedSkill, agents: Sequence[AgentSystem]
) -> tuple[AgentSystem, ...] | None:
    if not entry.agents:
        return None
    selected = list(universal_agents(agents))
    for agent in agents_by_names(agents, entry.agents):
        if agent not in selected:
            selected.append(agent)
    return tuple(selected)


def apply_updates(
    updates: Sequence[UpdateInfo],
    lock: LockFile,
    target_dir: Path,
    installer: Installer,
    remover: Remover,
    agents: Sequence[AgentSystem],
    overrides: Mapping[str, str] | None = None,
) -> BatchResult:
    """Reinstall every skill with an update and record its new commit.

    Entries without an update are reported as skipped. Lock file write
    failures are not isolated: they propagate and abort the batch.
    """
    result = BatchResult()
    for update in updates:
        if not update.has_update:
            result.skipped.append(update.name)
            continue

        entry = lock.find_skill(update.name)
        if entry is None:
            result.errors.append((update.name, "lock entry not found"))
            continue

        try:
            source = parse_source(entry.source, overrides)
            target_agents = _target_agents(entry, agents)
        except _ITEM_ERRORS as e:
            result.errors.append((update.name, str(e)))
            continue

        try:
            remover.remove(sanitize_name(update.name), target_dir)
        except SkillNotInstalledError:
            logger.debug("%s was not on disk; reinstalling", update.name)

        options = InstallOptions(
            target_dir=target_dir,
            asset_filter=update.name,
            include_internal=True,
            target_agents=target_agents,
            commit=update.available_commit,
            source_label=entry.source,
        )
        try:
            installed = installer.install_from_source(source, options)
        except _ITEM_ERRORS as e:
            logger.warning("Failed to reinstall %s: %s", update.name, e)
            result.errors.append((update.name, str(e)))
            continue

        for skill in installed.installed:
            add_or_update_lock_entry(
                target_dir,
                LockedSkill(
                    name=skill.name,
                    source=skill.source,
                    commit=skill.commit,
                    ref=skill.ref or entry.ref,
                    agents=list(entry.agents),
                ),
            )
        result.succeeded.append(update.name)

    return result


def sync_from_lock(
    lock: LockFile,
    target_dir: Path,
    installer: Installer,
    agents: Sequence[AgentSystem],
    overrides: Mapping[str, str] | None = None,
    force: bool = False,
) -> BatchResult:
    """Install every locked skill at its pinned commit.

    Skills whose canonical directory already exists are skipped unless force.
    The lock file itself is not rewritten.
    """
    result = BatchResult()
    for entry in lock.skills:
        canonical = target_dir / CANONICAL_SKILLS_DIR / sanitize_name(entry.name)
        if canonical.is_dir() and not force:
            result.skipped.append(entry.name)
            continue

        try:
            source = parse_source(entry.source, overrides)
            options = InstallOptions(
                target_dir=target_dir,
                asset_filter=entry.name,
                include_internal=True,
                target_agents=_target_agents(entry, agents),
                commit=entry.commit,
                source_label=entry.source,
            )
            installer.install_from_source(source, options)
        except _ITEM_ERRORS as e:
            logger.warning("Failed to sync %s: %s", entry.name, e)
            result.errors.append((entry.name, str(e)))
            continue
        result.succeeded.append(entry.name)

    return result
