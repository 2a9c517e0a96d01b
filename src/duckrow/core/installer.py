"""Skill installation: fetch, discover, copy and link.

Every skill lands in the canonical `<project>/.agents/skills/<name>/`
directory. Agents with their own skills directory get a relative symlink to
that copy. Installing the same skill twice leaves one copy and one link per
agent.
"""

import logging
import shutil
import tempfile
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field, replace
from pathlib import Path

from duckrow.core.agents import AgentSystem, universal_agents
from duckrow.core.config import RegistryConfig
from duckrow.core.git.abc import Git
from duckrow.core.registry import RegistryStore
from duckrow.core.skills import (
    CANONICAL_SKILLS_DIR,
    DiscoveredSkill,
    discover_skills,
    filter_skills,
)
from duckrow.core.source import ParsedSource, parse_source

logger = logging.getLogger(__name__)

EXCLUDED_FILE_NAMES = frozenset({"README.md", "metadata.json", ".git"})


class PostCloneError(Exception):
    """The fetch succeeded but the fetched content did not yield an installable skill."""


class NoAssetsFoundError(PostCloneError):
    """No SKILL.md was found where the source points."""

    def __init__(self, source: str, sub_path: str = "") -> None:
        self.source = source
        self.sub_path = sub_path
        where = f"{source} (path: {sub_path})" if sub_path else source
        super().__init__(f"No skills found in {where}")


class AssetFilterError(PostCloneError):
    """Skills were found, but none matched the requested name."""

    def __init__(self, wanted: str, available: Sequence[str]) -> None:
        self.wanted = wanted
        self.available = list(available)
        super().__init__(f"Skill {wanted!r} not found. Available: {', '.join(self.available)}")


@dataclass(frozen=True)
class InstallOptions:
    """Options for one install call.

    target_agents of None installs for universal agents only. commit pins the
    fetch to an exact commit. source_label is what gets recorded as the
    skill's source; it defaults to the source string as given.
    """

    target_dir: Path
    asset_filter: str = ""
    include_internal: bool = False
    target_agents: tuple[AgentSystem, ...] | None = None
    commit: str = ""
    source_label: str = ""


@dataclass(frozen=True)
class InstalledSkillResult:
    """One skill materialized on disk."""

    name: str
    dir_name: str
    path: Path
    source: str
    commit: str = ""
    ref: str = ""
    agents: tuple[str, ...] = ()


@dataclass(frozen=True)
class InstallResult:
    installed: list[InstalledSkillResult] = field(default_factory=list)


def copy_skill_tree(src: Path, dst: Path) -> None:
    """Copy a skill directory, leaving out README.md, metadata.json, .git and `_*` entries."""

    def _ignore(_directory: str, names: list[str]) -> set[str]:
        return {n for n in names if n in EXCLUDED_FILE_NAMES or n.startswith("_")}

    shutil.copytree(src, dst, ignore=_ignore)


class Installer:
    """Installs skills from a parsed source into a project directory."""

    def __init__(self, git: Git, agents: Sequence[AgentSystem]) -> None:
        self._git = git
        self._agents = tuple(agents)

    def install_from_source(self, source: ParsedSource, options: InstallOptions) -> InstallResult:
        """Install every matching skill from source.

        Args:
            source: Parsed source; local sources are read in place, git
                sources are cloned into a scratch directory that is always
                removed afterwards
            options: Target directory, filter, agents and pinning

        Returns:
            InstallResult with one record per installed skill

        Raises:
            CloneError: If the repository cannot be fetched
            NoAssetsFoundError: If no skill exists under the source path
            AssetFilterError: If no discovered skill matches the filter
        """
        if source.local_path is not None:
            return self._install_tree(source, source.local_path, options, resolve_commit=False)

        with tempfile.TemporaryDirectory(prefix="duckrow-") as scratch:
            repo_dir = Path(scratch) / "repo"
            if options.commit:
                self._git.clone_at_commit(source.clone_url, repo_dir, options.commit)
            else:
                self._git.clone(source.clone_url, repo_dir, ref=source.ref or None)
            return self._install_tree(source, repo_dir, options, resolve_commit=True)

    def install_from_registry(
        self,
        name: str,
        registries: Sequence[RegistryConfig],
        store: RegistryStore,
        options: InstallOptions,
        *,
        registry: str | None = None,
        overrides: Mapping[str, str] | None = None,
    ) -> InstallResult:
        """Install a skill by its registry name.

        The manifest's pinned commit, when present, pins the fetch, and the
        manifest source is what gets recorded as the skill's source.

        Raises:
            RegistryError: If the name is unknown or ambiguous
            SourceParseError: If the manifest source is malformed
        """
        match = store.find_skill(registries, name, registry)
        entry = match.entry
        source = parse_source(entry.source, overrides)
        registry_options = replace(
            options,
            asset_filter=options.asset_filter or entry.name,
            include_internal=True,
            commit=options.commit or entry.commit,
            source_label=entry.source,
        )
        return self.install_from_source(source, registry_options)

    def _install_tree(
        self, source: ParsedSource, root: Path, options: InstallOptions, *, resolve_commit: bool
    ) -> InstallResult:
        discovered = discover_skills(root, source.sub_path, options.include_internal)
        label = options.source_label or source.raw
        if not discovered:
            raise NoAssetsFoundError(label, source.sub_path)

        wanted = options.asset_filter or source.asset_name
        if wanted:
            matched = filter_skills(discovered, wanted)
            if not matched:
                raise AssetFilterError(wanted, [s.name for s in discovered])
            discovered = matched

        agents = (
            options.target_agents
            if options.target_agents is not None
            else tuple(universal_agents(self._agents))
        )

        installed: list[InstalledSkillResult] = []
        for skill in discovered:
            path = self._materialize(skill, options.target_dir, agents)
            commit = self._resolve_commit(root, skill, options) if resolve_commit else ""
            logger.debug("Installed %s at %s (commit %s)", skill.name, path, commit or "n/a")
            installed.append(
                InstalledSkillResult(
                    name=skill.name,
                    dir_name=skill.dir_name,
                    path=path,
                    source=label,
                    commit=commit,
                    ref=source.ref,
                    agents=tuple(a.name for a in agents),
                )
            )
        return InstallResult(installed=installed)

    def _materialize(
        self, skill: DiscoveredSkill, target_dir: Path, agents: Sequence[AgentSystem]
    ) -> Path:
        canonical = target_dir / CANONICAL_SKILLS_DIR / skill.dir_name
        if canonical.is_symlink() or canonical.is_file():
            canonical.unlink()
        elif canonical.exists():
            shutil.rmtree(canonical)
        canonical.parent.mkdir(parents=True, exist_ok=True)
        copy_skill_tree(skill.path, canonical)

        for agent in agents:
            agent.link_skill(target_dir, skill.dir_name)
        return canonical

    def _resolve_commit(self, root: Path, skill: DiscoveredSkill, options: InstallOptions) -> str:
        if options.commit:
            return options.commit
        rel_path = skill.path.relative_to(root).as_posix()
        commit = self._git.path_commit(root, rel_path)
        if commit is None:
            commit = self._git.resolve_head(root)
        return commit or ""
