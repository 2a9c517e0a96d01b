"""Skill removal: delete agent links and the canonical copy.

The remover never touches duckrow.lock.json; callers that track the project
remove the lock entry themselves.
"""

import shutil
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

from duckrow.core.agents import AgentSystem, cleanup_empty_dir
from duckrow.core.skills import CANONICAL_SKILLS_DIR


class SkillNotInstalledError(LookupError):
    """Raised when the canonical copy of a skill does not exist."""

    def __init__(self, name: str, path: Path) -> None:
        self.name = name
        self.path = path
        super().__init__(f"Skill {name!r} not found at {path}")


@dataclass(frozen=True)
class RemoveResult:
    name: str
    canonical_path: Path
    removed_links: tuple[str, ...] = ()


class Remover:
    """Removes installed skills from a project directory."""

    def __init__(self, agents: Sequence[AgentSystem]) -> None:
        self._agents = tuple(agents)

    def remove(self, name: str, target_dir: Path) -> RemoveResult:
        """Remove one skill by its directory name.

        Links of agents that have none are skipped silently.

        Raises:
            SkillNotInstalledError: If `.agents/skills/<name>` does not exist
        """
        if not name:
            raise ValueError("Skill name is required")

        canonical = target_dir / CANONICAL_SKILLS_DIR / name
        if not canonical.is_dir():
            raise SkillNotInstalledError(name, canonical)

        removed_links: list[str] = []
        for agent in self._agents:
            if agent.unlink_skill(target_dir, name) is not None:
                removed_links.append(agent.display_name)

        if canonical.is_symlink():
            canonical.unlink()
        else:
            shutil.rmtree(canonical)
        cleanup_empty_dir(canonical.parent)
        cleanup_empty_dir(canonical.parent.parent)

        return RemoveResult(name=name, canonical_path=canonical, removed_links=tuple(removed_links))

    def list_removable(self, target_dir: Path) -> list[str]:
        """Directory names of every skill in the canonical directory."""
        canonical_dir = target_dir / CANONICAL_SKILLS_DIR
        if not canonical_dir.is_dir():
            return []
        return sorted(entry.name for entry in canonical_dir.iterdir() if entry.is_dir())

    def remove_all(self, target_dir: Path) -> list[RemoveResult]:
        """Remove every skill in the project."""
        return [self.remove(name, target_dir) for name in self.list_removable(target_dir)]
