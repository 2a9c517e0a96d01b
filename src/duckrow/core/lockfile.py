"""Per-project lock file (duckrow.lock.json).

The lock file records exactly what is installed in a project: one entry per
skill and per MCP server, names unique within their kind. Its absence means
the project is untracked, not an error. Writes go through a temporary file and
an atomic rename so a crash never leaves a truncated lock file behind.
"""

import json
import os
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from duckrow.core.skills import sanitize_name

LOCK_FILE_NAME = "duckrow.lock.json"
LOCK_VERSION_SKILLS_ONLY = 1
LOCK_VERSION_WITH_MCPS = 2


class LockFileError(ValueError):
    """Raised when duckrow.lock.json exists but cannot be parsed."""


class LockedSkill(BaseModel):
    """A skill pinned in the lock file."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    name: str
    source: str
    commit: str = ""
    ref: str = ""
    agents: list[str] = Field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"name": self.name, "source": self.source, "commit": self.commit}
        if self.ref:
            data["ref"] = self.ref
        if self.agents:
            data["agents"] = list(self.agents)
        return data


class LockedMCP(BaseModel):
    """An MCP server entry in the lock file."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    name: str
    registry: str = ""
    config_hash: str = Field(default="", alias="configHash")
    agents: list[str] = Field(default_factory=list)
    required_env: list[str] = Field(default_factory=list, alias="requiredEnv")
    env: dict[str, str] = Field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "name": self.name,
            "registry": self.registry,
            "configHash": self.config_hash,
            "agents": list(self.agents),
        }
        if self.required_env:
            data["requiredEnv"] = list(self.required_env)
        if self.env:
            data["env"] = dict(self.env)
        return data


class LockFile(BaseModel):
    """Parsed duckrow.lock.json."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    lock_version: int = Field(default=LOCK_VERSION_SKILLS_ONLY, alias="lockVersion")
    skills: list[LockedSkill] = Field(default_factory=list)
    mcps: list[LockedMCP] = Field(default_factory=list)

    def find_skill(self, name: str) -> LockedSkill | None:
        for skill in self.skills:
            if skill.name == name:
                return skill
        return None

    def find_mcp(self, name: str) -> LockedMCP | None:
        for mcp in self.mcps:
            if mcp.name == name:
                return mcp
        return None

    def to_dict(self) -> dict[str, Any]:
        """Serialize with entries sorted by name and the version derived from content."""
        version = LOCK_VERSION_WITH_MCPS if self.mcps else LOCK_VERSION_SKILLS_ONLY
        data: dict[str, Any] = {
            "lockVersion": version,
            "skills": [s.to_dict() for s in sorted(self.skills, key=lambda s: s.name)],
        }
        if self.mcps:
            data["mcps"] = [m.to_dict() for m in sorted(self.mcps, key=lambda m: m.name)]
        return data


def lock_file_path(project_dir: Path) -> Path:
    return project_dir / LOCK_FILE_NAME


def read_lock_file(project_dir: Path) -> LockFile | None:
    """Read the project's lock file.

    Returns:
        The parsed lock file, or None when the project has none

    Raises:
        LockFileError: If the file exists but is not a valid lock file
        OSError: If the file exists but cannot be read
    """
    path = lock_file_path(project_dir)
    if not path.exists():
        return None

    content = path.read_text(encoding="utf-8")
    try:
        data = json.loads(content)
    except json.JSONDecodeError as e:
        raise LockFileError(f"Invalid JSON in {path}: {e}") from e

    try:
        return LockFile.model_validate(data)
    except ValidationError as e:
        raise LockFileError(f"Invalid lock file {path}: {e}") from e


def write_lock_file(project_dir: Path, lock: LockFile) -> None:
    """Write the lock file atomically (temp file + rename).

    IO errors propagate: a silently failed write would desynchronize tracked
    state from what is on disk.
    """
    path = lock_file_path(project_dir)
    tmp_path = path.with_name(path.name + ".tmp")
    content = json.dumps(lock.to_dict(), indent=2) + "\n"

    tmp_path.write_text(content, encoding="utf-8")
    try:
        os.replace(tmp_path, path)
    except OSError:
        tmp_path.unlink(missing_ok=True)
        raise


def add_or_update_lock_entry(project_dir: Path, entry: LockedSkill) -> LockFile:
    """Insert or replace the skill entry with entry.name."""
    lock = read_lock_file(project_dir) or LockFile()
    skills = [s for s in lock.skills if s.name != entry.name]
    skills.append(entry)
    updated = lock.model_copy(update={"skills": skills})
    write_lock_file(project_dir, updated)
    return updated


def remove_lock_entry(project_dir: Path, name: str) -> LockFile | None:
    """Remove skill entries installed under the same directory name as name.

    The lock records display names, so "Code Review" and "code-review" refer to
    the same installed skill. No-op when there is no lock file.
    """
    lock = read_lock_file(project_dir)
    if lock is None:
        return None
    dir_name = sanitize_name(name)
    skills = [s for s in lock.skills if sanitize_name(s.name) != dir_name]
    updated = lock.model_copy(update={"skills": skills})
    write_lock_file(project_dir, updated)
    return updated


def add_or_update_mcp_lock_entry(project_dir: Path, entry: LockedMCP) -> LockFile:
    """Insert or replace the MCP entry with entry.name."""
    lock = read_lock_file(project_dir) or LockFile()
    mcps = [m for m in lock.mcps if m.name != entry.name]
    mcps.append(entry)
    updated = lock.model_copy(update={"mcps": mcps})
    write_lock_file(project_dir, updated)
    return updated


def remove_mcp_lock_entry(project_dir: Path, name: str) -> LockFile | None:
    """Remove the MCP entry called name. No-op when there is no lock file."""
    lock = read_lock_file(project_dir)
    if lock is None:
        return None
    updated = lock.model_copy(update={"mcps": [m for m in lock.mcps if m.name != name]})
    write_lock_file(project_dir, updated)
    return updated
