"""SKILL.md parsing and skill discovery.

A skill is a directory holding a SKILL.md whose YAML front matter names it.
Discovery only looks at the search root and its immediate subdirectories, plus
the immediate subdirectories of the conventional `skills/` and
`.agents/skills/` containers.
"""

import re
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import frontmatter
import yaml

SKILL_FILE_NAME = "SKILL.md"
CANONICAL_SKILLS_DIR = ".agents/skills"
SKILL_CONTAINER_DIRS = ("skills", ".agents/skills")

_UNSAFE_NAME_CHARS = re.compile(r"[^a-z0-9-]")
_MAX_NAME_LENGTH = 255


class SkillParseError(ValueError):
    """Raised when a SKILL.md is missing, lacks front matter, or has no name."""


@dataclass(frozen=True)
class SkillMetadata:
    """Front matter of a SKILL.md file."""

    name: str
    description: str = ""
    version: str = ""
    author: str = ""
    internal: bool = False


@dataclass(frozen=True)
class DiscoveredSkill:
    """A skill found while scanning a cloned or local tree."""

    metadata: SkillMetadata
    path: Path

    @property
    def name(self) -> str:
        return self.metadata.name

    @property
    def dir_name(self) -> str:
        return sanitize_name(self.metadata.name)


@dataclass(frozen=True)
class InstalledSkill:
    """A skill present on disk in a project folder."""

    name: str
    description: str
    version: str
    author: str
    path: Path
    agents: tuple[str, ...]


def sanitize_name(name: str) -> str:
    """Turn a display name into a safe directory name.

    Lowercases, replaces anything outside [a-z0-9-] with "-", trims leading
    and trailing "-" and ".", and caps the length at 255 characters.
    """
    cleaned = _UNSAFE_NAME_CHARS.sub("-", name.lower()).strip("-.")
    cleaned = cleaned[:_MAX_NAME_LENGTH]
    if not cleaned:
        return "unnamed-skill"
    return cleaned


def _as_str(value: Any) -> str:
    if value is None:
        return ""
    return str(value)


def parse_skill_md(path: Path) -> SkillMetadata:
    """Read the YAML front matter of a SKILL.md file.

    Raises:
        SkillParseError: If the file cannot be read, has no front matter, or
            the front matter does not name the skill
    """
    try:
        content = path.read_text(encoding="utf-8")
    except OSError as e:
        raise SkillParseError(f"Cannot read {path}: {e}") from e

    if not content.lstrip().startswith("---"):
        raise SkillParseError(f"No front matter in {path}")

    try:
        post = frontmatter.loads(content)
    except yaml.YAMLError as e:
        raise SkillParseError(f"Invalid front matter in {path}: {e}") from e

    data = post.metadata
    name = _as_str(data.get("name")).strip()
    if not name:
        raise SkillParseError(f"SKILL.md missing name field: {path}")

    extra = data.get("metadata")
    if not isinstance(extra, dict):
        extra = {}

    return SkillMetadata(
        name=name,
        description=_as_str(data.get("description")).strip(),
        version=_as_str(extra.get("version")),
        author=_as_str(extra.get("author")),
        internal=bool(extra.get("internal", False)),
    )


def _try_parse(skill_dir: Path) -> SkillMetadata | None:
    skill_md = skill_dir / SKILL_FILE_NAME
    if not skill_md.is_file():
        return None
    try:
        return parse_skill_md(skill_md)
    except SkillParseError:
        return None


def discover_skills(
    base: Path, sub_path: str = "", include_internal: bool = False
) -> list[DiscoveredSkill]:
    """Find skills under base, optionally restricted to sub_path.

    Args:
        base: Root of the cloned repository or local directory
        sub_path: Relative directory to restrict the search to
        include_internal: Whether to include skills marked metadata.internal

    Returns:
        Discovered skills in directory order, deduplicated by path
    """
    search_root = base / sub_path if sub_path else base
    if not search_root.is_dir():
        return []

    root_metadata = _try_parse(search_root)
    if root_metadata is not None and (include_internal or not root_metadata.internal):
        return [DiscoveredSkill(metadata=root_metadata, path=search_root)]

    containers = [search_root]
    for container in SKILL_CONTAINER_DIRS:
        candidate = search_root / container
        if candidate.is_dir():
            containers.append(candidate)

    seen: set[Path] = set()
    discovered: list[DiscoveredSkill] = []
    for container in containers:
        for entry in sorted(container.iterdir()):
            if not entry.is_dir() or entry in seen:
                continue
            seen.add(entry)
            metadata = _try_parse(entry)
            if metadata is None:
                continue
            if metadata.internal and not include_internal:
                continue
            discovered.append(DiscoveredSkill(metadata=metadata, path=entry))
    return discovered


def filter_skills(skills: Sequence[DiscoveredSkill], name: str) -> list[DiscoveredSkill]:
    """Keep skills whose front matter name or sanitized name equals name."""
    wanted = sanitize_name(name)
    return [skill for skill in skills if skill.name == name or skill.dir_name == wanted]


def scan_installed_skills(
    folder: Path, skills_dirs: Sequence[str], agent_dirs: dict[str, Sequence[str]]
) -> list[InstalledSkill]:
    """List skills installed in a project folder.

    Args:
        folder: Project root
        skills_dirs: Relative skill directories to scan; the canonical
            directory is always scanned first and wins on duplicates
        agent_dirs: Agent display name mapped to the relative skill
            directories that agent reads

    Returns:
        Installed skills sorted by name
    """
    ordered = [CANONICAL_SKILLS_DIR] + [d for d in skills_dirs if d != CANONICAL_SKILLS_DIR]
    found: dict[str, InstalledSkill] = {}

    for rel_dir in dict.fromkeys(ordered):
        abs_dir = folder / rel_dir
        if not abs_dir.is_dir():
            continue
        for entry in sorted(abs_dir.iterdir()):
            if not entry.is_dir():
                continue
            metadata = _try_parse(entry)
            if metadata is None or metadata.name in found:
                continue
            agents = tuple(
                display_name
                for display_name, dirs in agent_dirs.items()
                if any(_lexists(folder / d / entry.name) for d in dirs)
            )
            found[metadata.name] = InstalledSkill(
                name=metadata.name,
                description=metadata.description,
                version=metadata.version,
                author=metadata.author,
                path=entry,
                agents=agents,
            )

    return [found[name] for name in sorted(found)]


def _lexists(path: Path) -> bool:
    return path.is_symlink() or path.exists()
