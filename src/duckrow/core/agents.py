"""Agent conventions: where each AI coding agent reads skills and MCP config.

The installer, remover and MCP writer only talk to AgentSystem capability
methods; they never branch on a specific agent's identity. Agents that read
`.agents/skills/` directly are "universal" and need no per-agent link.
"""

import logging
import os
import re
import shutil
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from duckrow.core.skills import CANONICAL_SKILLS_DIR

logger = logging.getLogger(__name__)

_ENV_REF = re.compile(r"\$\{?([A-Za-z_][A-Za-z0-9_]*)\}?")
_XDG_CONFIG_REF = re.compile(r"\$XDG_CONFIG(?![A-Za-z0-9_])")


class UnknownAgentError(ValueError):
    """Raised when an agent name does not match any known agent."""


def expand_path(path: str, environ: Mapping[str, str] | None = None) -> Path:
    """Expand ~, $XDG_CONFIG and other $VARS in an agent path."""
    env = os.environ if environ is None else environ
    xdg = env.get("XDG_CONFIG_HOME") or str(Path.home() / ".config")
    path = _XDG_CONFIG_REF.sub(lambda _: xdg, path)
    path = _ENV_REF.sub(lambda m: env.get(m.group(1), ""), path)
    return Path(path).expanduser()


@dataclass(frozen=True)
class AgentSystem:
    """Capabilities of one agent convention.

    Subclasses override the stanza builders when an agent's MCP config format
    differs from the common `{"command", "args"}` shape.
    """

    name: str
    display_name: str
    universal: bool
    skills_dir: str
    alt_skills_dirs: tuple[str, ...] = ()
    detect_paths: tuple[str, ...] = ()
    config_signals: tuple[str, ...] = ()
    mcp_config_path: str | None = None
    mcp_config_path_alt: str | None = None
    mcp_config_key: str = "mcpServers"

    @property
    def supports_mcp(self) -> bool:
        return self.mcp_config_path is not None

    def all_skills_dirs(self) -> tuple[str, ...]:
        return (self.skills_dir, *self.alt_skills_dirs)

    def skills_path(self, project_dir: Path) -> Path:
        return project_dir / self.skills_dir

    def resolve_mcp_config_path_rel(self, project_dir: Path) -> str | None:
        """Return the project-relative MCP config path, preferring an existing alt file."""
        if self.mcp_config_path is None:
            return None
        if self.mcp_config_path_alt and (project_dir / self.mcp_config_path_alt).exists():
            return self.mcp_config_path_alt
        return self.mcp_config_path

    def is_installed(self, environ: Mapping[str, str] | None = None) -> bool:
        """Check whether the agent is installed globally on this machine."""
        for raw in self.detect_paths:
            expanded = expand_path(raw, environ)
            # An unset variable collapses the path to "."
            if str(expanded) in ("", "."):
                continue
            if expanded.is_dir():
                return True
        return False

    def is_active_in_folder(self, folder: Path) -> bool:
        """Check whether the folder carries this agent's config or skill directories."""
        if any((folder / signal).exists() for signal in self.config_signals):
            return True
        return any((folder / d).is_dir() for d in self.all_skills_dirs())

    def link_skill(self, project_dir: Path, dir_name: str) -> Path | None:
        """Point this agent's skill directory at the canonical copy.

        Universal agents read the canonical directory directly and return None.
        Others get a relative symlink, replacing whatever was there before; a
        full copy is made when the filesystem refuses symlinks.
        """
        if self.universal:
            return None

        canonical = project_dir / CANONICAL_SKILLS_DIR / dir_name
        agent_dir = self.skills_path(project_dir)
        agent_dir.mkdir(parents=True, exist_ok=True)
        link_path = agent_dir / dir_name

        _remove_path(link_path)
        target = Path(os.path.relpath(canonical, agent_dir))
        try:
            link_path.symlink_to(target, target_is_directory=True)
        except OSError as e:
            logger.debug("Symlink failed for %s (%s), copying instead", link_path, e)
            shutil.copytree(canonical, link_path)
        return link_path

    def unlink_skill(self, project_dir: Path, dir_name: str) -> Path | None:
        """Remove this agent's link to a skill.

        Returns:
            The removed path, or None when nothing was there
        """
        if self.universal:
            return None

        link_path = self.skills_path(project_dir) / dir_name
        if not (link_path.is_symlink() or link_path.exists()):
            return None

        _remove_path(link_path)
        skills_path = self.skills_path(project_dir)
        cleanup_empty_dir(skills_path)
        cleanup_empty_dir(skills_path.parent)
        return link_path

    def stdio_stanza(self, command: Sequence[str]) -> dict[str, Any]:
        """Config value for a stdio MCP server launched by command."""
        return {"command": command[0], "args": list(command[1:])}

    def remote_stanza(self, url: str, transport: str) -> dict[str, Any]:
        """Config value for a remote MCP server."""
        return {"type": transport or "http", "url": url}


@dataclass(frozen=True)
class OpenCodeAgent(AgentSystem):
    """OpenCode: `local`/`remote` types and the command as a single array."""

    def stdio_stanza(self, command: Sequence[str]) -> dict[str, Any]:
        return {"type": "local", "command": list(command)}

    def remote_stanza(self, url: str, transport: str) -> dict[str, Any]:
        return {"type": "remote", "url": url}


@dataclass(frozen=True)
class CopilotAgent(AgentSystem):
    """GitHub Copilot: stdio servers carry an explicit type."""

    def stdio_stanza(self, command: Sequence[str]) -> dict[str, Any]:
        return {"type": "stdio", "command": command[0], "args": list(command[1:])}


def _remove_path(path: Path) -> None:
    if path.is_symlink() or path.is_file():
        path.unlink()
    elif path.is_dir():
        shutil.rmtree(path)


def cleanup_empty_dir(path: Path) -> None:
    """Remove path if it is an empty directory."""
    if path.is_dir() and not path.is_symlink() and not any(path.iterdir()):
        path.rmdir()


BUILTIN_AGENTS: tuple[AgentSystem, ...] = (
    OpenCodeAgent(
        name="opencode",
        display_name="OpenCode",
        universal=True,
        skills_dir=CANONICAL_SKILLS_DIR,
        alt_skills_dirs=(".opencode/skills",),
        detect_paths=("$XDG_CONFIG/opencode",),
        config_signals=("opencode.json", "opencode.jsonc"),
        mcp_config_path="opencode.json",
        mcp_config_path_alt="opencode.jsonc",
        mcp_config_key="mcp",
    ),
    CopilotAgent(
        name="github-copilot",
        display_name="GitHub Copilot",
        universal=True,
        skills_dir=CANONICAL_SKILLS_DIR,
        alt_skills_dirs=(".github/skills",),
        detect_paths=("~/.copilot",),
        config_signals=(".github/copilot-instructions.md",),
        mcp_config_path=".vscode/mcp.json",
        mcp_config_key="servers",
    ),
    AgentSystem(
        name="codex",
        display_name="Codex",
        universal=True,
        skills_dir=CANONICAL_SKILLS_DIR,
        detect_paths=("$CODEX_HOME", "/etc/codex"),
        config_signals=("codex.md",),
    ),
    AgentSystem(
        name="gemini-cli",
        display_name="Gemini CLI",
        universal=True,
        skills_dir=CANONICAL_SKILLS_DIR,
        detect_paths=("~/.gemini",),
        config_signals=("GEMINI.md",),
    ),
    AgentSystem(
        name="claude-code",
        display_name="Claude Code",
        universal=False,
        skills_dir=".claude/skills",
        detect_paths=("~/.claude",),
        config_signals=("CLAUDE.md", ".claude", ".mcp.json"),
        mcp_config_path=".mcp.json",
    ),
    AgentSystem(
        name="cursor",
        display_name="Cursor",
        universal=False,
        skills_dir=".cursor/skills",
        detect_paths=("~/.cursor",),
        config_signals=(".cursor",),
        mcp_config_path=".cursor/mcp.json",
    ),
    AgentSystem(
        name="goose",
        display_name="Goose",
        universal=False,
        skills_dir=".goose/skills",
        detect_paths=("$XDG_CONFIG/goose",),
        config_signals=(".goose",),
    ),
)


def universal_agents(agents: Iterable[AgentSystem]) -> list[AgentSystem]:
    return [a for a in agents if a.universal]


def non_universal_agents(agents: Iterable[AgentSystem]) -> list[AgentSystem]:
    return [a for a in agents if not a.universal]


def mcp_capable_agents(agents: Iterable[AgentSystem]) -> list[AgentSystem]:
    return [a for a in agents if a.supports_mcp]


def agents_by_names(agents: Sequence[AgentSystem], names: Iterable[str]) -> list[AgentSystem]:
    """Resolve agent machine names.

    Raises:
        UnknownAgentError: If any name is not a known agent
    """
    by_name = {a.name: a for a in agents}
    resolved: list[AgentSystem] = []
    for raw in names:
        name = raw.strip()
        if not name:
            continue
        agent = by_name.get(name)
        if agent is None:
            available = ", ".join(a.name for a in agents)
            raise UnknownAgentError(f"Unknown agent {name!r}; available: {available}")
        if agent not in resolved:
            resolved.append(agent)
    return resolved


def detect_agents_in_folder(
    agents: Iterable[AgentSystem], folder: Path, environ: Mapping[str, str] | None = None
) -> list[AgentSystem]:
    """Agents active in folder or installed globally."""
    return [a for a in agents if a.is_active_in_folder(folder) or a.is_installed(environ)]
