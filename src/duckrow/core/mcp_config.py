"""MCP config writer: add and remove MCP server stanzas in agent config files.

Each MCP-capable agent keeps its servers in a JSON (or JSONC) file under an
agent-specific top-level key. Stdio servers are launched through
`duckrow env --mcp <name> -- <command> <args...>` so that required variables
are resolved at start-up instead of being written into the config.
"""

import hashlib
import json
import os
import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Literal

from duckrow.core.agents import AgentSystem
from duckrow.core.registry import MCPEntry

MCPAction = Literal["wrote", "skipped", "error", "removed"]

ENV_WRAPPER_COMMAND = "duckrow"

_ENV_VAR_REF = re.compile(r"\$\{?([A-Za-z_][A-Za-z0-9_]*)\}?")


@dataclass(frozen=True)
class MCPAgentResult:
    """Per-agent outcome of an MCP install or uninstall."""

    agent: str
    config_path: str
    action: MCPAction
    message: str = ""


def extract_required_env(entry: MCPEntry) -> list[str]:
    """Sorted, unique names of `$VAR`/`${VAR}` references in the entry's env values."""
    return referenced_env_names(entry.env)


def referenced_env_names(env: Mapping[str, str]) -> list[str]:
    names: set[str] = set()
    for value in env.values():
        names.update(_ENV_VAR_REF.findall(value))
    return sorted(names)


def substitute_env(env: Mapping[str, str], values: Mapping[str, str]) -> dict[str, str]:
    """Expand `$VAR`/`${VAR}` references in each declared value.

    Literal values pass through unchanged. A key whose value references a
    variable missing from values is left out.
    """
    expanded: dict[str, str] = {}
    for key, template in env.items():
        if any(name not in values for name in _ENV_VAR_REF.findall(template)):
            continue
        expanded[key] = _ENV_VAR_REF.sub(lambda m: values[m.group(1)], template)
    return expanded


def compute_config_hash(entry: MCPEntry) -> str:
    """Hash the config-relevant fields of an entry.

    name and description are excluded; empty fields are left out so adding
    an empty `args` list does not change the hash.
    """
    fields: dict[str, Any] = {}
    if entry.command:
        fields["command"] = entry.command
    if entry.args:
        fields["args"] = list(entry.args)
    if entry.env:
        fields["env"] = dict(entry.env)
    if entry.url:
        fields["url"] = entry.url
    if entry.type:
        fields["type"] = entry.type
    payload = json.dumps(fields, sort_keys=True, separators=(",", ":"))
    return "sha256:" + hashlib.sha256(payload.encode("utf-8")).hexdigest()


def env_wrapper_command(entry: MCPEntry) -> list[str]:
    return [ENV_WRAPPER_COMMAND, "env", "--mcp", entry.name, "--", entry.command, *entry.args]


def build_stanza(entry: MCPEntry, agent: AgentSystem) -> dict[str, Any]:
    """The config value the agent should hold for entry."""
    if entry.is_stdio:
        return agent.stdio_stanza(env_wrapper_command(entry))
    return agent.remote_stanza(entry.url, entry.type)


def _string_end(text: str, start: int) -> int:
    """Index just past the string literal opening at start."""
    i = start + 1
    while i < len(text) and text[i] != '"':
        i += 2 if text[i] == "\\" else 1
    return i + 1


def _drop_comments(text: str) -> str:
    out: list[str] = []
    i = 0
    while i < len(text):
        if text[i] == '"':
            end = _string_end(text, i)
            out.append(text[i:end])
            i = end
        elif text.startswith("//", i):
            newline = text.find("\n", i)
            i = len(text) if newline == -1 else newline
        elif text.startswith("/*", i):
            close = text.find("*/", i + 2)
            i = len(text) if close == -1 else close + 2
        else:
            out.append(text[i])
            i += 1
    return "".join(out)


def _drop_trailing_commas(text: str) -> str:
    out: list[str] = []
    i = 0
    while i < len(text):
        if text[i] == '"':
            end = _string_end(text, i)
            out.append(text[i:end])
            i = end
            continue
        if text[i] == ",":
            j = i + 1
            while j < len(text) and text[j].isspace():
                j += 1
            if j < len(text) and text[j] in "}]":
                i += 1
                continue
        out.append(text[i])
        i += 1
    return "".join(out)


def strip_jsonc(text: str) -> str:
    """Turn JSONC into plain JSON: drop comments, then trailing commas."""
    return _drop_trailing_commas(_drop_comments(text))


def read_config(path: Path) -> dict[str, Any] | None:
    """Read an agent config file; None when it does not exist.

    Raises:
        ValueError: If the content is not a JSON object
        OSError: If the file exists but cannot be read
    """
    if not path.exists():
        return None
    content = path.read_text(encoding="utf-8")
    if not content.strip():
        return {}
    data = json.loads(strip_jsonc(content))
    if not isinstance(data, dict):
        raise ValueError(f"{path} does not contain a JSON object")
    return data


def write_config(path: Path, data: dict[str, Any]) -> None:
    """Write an agent config file atomically, creating parent directories."""
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_name(path.name + ".tmp")
    tmp_path.write_text(json.dumps(data, indent=2) + "\n", encoding="utf-8")
    try:
        os.replace(tmp_path, path)
    except OSError:
        tmp_path.unlink(missing_ok=True)
        raise


def _servers(data: dict[str, Any], key: str, path: Path) -> dict[str, Any]:
    servers = data.setdefault(key, {})
    if not isinstance(servers, dict):
        raise ValueError(f"{key!r} in {path} is not an object")
    return servers


def install_mcp_config(
    entry: MCPEntry,
    target_dir: Path,
    agents: Sequence[AgentSystem],
    force: bool = False,
) -> list[MCPAgentResult]:
    """Write entry into the config file of every MCP-capable agent in agents.

    An existing stanza with the same name is left alone unless force. Read,
    parse and write failures are reported per agent and never abort the rest.
    """
    results: list[MCPAgentResult] = []
    for agent in agents:
        rel_path = agent.resolve_mcp_config_path_rel(target_dir)
        if rel_path is None:
            continue
        path = target_dir / rel_path
        try:
            data = read_config(path) or {}
            servers = _servers(data, agent.mcp_config_key, path)
            if entry.name in servers and not force:
                results.append(
                    MCPAgentResult(agent.name, rel_path, "skipped", "already exists, use --force")
                )
                continue
            servers[entry.name] = build_stanza(entry, agent)
            write_config(path, data)
        except (OSError, ValueError) as e:
            results.append(MCPAgentResult(agent.name, rel_path, "error", str(e)))
            continue
        results.append(MCPAgentResult(agent.name, rel_path, "wrote"))
    return results


def uninstall_mcp_config(
    name: str, target_dir: Path, agents: Sequence[AgentSystem]
) -> list[MCPAgentResult]:
    """Remove the stanza called name from every MCP-capable agent's config file."""
    results: list[MCPAgentResult] = []
    for agent in agents:
        rel_path = agent.resolve_mcp_config_path_rel(target_dir)
        if rel_path is None:
            continue
        path = target_dir / rel_path
        try:
            data = read_config(path)
            if data is None:
                results.append(
                    MCPAgentResult(agent.name, rel_path, "skipped", "config file does not exist")
                )
                continue
            servers = data.get(agent.mcp_config_key)
            if not isinstance(servers, dict) or name not in servers:
                results.append(MCPAgentResult(agent.name, rel_path, "skipped", "entry not found"))
                continue
            del servers[name]
            write_config(path, data)
        except (OSError, ValueError) as e:
            results.append(MCPAgentResult(agent.name, rel_path, "error", str(e)))
            continue
        results.append(MCPAgentResult(agent.name, rel_path, "removed"))
    return results
