"""Registry store: local clones of registry repos and their duckrow.json manifests.

Each registry is a git repository with a `duckrow.json` at its root. Clones
live under `~/.duckrow/registries/<registry_dir_key(url)>` and manifests are
parsed on demand; nothing is cached between calls.
"""

import hashlib
import json
import logging
import os
import shutil
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from duckrow.core.clone_error import CloneError
from duckrow.core.config import RegistryConfig
from duckrow.core.git.abc import Git
from duckrow.core.source import is_canonical_source

logger = logging.getLogger(__name__)

MANIFEST_FILE_NAME = "duckrow.json"


class ManifestError(ValueError):
    """Raised when duckrow.json is missing, not JSON, or lacks a registry name."""


class RegistryError(Exception):
    """Raised for registry lookups and clone-directory bookkeeping failures."""


class SkillEntry(BaseModel):
    """A skill listed in a registry manifest."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    name: str = Field(..., min_length=1)
    description: str = ""
    source: str = Field(..., min_length=1)
    version: str = ""
    commit: str = ""


class MCPEntry(BaseModel):
    """An MCP server listed in a registry manifest.

    Stdio servers carry `command` (plus `args`); remote servers carry `url`
    (plus an optional transport `type`). Exactly one of the two is required.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    name: str = Field(..., min_length=1)
    description: str = ""
    command: str = ""
    args: list[str] = Field(default_factory=list)
    env: dict[str, str] = Field(default_factory=dict)
    url: str = ""
    type: str = ""

    @field_validator("env", mode="before")
    @classmethod
    def normalize_env(cls, v: Any) -> Any:
        """Accept either a mapping or a list of KEY=VALUE strings."""
        if v is None:
            return {}
        if not isinstance(v, list):
            return v
        env: dict[str, str] = {}
        for item in v:
            if not isinstance(item, str) or "=" not in item:
                raise ValueError(f"env entries must be KEY=VALUE strings, got {item!r}")
            key, _, value = item.partition("=")
            env[key.strip()] = value
        return env

    @model_validator(mode="after")
    def check_transport(self) -> "MCPEntry":
        if self.command and self.url:
            raise ValueError("has both 'command' and 'url' (only one allowed)")
        if not self.command and not self.url:
            raise ValueError("missing both 'command' and 'url' (one is required)")
        return self

    @property
    def is_stdio(self) -> bool:
        return bool(self.command)


class Manifest(BaseModel):
    """A parsed duckrow.json with the warnings produced while parsing it."""

    model_config = ConfigDict(frozen=True)

    name: str
    description: str = ""
    skills: list[SkillEntry] = Field(default_factory=list)
    mcps: list[MCPEntry] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)


@dataclass(frozen=True)
class RegistrySkill:
    """A manifest skill tagged with the registry it came from."""

    registry_name: str
    registry_repo: str
    entry: SkillEntry


@dataclass(frozen=True)
class RegistryMCP:
    """A manifest MCP server tagged with the registry it came from."""

    registry_name: str
    registry_repo: str
    entry: MCPEntry


@dataclass(frozen=True)
class RefreshResult:
    """Outcome of refreshing one registry. Exactly one of manifest/error is set."""

    registry: RegistryConfig
    manifest: Manifest | None = None
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def registry_dir_key(repo_url: str) -> str:
    """Derive a filesystem-safe, collision-resistant directory name for a repo URL.

    Examples:
        "https://github.com/acme/registry.git" -> "acme-registry-<hash8>"
        "git@github.com:acme/registry.git"     -> "acme-registry-<hash8>"
    """
    readable = repo_url.removesuffix("/").removesuffix(".git").lower()
    if "://" not in readable and ":" in readable:
        readable = readable[readable.rindex(":") + 1 :]
    if "://" in readable:
        readable = readable[readable.rindex("://") + 3 :]
        _, sep, path = readable.partition("/")
        if sep:
            readable = path
    readable = readable.replace("/", "-").replace(os.sep, "-")

    short_hash = hashlib.sha256(repo_url.encode("utf-8")).hexdigest()[:8]
    if not readable:
        return short_hash
    return f"{readable}-{short_hash}"


def _describe_validation_error(error: ValidationError) -> str:
    parts = []
    for detail in error.errors():
        location = ".".join(str(p) for p in detail["loc"])
        message = detail["msg"].removeprefix("Value error, ")
        parts.append(f"{location}: {message}" if location else message)
    return "; ".join(parts)


_EntryT = TypeVar("_EntryT", SkillEntry, MCPEntry)


def _parse_entries(
    raw_entries: Any, model: type[_EntryT], kind: str, warnings: list[str]
) -> list[_EntryT]:
    if raw_entries is None:
        return []
    if not isinstance(raw_entries, list):
        warnings.append(f"'{kind}' must be a list; ignoring it")
        return []

    entries: list[_EntryT] = []
    seen: set[str] = set()
    for index, raw in enumerate(raw_entries):
        label = raw.get("name") if isinstance(raw, dict) else None
        where = f"{kind}[{index}]" + (f" ({label!r})" if label else "")
        try:
            entry = model.model_validate(raw)
        except ValidationError as e:
            warnings.append(f"{where}: {_describe_validation_error(e)}")
            continue
        if entry.name in seen:
            warnings.append(f"{where}: duplicate name {entry.name!r}; keeping the first")
            continue
        seen.add(entry.name)
        entries.append(entry)
    return entries


def parse_manifest(data: Any) -> Manifest:
    """Validate a decoded duckrow.json document.

    Malformed skill or MCP entries are dropped and reported in
    Manifest.warnings; they never fail the whole manifest.

    Raises:
        ManifestError: If the document is not an object or has no name
    """
    if not isinstance(data, dict):
        raise ManifestError(f"{MANIFEST_FILE_NAME} must contain a JSON object")
    name = data.get("name")
    if not isinstance(name, str) or not name.strip():
        raise ManifestError("registry manifest missing required 'name' field")

    warnings: list[str] = []
    skills = _parse_entries(data.get("skills"), SkillEntry, "skills", warnings)
    mcps = _parse_entries(data.get("mcps"), MCPEntry, "mcps", warnings)

    for skill in skills:
        if not is_canonical_source(skill.source):
            warnings.append(
                f"skill {skill.name!r} has non-canonical source {skill.source!r} "
                "(expected host/owner/repo/path format)"
            )

    description = data.get("description")
    return Manifest(
        name=name.strip(),
        description=description if isinstance(description, str) else "",
        skills=skills,
        mcps=mcps,
        warnings=warnings,
    )


def read_manifest(repo_dir: Path) -> Manifest:
    """Read and parse duckrow.json from a registry checkout.

    Raises:
        ManifestError: If the file is missing, unreadable or invalid
    """
    path = repo_dir / MANIFEST_FILE_NAME
    if not path.is_file():
        raise ManifestError(f"{MANIFEST_FILE_NAME} not found in repository")
    try:
        text = path.read_text(encoding="utf-8")
    except (UnicodeDecodeError, OSError) as e:
        raise ManifestError(f"Cannot read {path}: {e}") from e
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise ManifestError(f"Invalid JSON in {path}: {e}") from e
    return parse_manifest(data)


class RegistryStore:
    """Clones, refreshes and reads registries.

    The store only manages clone directories. Which registries are configured
    is owned by the user config; callers pass the relevant RegistryConfig list.
    """

    def __init__(self, git: Git, registries_dir: Path) -> None:
        self._git = git
        self._registries_dir = registries_dir

    @property
    def registries_dir(self) -> Path:
        return self._registries_dir

    def registry_dir(self, repo_url: str) -> Path:
        return self._registries_dir / registry_dir_key(repo_url)

    def add(self, repo_url: str) -> Manifest:
        """Clone a registry and return its manifest.

        Raises:
            RegistryError: If the URL is empty or the registry is already cloned
            CloneError: If the clone fails
            ManifestError: If the cloned repo has no usable duckrow.json; the
                clone is discarded
        """
        repo_url = repo_url.strip()
        if not repo_url:
            raise RegistryError("Repository URL is required")

        dest = self.registry_dir(repo_url)
        if dest.exists():
            raise RegistryError(f"Registry {repo_url} is already added (clone at {dest})")

        self._registries_dir.mkdir(parents=True, exist_ok=True)
        self._git.clone(repo_url, dest)

        try:
            manifest = read_manifest(dest)
        except ManifestError:
            shutil.rmtree(dest, ignore_errors=True)
            raise

        for warning in manifest.warnings:
            logger.warning("Registry %s: %s", repo_url, warning)
        return manifest

    def refresh(self, repo_url: str) -> Manifest:
        """Pull the registry clone in place and return the updated manifest.

        Raises:
            RegistryError: If the registry has no clone
            CloneError: If the pull fails
            ManifestError: If the updated manifest is unusable
        """
        dest = self.registry_dir(repo_url)
        if not dest.is_dir():
            raise RegistryError(f"Registry clone for {repo_url!r} not found")
        self._git.pull(dest)
        return read_manifest(dest)

    def refresh_all(self, registries: Sequence[RegistryConfig]) -> list[RefreshResult]:
        """Refresh every registry, collecting per-registry failures."""
        results: list[RefreshResult] = []
        for registry in registries:
            try:
                manifest = self.refresh(registry.repo)
            except (CloneError, ManifestError, RegistryError) as e:
                logger.warning("Failed to refresh registry %s: %s", registry.name, e)
                results.append(RefreshResult(registry=registry, error=e))
                continue
            results.append(RefreshResult(registry=registry, manifest=manifest))
        return results

    def remove(self, repo_url: str) -> None:
        """Delete the registry clone.

        Raises:
            RegistryError: If the registry has no clone
        """
        dest = self.registry_dir(repo_url)
        if not dest.exists():
            raise RegistryError(f"Registry clone for {repo_url!r} not found")
        shutil.rmtree(dest)

    def load_manifest(self, repo_url: str) -> Manifest:
        """Parse the manifest of an existing clone.

        Raises:
            RegistryError: If the registry has no clone
            ManifestError: If the manifest is unusable
        """
        dest = self.registry_dir(repo_url)
        if not dest.is_dir():
            raise RegistryError(f"Registry clone for {repo_url!r} not found")
        return read_manifest(dest)

    def _loaded(
        self, registries: Sequence[RegistryConfig]
    ) -> list[tuple[RegistryConfig, Manifest]]:
        loaded: list[tuple[RegistryConfig, Manifest]] = []
        for registry in registries:
            try:
                loaded.append((registry, self.load_manifest(registry.repo)))
            except (ManifestError, RegistryError) as e:
                logger.warning("Skipping registry %s: %s", registry.name, e)
        return loaded

    def list_skills(self, registries: Sequence[RegistryConfig]) -> list[RegistrySkill]:
        """All skills across registries, tagged with their registry."""
        return [
            RegistrySkill(registry_name=registry.name, registry_repo=registry.repo, entry=entry)
            for registry, manifest in self._loaded(registries)
            for entry in manifest.skills
        ]

    def list_mcps(self, registries: Sequence[RegistryConfig]) -> list[RegistryMCP]:
        """All MCP servers across registries, tagged with their registry."""
        return [
            RegistryMCP(registry_name=registry.name, registry_repo=registry.repo, entry=entry)
            for registry, manifest in self._loaded(registries)
            for entry in manifest.mcps
        ]

    def find_skill(
        self, registries: Sequence[RegistryConfig], name: str, registry: str | None = None
    ) -> RegistrySkill:
        """Find a skill by name.

        Raises:
            RegistryError: If the registry filter matches nothing, the skill is
                not found, or more than one registry provides it
        """
        candidates = self.list_skills(_filter_registries(registries, registry))
        return _single_match("Skill", name, candidates, [c.entry.name for c in candidates])

    def find_mcp(
        self, registries: Sequence[RegistryConfig], name: str, registry: str | None = None
    ) -> RegistryMCP:
        """Find an MCP server by name.

        Raises:
            RegistryError: If the registry filter matches nothing, the MCP is
                not found, or more than one registry provides it
        """
        candidates = self.list_mcps(_filter_registries(registries, registry))
        return _single_match("MCP", name, candidates, [c.entry.name for c in candidates])


def _filter_registries(
    registries: Sequence[RegistryConfig], registry: str | None
) -> Sequence[RegistryConfig]:
    if not registry:
        return registries
    filtered = [r for r in registries if registry in (r.name, r.repo)]
    if not filtered:
        raise RegistryError(f"Registry {registry!r} not found")
    return filtered


_TaggedT = TypeVar("_TaggedT", RegistrySkill, RegistryMCP)


def _single_match(kind: str, name: str, candidates: list[_TaggedT], names: list[str]) -> _TaggedT:
    if not name:
        raise RegistryError(f"{kind} name is required")

    matches = [
        c for c, candidate_name in zip(candidates, names, strict=True) if candidate_name == name
    ]
    if len(matches) == 1:
        return matches[0]

    if not matches:
        if not names:
            raise RegistryError(
                f"{kind} {name!r} not found (none available in configured registries)"
            )
        raise RegistryError(
            f"{kind} {name!r} not found in registries. Available: {', '.join(sorted(set(names)))}"
        )

    owners = "\n  ".join(f"{m.registry_name} ({m.registry_repo})" for m in matches)
    raise RegistryError(
        f"{kind} {name!r} found in multiple registries; use --registry to disambiguate:\n  {owners}"
    )
