"""User configuration data structures and loading.

Provides immutable user config loaded from ~/.duckrow/config.json. The store
is created once at the CLI entry point and passed to every component that
needs it; nothing reads the config through a module-level global.
"""

import json
import os
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

CONFIG_DIR_NAME = ".duckrow"
CONFIG_FILE_NAME = "config.json"
REGISTRIES_DIR_NAME = "registries"


class ConfigError(ValueError):
    """Raised when config.json exists but cannot be parsed."""


class TrackedFolder(BaseModel):
    """A project folder registered with DuckRow."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    path: str
    added_at: str = Field(default="", alias="addedAt")


class RegistryConfig(BaseModel):
    """A registry: a git repository with a duckrow.json manifest."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    name: str
    repo: str


class Settings(BaseModel):
    """User preferences."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    auto_add_current_dir: bool = Field(default=True, alias="autoAddCurrentDir")
    disable_all_telemetry: bool = Field(default=False, alias="disableAllTelemetry")
    clone_url_overrides: dict[str, str] = Field(default_factory=dict, alias="cloneURLOverrides")


class DuckrowConfig(BaseModel):
    """Immutable user configuration.

    Loaded once at the CLI entry point and stored in DuckrowContext.
    Changes produce a new instance through the with_*/without_* helpers.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    folders: list[TrackedFolder] = Field(default_factory=list)
    registries: list[RegistryConfig] = Field(default_factory=list)
    settings: Settings = Field(default_factory=Settings)

    def find_registry(self, name_or_repo: str) -> RegistryConfig | None:
        for registry in self.registries:
            if name_or_repo in (registry.name, registry.repo):
                return registry
        return None

    def with_registry(self, registry: RegistryConfig) -> "DuckrowConfig":
        others = [r for r in self.registries if r.repo != registry.repo]
        return self.model_copy(update={"registries": [*others, registry]})

    def without_registry(self, name_or_repo: str) -> "DuckrowConfig":
        kept = [r for r in self.registries if name_or_repo not in (r.name, r.repo)]
        return self.model_copy(update={"registries": kept})

    def with_folder(self, path: str, added_at: str = "") -> "DuckrowConfig":
        if any(f.path == path for f in self.folders):
            return self
        folder = TrackedFolder(path=path, added_at=added_at)
        return self.model_copy(update={"folders": [*self.folders, folder]})

    def with_clone_url_override(self, repo_key: str, url: str | None) -> "DuckrowConfig":
        overrides = dict(self.settings.clone_url_overrides)
        if url is None:
            overrides.pop(repo_key, None)
        else:
            overrides[repo_key] = url
        settings = self.settings.model_copy(update={"clone_url_overrides": overrides})
        return self.model_copy(update={"settings": settings})

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)


class ConfigStore(ABC):
    """Abstract interface for user config operations.

    Provides dependency injection for config access, enabling in-memory
    implementations for tests without touching the filesystem.
    """

    @abstractmethod
    def exists(self) -> bool:
        """Check if the config file exists."""
        ...

    @abstractmethod
    def load(self) -> DuckrowConfig:
        """Load the config, returning defaults when none has been saved.

        Raises:
            ConfigError: If the config file is malformed
        """
        ...

    @abstractmethod
    def save(self, config: DuckrowConfig) -> None:
        """Persist the config."""
        ...

    @abstractmethod
    def config_dir(self) -> Path:
        """Directory holding config.json, registry clones and the global .env.duckrow."""
        ...

    def path(self) -> Path:
        return self.config_dir() / CONFIG_FILE_NAME

    def registries_dir(self) -> Path:
        return self.config_dir() / REGISTRIES_DIR_NAME


class FilesystemConfigStore(ConfigStore):
    """Production implementation that reads/writes ~/.duckrow/config.json."""

    def __init__(self, config_dir: Path | None = None) -> None:
        self._config_dir = config_dir if config_dir is not None else Path.home() / CONFIG_DIR_NAME

    def config_dir(self) -> Path:
        return self._config_dir

    def exists(self) -> bool:
        return self.path().exists()

    def load(self) -> DuckrowConfig:
        config_path = self.path()
        if not config_path.exists():
            return DuckrowConfig()

        try:
            data = json.loads(config_path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            raise ConfigError(f"Invalid JSON in {config_path}: {e}") from e

        try:
            return DuckrowConfig.model_validate(data)
        except ValidationError as e:
            raise ConfigError(f"Invalid config {config_path}: {e}") from e

    def save(self, config: DuckrowConfig) -> None:
        """Save config atomically.

        Raises:
            PermissionError: If the directory or file cannot be written
        """
        config_path = self.path()
        parent = config_path.parent

        if parent.exists() and not os.access(parent, os.W_OK):
            raise PermissionError(
                f"Cannot write to directory: {parent}\n"
                f"The directory exists but is not writable.\n\n"
                f"To fix this manually:\n"
                f"  1. Ensure it's writable: chmod 755 {parent}\n"
                f"  2. Run the command again"
            )

        try:
            parent.mkdir(parents=True, exist_ok=True)
        except PermissionError:
            raise PermissionError(
                f"Cannot create directory: {parent}\n"
                f"Check permissions on your home directory.\n\n"
                f"To fix this manually:\n"
                f"  1. Create the directory: mkdir -p {parent}\n"
                f"  2. Ensure it's writable: chmod 755 {parent}"
            ) from None

        content = json.dumps(config.to_dict(), indent=2) + "\n"
        tmp_path = config_path.with_name(config_path.name + ".tmp")
        tmp_path.write_text(content, encoding="utf-8")
        try:
            os.replace(tmp_path, config_path)
        except OSError:
            tmp_path.unlink(missing_ok=True)
            raise


class InMemoryConfigStore(ConfigStore):
    """Test implementation that stores config in memory without touching filesystem."""

    def __init__(self, config: DuckrowConfig | None = None, config_dir: Path | None = None) -> None:
        """Initialize in-memory config store.

        Args:
            config: Initial config state (None = config doesn't exist yet)
            config_dir: Directory reported for registry clones and env files
        """
        self._config = config
        self._config_dir = config_dir if config_dir is not None else Path("/fake/duckrow")

    def config_dir(self) -> Path:
        return self._config_dir

    def exists(self) -> bool:
        return self._config is not None

    def load(self) -> DuckrowConfig:
        if self._config is None:
            return DuckrowConfig()
        return self._config

    def save(self, config: DuckrowConfig) -> None:
        self._config = config
