"""Environment resolution for MCP servers.

Values for an MCP server's required variables come from, in order of
precedence: the process environment, the project's `.env.duckrow`, then the
global `~/.duckrow/.env.duckrow`.
"""

import os
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Literal

from dotenv import dotenv_values

ENV_FILE_NAME = ".env.duckrow"
GITIGNORE_FILE_NAME = ".gitignore"

EnvSource = Literal["environment", "project", "global"]


@dataclass(frozen=True)
class EnvResolution:
    """Where a required variable was found, if anywhere."""

    name: str
    is_set: bool
    source: EnvSource | None = None


def parse_env_file(path: Path) -> dict[str, str]:
    """Read a dotenv file into a mapping. A missing file yields an empty mapping.

    Keys without a value (no `=`) are dropped. `${VAR}` references are kept
    verbatim rather than expanded against the process environment.
    """
    if not path.is_file():
        return {}
    values = dotenv_values(path, interpolate=False, encoding="utf-8")
    return {key: value for key, value in values.items() if value is not None}


class EnvResolver:
    """Resolves required variables for a project.

    The environment mapping is injected so tests never depend on the real
    process environment.
    """

    def __init__(
        self,
        project_dir: Path,
        global_dir: Path,
        environ: Mapping[str, str] | None = None,
    ) -> None:
        self._project_dir = project_dir
        self._global_dir = global_dir
        self._environ = os.environ if environ is None else environ

    def _layers(self) -> list[tuple[EnvSource, Mapping[str, str]]]:
        return [
            ("environment", self._environ),
            ("project", parse_env_file(self._project_dir / ENV_FILE_NAME)),
            ("global", parse_env_file(self._global_dir / ENV_FILE_NAME)),
        ]

    def resolve(self, names: Sequence[str]) -> list[EnvResolution]:
        """Report, per name, whether it is set and which layer provides it."""
        if not names:
            return []
        layers = self._layers()
        results: list[EnvResolution] = []
        for name in names:
            source = next((label for label, values in layers if name in values), None)
            results.append(EnvResolution(name=name, is_set=source is not None, source=source))
        return results

    def resolve_env(self, names: Sequence[str]) -> tuple[dict[str, str], list[str]]:
        """Resolve values for names.

        Returns:
            Tuple of (name -> value for every variable found, names not found)
        """
        if not names:
            return {}, []
        layers = self._layers()
        resolved: dict[str, str] = {}
        missing: list[str] = []
        for name in names:
            for _, values in layers:
                if name in values:
                    resolved[name] = values[name]
                    break
            else:
                missing.append(name)
        return resolved, missing


def ensure_gitignore(project_dir: Path) -> bool:
    """Add .env.duckrow to the project's .gitignore, creating it if needed.

    Returns:
        True if the file was changed, False if the entry was already present
    """
    gitignore = project_dir / GITIGNORE_FILE_NAME
    if not gitignore.exists():
        gitignore.write_text(ENV_FILE_NAME + "\n", encoding="utf-8")
        return True

    content = gitignore.read_text(encoding="utf-8")
    if any(line.strip() == ENV_FILE_NAME for line in content.splitlines()):
        return False
    if content and not content.endswith("\n"):
        content += "\n"
    gitignore.write_text(content + ENV_FILE_NAME + "\n", encoding="utf-8")
    return True
