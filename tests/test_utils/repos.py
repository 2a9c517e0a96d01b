"""Builders for fake repository contents.

FakeGit writes {relative path: content} mappings into clone destinations;
these helpers produce such mappings for skill repositories and registries.
"""

import json
from typing import Any

ACME_SKILLS_URL = "https://github.com/acme/skills.git"
ACME_REGISTRY_URL = "https://github.com/acme/registry.git"

COMMIT_1 = "1" * 40
COMMIT_2 = "2" * 40
COMMIT_3 = "3" * 40


def skill_md(name: str, *, description: str = "", internal: bool = False) -> str:
    lines = ["---", f"name: {name}", f"description: {description or name}"]
    if internal:
        lines.extend(["metadata:", "  internal: true"])
    lines.extend(["---", "", f"# {name}", ""])
    return "\n".join(lines)


def skill_files(prefix: str, name: str, *, internal: bool = False) -> dict[str, str]:
    """Files for one skill directory at prefix (e.g. "skills/code-review")."""
    return {
        f"{prefix}/SKILL.md": skill_md(name, internal=internal),
        f"{prefix}/README.md": f"readme for {name}\n",
        f"{prefix}/scripts/run.sh": "#!/bin/sh\necho run\n",
    }


def acme_skills_repo() -> dict[str, str]:
    """acme/skills with two public skills and one internal skill."""
    files: dict[str, str] = {}
    files.update(skill_files("skills/code-review", "code-review"))
    files.update(skill_files("skills/test-writer", "test-writer"))
    files.update(skill_files("skills/release-notes", "release-notes", internal=True))
    return files


def registry_repo(
    name: str,
    *,
    skills: list[dict[str, Any]] | None = None,
    mcps: list[dict[str, Any]] | None = None,
) -> dict[str, str]:
    """A registry checkout holding only duckrow.json."""
    manifest: dict[str, Any] = {"name": name, "skills": skills or [], "mcps": mcps or []}
    return {"duckrow.json": json.dumps(manifest, indent=2)}
