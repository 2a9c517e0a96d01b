"""Tests for SKILL.md parsing and skill discovery."""

from pathlib import Path

import pytest

from duckrow.core.skills import (
    SkillParseError,
    discover_skills,
    filter_skills,
    parse_skill_md,
    sanitize_name,
    scan_installed_skills,
)


def _write_skill(directory: Path, name: str, *, internal: bool = False, version: str = "") -> None:
    directory.mkdir(parents=True, exist_ok=True)
    lines = ["---", f"name: {name}", f"description: {name} skill"]
    if internal or version:
        lines.append("metadata:")
        if internal:
            lines.append("  internal: true")
        if version:
            lines.append(f'  version: "{version}"')
    lines.extend(["---", "", f"# {name}", ""])
    (directory / "SKILL.md").write_text("\n".join(lines), encoding="utf-8")


@pytest.mark.parametrize(
    ("name", "expected"),
    [
        ("Code Review", "code-review"),
        ("my_skill.v2", "my-skill-v2"),
        ("--weird--", "weird"),
        ("...", "unnamed-skill"),
        ("x" * 300, "x" * 255),
    ],
)
def test_sanitize_name(name: str, expected: str) -> None:
    """Test directory-safe names."""
    assert sanitize_name(name) == expected


def test_parse_skill_md_reads_metadata(tmp_path: Path) -> None:
    """Test front matter fields including nested metadata."""
    _write_skill(tmp_path, "code-review", version="1.2.0")

    metadata = parse_skill_md(tmp_path / "SKILL.md")

    assert metadata.name == "code-review"
    assert metadata.description == "code-review skill"
    assert metadata.version == "1.2.0"
    assert not metadata.internal


def test_parse_skill_md_requires_front_matter(tmp_path: Path) -> None:
    """Test that a SKILL.md without front matter is rejected."""
    path = tmp_path / "SKILL.md"
    path.write_text("# Just markdown\n", encoding="utf-8")

    with pytest.raises(SkillParseError, match="No front matter"):
        parse_skill_md(path)


def test_parse_skill_md_requires_name(tmp_path: Path) -> None:
    """Test that front matter without a name is rejected."""
    path = tmp_path / "SKILL.md"
    path.write_text("---\ndescription: nameless\n---\nbody\n", encoding="utf-8")

    with pytest.raises(SkillParseError, match="missing name"):
        parse_skill_md(path)


def test_root_skill_wins(tmp_path: Path) -> None:
    """Test that a SKILL.md at the search root is the only result."""
    _write_skill(tmp_path, "root-skill")
    _write_skill(tmp_path / "nested", "nested-skill")

    assert [s.name for s in discover_skills(tmp_path)] == ["root-skill"]


def test_discovers_children_and_containers(tmp_path: Path) -> None:
    """Test discovery in immediate children and the skills/ containers."""
    _write_skill(tmp_path / "alpha", "alpha")
    _write_skill(tmp_path / "skills" / "beta", "beta")
    _write_skill(tmp_path / ".agents" / "skills" / "gamma", "gamma")
    _write_skill(tmp_path / "deep" / "deeper" / "delta", "delta")

    names = sorted(s.name for s in discover_skills(tmp_path))

    assert names == ["alpha", "beta", "gamma"]


def test_internal_skills_are_hidden_unless_requested(tmp_path: Path) -> None:
    """Test the include_internal switch."""
    _write_skill(tmp_path / "public", "public")
    _write_skill(tmp_path / "hidden", "hidden", internal=True)

    assert [s.name for s in discover_skills(tmp_path)] == ["public"]
    assert sorted(s.name for s in discover_skills(tmp_path, include_internal=True)) == [
        "hidden",
        "public",
    ]


def test_sub_path_restricts_search(tmp_path: Path) -> None:
    """Test that a sub-path limits discovery to that directory."""
    _write_skill(tmp_path / "skills" / "review", "review")
    _write_skill(tmp_path / "other", "other")

    found = discover_skills(tmp_path, "skills/review")

    assert [s.name for s in found] == ["review"]
    assert discover_skills(tmp_path, "missing") == []


def test_broken_skill_files_are_skipped(tmp_path: Path) -> None:
    """Test that one malformed SKILL.md does not hide the others."""
    _write_skill(tmp_path / "good", "good")
    (tmp_path / "bad").mkdir()
    (tmp_path / "bad" / "SKILL.md").write_text("no front matter", encoding="utf-8")

    assert [s.name for s in discover_skills(tmp_path)] == ["good"]


def test_filter_matches_name_or_sanitized_name(tmp_path: Path) -> None:
    """Test filtering by front matter name and by directory name."""
    _write_skill(tmp_path / "a", "Code Review")
    _write_skill(tmp_path / "b", "other")
    skills = discover_skills(tmp_path)

    assert [s.name for s in filter_skills(skills, "Code Review")] == ["Code Review"]
    assert [s.name for s in filter_skills(skills, "code-review")] == ["Code Review"]
    assert filter_skills(skills, "missing") == []


def test_scan_installed_skills_reports_agents(tmp_path: Path) -> None:
    """Test that the folder scan attributes skills to the agents that see them."""
    _write_skill(tmp_path / ".agents" / "skills" / "review", "review")
    (tmp_path / ".claude" / "skills").mkdir(parents=True)
    (tmp_path / ".claude" / "skills" / "review").symlink_to(
        Path("../../.agents/skills/review"), target_is_directory=True
    )
    _write_skill(tmp_path / ".cursor" / "skills" / "cursor-only", "cursor-only")

    installed = scan_installed_skills(
        tmp_path,
        [".agents/skills", ".claude/skills", ".cursor/skills"],
        {
            "Codex": [".agents/skills"],
            "Claude Code": [".claude/skills"],
            "Cursor": [".cursor/skills"],
        },
    )

    assert [s.name for s in installed] == ["cursor-only", "review"]
    review = installed[1]
    assert review.path == tmp_path / ".agents" / "skills" / "review"
    assert review.agents == ("Codex", "Claude Code")
    assert installed[0].agents == ("Cursor",)
