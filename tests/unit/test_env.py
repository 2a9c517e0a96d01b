"""Tests for .env.duckrow parsing and required variable resolution."""

from pathlib import Path

from duckrow.core.env import ENV_FILE_NAME, EnvResolver, ensure_gitignore, parse_env_file


def test_parse_env_file_formats(tmp_path: Path) -> None:
    """Test comments, export prefixes, quotes and malformed lines."""
    env_file = tmp_path / ENV_FILE_NAME
    env_file.write_text(
        "# comment\n"
        "\n"
        "PLAIN=value\n"
        "export EXPORTED=yes\n"
        'DOUBLE="quoted value"\n'
        "SINGLE='single'\n"
        "EQUALS=a=b\n"
        "no-equals-line\n"
        "  SPACED = padded  \n",
        encoding="utf-8",
    )

    assert parse_env_file(env_file) == {
        "PLAIN": "value",
        "EXPORTED": "yes",
        "DOUBLE": "quoted value",
        "SINGLE": "single",
        "EQUALS": "a=b",
        "SPACED": "padded",
    }


def test_parse_env_file_inline_comment_and_escapes(tmp_path: Path) -> None:
    """Test that inline comments are dropped and double-quoted escapes expand."""
    env_file = tmp_path / ENV_FILE_NAME
    env_file.write_text(
        "API_KEY=abc123 # prod key\n"
        'MULTI="line1\\nline2"\n'
        "RAW='keep\\nthis'\n"
        "REF=${HOME}/x\n",
        encoding="utf-8",
    )

    assert parse_env_file(env_file) == {
        "API_KEY": "abc123",
        "MULTI": "line1\nline2",
        "RAW": "keep\\nthis",
        "REF": "${HOME}/x",
    }


def test_parse_missing_env_file(tmp_path: Path) -> None:
    """Test that a missing file is an empty mapping."""
    assert parse_env_file(tmp_path / ENV_FILE_NAME) == {}


def test_resolution_precedence(tmp_path: Path) -> None:
    """Test process env over project file over global file."""
    project = tmp_path / "project"
    global_dir = tmp_path / "global"
    project.mkdir()
    global_dir.mkdir()
    (project / ENV_FILE_NAME).write_text("A=project\nB=project\n", encoding="utf-8")
    (global_dir / ENV_FILE_NAME).write_text("A=global\nB=global\nC=global\n", encoding="utf-8")

    resolver = EnvResolver(project, global_dir, environ={"A": "environment"})
    resolved, missing = resolver.resolve_env(["A", "B", "C", "D"])

    assert resolved == {"A": "environment", "B": "project", "C": "global"}
    assert missing == ["D"]


def test_resolve_reports_sources(tmp_path: Path) -> None:
    """Test that each variable reports where it was found."""
    (tmp_path / ENV_FILE_NAME).write_text("TOKEN=x\n", encoding="utf-8")
    resolver = EnvResolver(tmp_path, tmp_path / "nowhere", environ={"HOME_VAR": "1"})

    results = {r.name: r for r in resolver.resolve(["HOME_VAR", "TOKEN", "MISSING"])}

    assert results["HOME_VAR"].source == "environment"
    assert results["TOKEN"].source == "project"
    assert not results["MISSING"].is_set
    assert results["MISSING"].source is None


def test_resolve_nothing_required(tmp_path: Path) -> None:
    """Test that no names resolve to nothing without reading files."""
    resolver = EnvResolver(tmp_path, tmp_path, environ={})

    assert resolver.resolve_env([]) == ({}, [])
    assert resolver.resolve([]) == []


def test_ensure_gitignore_creates_file(tmp_path: Path) -> None:
    """Test that a missing .gitignore is created with the env file entry."""
    assert ensure_gitignore(tmp_path)
    assert (tmp_path / ".gitignore").read_text(encoding="utf-8") == ".env.duckrow\n"


def test_ensure_gitignore_appends_once(tmp_path: Path) -> None:
    """Test that the entry is appended after a missing newline and never duplicated."""
    gitignore = tmp_path / ".gitignore"
    gitignore.write_text("node_modules", encoding="utf-8")

    assert ensure_gitignore(tmp_path)
    assert not ensure_gitignore(tmp_path)
    assert gitignore.read_text(encoding="utf-8") == "node_modules\n.env.duckrow\n"
