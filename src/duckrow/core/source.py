"""Source resolution: turn a source string into a concrete git location.

Supported shapes:
- "./local/path", "/abs/path", "~/path"      -> local directory
- "git@host:owner/repo.git"                  -> SSH URL
- "https://host/owner/repo[/tree/ref/sub]"   -> HTTPS URL
- "owner/repo@asset"                         -> GitHub repo, single asset
- "host/owner/repo[/sub/path]"               -> canonical registry source
- "owner/repo/sub/path"                      -> GitHub repo with sub-path
- "owner/repo"                               -> GitHub repo
"""

import re
from collections.abc import Mapping
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Literal
from urllib.parse import urlparse

SourceType = Literal["git", "local"]

DEFAULT_HOST = "github.com"

_NAME = r"[A-Za-z0-9_.-]+"
_OWNER_REPO = re.compile(rf"^({_NAME})/({_NAME})$")
_OWNER_REPO_PATH = re.compile(rf"^({_NAME})/({_NAME})/(.+)$")


class SourceParseError(ValueError):
    """Raised when a source string matches none of the recognized shapes."""


@dataclass(frozen=True)
class ParsedSource:
    """A resolved source. Immutable; overrides only rewrite clone_url."""

    type: SourceType
    clone_url: str = ""
    host: str = ""
    owner: str = ""
    repo: str = ""
    sub_path: str = ""
    asset_name: str = ""
    ref: str = ""
    local_path: Path | None = None
    raw: str = ""

    def __post_init__(self) -> None:
        if self.type == "local":
            if self.host or self.owner or self.repo:
                msg = "Local sources carry no host/owner/repo"
                raise ValueError(msg)
            if self.local_path is None:
                msg = "Local sources require a local_path"
                raise ValueError(msg)
        elif not self.clone_url:
            msg = "Git sources require a clone URL"
            raise ValueError(msg)
        elif self.local_path is not None:
            msg = "Git sources carry no local_path"
            raise ValueError(msg)

    def repo_key(self) -> str:
        """Return lowercase "owner/repo", the key used for clone URL overrides."""
        if not self.owner or not self.repo:
            return ""
        return f"{self.owner}/{self.repo}".lower()

    def canonical(self, rel_path: str = "") -> str:
        """Return host/owner/repo[/rel_path] for this source."""
        return normalize_source(self.host or DEFAULT_HOST, self.owner, self.repo, rel_path)


def parse_source(text: str, overrides: Mapping[str, str] | None = None) -> ParsedSource:
    """Parse a source string and apply clone URL overrides.

    Args:
        text: User-supplied source or a manifest "source" field
        overrides: Optional mapping of "owner/repo" to replacement clone URL

    Returns:
        ParsedSource for the input

    Raises:
        SourceParseError: If the string matches no recognized shape, or a
            local path does not exist as a directory
    """
    raw = text.strip()
    if not raw:
        raise SourceParseError("Empty source")

    if _is_local_path(raw):
        parsed = _parse_local(raw)
    elif raw.startswith("git@") or raw.startswith("ssh://"):
        parsed = _parse_ssh(raw)
    elif raw.startswith("https://") or raw.startswith("http://"):
        parsed = _parse_http(raw)
    else:
        parsed = _parse_shorthand(raw)

    if overrides:
        parsed = apply_clone_url_override(parsed, overrides)
    return parsed


def apply_clone_url_override(source: ParsedSource, overrides: Mapping[str, str]) -> ParsedSource:
    """Redirect clone_url when the source's repo key has an override."""
    key = source.repo_key()
    if not key:
        return source
    for override_key, clone_url in overrides.items():
        if override_key.strip().strip("/").lower() == key:
            return replace(source, clone_url=clone_url)
    return source


def _is_local_path(text: str) -> bool:
    return text.startswith(("./", "../", "/", "~/")) or text in (".", "..", "~")


def _parse_local(text: str) -> ParsedSource:
    path = Path(text).expanduser().resolve()
    if not path.exists():
        raise SourceParseError(f"Local path not found: {path}")
    if not path.is_dir():
        raise SourceParseError(f"Local path is not a directory: {path}")
    return ParsedSource(type="local", local_path=path, raw=text)


def _parse_ssh(text: str) -> ParsedSource:
    if text.startswith("ssh://"):
        parsed = urlparse(text)
        host = parsed.hostname or ""
        repo_path = parsed.path.lstrip("/")
    else:
        user_host, sep, repo_path = text.partition(":")
        if not sep or not repo_path:
            raise SourceParseError(f"Invalid SSH URL: {text!r}")
        host = user_host.split("@", 1)[1]

    segments = _strip_git_suffix(repo_path).strip("/").split("/")
    if len(segments) < 2 or not segments[0] or not segments[1]:
        raise SourceParseError(f"SSH URL does not name owner/repo: {text!r}")
    return ParsedSource(
        type="git",
        clone_url=text,
        host=host,
        owner=segments[0],
        repo=segments[1],
        raw=text,
    )


def _parse_http(text: str) -> ParsedSource:
    parsed = urlparse(text)
    host = parsed.netloc.rsplit("@", 1)[-1]
    parts = [part for part in parsed.path.strip("/").split("/") if part]
    if len(parts) < 2:
        raise SourceParseError(f"URL does not name owner/repo: {text!r}")

    owner = parts[0]
    repo = _strip_git_suffix(parts[1])
    ref = ""
    sub_path = ""
    # /owner/repo/tree/<ref>/<sub/path>
    if len(parts) >= 4 and parts[2] == "tree":
        ref = parts[3]
        sub_path = "/".join(parts[4:])

    return ParsedSource(
        type="git",
        clone_url=f"{parsed.scheme}://{host}/{owner}/{repo}.git",
        host=host,
        owner=owner,
        repo=repo,
        sub_path=sub_path,
        ref=ref,
        raw=text,
    )


def _parse_shorthand(text: str) -> ParsedSource:
    if "@" in text:
        repo_part, _, asset = text.partition("@")
        match = _OWNER_REPO.match(repo_part)
        if match is None or not asset:
            raise SourceParseError(
                f"Unrecognized source format: {text!r} (expected owner/repo@asset)"
            )
        return _github(match.group(1), match.group(2), raw=text, asset_name=asset)

    if is_canonical_source(text):
        host, owner, repo, sub_path = parse_lock_source(text)
        return ParsedSource(
            type="git",
            clone_url=f"https://{host}/{owner}/{_strip_git_suffix(repo)}.git",
            host=host,
            owner=owner,
            repo=_strip_git_suffix(repo),
            sub_path=sub_path,
            raw=text,
        )

    match = _OWNER_REPO_PATH.match(text)
    if match is not None:
        return _github(match.group(1), match.group(2), raw=text, sub_path=match.group(3))

    match = _OWNER_REPO.match(text)
    if match is not None:
        return _github(match.group(1), match.group(2), raw=text)

    raise SourceParseError(f"Unrecognized source format: {text!r}")


def _github(
    owner: str, repo: str, *, raw: str, asset_name: str = "", sub_path: str = ""
) -> ParsedSource:
    repo = _strip_git_suffix(repo)
    return ParsedSource(
        type="git",
        clone_url=f"https://{DEFAULT_HOST}/{owner}/{repo}.git",
        host=DEFAULT_HOST,
        owner=owner,
        repo=repo,
        sub_path=sub_path.strip("/"),
        asset_name=asset_name,
        raw=raw,
    )


def _strip_git_suffix(value: str) -> str:
    if value.endswith(".git"):
        return value[: -len(".git")]
    return value


def normalize_source(host: str, owner: str, repo: str, rel_path: str = "") -> str:
    """Build a canonical host/owner/repo[/rel_path] source string."""
    base = f"{host}/{owner}/{repo}"
    rel = rel_path.replace("\\", "/").strip("/")
    if not rel or rel == ".":
        return base
    return f"{base}/{rel}"


def parse_lock_source(source: str) -> tuple[str, str, str, str]:
    """Split host/owner/repo[/sub/path] into its four parts.

    Raises:
        SourceParseError: If fewer than three segments are present
    """
    parts = source.strip("/").split("/")
    if len(parts) < 3:
        raise SourceParseError(
            f"Invalid lock source {source!r}: expected at least host/owner/repo"
        )
    return parts[0], parts[1], parts[2], "/".join(parts[3:])


def is_canonical_source(source: str) -> bool:
    """True for host/owner/repo[/path] strings (first segment contains a dot)."""
    parts = source.split("/")
    return len(parts) >= 3 and "." in parts[0]


def source_path_key(source: str) -> str:
    """Strip the host from a canonical source, leaving owner/repo/path."""
    _, sep, rest = source.partition("/")
    if not sep:
        return source
    return rest


def normalized_source_key(source: str) -> str:
    """Host-agnostic, case-insensitive key used to match drifted source strings."""
    value = source.strip().rstrip("/").lower()
    if value.endswith(".git"):
        value = value[: -len(".git")]
    if is_canonical_source(value):
        value = source_path_key(value)
    return value.replace(".git/", "/")
