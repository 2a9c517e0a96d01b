"""Structured clone failures.

Every failed git clone/pull/fetch is converted into a CloneError before it
leaves the clone executor. The error keeps the exact command and URL that were
used so a caller can offer an edit-and-retry flow without re-resolving the
source.
"""

from typing import Literal, cast

CloneErrorKind = Literal["auth-failure", "not-found", "network", "timeout", "unknown"]

CLONE_ERROR_KINDS: tuple[CloneErrorKind, ...] = (
    "auth-failure",
    "not-found",
    "network",
    "timeout",
    "unknown",
)

CLONE_TIMEOUT_SECONDS = 60
PULL_TIMEOUT_SECONDS = 30

_KIND_LABELS: dict[CloneErrorKind, str] = {
    "auth-failure": "Authentication Required",
    "not-found": "Repository Not Found",
    "network": "Network Error",
    "timeout": "Timeout",
    "unknown": "Unknown Error",
}

_SSH_KEY_PATTERNS = (
    "permission denied (publickey)",
    "no such identity",
    "load key",
    "identity file",
)

_HOST_KEY_PATTERNS = (
    "host key verification failed",
    "known_hosts",
)

_CREDENTIAL_PATTERNS = (
    "could not read username",
    "could not read password",
    "invalid credentials",
    "authentication failed",
    "logon failed",
    "terminal prompts disabled",
    "401",
    "403",
)

_NOT_FOUND_PATTERNS = (
    "repository not found",
    "does not appear to be a git repository",
    "project not found",
    "404",
    "not found",
)

_NETWORK_PATTERNS = (
    "could not resolve host",
    "connection refused",
    "connection timed out",
    "network is unreachable",
    "no route to host",
    "name or service not known",
    "failed to connect",
)

_KNOWN_HOSTS = ("github.com", "gitlab.com")


def validate_clone_error_kind(value: str) -> CloneErrorKind:
    """Narrow a string to a CloneErrorKind, raising ValueError when unknown."""
    if value not in CLONE_ERROR_KINDS:
        msg = f"Unknown clone error kind: {value!r}"
        raise ValueError(msg)
    return cast(CloneErrorKind, value)


class CloneError(Exception):
    """A classified git clone failure with actionable hints."""

    def __init__(
        self,
        *,
        kind: CloneErrorKind,
        url: str,
        command: str,
        raw_output: str,
        hints: list[str],
        protocol: str,
    ) -> None:
        self.kind = kind
        self.url = url
        self.command = command
        self.raw_output = raw_output
        self.hints = hints
        self.protocol = protocol
        super().__init__(f"git clone failed ({self.label}): {self.first_line()}")

    @property
    def label(self) -> str:
        return _KIND_LABELS[self.kind]

    def first_line(self) -> str:
        """Return the first meaningful line of git output."""
        for line in self.raw_output.splitlines():
            stripped = line.strip()
            if stripped and not stripped.startswith("Cloning into"):
                return stripped
        if self.raw_output:
            return self.raw_output.strip()
        return "clone failed"


def detect_protocol(url: str) -> str:
    """Return "ssh" or "https" based on the clone URL format."""
    if url.startswith("git@") or url.startswith("ssh://"):
        return "ssh"
    return "https"


def _contains_any(text: str, patterns: tuple[str, ...]) -> bool:
    return any(pattern in text for pattern in patterns)


def classify_output(output: str, *, timed_out: bool = False) -> CloneErrorKind:
    """Pattern-match git output to a CloneErrorKind.

    Rules are ordered; the first match wins. A timeout reported by the
    executor itself always wins over text patterns.
    """
    if timed_out:
        return "timeout"

    lower = output.lower()

    if _contains_any(lower, _SSH_KEY_PATTERNS):
        return "auth-failure"
    if _contains_any(lower, _HOST_KEY_PATTERNS):
        return "auth-failure"
    if _contains_any(lower, _CREDENTIAL_PATTERNS):
        return "auth-failure"
    if _contains_any(lower, _NOT_FOUND_PATTERNS):
        return "not-found"
    if _contains_any(lower, _NETWORK_PATTERNS):
        return "network"
    if "timed out" in lower or "deadline exceeded" in lower:
        return "timeout"
    return "unknown"


def https_to_ssh(url: str) -> str | None:
    """Convert https://github.com/owner/repo(.git) into git@github.com:owner/repo.git."""
    for host in _KNOWN_HOSTS:
        prefix = f"https://{host}/"
        if url.startswith(prefix):
            path = url[len(prefix) :]
            if not path.endswith(".git"):
                path += ".git"
            return f"git@{host}:{path}"
    return None


def ssh_to_https(url: str) -> str | None:
    """Convert git@github.com:owner/repo.git into https://github.com/owner/repo.git."""
    if not url.startswith("git@"):
        return None
    host, sep, path = url[len("git@") :].partition(":")
    if not sep or host not in _KNOWN_HOSTS:
        return None
    return f"https://{host}/{path}"


def hints_for_error(kind: CloneErrorKind, protocol: str, url: str, output: str) -> list[str]:
    """Return up to three actionable suggestions for a clone failure."""
    lower = output.lower()

    if kind == "auth-failure":
        if _contains_any(lower, _HOST_KEY_PATTERNS):
            return [
                "The SSH host key is not trusted. Run: "
                "`ssh-keyscan github.com >> ~/.ssh/known_hosts`",
                "Or connect once manually: `ssh -T git@github.com` and accept the host key",
            ]
        if protocol == "ssh":
            hints = [
                "Ensure your SSH key is loaded: `ssh-add -l`",
                "Check `~/.ssh/config` for the correct Host alias if using multiple accounts",
            ]
            alternative = ssh_to_https(url)
            if alternative is not None:
                hints.append(f"Try HTTPS instead: {alternative}")
            return hints
        hints = [
            "Run `gh auth login` or configure a personal access token for this host",
            "Or configure a git credential helper: `git config --global credential.helper store`",
        ]
        alternative = https_to_ssh(url)
        if alternative is not None:
            hints.append(f"Try SSH instead: {alternative}")
        return hints

    if kind == "not-found":
        return [
            "Verify the owner/repo spelling in the URL",
            "Ensure you have access to this repository (it may be private)",
            "If using SSH, check that your key has access to this organization",
        ]

    if kind == "network":
        return [
            "Check your internet connection",
            "Verify the hostname in the URL is correct",
            "If behind a proxy, ensure git is configured to use it",
        ]

    if kind == "timeout":
        return [
            f"The operation timed out after {CLONE_TIMEOUT_SECONDS} seconds",
            "This may indicate a network issue or a very large repository",
            "Try again; the server may have been temporarily unavailable",
        ]

    return [
        "Check the error message above for details",
        "Verify the repository URL is correct and accessible",
        f"Try cloning manually: `git clone {url}` to diagnose the issue",
    ]


def classify_clone_error(
    url: str, command: str, raw_output: str, *, timed_out: bool = False
) -> CloneError:
    """Build a CloneError from the output of a failed git command."""
    protocol = detect_protocol(url)
    kind = classify_output(raw_output, timed_out=timed_out)
    return CloneError(
        kind=kind,
        url=url,
        command=command,
        raw_output=raw_output.strip(),
        hints=hints_for_error(kind, protocol, url, raw_output),
        protocol=protocol,
    )


def format_clone_command(url: str, ref: str | None = None, *, shallow: bool = True) -> str:
    """Build the display string for a git clone command."""
    args = ["git", "clone"]
    if shallow:
        args.extend(["--depth", "1"])
    if ref:
        args.extend(["--branch", ref])
    args.append(url)
    return " ".join(args)
