"""Git operations subpackage.

This subpackage provides the clone executor behind an abstract interface so
installs and registry operations can be tested with fakes.
"""

from duckrow.core.git.abc import Git, parse_ls_remote_commit
from duckrow.core.git.real import RealGit

__all__ = [
    "Git",
    "RealGit",
    "parse_ls_remote_commit",
]
