"""Utility modules for pubguard."""

from pubguard.utils.git import (
    GitStatusResult,
    RepositoryStateProbe,
    parse_current_branch,
    parse_git_status_output,
    parse_tags,
)

__all__ = [
    "GitStatusResult",
    "RepositoryStateProbe",
    "parse_current_branch",
    "parse_git_status_output",
    "parse_tags",
]
