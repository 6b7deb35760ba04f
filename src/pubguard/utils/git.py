"""Git repository state probe: branch, tags and working tree status."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from pubguard.core.errors import GitCommandError
from pubguard.runners.command import CommandRunner

logger = logging.getLogger(__name__)


@dataclass
class GitStatusResult:
    """Result of parsing git status output.

    Attributes:
        untracked: List of untracked file paths (new files not in git)
        modified: List of modified tracked file paths (staged or unstaged changes)
    """

    untracked: list[str]
    modified: list[str]

    @property
    def has_tracked_changes(self) -> bool:
        """Check if there are any tracked changes (modified/staged/deleted)."""
        return len(self.modified) > 0

    @property
    def has_untracked(self) -> bool:
        return len(self.untracked) > 0


def parse_git_status_output(output: str) -> GitStatusResult:
    """Parse git status --porcelain output into structured result.

    The porcelain format uses a two-character prefix XY where X is the
    index status and Y the work tree status. ``??`` marks an untracked
    file; every other prefix (M, A, D, R, C and combinations) is a tracked
    change. Renames and copies use ``old -> new`` and report the new path.

    Args:
        output: Raw output from `git status --porcelain`

    Returns:
        GitStatusResult with categorized file lists
    """
    untracked: list[str] = []
    modified: list[str] = []

    for line in output.splitlines():
        if not line or len(line) < 3:
            continue

        prefix = line[:2]
        # File path starts at position 3 (after "XY ")
        file_path = line[3:]

        if " -> " in file_path:
            file_path = file_path.split(" -> ", 1)[1]

        if prefix == "??":
            untracked.append(file_path)
        else:
            modified.append(file_path)

    return GitStatusResult(untracked=untracked, modified=modified)


def parse_current_branch(output: str) -> str:
    """Extract the current branch from `git branch` output.

    The current branch is the line marked with ``*``. On a detached HEAD
    git prints a descriptor such as ``(HEAD detached at 15a1ef7)`` or
    ``(detached from 15a1ef7)``, which is returned verbatim.

    Returns:
        Branch name or detached-head descriptor; empty string if none is marked
        (e.g. a fresh repository without commits)
    """
    for line in output.splitlines():
        if line.startswith("*"):
            return line[1:].strip()
    return ""


def parse_tags(output: str) -> set[str]:
    """Parse one-tag-per-line output into a set."""
    return {line.strip() for line in output.splitlines() if line.strip()}


class RepositoryStateProbe:
    """Queries version-control state of a project through git."""

    def __init__(self, runner: CommandRunner, project_root: Path) -> None:
        self.runner = runner
        self.project_root = project_root

    async def _git(self, *args: str) -> str:
        result = await self.runner.run(["git", *args], self.project_root)
        result.raise_for_timeout()
        if result.exit_code != 0:
            raise GitCommandError(result.command, result.exit_code, result.stderr)
        return result.stdout

    async def current_branch(self) -> str:
        """Return the branch name, or a detached-head descriptor."""
        return parse_current_branch(await self._git("branch"))

    async def latest_tags(self) -> set[str]:
        """Return the tags pointing at the current commit."""
        return parse_tags(await self._git("tag", "--points-at", "HEAD"))

    async def status(self) -> GitStatusResult:
        return parse_git_status_output(await self._git("status", "--porcelain"))

    async def has_uncommitted_changes(self) -> bool:
        status = await self.status()
        return status.has_tracked_changes

    async def has_untracked_files(self) -> bool:
        status = await self.status()
        return status.has_untracked
