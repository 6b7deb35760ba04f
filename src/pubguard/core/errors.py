"""Exception hierarchy for pubguard.

Validation failures are normally collected as data by the pipeline; the
exceptions here are what the public entry points raise once a run is over,
plus the infrastructure errors that abort a run immediately.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pathlib import Path

    from pubguard.core.models import AggregatedVerdict


class PubguardError(Exception):
    """Base class for every error raised by pubguard."""


class ConfigError(PubguardError):
    """The configuration file could not be read."""


class ManifestMissingError(PubguardError):
    """The project has no package.json."""

    def __init__(self) -> None:
        super().__init__("package.json file doesn't exist.")


# =============================================================================
# Validation failures
# =============================================================================


class ValidationFailedError(PubguardError):
    """One or more enabled checks failed.

    The message is the bulleted report of every failure, in check order.
    """

    def __init__(self, verdict: AggregatedVerdict) -> None:
        self.verdict = verdict
        super().__init__(verdict.format())


class PrepublishScriptError(PubguardError):
    """The prepublish script exited with a non-zero code."""

    def __init__(self, command: str, exit_code: int) -> None:
        self.command = command
        self.exit_code = exit_code
        super().__init__(f"Command `{command}` exited with code {exit_code}.")


# =============================================================================
# Infrastructure errors
# =============================================================================


class InfrastructureError(PubguardError):
    """Unexpected failure of the environment; aborts the whole run."""


class CommandNotFoundError(InfrastructureError):
    """The executable of a command could not be located."""

    def __init__(self, command: Sequence[str] | str) -> None:
        self.command = command
        name = command if isinstance(command, str) else command[0]
        super().__init__(f"Command not found: {name}")


class WorkingDirectoryError(InfrastructureError):
    """The directory a command should run in does not exist."""

    def __init__(self, cwd: Path) -> None:
        self.cwd = cwd
        super().__init__(f"Working directory does not exist: {cwd}")


class CommandTimeoutError(InfrastructureError):
    """A command did not finish within its timeout."""

    def __init__(self, command: str, timeout: float) -> None:
        self.command = command
        self.timeout = timeout
        super().__init__(f"Command `{command}` timed out after {timeout} seconds.")


class GitCommandError(InfrastructureError):
    """git exited with an error (not a repository, corrupt index, ...)."""

    def __init__(self, command: str, exit_code: int, stderr: str) -> None:
        self.exit_code = exit_code
        self.stderr = stderr
        detail = stderr.strip() or f"exit code {exit_code}"
        super().__init__(f"`{command}` failed: {detail}")


class AuditOutputError(InfrastructureError):
    """npm audit produced output that is neither a report nor a known error."""


class AuditPreconditionError(PubguardError):
    """npm audit reported a recognized precondition failure; stops the run."""

    def __init__(self, code: str, summary: str, detail: str = "") -> None:
        self.code = code
        self.summary = summary
        self.detail = detail
        message = f"{code}: {summary}"
        if detail:
            message += f"\n{detail}"
        super().__init__(message)
