"""Core data models for pubguard."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

DEFAULT_DIST_TAG = "latest"


class Severity(str, Enum):
    """Advisory severity levels reported by npm audit, lowest first."""

    INFO = "info"
    LOW = "low"
    MODERATE = "moderate"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return list(Severity).index(self)

    def at_or_above(self) -> list[Severity]:
        """Severities whose rank is greater than or equal to this one."""
        return [s for s in Severity if s.rank >= self.rank]


# =============================================================================
# Check Models
# =============================================================================


class CheckResult(BaseModel):
    """Outcome of a single validation check."""

    model_config = ConfigDict(frozen=True)

    name: str
    passed: bool
    message: str | None = None

    @classmethod
    def ok(cls, name: str) -> CheckResult:
        return cls(name=name, passed=True)

    @classmethod
    def fail(cls, name: str, message: str) -> CheckResult:
        return cls(name=name, passed=False, message=message)


@dataclass(frozen=True)
class CheckDefinition:
    """A named check in the validation pipeline.

    Attributes:
        name: Stable identifier used in logs and results
        enabled: Whether the configuration switched this check on
        run: Coroutine factory producing the check's result
    """

    name: str
    enabled: bool
    run: Callable[[], Awaitable[CheckResult]]


class AggregatedVerdict(BaseModel):
    """Failures collected across one validation run, in check order."""

    failures: list[CheckResult] = Field(default_factory=list)

    @property
    def passed(self) -> bool:
        return not self.failures

    @property
    def messages(self) -> list[str]:
        return [f.message or f.name for f in self.failures]

    def format(self) -> str:
        """Render failures as a bulleted report.

        Each failure starts with ``  * ``; continuation lines of a
        multi-line message are indented by four spaces.
        """
        lines: list[str] = []
        for message in self.messages:
            first, *rest = message.split("\n")
            lines.append(f"  * {first}")
            lines.extend(f"    {line}" for line in rest)
        return "\n".join(lines)


# =============================================================================
# Audit Models
# =============================================================================


class VulnerabilityCounts(BaseModel):
    """Advisory counts keyed by severity."""

    info: int = 0
    low: int = 0
    moderate: int = 0
    high: int = 0
    critical: int = 0

    @property
    def total(self) -> int:
        return self.info + self.low + self.moderate + self.high + self.critical

    def count(self, severity: Severity) -> int:
        return int(getattr(self, severity.value))


class AuditMetadata(BaseModel):
    """Summary block of an audit report."""

    model_config = ConfigDict(populate_by_name=True)

    vulnerabilities: VulnerabilityCounts = Field(default_factory=VulnerabilityCounts)
    dependencies: int = 0
    dev_dependencies: int = Field(default=0, alias="devDependencies")
    optional_dependencies: int = Field(default=0, alias="optionalDependencies")
    total_dependencies: int = Field(default=0, alias="totalDependencies")


class AuditReport(BaseModel):
    """Canonical audit report, independent of the npm version that produced it."""

    actions: list[dict[str, Any]] = Field(default_factory=list)
    advisories: dict[str, dict[str, Any]] = Field(default_factory=dict)
    muted: list[Any] = Field(default_factory=list)
    metadata: AuditMetadata = Field(default_factory=AuditMetadata)

    def failing_severities(self, level: Severity) -> list[Severity]:
        """Severities at or above ``level`` that have at least one advisory."""
        counts = self.metadata.vulnerabilities
        return [s for s in level.at_or_above() if counts.count(s) > 0]

    def to_npm_dict(self) -> dict[str, Any]:
        """Dump using npm's camelCase field names."""
        return self.model_dump(by_alias=True)


class AuditError(BaseModel):
    """A recognized audit precondition failure (e.g. no lockfile)."""

    model_config = ConfigDict(frozen=True)

    code: str
    summary: str
    detail: str = ""


# =============================================================================
# Publish Models
# =============================================================================


class PublishCommand(BaseModel):
    """The package manager invocation to run once validation passes."""

    model_config = ConfigDict(frozen=True)

    executable: str = "npm"
    args: list[str] = Field(default_factory=lambda: ["publish", "--tag", DEFAULT_DIST_TAG])

    @property
    def argv(self) -> list[str]:
        return [self.executable, *self.args]

    @property
    def tag(self) -> str:
        return self.args[self.args.index("--tag") + 1]

    def __str__(self) -> str:
        return " ".join(self.argv)
