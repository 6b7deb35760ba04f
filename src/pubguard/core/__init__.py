"""Core validation logic."""

from pubguard.core.errors import (
    AuditPreconditionError,
    InfrastructureError,
    ManifestMissingError,
    PrepublishScriptError,
    PubguardError,
    ValidationFailedError,
)
from pubguard.core.models import (
    AggregatedVerdict,
    AuditError,
    AuditReport,
    CheckDefinition,
    CheckResult,
    PublishCommand,
    Severity,
)

__all__ = [
    "AggregatedVerdict",
    "AuditError",
    "AuditPreconditionError",
    "AuditReport",
    "CheckDefinition",
    "CheckResult",
    "InfrastructureError",
    "ManifestMissingError",
    "PrepublishScriptError",
    "PublishCommand",
    "PubguardError",
    "Severity",
    "ValidationFailedError",
]
