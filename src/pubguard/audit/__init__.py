"""npm audit normalization."""

from pubguard.audit.npm_audit import NpmAuditNormalizer, interpret_output, normalize_report

__all__ = [
    "NpmAuditNormalizer",
    "interpret_output",
    "normalize_report",
]
