"""Working tree scanners."""

from pubguard.scanners.sensitive import (
    SENSITIVE_PATTERNS,
    SensitiveFileScanner,
    SensitiveFinding,
    format_findings,
)

__all__ = [
    "SENSITIVE_PATTERNS",
    "SensitiveFileScanner",
    "SensitiveFinding",
    "format_findings",
]
