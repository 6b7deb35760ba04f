"""Sensitive file detection in the working tree."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

logger = logging.getLogger(__name__)

# Directories never walked
IGNORED_DIRS = frozenset({".git", "node_modules"})


class PatternKind(str, Enum):
    """How a pattern is compared with a file."""

    FILENAME = "filename"  # basename equality
    EXTENSION = "extension"  # basename suffix
    PATH = "path"  # relative path equality or suffix


@dataclass(frozen=True)
class SensitivePattern:
    """A file pattern known to carry sensitive data."""

    kind: PatternKind
    pattern: str
    caption: str
    description: str

    def matches(self, relative_path: str) -> bool:
        name = relative_path.rsplit("/", 1)[-1]
        if self.kind is PatternKind.FILENAME:
            return name == self.pattern
        if self.kind is PatternKind.EXTENSION:
            return name.endswith(self.pattern)
        return relative_path == self.pattern or relative_path.endswith(f"/{self.pattern}")


@dataclass(frozen=True)
class SensitiveFinding:
    """A file that matched a sensitive pattern."""

    path: str
    caption: str
    description: str

    def format(self) -> str:
        return f"invalid filename {self.path}\n - {self.caption}\n - {self.description}"


def _p(kind: PatternKind, pattern: str, caption: str, description: str) -> SensitivePattern:
    return SensitivePattern(kind, pattern, caption, description)


F, E, P = PatternKind.FILENAME, PatternKind.EXTENSION, PatternKind.PATH

SENSITIVE_PATTERNS: tuple[SensitivePattern, ...] = (
    _p(F, "schema.rb", "Ruby On Rails database schema file",
       "Contains information on the database schema of a Ruby On Rails application."),
    _p(F, "database.yml", "Potential Ruby On Rails database configuration file",
       "Might contain database credentials."),
    _p(F, "secret_token.rb", "Ruby On Rails secret token configuration file",
       "If the Rails secret token is known, it can allow for remote code execution."),
    _p(P, "config/secrets.yml", "Ruby On Rails secrets configuration file",
       "Might contain application secrets."),
    _p(F, ".env", "Environment configuration file",
       "Might contain credentials and other secrets."),
    _p(F, ".npmrc", "npm configuration file",
       "Might contain an npm authentication token."),
    _p(F, ".netrc", "Configuration file used by various tools",
       "Might contain remote host credentials."),
    _p(F, ".git-credentials", "git credentials store",
       "Contains plain text git credentials."),
    _p(F, ".htpasswd", "Apache htpasswd file",
       "Contains user names and password hashes."),
    _p(F, ".pgpass", "PostgreSQL password file",
       "Contains PostgreSQL credentials."),
    _p(F, ".bash_history", "Shell command history file",
       "Might contain typed passwords and other secrets."),
    _p(F, "credentials.xml", "Jenkins credentials file",
       "Might contain encrypted Jenkins credentials."),
    _p(F, "id_rsa", "Private SSH key", "Allows access to remote hosts."),
    _p(F, "id_dsa", "Private SSH key", "Allows access to remote hosts."),
    _p(F, "id_ecdsa", "Private SSH key", "Allows access to remote hosts."),
    _p(F, "id_ed25519", "Private SSH key", "Allows access to remote hosts."),
    _p(E, ".pem", "Potential cryptographic private key", "Might contain a private key."),
    _p(E, ".key", "Potential cryptographic private key", "Might contain a private key."),
    _p(E, ".pfx", "PKCS #12 certificate bundle", "Might contain a private key."),
    _p(E, ".p12", "PKCS #12 certificate bundle", "Might contain a private key."),
    _p(E, ".kdbx", "KeePass password database", "Contains stored passwords."),
    _p(E, ".sqlite", "SQLite database file", "Might contain application data."),
    _p(E, ".log", "Log file", "Might contain sensitive runtime information."),
    _p(E, ".tgz", "Archive file", "Might be a leftover package tarball."),
    _p(E, ".zip", "Archive file", "Might contain unintended files."),
)


class SensitiveFileScanner:
    """Finds files in a working tree that match known sensitive patterns."""

    def __init__(
        self,
        patterns: tuple[SensitivePattern, ...] = SENSITIVE_PATTERNS,
        ignored_dirs: frozenset[str] = IGNORED_DIRS,
    ) -> None:
        self.patterns = patterns
        self.ignored_dirs = ignored_dirs

    def iter_files(self, root: Path) -> list[str]:
        """List files under ``root`` as POSIX relative paths."""
        files: list[str] = []
        for dirpath, dirnames, filenames in os.walk(root):
            dirnames[:] = [d for d in dirnames if d not in self.ignored_dirs]
            base = Path(dirpath).relative_to(root)
            files.extend((base / name).as_posix() for name in filenames)
        return files

    def scan(self, root: Path) -> list[SensitiveFinding]:
        """Return every sensitive file under ``root``, sorted by path.

        A file matching several patterns is reported once per pattern.
        """
        findings = [
            SensitiveFinding(path=path, caption=p.caption, description=p.description)
            for path in self.iter_files(root)
            for p in self.patterns
            if p.matches(path)
        ]
        findings.sort(key=lambda f: f.path)
        logger.debug(f"Sensitive scan of {root} found {len(findings)} file(s)")
        return findings


def format_findings(findings: list[SensitiveFinding]) -> str:
    """Render findings as a validation failure message.

    Continuation lines are left unindented; the verdict report indents them.
    """
    lines = ["Sensitive data found in the working tree:"]
    lines.extend(finding.format() for finding in findings)
    return "\n".join(lines)
