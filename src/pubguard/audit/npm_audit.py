"""npm audit invocation and report normalization.

npm has changed the shape of ``npm audit --json`` several times:

- before 6.1.0 there is no JSON reporter at all
- npm 6 reports ``actions``/``advisories``/``muted``/``metadata``
- npm 7+ reports ``auditReportVersion: 2`` with a ``vulnerabilities``
  map and dependency counts grouped in an object

Every shape is normalized to :class:`AuditReport`. Projects without a
lockfile get one generated for the audit, and it is removed again before
returning, whatever the outcome.
"""

from __future__ import annotations

import json
import logging
import re
from pathlib import Path
from typing import Any

from pubguard.config import read_package_json
from pubguard.core.errors import AuditOutputError, ConfigError, InfrastructureError, ManifestMissingError
from pubguard.core.models import (
    AuditError,
    AuditMetadata,
    AuditReport,
    Severity,
    VulnerabilityCounts,
)
from pubguard.runners.command import CommandRunner

logger = logging.getLogger(__name__)

# First npm release with `npm audit --json`
JSON_REPORTER_MIN_VERSION = (6, 1, 0)

LOCKFILE_NAMES = ("package-lock.json", "npm-shrinkwrap.json")
GENERATED_LOCKFILE = "package-lock.json"

NO_LOCKFILE_CODE = "EAUDITNOLOCK"
NO_LOCKFILE_CODES = {"EAUDITNOLOCK", "ENOLOCK"}
BAD_MANIFEST_SUMMARY = "package.json file is missing or is badly formatted."
NO_LOCKFILE_DETAIL = "Try creating one first with: npm i --package-lock-only"

_VERSION_RE = re.compile(r"(\d+)\.(\d+)\.(\d+)")
_NO_LOCKFILE_MARKERS = ("EAUDITNOLOCK", "ENOLOCK", "EJSONPARSE", "without a lockfile")


def parse_npm_version(output: str) -> tuple[int, int, int] | None:
    """Parse `npm --version` output into a comparable tuple."""
    match = _VERSION_RE.search(output)
    if not match:
        return None
    major, minor, patch = (int(part) for part in match.groups())
    return (major, minor, patch)


def has_lockfile(project_dir: Path) -> bool:
    return any((project_dir / name).exists() for name in LOCKFILE_NAMES)


def no_lockfile_error(summary: str = "") -> AuditError:
    """Build the AuditError reported when no lockfile could be audited."""
    summary = f"{BAD_MANIFEST_SUMMARY} {summary}".strip()
    return AuditError(code=NO_LOCKFILE_CODE, summary=summary, detail=NO_LOCKFILE_DETAIL)


def _as_int(value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


def _dependency_count(value: Any, key: str) -> int:
    # npm 7+ nests counts under metadata.dependencies
    if isinstance(value, dict):
        return _as_int(value.get(key))
    return _as_int(value)


def normalize_metadata(payload: dict[str, Any]) -> AuditMetadata:
    """Build AuditMetadata from either report version."""
    metadata = payload.get("metadata") or {}
    vulns = metadata.get("vulnerabilities") or {}
    counts = VulnerabilityCounts(**{s.value: _as_int(vulns.get(s.value)) for s in Severity})

    deps = metadata.get("dependencies")
    if isinstance(deps, dict):
        # The prod count includes the root package itself
        return AuditMetadata(
            vulnerabilities=counts,
            dependencies=max(_dependency_count(deps, "prod") - 1, 0),
            dev_dependencies=_dependency_count(deps, "dev"),
            optional_dependencies=_dependency_count(deps, "optional"),
            total_dependencies=_dependency_count(deps, "total"),
        )

    return AuditMetadata(
        vulnerabilities=counts,
        dependencies=_as_int(deps),
        dev_dependencies=_as_int(metadata.get("devDependencies")),
        optional_dependencies=_as_int(metadata.get("optionalDependencies")),
        total_dependencies=_as_int(metadata.get("totalDependencies")),
    )


def _advisories_from_vulnerabilities(vulnerabilities: dict[str, Any]) -> dict[str, dict[str, Any]]:
    """Collect npm 7+ `via` advisory objects into an id-keyed mapping."""
    advisories: dict[str, dict[str, Any]] = {}
    for package_name, entry in sorted(vulnerabilities.items()):
        for via in entry.get("via") or []:
            # String entries point at another vulnerable package, not an advisory
            if not isinstance(via, dict):
                continue
            advisory_id = str(via.get("source") or via.get("url") or package_name)
            advisories.setdefault(
                advisory_id,
                {
                    "id": via.get("source"),
                    "module_name": via.get("name", package_name),
                    "title": via.get("title", ""),
                    "severity": via.get("severity", entry.get("severity", "")),
                    "url": via.get("url", ""),
                    "vulnerable_versions": via.get("range", entry.get("range", "")),
                },
            )
    return advisories


def normalize_report(payload: dict[str, Any]) -> AuditReport:
    """Convert a parsed `npm audit --json` payload into an AuditReport.

    Missing fields default to empty/zero, so a partial payload (as npm
    produces for projects without dependencies) still yields a report.
    """
    if payload.get("auditReportVersion") == 2 or "vulnerabilities" in payload:
        advisories = _advisories_from_vulnerabilities(payload.get("vulnerabilities") or {})
    else:
        advisories = {str(k): v for k, v in (payload.get("advisories") or {}).items()}

    return AuditReport(
        actions=list(payload.get("actions") or []),
        advisories=advisories,
        muted=list(payload.get("muted") or []),
        metadata=normalize_metadata(payload),
    )


def interpret_output(stdout: str, stderr: str = "") -> AuditReport | AuditError:
    """Turn raw npm audit output into a report or a recognized error.

    Raises:
        AuditOutputError: Output is not JSON and not a known precondition failure
    """
    try:
        payload = json.loads(stdout)
    except json.JSONDecodeError as e:
        combined = f"{stdout}\n{stderr}"
        if any(marker in combined for marker in _NO_LOCKFILE_MARKERS):
            return no_lockfile_error()
        raise AuditOutputError(f"Unable to parse npm audit output: {e}") from e

    if not isinstance(payload, dict):
        raise AuditOutputError(f"Unexpected npm audit output: {stdout[:200]!r}")

    error = payload.get("error")
    if isinstance(error, dict):
        code = str(error.get("code") or "")
        summary = str(error.get("summary") or "")
        if code in NO_LOCKFILE_CODES:
            return no_lockfile_error(summary)
        return AuditError(code=code, summary=summary, detail=str(error.get("detail") or ""))

    return normalize_report(payload)


class NpmAuditNormalizer:
    """Runs npm audit for a project and normalizes the result."""

    def __init__(self, runner: CommandRunner) -> None:
        self.runner = runner

    async def npm_version(self, project_dir: Path) -> tuple[int, int, int] | None:
        result = await self.runner.run(["npm", "--version"], project_dir)
        result.raise_for_timeout()
        if result.exit_code != 0:
            raise InfrastructureError(f"`npm --version` exited with code {result.exit_code}")
        return parse_npm_version(result.stdout)

    async def supports_json_reporter(self, project_dir: Path) -> bool:
        version = await self.npm_version(project_dir)
        return version is not None and version >= JSON_REPORTER_MIN_VERSION

    async def audit(self, project_dir: Path) -> AuditReport | AuditError:
        """Audit the dependencies of the project in ``project_dir``.

        Returns:
            AuditReport, or AuditError for recognized precondition failures

        Raises:
            InfrastructureError: npm is missing, timed out or produced garbage
        """
        if not await self.supports_json_reporter(project_dir):
            logger.warning("npm audit has no JSON reporter in this npm version, skipping audit")
            return AuditReport()

        lockfile_existed = has_lockfile(project_dir)
        if not lockfile_existed:
            # npm walks up to a parent prefix when the manifest is missing
            try:
                read_package_json(project_dir)
            except (ManifestMissingError, ConfigError) as e:
                logger.debug(f"Not generating a lockfile in {project_dir}: {e}")
                return no_lockfile_error()

        try:
            if not lockfile_existed:
                await self._generate_lockfile(project_dir)
            result = await self.runner.run(["npm", "audit", "--json"], project_dir)
            result.raise_for_timeout()
            # npm audit exits non-zero when it finds vulnerabilities
            return interpret_output(result.stdout, result.stderr)
        finally:
            if not lockfile_existed:
                self._remove_generated_lockfile(project_dir)

    async def _generate_lockfile(self, project_dir: Path) -> None:
        result = await self.runner.run(
            ["npm", "install", "--package-lock-only", "--ignore-scripts"],
            project_dir,
        )
        result.raise_for_timeout()
        if result.exit_code != 0:
            # A broken manifest leaves no lockfile; npm audit reports it
            logger.debug(f"Lockfile generation exited with code {result.exit_code}")

    def _remove_generated_lockfile(self, project_dir: Path) -> None:
        lockfile = project_dir / GENERATED_LOCKFILE
        if lockfile.exists():
            logger.info(f"Removing auto-generated {lockfile}")
            lockfile.unlink()
