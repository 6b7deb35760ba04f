"""Unit tests for npm audit normalization."""

from __future__ import annotations

import json
from pathlib import Path
from typing import TYPE_CHECKING

import pytest

from pubguard.audit.npm_audit import (
    NpmAuditNormalizer,
    interpret_output,
    normalize_report,
    parse_npm_version,
)
from pubguard.core.errors import AuditOutputError, CommandTimeoutError
from pubguard.core.models import AuditError, AuditReport, Severity
from pubguard.runners.command import CommandResult

if TYPE_CHECKING:
    from tests.conftest import FakeRunner

EMPTY_NPM6_REPORT = {
    "actions": [],
    "advisories": {},
    "muted": [],
    "metadata": {
        "vulnerabilities": {"info": 0, "low": 0, "moderate": 0, "high": 0, "critical": 0},
        "dependencies": 0,
        "devDependencies": 0,
        "optionalDependencies": 0,
        "totalDependencies": 0,
    },
    "runId": "b7d2f5a8",
}

NPM6_REPORT = {
    "actions": [{"action": "update", "module": "lodash", "target": "4.17.21"}],
    "advisories": {
        "1523": {
            "id": 1523,
            "module_name": "lodash",
            "title": "Prototype Pollution",
            "severity": "high",
            "url": "https://npmjs.com/advisories/1523",
        }
    },
    "muted": [],
    "metadata": {
        "vulnerabilities": {"info": 0, "low": 1, "moderate": 0, "high": 1, "critical": 0},
        "dependencies": 12,
        "devDependencies": 3,
        "optionalDependencies": 0,
        "totalDependencies": 15,
    },
}

NPM7_REPORT = {
    "auditReportVersion": 2,
    "vulnerabilities": {
        "minimist": {
            "name": "minimist",
            "severity": "critical",
            "via": [
                {
                    "source": 1179,
                    "name": "minimist",
                    "title": "Prototype Pollution in minimist",
                    "url": "https://github.com/advisories/GHSA-xvch-5gv4-984h",
                    "severity": "critical",
                    "range": "<0.2.4",
                }
            ],
            "range": "<0.2.4",
        },
        "mkdirp": {"name": "mkdirp", "severity": "critical", "via": ["minimist"]},
    },
    "metadata": {
        "vulnerabilities": {"info": 0, "low": 0, "moderate": 0, "high": 0, "critical": 2, "total": 2},
        "dependencies": {"prod": 5, "dev": 2, "optional": 1, "peer": 0, "peerOptional": 0, "total": 7},
    },
}

# `npm audit --json` from npm 10 for a project without dependencies
EMPTY_NPM10_REPORT = {
    "auditReportVersion": 2,
    "vulnerabilities": {},
    "metadata": {
        "vulnerabilities": {"info": 0, "low": 0, "moderate": 0, "high": 0, "critical": 0, "total": 0},
        "dependencies": {"prod": 1, "dev": 0, "optional": 0, "peer": 0, "peerOptional": 0, "total": 0},
    },
}

NO_LOCK_ERROR = {
    "error": {
        "code": "EAUDITNOLOCK",
        "summary": "Neither npm-shrinkwrap.json nor package-lock.json found: Cannot audit a project without a lockfile",
        "detail": "Try creating one first with: npm i --package-lock-only",
    }
}


def audit_replying(runner: FakeRunner, payload: object, exit_code: int = 0) -> FakeRunner:
    """Script npm 6.4.1 answering `npm audit --json` with ``payload``."""
    stdout = payload if isinstance(payload, str) else json.dumps(payload)
    runner.reply("npm --version", "6.4.1\n")
    runner.reply("npm install --package-lock-only", "")
    runner.reply("npm audit --json", stdout, exit_code=exit_code)
    return runner


def lockfile_writer(exit_code: int = 0):
    """Handler for `npm install --package-lock-only` that creates the lockfile."""

    def handler(cwd: Path) -> CommandResult:
        (cwd / "package-lock.json").write_text(json.dumps({"name": "testing-repo", "lockfileVersion": 1}))
        return CommandResult(command="npm install --package-lock-only --ignore-scripts", exit_code=exit_code)

    return handler


class TestParseNpmVersion:
    """Tests for parse_npm_version."""

    def test_plain_version(self) -> None:
        assert parse_npm_version("6.1.0\n") == (6, 1, 0)

    def test_garbage(self) -> None:
        assert parse_npm_version("command not found") is None


class TestNormalizeReport:
    """Tests for payload normalization across npm versions."""

    def test_npm6_report(self) -> None:
        report = normalize_report(NPM6_REPORT)

        assert report.metadata.vulnerabilities.high == 1
        assert report.metadata.vulnerabilities.low == 1
        assert report.metadata.total_dependencies == 15
        assert report.metadata.dev_dependencies == 3
        assert "1523" in report.advisories
        assert report.actions[0]["module"] == "lodash"

    def test_npm7_report(self) -> None:
        report = normalize_report(NPM7_REPORT)

        assert report.metadata.vulnerabilities.critical == 2
        # npm 7+ counts the root package under `prod`
        assert report.metadata.dependencies == 4
        assert report.metadata.dev_dependencies == 2
        assert report.metadata.optional_dependencies == 1
        assert report.metadata.total_dependencies == 7
        # String `via` entries are references, not advisories
        assert list(report.advisories) == ["1179"]
        assert report.advisories["1179"]["module_name"] == "minimist"
        assert report.advisories["1179"]["vulnerable_versions"] == "<0.2.4"

    def test_partial_payload_defaults_to_zero(self) -> None:
        """A payload without collections or counts still yields a report."""
        report = normalize_report({"metadata": {}})

        assert report == AuditReport()
        assert report.metadata.vulnerabilities.total == 0
        assert report.metadata.total_dependencies == 0

    def test_npm10_zero_dependency_report_is_all_zero(self) -> None:
        """The root package is not counted as a dependency."""
        report = normalize_report(EMPTY_NPM10_REPORT)

        assert report == AuditReport()
        assert report.metadata.dependencies == 0

    def test_npm_field_names_on_dump(self) -> None:
        dumped = normalize_report(EMPTY_NPM6_REPORT).to_npm_dict()

        assert dumped["metadata"]["totalDependencies"] == 0
        assert dumped["metadata"]["devDependencies"] == 0
        assert dumped["advisories"] == {}


class TestInterpretOutput:
    """Tests for interpret_output."""

    def test_no_lockfile_error_payload(self) -> None:
        outcome = interpret_output(json.dumps(NO_LOCK_ERROR))

        assert isinstance(outcome, AuditError)
        assert outcome.code == "EAUDITNOLOCK"
        assert "package.json file is missing or is badly formatted" in outcome.summary
        assert "Cannot audit a project without a lockfile" in outcome.summary
        assert "npm i --package-lock-only" in outcome.detail

    def test_enolock_is_mapped_to_eauditnolock(self) -> None:
        payload = {"error": {"code": "ENOLOCK", "summary": "This command requires an existing lockfile."}}
        outcome = interpret_output(json.dumps(payload))

        assert isinstance(outcome, AuditError)
        assert outcome.code == "EAUDITNOLOCK"

    def test_other_error_payload_keeps_code(self) -> None:
        payload = {"error": {"code": "ENOAUDIT", "summary": "Your configured registry does not support audit"}}
        outcome = interpret_output(json.dumps(payload))

        assert isinstance(outcome, AuditError)
        assert outcome.code == "ENOAUDIT"

    def test_unparsable_output_mentioning_lockfile(self) -> None:
        outcome = interpret_output("npm ERR! code EAUDITNOLOCK", "npm ERR! audit Neither ...")

        assert isinstance(outcome, AuditError)
        assert outcome.code == "EAUDITNOLOCK"

    def test_unparsable_output_raises(self) -> None:
        with pytest.raises(AuditOutputError):
            interpret_output("<html>502 Bad Gateway</html>")

    def test_non_object_json_raises(self) -> None:
        with pytest.raises(AuditOutputError):
            interpret_output("[1, 2, 3]")


class TestNpmAuditNormalizer:
    """Tests for NpmAuditNormalizer.audit."""

    async def test_old_npm_is_a_no_op(self, fake_runner: FakeRunner, npm_project: Path) -> None:
        """npm without a JSON reporter yields an empty report and runs nothing else."""
        fake_runner.reply("npm --version", "5.6.0\n")

        outcome = await NpmAuditNormalizer(fake_runner).audit(npm_project)

        assert outcome == AuditReport()
        assert fake_runner.calls == ["npm --version"]

    async def test_non_zero_exit_is_not_failure(self, fake_runner: FakeRunner, npm_project: Path) -> None:
        """npm audit exits 1 when it finds vulnerabilities; the report still parses."""
        (npm_project / "package-lock.json").write_text("{}")
        audit_replying(fake_runner, NPM6_REPORT, exit_code=1)

        outcome = await NpmAuditNormalizer(fake_runner).audit(npm_project)

        assert isinstance(outcome, AuditReport)
        assert outcome.failing_severities(Severity.MODERATE) == [Severity.HIGH]

    async def test_zero_dependency_project(self, fake_runner: FakeRunner, npm_project: Path) -> None:
        """A project without dependencies yields an all-zero report and keeps its lockfile."""
        lockfile = npm_project / "package-lock.json"
        lockfile.write_text(json.dumps({"name": "testing-repo", "lockfileVersion": 1}))
        audit_replying(fake_runner, EMPTY_NPM6_REPORT)

        outcome = await NpmAuditNormalizer(fake_runner).audit(npm_project)

        assert outcome == AuditReport()
        assert lockfile.exists()
        assert not any(c.startswith("npm install") for c in fake_runner.calls)

    async def test_generated_lockfile_is_removed(self, fake_runner: FakeRunner, npm_project: Path) -> None:
        audit_replying(fake_runner, EMPTY_NPM6_REPORT)
        fake_runner.on("npm install --package-lock-only", lockfile_writer())

        outcome = await NpmAuditNormalizer(fake_runner).audit(npm_project)

        assert isinstance(outcome, AuditReport)
        assert "npm install --package-lock-only --ignore-scripts" in fake_runner.calls
        assert not (npm_project / "package-lock.json").exists()

    async def test_generated_lockfile_is_removed_on_error(
        self, fake_runner: FakeRunner, npm_project: Path
    ) -> None:
        """Cleanup also runs when the audit output is garbage."""
        audit_replying(fake_runner, "Segmentation fault")
        fake_runner.on("npm install --package-lock-only", lockfile_writer())

        with pytest.raises(AuditOutputError):
            await NpmAuditNormalizer(fake_runner).audit(npm_project)

        assert not (npm_project / "package-lock.json").exists()

    async def test_generated_lockfile_is_removed_on_timeout(
        self, fake_runner: FakeRunner, npm_project: Path
    ) -> None:
        audit_replying(fake_runner, EMPTY_NPM6_REPORT)
        fake_runner.on("npm install --package-lock-only", lockfile_writer())
        fake_runner.on(
            "npm audit --json",
            CommandResult(command="npm audit --json", exit_code=-1, timed_out=True, timeout=5),
        )

        with pytest.raises(CommandTimeoutError):
            await NpmAuditNormalizer(fake_runner).audit(npm_project)

        assert not (npm_project / "package-lock.json").exists()

    async def test_bad_manifest_without_lockfile(self, fake_runner: FakeRunner, temp_dir: Path) -> None:
        (temp_dir / "package.json").write_text(json.dumps({"name": "testing-repo", "dependencies": "yo123"}))
        audit_replying(fake_runner, NO_LOCK_ERROR, exit_code=1)
        fake_runner.reply("npm install --package-lock-only", exit_code=1, stderr="npm ERR! code EJSONPARSE")

        outcome = await NpmAuditNormalizer(fake_runner).audit(temp_dir)

        assert isinstance(outcome, AuditError)
        assert outcome.code == "EAUDITNOLOCK"
        assert "package.json file is missing or is badly formatted" in outcome.summary
        assert not (temp_dir / "package-lock.json").exists()

    async def test_missing_manifest_without_lockfile(self, fake_runner: FakeRunner, temp_dir: Path) -> None:
        """No package.json means no lockfile generation and no npm audit run."""
        fake_runner.reply("npm --version", "10.8.2\n")

        outcome = await NpmAuditNormalizer(fake_runner).audit(temp_dir)

        assert isinstance(outcome, AuditError)
        assert outcome.code == "EAUDITNOLOCK"
        assert outcome.summary == "package.json file is missing or is badly formatted."
        assert fake_runner.calls == ["npm --version"]
        assert not (temp_dir / "package-lock.json").exists()

    async def test_child_of_parent_project_is_not_audited(
        self, fake_runner: FakeRunner, npm_project: Path
    ) -> None:
        """A directory without its own manifest never writes a lockfile into the parent."""
        child = npm_project / "child"
        child.mkdir()
        fake_runner.reply("npm --version", "10.8.2\n")

        outcome = await NpmAuditNormalizer(fake_runner).audit(child)

        assert isinstance(outcome, AuditError)
        assert outcome.code == "EAUDITNOLOCK"
        assert fake_runner.calls == ["npm --version"]
        assert not (npm_project / "package-lock.json").exists()
        assert not (child / "package-lock.json").exists()

    async def test_unparsable_manifest_without_lockfile(self, fake_runner: FakeRunner, temp_dir: Path) -> None:
        (temp_dir / "package.json").write_text("yoyo123")
        fake_runner.reply("npm --version", "10.8.2\n")

        outcome = await NpmAuditNormalizer(fake_runner).audit(temp_dir)

        assert isinstance(outcome, AuditError)
        assert outcome.code == "EAUDITNOLOCK"
        assert fake_runner.calls == ["npm --version"]

    async def test_npm10_zero_dependency_project(self, fake_runner: FakeRunner, npm_project: Path) -> None:
        fake_runner.reply("npm --version", "10.8.2\n")
        fake_runner.on("npm install --package-lock-only", lockfile_writer())
        fake_runner.reply("npm audit --json", json.dumps(EMPTY_NPM10_REPORT))

        outcome = await NpmAuditNormalizer(fake_runner).audit(npm_project)

        assert outcome == AuditReport()
        assert not (npm_project / "package-lock.json").exists()

    async def test_audit_twice_is_idempotent(self, fake_runner: FakeRunner, npm_project: Path) -> None:
        audit_replying(fake_runner, NPM7_REPORT, exit_code=1)
        fake_runner.on("npm install --package-lock-only", lockfile_writer())
        normalizer = NpmAuditNormalizer(fake_runner)

        first = await normalizer.audit(npm_project)
        second = await normalizer.audit(npm_project)

        assert isinstance(first, AuditReport)
        assert first.model_dump_json() == second.model_dump_json()
        assert not (npm_project / "package-lock.json").exists()

    async def test_existing_shrinkwrap_counts_as_lockfile(
        self, fake_runner: FakeRunner, npm_project: Path
    ) -> None:
        (npm_project / "npm-shrinkwrap.json").write_text("{}")
        audit_replying(fake_runner, EMPTY_NPM6_REPORT)

        await NpmAuditNormalizer(fake_runner).audit(npm_project)

        assert not any(c.startswith("npm install") for c in fake_runner.calls)
        assert (npm_project / "npm-shrinkwrap.json").exists()


class TestFailingSeverities:
    """Tests for AuditReport.failing_severities."""

    def test_below_threshold_passes(self) -> None:
        report = normalize_report(
            {"metadata": {"vulnerabilities": {"low": 4, "info": 2}}},
        )
        assert report.failing_severities(Severity.MODERATE) == []

    def test_at_threshold_fails(self) -> None:
        report = normalize_report({"metadata": {"vulnerabilities": {"moderate": 1, "critical": 1}}})
        assert report.failing_severities(Severity.MODERATE) == [Severity.MODERATE, Severity.CRITICAL]
        assert report.failing_severities(Severity.HIGH) == [Severity.CRITICAL]

    def test_info_level_catches_everything(self) -> None:
        report = normalize_report({"metadata": {"vulnerabilities": {"info": 1}}})
        assert report.failing_severities(Severity.INFO) == [Severity.INFO]
