"""Validation pipeline: runs the pre-publish checks and builds the publish command."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

from pubguard.audit.npm_audit import NpmAuditNormalizer
from pubguard.config import PublishConfig, read_package_json, read_package_version
from pubguard.core.errors import (
    AuditPreconditionError,
    PrepublishScriptError,
    ValidationFailedError,
)
from pubguard.core.models import (
    AggregatedVerdict,
    AuditError,
    CheckDefinition,
    CheckResult,
    PublishCommand,
)
from pubguard.runners.command import CommandRunner
from pubguard.runners.publish import PublishCommandBuilder
from pubguard.scanners.sensitive import SensitiveFileScanner, format_findings
from pubguard.utils.git import RepositoryStateProbe

logger = logging.getLogger(__name__)


class ValidationPipeline:
    """Runs the enabled pre-publish checks against a project.

    Checks run in a fixed order, cheap local git checks first and the npm
    audit last. Every enabled check runs even if an earlier one failed;
    an InfrastructureError from any check aborts the run.
    """

    def __init__(
        self,
        config: PublishConfig,
        project_root: Path,
        runner: CommandRunner | None = None,
    ) -> None:
        self.config = config
        self.project_root = project_root
        self.runner = runner or CommandRunner(timeout=config.timeout)
        self.probe = RepositoryStateProbe(self.runner, project_root)
        self.auditor = NpmAuditNormalizer(self.runner)
        self.scanner = SensitiveFileScanner()
        self.builder = PublishCommandBuilder()

    def build_checks(self) -> list[CheckDefinition]:
        """Return every check in pipeline order with its enabled flag."""
        cfg = self.config
        return [
            CheckDefinition("branch", cfg.validate_branch is not None, self.check_branch),
            CheckDefinition("git_tag", cfg.validate_git_tag, self.check_git_tag),
            CheckDefinition("uncommitted", cfg.check_uncommitted, self.check_uncommitted),
            CheckDefinition("untracked", cfg.check_untracked, self.check_untracked),
            CheckDefinition("sensitive_data", cfg.sensitive_data_audit, self.check_sensitive_data),
            CheckDefinition("vulnerabilities", cfg.vulnerability_audit, self.check_vulnerabilities),
        ]

    async def validate(self) -> AggregatedVerdict:
        """Run all enabled checks and collect their failures."""
        verdict = AggregatedVerdict()
        for check in self.build_checks():
            if not check.enabled:
                continue
            logger.debug(f"Running check: {check.name}")
            result = await check.run()
            if result.passed:
                logger.info(f"Check passed: {check.name}")
            else:
                logger.info(f"Check failed: {check.name}")
                verdict.failures.append(result)
        return verdict

    async def run_prepublish(self) -> None:
        """Run the configured prepublish script, if any.

        Raises:
            PrepublishScriptError: The script exited with a non-zero code
        """
        script = self.config.prepublish_script
        if not script:
            return
        logger.info(f"Running prepublish script: {script}")
        result = await self.runner.run(script, self.project_root)
        result.raise_for_timeout()
        if result.exit_code != 0:
            raise PrepublishScriptError(script, result.exit_code)

    async def validate_and_prepare(self) -> PublishCommand:
        """Validate the project and return the publish command.

        Raises:
            ManifestMissingError: No package.json
            ValidationFailedError: One or more checks failed
            PrepublishScriptError: Prepublish script failed
            InfrastructureError: A tool was missing, timed out or misbehaved
        """
        read_package_json(self.project_root)

        verdict = await self.validate()
        if not verdict.passed:
            raise ValidationFailedError(verdict)

        await self.run_prepublish()
        return self.builder.build(self.config.tag)

    # -------------------------------------------------------------------------
    # Checks
    # -------------------------------------------------------------------------

    async def check_branch(self) -> CheckResult:
        expected = self.config.validate_branch
        actual = await self.probe.current_branch()
        if actual != expected:
            return CheckResult.fail(
                "branch", f"Expected branch to be `{expected}`, but it was `{actual}`."
            )
        return CheckResult.ok("branch")

    async def check_git_tag(self) -> CheckResult:
        version = read_package_version(self.project_root)
        if not version:
            return CheckResult.fail("git_tag", "package.json has no version to match a git tag against.")
        accepted = {version, f"v{version}"}
        tags = await self.probe.latest_tags()
        if not tags:
            return CheckResult.fail("git_tag", "Latest commit doesn't have git tag.")
        if tags.isdisjoint(accepted):
            actual = ", ".join(sorted(tags))
            return CheckResult.fail(
                "git_tag",
                f"Expected git tag to be `{version}` or `v{version}`, but it was `{actual}`.",
            )
        return CheckResult.ok("git_tag")

    async def check_uncommitted(self) -> CheckResult:
        if await self.probe.has_uncommitted_changes():
            return CheckResult.fail("uncommitted", "There are uncommitted changes in the working tree.")
        return CheckResult.ok("uncommitted")

    async def check_untracked(self) -> CheckResult:
        if await self.probe.has_untracked_files():
            return CheckResult.fail("untracked", "There are untracked files in the working tree.")
        return CheckResult.ok("untracked")

    async def check_sensitive_data(self) -> CheckResult:
        findings = self.scanner.scan(self.project_root)
        if findings:
            return CheckResult.fail("sensitive_data", format_findings(findings))
        return CheckResult.ok("sensitive_data")

    async def check_vulnerabilities(self) -> CheckResult:
        outcome = await self.auditor.audit(self.project_root)
        if isinstance(outcome, AuditError):
            raise AuditPreconditionError(outcome.code, outcome.summary, outcome.detail)

        failing = outcome.failing_severities(self.config.audit_level)
        if not failing:
            return CheckResult.ok("vulnerabilities")

        counts = outcome.metadata.vulnerabilities
        summary = ", ".join(f"{counts.count(s)} {s.value}" for s in reversed(failing))
        lines = [f"Vulnerable dependencies found: {summary}."]
        failing_names = {s.value for s in failing}
        for advisory in outcome.advisories.values():
            severity = advisory.get("severity", "")
            if severity not in failing_names:
                continue
            name = advisory.get("module_name", "?")
            title = advisory.get("title", "")
            lines.append(f" - {name} ({severity}): {title}")
        return CheckResult.fail("vulnerabilities", "\n".join(lines))


def validate_and_prepare(config: PublishConfig, project_root: Path | None = None) -> PublishCommand:
    """Synchronous entry point: validate the project and return the publish command."""
    pipeline = ValidationPipeline(config, project_root or Path.cwd())
    return asyncio.run(pipeline.validate_and_prepare())
