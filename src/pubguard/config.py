"""Configuration management for pubguard."""

from __future__ import annotations

import json
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator

from pubguard.core.errors import ConfigError, ManifestMissingError
from pubguard.core.models import Severity

CONFIG_FILENAME = ".publishrc"
MANIFEST_FILENAME = "package.json"


class PublishConfig(BaseModel):
    """pubguard configuration.

    Field aliases follow the option names used in `.publishrc`, so the file
    can be written in camelCase while code uses snake_case.

    Check switches:
        validate_branch: Expected branch name; None disables the check
        validate_git_tag: Require a tag on HEAD matching the package version
        check_uncommitted / check_untracked: Require a clean working tree
        sensitive_data_audit: Scan for files that should not be published
        vulnerability_audit: Run npm audit and fail at or above audit_level
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    confirm: bool = Field(default=True, description="Ask for confirmation before publishing")
    validate_branch: str | None = Field(default="master", alias="validateBranch")
    validate_git_tag: bool = Field(default=True, alias="validateGitTag")
    check_uncommitted: bool = Field(default=True, alias="checkUncommitted")
    check_untracked: bool = Field(default=True, alias="checkUntracked")
    sensitive_data_audit: bool = Field(default=True, alias="sensitiveDataAudit")
    vulnerability_audit: bool = Field(default=True, alias="vulnerableDependencies")
    audit_level: Severity = Field(
        default=Severity.MODERATE,
        alias="auditLevel",
        description="Lowest advisory severity that fails the vulnerability check",
    )
    prepublish_script: str | None = Field(
        default=None,
        alias="prepublishScript",
        description="Command run after validation passes, e.g. `npm test`",
    )
    tag: str | None = Field(
        default=None,
        validation_alias=AliasChoices("tag", "publishTag"),
        serialization_alias="publishTag",
        description="Distribution tag; `latest` when unset",
    )
    timeout: int = Field(default=300, description="Per-command timeout in seconds")

    @field_validator("validate_branch", mode="before")
    @classmethod
    def _branch_switch(cls, value: Any) -> Any:
        # `validateBranch: false` disables the check, `true` keeps the default
        if value is False:
            return None
        if value is True:
            return "master"
        return value

    @field_validator("prepublish_script", "tag", mode="before")
    @classmethod
    def _empty_is_none(cls, value: Any) -> Any:
        if value == "":
            return None
        return value

    @classmethod
    def disabled(cls, **overrides: Any) -> PublishConfig:
        """Config with every check switched off.

        Overrides go through validation like any other option.
        """
        options: dict[str, Any] = {
            "confirm": False,
            "validate_branch": None,
            "validate_git_tag": False,
            "check_uncommitted": False,
            "check_untracked": False,
            "sensitive_data_audit": False,
            "vulnerability_audit": False,
        }
        options.update(overrides)
        try:
            return cls.model_validate(options)
        except ValidationError as e:
            raise ConfigError(f"Invalid configuration: {e}") from e

    @classmethod
    def load(
        cls,
        project_root: Path | None = None,
        overrides: Mapping[str, Any] | None = None,
    ) -> PublishConfig:
        """Load configuration from `.publishrc` merged with overrides.

        Precedence: overrides > `.publishrc` > defaults.

        Raises:
            ConfigError: The file exists but is not a JSON object
        """
        if project_root is None:
            project_root = Path.cwd()

        file_options = read_publishrc(project_root / CONFIG_FILENAME)
        merged = merge_options(file_options, overrides or {})
        try:
            return cls.model_validate(merged)
        except ValidationError as e:
            raise ConfigError(f"Invalid configuration: {e}") from e

    def save(self, config_path: Path) -> None:
        """Save configuration as `.publishrc` JSON."""
        data = self.model_dump(mode="json", by_alias=True, exclude={"timeout"})
        config_path.write_text(json.dumps(data, indent=2) + "\n")


def merge_options(defaults: Mapping[str, Any], overrides: Mapping[str, Any]) -> dict[str, Any]:
    """Merge two option mappings; override values that are None are ignored."""
    merged = dict(defaults)
    merged.update({k: v for k, v in overrides.items() if v is not None})
    return merged


def read_publishrc(config_path: Path) -> dict[str, Any]:
    """Read `.publishrc` options, or an empty mapping if there is no file."""
    if not config_path.exists():
        return {}

    try:
        # JSON is a subset of YAML
        with config_path.open() as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(".publishrc is not a valid JSON file.") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(".publishrc is not a valid JSON file.")
    return data


def read_package_json(project_root: Path) -> dict[str, Any]:
    """Read the project's package.json.

    Raises:
        ManifestMissingError: No package.json in project_root
        ConfigError: package.json is not valid JSON
    """
    manifest = project_root / MANIFEST_FILENAME
    if not manifest.exists():
        raise ManifestMissingError()
    try:
        data = json.loads(manifest.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise ConfigError(f"package.json is not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError("package.json must contain a JSON object.")
    return data


def read_package_version(project_root: Path) -> str:
    """Return the declared package version, or an empty string if unset."""
    return str(read_package_json(project_root).get("version") or "")
