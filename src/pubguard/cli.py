"""CLI interface for pubguard."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from pubguard import __version__
from pubguard.audit.npm_audit import NpmAuditNormalizer
from pubguard.config import CONFIG_FILENAME, PublishConfig
from pubguard.core.errors import (
    AuditPreconditionError,
    ConfigError,
    InfrastructureError,
    ManifestMissingError,
    PrepublishScriptError,
    ValidationFailedError,
)
from pubguard.core.models import AuditError, Severity
from pubguard.core.pipeline import ValidationPipeline
from pubguard.runners.command import CommandRunner
from pubguard.scanners.sensitive import SensitiveFileScanner

app = typer.Typer(
    name="pubguard",
    help="Validate a repository before running npm publish.",
    no_args_is_help=True,
)
console = Console()

ProjectArg = Annotated[
    Path,
    typer.Argument(
        help="Project directory containing package.json",
        exists=True,
        file_okay=False,
        dir_okay=True,
        resolve_path=True,
    ),
]


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
    )


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"pubguard {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        bool,
        typer.Option("--version", callback=_version_callback, is_eager=True, help="Show version"),
    ] = False,
) -> None:
    """Pre-publish safety gate for npm packages."""


@app.command()
def check(
    project: ProjectArg = Path("."),
    tag: Annotated[
        str | None,
        typer.Option("--tag", "-t", help="Distribution tag (default: latest)"),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Show every command and check"),
    ] = False,
) -> None:
    """Run all enabled validations and print the publish command."""
    _configure_logging(verbose)

    try:
        config = PublishConfig.load(project, overrides={"tag": tag})
        pipeline = ValidationPipeline(config, project)
        command = asyncio.run(pipeline.validate_and_prepare())
    except ValidationFailedError as e:
        console.print("[bold red]Validation failed:[/bold red]")
        console.print(str(e), markup=False, highlight=False)
        raise typer.Exit(1) from e
    except (ConfigError, ManifestMissingError, PrepublishScriptError, AuditPreconditionError) as e:
        console.print(f"[red]{escape(str(e))}[/red]", highlight=False)
        raise typer.Exit(1) from e
    except InfrastructureError as e:
        console.print(f"[bold red]Unexpected error:[/bold red] {escape(str(e))}", highlight=False)
        raise typer.Exit(2) from e

    console.print("[green]All validations passed.[/green]")
    console.print(f"Ready to publish: [bold]{command}[/bold]")


@app.command()
def audit(
    project: ProjectArg = Path("."),
    level: Annotated[
        Severity,
        typer.Option("--level", "-l", help="Lowest severity that fails the audit"),
    ] = Severity.MODERATE,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Show every command run"),
    ] = False,
) -> None:
    """Audit dependencies with npm audit and summarize the result."""
    _configure_logging(verbose)

    auditor = NpmAuditNormalizer(CommandRunner())
    try:
        outcome = asyncio.run(auditor.audit(project))
    except InfrastructureError as e:
        console.print(f"[bold red]Unexpected error:[/bold red] {escape(str(e))}", highlight=False)
        raise typer.Exit(2) from e

    if isinstance(outcome, AuditError):
        console.print(f"[red]{escape(outcome.code)}: {escape(outcome.summary)}[/red]", highlight=False)
        if outcome.detail:
            console.print(outcome.detail)
        raise typer.Exit(1)

    counts = outcome.metadata.vulnerabilities
    table = Table(show_header=True, header_style="bold", box=None, padding=(0, 2))
    table.add_column("Severity", style="cyan")
    table.add_column("Count", justify="right")
    for severity in Severity:
        table.add_row(severity.value, str(counts.count(severity)))
    console.print(table)
    console.print(f"[dim]{outcome.metadata.total_dependencies} dependencies audited[/dim]")

    failing = outcome.failing_severities(level)
    if failing:
        names = ", ".join(s.value for s in failing)
        console.print(f"[red]Vulnerabilities at or above {level.value}: {names}[/red]")
        raise typer.Exit(1)
    console.print("[green]No vulnerabilities above threshold.[/green]")


@app.command()
def scan(project: ProjectArg = Path(".")) -> None:
    """List files that look like they contain sensitive data."""
    findings = SensitiveFileScanner().scan(project)
    if not findings:
        console.print("[green]No sensitive files found.[/green]")
        return

    table = Table(show_header=True, header_style="bold", box=None, padding=(0, 2))
    table.add_column("Path", style="yellow")
    table.add_column("Reason")
    for finding in findings:
        table.add_row(finding.path, f"{finding.caption}. {finding.description}")
    console.print(table)
    raise typer.Exit(1)


@app.command()
def init(
    project: ProjectArg = Path("."),
    force: Annotated[
        bool,
        typer.Option("--force", "-f", help="Overwrite an existing .publishrc"),
    ] = False,
) -> None:
    """Write a default .publishrc."""
    config_path = project / CONFIG_FILENAME
    if config_path.exists() and not force:
        console.print(f"[yellow]{config_path} already exists (use --force to overwrite)[/yellow]")
        raise typer.Exit(1)

    PublishConfig().save(config_path)
    console.print(f"[green]Wrote {config_path}[/green]")


if __name__ == "__main__":
    app()
