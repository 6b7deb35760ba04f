"""Command execution and publish command building."""

from pubguard.runners.command import CommandResult, CommandRunner
from pubguard.runners.publish import PublishCommandBuilder

__all__ = [
    "CommandResult",
    "CommandRunner",
    "PublishCommandBuilder",
]
