"""External command runner."""

from __future__ import annotations

import asyncio
import logging
import shlex
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

from pubguard.core.errors import CommandNotFoundError, CommandTimeoutError, WorkingDirectoryError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 300


@dataclass(frozen=True)
class CommandResult:
    """Captured outcome of one external command.

    Attributes:
        command: Display form of the command that was run
        exit_code: Process exit code (-1 when the process timed out)
        stdout: Decoded standard output
        stderr: Decoded standard error
        timed_out: True if the process was killed after the timeout
        timeout: Timeout that applied to the run, in seconds
    """

    command: str
    exit_code: int
    stdout: str = ""
    stderr: str = ""
    timed_out: bool = False
    timeout: float = DEFAULT_TIMEOUT

    @property
    def ok(self) -> bool:
        return self.exit_code == 0 and not self.timed_out

    def raise_for_timeout(self) -> CommandResult:
        """Raise CommandTimeoutError if the run timed out, else return self."""
        if self.timed_out:
            raise CommandTimeoutError(self.command, self.timeout)
        return self


class CommandRunner:
    """Runs external commands and captures their output.

    A non-zero exit code is never an error here: callers decide what an
    exit code means. Only a missing executable raises.
    """

    def __init__(self, timeout: float = DEFAULT_TIMEOUT) -> None:
        self.timeout = timeout  # Per-command timeout

    async def run(self, command: Sequence[str] | str, cwd: Path) -> CommandResult:
        """Run a command to completion.

        Args:
            command: Argument vector (spawned directly) or a shell string
            cwd: Working directory for the process

        Returns:
            CommandResult with exit code and both streams
        """
        display = command if isinstance(command, str) else shlex.join(command)
        logger.debug(f"Running `{display}` in {cwd}")
        if not Path(cwd).is_dir():
            raise WorkingDirectoryError(cwd)

        try:
            if isinstance(command, str):
                process = await asyncio.create_subprocess_shell(
                    command,
                    stdout=asyncio.subprocess.PIPE,
                    stderr=asyncio.subprocess.PIPE,
                    cwd=cwd,
                )
            else:
                process = await asyncio.create_subprocess_exec(
                    *command,
                    stdout=asyncio.subprocess.PIPE,
                    stderr=asyncio.subprocess.PIPE,
                    cwd=cwd,
                )
        except FileNotFoundError as e:
            raise CommandNotFoundError(command) from e

        try:
            stdout, stderr = await asyncio.wait_for(
                process.communicate(),
                timeout=self.timeout,
            )
        except TimeoutError:
            process.kill()
            await process.wait()
            logger.warning(f"`{display}` timed out after {self.timeout} seconds")
            return CommandResult(
                command=display,
                exit_code=-1,
                timed_out=True,
                timeout=self.timeout,
            )

        result = CommandResult(
            command=display,
            exit_code=process.returncode if process.returncode is not None else -1,
            stdout=stdout.decode("utf-8", errors="replace"),
            stderr=stderr.decode("utf-8", errors="replace"),
            timeout=self.timeout,
        )
        logger.debug(f"`{display}` exited with code {result.exit_code}")
        return result
