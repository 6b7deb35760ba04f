"""Shared fixtures for pubguard tests."""

from __future__ import annotations

import json
import shutil
import tempfile
from collections.abc import Callable, Iterator, Sequence
from pathlib import Path

import pytest

from pubguard.runners.command import CommandResult, CommandRunner

Handler = Callable[[Path], CommandResult] | CommandResult


class FakeRunner(CommandRunner):
    """CommandRunner that answers from a script instead of spawning processes.

    Responses are matched by command prefix (the longest registered prefix
    wins). A handler may be a CommandResult or a callable receiving the
    working directory, which lets tests simulate filesystem side effects.
    """

    def __init__(self) -> None:
        super().__init__(timeout=5)
        self.calls: list[str] = []
        self._responses: dict[str, Handler] = {}

    def on(self, prefix: str, handler: Handler) -> FakeRunner:
        self._responses[prefix] = handler
        return self

    def reply(self, prefix: str, stdout: str = "", exit_code: int = 0, stderr: str = "") -> FakeRunner:
        return self.on(prefix, CommandResult(command=prefix, exit_code=exit_code, stdout=stdout, stderr=stderr))

    async def run(self, command: Sequence[str] | str, cwd: Path) -> CommandResult:
        display = command if isinstance(command, str) else " ".join(command)
        self.calls.append(display)
        matches = [p for p in self._responses if display.startswith(p)]
        if not matches:
            raise AssertionError(f"Unexpected command: {display}")
        handler = self._responses[max(matches, key=len)]
        if isinstance(handler, CommandResult):
            return handler
        return handler(cwd)


@pytest.fixture
def temp_dir() -> Iterator[Path]:
    """Create a temporary directory for tests."""
    path = Path(tempfile.mkdtemp())
    yield path
    shutil.rmtree(path, ignore_errors=True)


@pytest.fixture
def fake_runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture
def npm_project(temp_dir: Path) -> Path:
    """A project directory with a minimal package.json."""
    (temp_dir / "package.json").write_text(
        json.dumps({"name": "testing-repo", "version": "1.3.77", "scripts": {}}, indent=2)
    )
    return temp_dir


@pytest.fixture
def git_available() -> None:
    if shutil.which("git") is None:
        pytest.skip("git is not installed")
