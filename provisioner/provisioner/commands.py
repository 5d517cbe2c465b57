"""Uniform external command capability.

Every external process the pipeline starts (git, package managers) goes
through ``CommandRunner`` and comes back as a ``CommandResult``. External
commands have no enforced timeout and cannot be cancelled once started.
"""

from __future__ import annotations

import asyncio
import codecs
import re
import shutil
from dataclasses import dataclass
from typing import TYPE_CHECKING

import structlog

from .exceptions import CommandError

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence
    from pathlib import Path

logger = structlog.get_logger(__name__)

# git redraws progress lines with carriage returns
_LINE_SPLIT_RE = re.compile(r"[\r\n]")
_READ_CHUNK_SIZE = 4096


def _resolve(cmd: Sequence[str]) -> tuple[str, ...]:
    """Resolve the executable on PATH (finds npm.cmd and friends on Windows)."""
    args = tuple(str(c) for c in cmd)
    if not args:
        raise ValueError("cmd must be a non-empty list")
    executable = shutil.which(args[0])
    return (executable or args[0], *args[1:])


@dataclass(frozen=True)
class CommandResult:
    """Outcome of an external command.

    Attributes:
        args: Command and arguments as executed.
        exit_code: Process exit status.
        stdout: Captured standard output.
        stderr: Captured standard error.
    """

    args: tuple[str, ...]
    exit_code: int
    stdout: str = ""
    stderr: str = ""

    @property
    def success(self) -> bool:
        """Whether the command exited with status 0."""
        return self.exit_code == 0

    @property
    def command_line(self) -> str:
        """Printable command line."""
        return " ".join(self.args)

    def check(self, description: str | None = None) -> CommandResult:
        """Raise CommandError unless the command succeeded.

        Args:
            description: Short name of the step for the error message.

        Returns:
            self, for chaining.
        """
        if not self.success:
            what = description or self.command_line
            detail = self.stderr.strip() or self.stdout.strip() or "unknown error"
            raise CommandError(
                f"{what} failed (exit code {self.exit_code}): {detail}",
                exit_code=self.exit_code,
                stderr=self.stderr,
            )
        return self


class CommandRunner:
    """Runs external commands with asyncio subprocesses.

    Example:
        >>> runner = CommandRunner()
        >>> result = await runner.run(["git", "--version"])
        >>> result.stdout
        'git version 2.43.0\\n'
    """

    def __init__(self, env: dict[str, str] | None = None) -> None:
        """Initialize the runner.

        Args:
            env: Environment for child processes. None inherits ours.
        """
        self._env = env
        self._log = logger.bind(component="command_runner")

    async def run(
        self,
        cmd: Sequence[str],
        *,
        cwd: Path | None = None,
    ) -> CommandResult:
        """Run a command to completion and capture its output.

        Args:
            cmd: Command and arguments.
            cwd: Working directory for the command.

        Returns:
            CommandResult with exit status and decoded output.

        Raises:
            CommandError: If the executable cannot be started.
        """
        args = _resolve(cmd)
        log = self._log.bind(command=" ".join(args))
        log.debug("running_command", cwd=str(cwd) if cwd else None)

        try:
            process = await asyncio.create_subprocess_exec(
                *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=cwd,
                env=self._env,
            )
        except OSError as e:
            log.warning("command_start_failed", error=str(e))
            raise CommandError(f"Cannot run {args[0]}: {e}") from e

        stdout, stderr = await process.communicate()
        result = CommandResult(
            args=args,
            exit_code=process.returncode or 0,
            stdout=stdout.decode("utf-8", errors="replace"),
            stderr=stderr.decode("utf-8", errors="replace"),
        )

        log.debug(
            "command_completed",
            return_code=result.exit_code,
            stdout_len=len(result.stdout),
            stderr_len=len(result.stderr),
        )
        return result

    async def stream(
        self,
        cmd: Sequence[str],
        on_stderr_line: Callable[[str], None],
        *,
        cwd: Path | None = None,
    ) -> CommandResult:
        """Run a command, handing each diagnostic line to a callback.

        Lines are split on both newlines and carriage returns so that
        in-place progress redraws arrive as separate lines. Standard
        error is still captured in full in the returned result.

        Args:
            cmd: Command and arguments.
            on_stderr_line: Called synchronously with every stripped,
                non-empty stderr line, in order.
            cwd: Working directory for the command.

        Returns:
            CommandResult with exit status and decoded output.

        Raises:
            CommandError: If the executable cannot be started.
        """
        args = _resolve(cmd)
        log = self._log.bind(command=" ".join(args))
        log.debug("running_command_streaming", cwd=str(cwd) if cwd else None)

        try:
            process = await asyncio.create_subprocess_exec(
                *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=cwd,
                env=self._env,
            )
        except OSError as e:
            log.warning("command_start_failed", error=str(e))
            raise CommandError(f"Cannot run {args[0]}: {e}") from e

        stderr_parts: list[str] = []

        async def read_stdout() -> bytes:
            if process.stdout is None:
                return b""
            return await process.stdout.read()

        async def read_stderr() -> None:
            if process.stderr is None:
                return
            decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
            pending = ""
            while True:
                chunk = await process.stderr.read(_READ_CHUNK_SIZE)
                if not chunk:
                    break
                text = decoder.decode(chunk)
                stderr_parts.append(text)
                pending += text
                *lines, pending = _LINE_SPLIT_RE.split(pending)
                for line in lines:
                    _deliver(line)
            tail = decoder.decode(b"", final=True)
            stderr_parts.append(tail)
            _deliver(pending + tail)

        def _deliver(line: str) -> None:
            stripped = line.strip()
            if stripped:
                on_stderr_line(stripped)

        stdout_bytes, _ = await asyncio.gather(read_stdout(), read_stderr())
        await process.wait()

        result = CommandResult(
            args=args,
            exit_code=process.returncode or 0,
            stdout=stdout_bytes.decode("utf-8", errors="replace"),
            stderr="".join(stderr_parts),
        )
        log.debug("command_completed", return_code=result.exit_code)
        return result
