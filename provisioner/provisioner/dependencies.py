"""Package-manager dependency installation for the scripting project."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from .commands import CommandRunner
from .exceptions import CommandError, DependencyInstallError
from .models import LogLevel
from .streaming import LogEvent, emit_safely

if TYPE_CHECKING:
    from collections.abc import Sequence
    from pathlib import Path

    from .streaming import EventListener

logger = structlog.get_logger(__name__)

DEFAULT_INSTALL_COMMAND: tuple[str, ...] = ("npm", "install", "--loglevel=error")
PACKAGE_FILE = "package.json"


class DependencyInstaller:
    """Runs one install command inside the scripting project."""

    def __init__(
        self,
        runner: CommandRunner | None = None,
        command: Sequence[str] = DEFAULT_INSTALL_COMMAND,
        listener: EventListener | None = None,
    ) -> None:
        self._runner = runner or CommandRunner()
        self._command = tuple(command)
        self._listener = listener
        self._log = logger.bind(component="dependency_installer")

    def applicable(self, project_dir: Path) -> bool:
        """Whether ``project_dir`` holds a package manifest to install from."""
        return (project_dir / PACKAGE_FILE).is_file()

    async def install(self, project_dir: Path) -> None:
        """Install dependencies in ``project_dir``.

        Raises:
            DependencyInstallError: If the command cannot start or exits
                non-zero.
        """
        log = self._log.bind(cwd=str(project_dir), command=" ".join(self._command))
        self._report(LogLevel.INFO, f"Running {' '.join(self._command)} (first run can be slow)")
        log.info("dependency_install_started")

        try:
            result = await self._runner.run(self._command, cwd=project_dir)
            result.check(self._command[0] + " install")
        except CommandError as e:
            log.warning("dependency_install_failed", error=e.message)
            raise DependencyInstallError(e.message) from e

        log.info("dependency_install_completed")
        self._report(LogLevel.SUCCESS, "Dependencies installed")

    def _report(self, level: LogLevel, message: str) -> None:
        emit_safely(self._listener, LogEvent(level=level, message=message))
