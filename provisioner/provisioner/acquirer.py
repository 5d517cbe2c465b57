"""Plugin source acquisition.

The plugin tree is either copied from a local directory or fetched with a
sparse git clone that materializes only the plugin subdirectory.

Sparse clone protocol (each step is a separate git process):
    1. ``git clone --filter=blob:none --no-checkout``
    2. ``git sparse-checkout init --cone``
    3. ``git sparse-checkout set <subdir>``
    4. ``git checkout``

Afterwards ``<clone>/<subdir>`` becomes the plugin directory and the
clone's working directory is discarded.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from . import fsutil
from .commands import CommandRunner
from .exceptions import AcquisitionError, CommandError
from .models import LogLevel, PluginSource
from .streaming import LogEvent, ProgressEvent, ProgressKind, emit_safely, parse_percent

if TYPE_CHECKING:
    from collections.abc import Mapping
    from pathlib import Path

    from .layout import ProjectLayout
    from .models import ProvisioningConfig
    from .streaming import EventListener

logger = structlog.get_logger(__name__)

DEFAULT_REPOSITORIES: dict[PluginSource, str] = {
    PluginSource.REMOTE_PRIMARY: "https://github.com/Tencent/puerts.git",
    PluginSource.REMOTE_MIRROR: "https://gitee.com/mirrors/puerts.git",
}
DEFAULT_SPARSE_PATH = "unreal/Puerts"

# Only git diagnostics containing one of these are surfaced as progress
PROGRESS_KEYWORDS = (
    "Cloning into",
    "Receiving objects",
    "Resolving deltas",
    "Counting objects",
    "Compressing objects",
    "remote:",
    "Updating files",
    "Checking out files",
)


class CloneProgressFilter:
    """Selects git diagnostic lines worth showing.

    A line passes if it contains a known progress phrase and differs from
    the previously surfaced line. Warnings, hints, blank lines and branch
    notices carry no progress phrase and are dropped.
    """

    def __init__(self) -> None:
        self._last: str | None = None

    def accept(self, line: str) -> bool:
        """Return True if ``line`` should be surfaced."""
        line = line.strip()
        if not line or not any(keyword in line for keyword in PROGRESS_KEYWORDS):
            return False
        if line == self._last:
            return False
        self._last = line
        return True


class PluginAcquirer:
    """Obtains the plugin source tree for a project."""

    def __init__(
        self,
        runner: CommandRunner | None = None,
        *,
        repositories: Mapping[PluginSource, str] | None = None,
        sparse_path: str | None = DEFAULT_SPARSE_PATH,
        listener: EventListener | None = None,
    ) -> None:
        """Initialize the acquirer.

        Args:
            runner: Runs git. A default runner is created if omitted.
            repositories: Clone URL per remote plugin source.
            sparse_path: Repository subdirectory holding the plugin. None
                clones the whole repository and uses its root.
            listener: Receives clone progress and log events.
        """
        self._runner = runner or CommandRunner()
        self._repositories = dict(repositories or DEFAULT_REPOSITORIES)
        self._sparse_path = sparse_path
        self._listener = listener
        self._log = logger.bind(component="plugin_acquirer")

    async def acquire(self, config: ProvisioningConfig, layout: ProjectLayout) -> Path:
        """Install the plugin tree into ``layout.plugin_dir``.

        Args:
            config: Provisioning configuration selecting the source.
            layout: Project paths.

        Returns:
            The plugin directory.

        Raises:
            AcquisitionError: If the copy or any clone step fails.
        """
        if config.plugin_source == PluginSource.LOCAL:
            if config.local_plugin_path is None:
                raise AcquisitionError("Local plugin source selected but no path was given")
            await self.copy_local(config.local_plugin_path, layout.plugin_dir)
        else:
            repo_url = self._repositories.get(config.plugin_source)
            if not repo_url:
                raise AcquisitionError(f"No repository configured for {config.plugin_source.value}")
            await self.clone_remote(repo_url, layout.clone_dir, layout.plugin_dir)
        return layout.plugin_dir

    async def copy_local(self, source: Path, target: Path) -> None:
        """Replace ``target`` with a recursive copy of ``source``.

        An interrupted copy can leave ``target`` half populated; there is
        no cleanup of partial copies.

        Raises:
            AcquisitionError: If the source is missing or any entry fails.
        """
        log = self._log.bind(source=str(source), target=str(target))
        if not source.is_dir():
            raise AcquisitionError(f"Local plugin directory not found: {source}")

        self._report(LogLevel.INFO, f"Copying plugin from {source}")
        if await fsutil.remove_tree(target):
            log.info("removed_existing_plugin")
            self._report(LogLevel.INFO, "Removed previous plugin directory")

        try:
            await fsutil.copy_tree(source, target)
        except OSError as e:
            log.warning("plugin_copy_failed", error=str(e))
            raise AcquisitionError(f"Plugin copy failed: {e}") from e

        log.info("plugin_copied")
        self._report(LogLevel.SUCCESS, f"Plugin copied to {target}")

    async def clone_remote(self, repo_url: str, clone_dir: Path, target: Path) -> None:
        """Clone the plugin and move its payload into ``target``.

        Raises:
            AcquisitionError: If a git step fails or the payload is missing.
        """
        log = self._log.bind(repo=repo_url, target=str(target))
        for stale in (clone_dir, target):
            if await fsutil.remove_tree(stale):
                log.info("removed_stale_directory", path=str(stale))

        self._report(LogLevel.INFO, f"Cloning {repo_url}")
        try:
            await self._clone(repo_url, clone_dir)
            payload = clone_dir / self._sparse_path if self._sparse_path else clone_dir
            if not payload.is_dir():
                raise AcquisitionError(f"Plugin directory {self._sparse_path} missing from clone")
            await fsutil.move_tree(payload, target)
        except CommandError as e:
            log.warning("clone_failed", error=e.message)
            raise AcquisitionError(e.message) from e
        except OSError as e:
            log.warning("plugin_move_failed", error=str(e))
            raise AcquisitionError(f"Moving plugin files failed: {e}") from e
        finally:
            await fsutil.remove_tree(clone_dir)

        log.info("plugin_cloned")
        self._report(LogLevel.SUCCESS, f"Plugin cloned to {target}")

    async def _clone(self, repo_url: str, clone_dir: Path) -> None:
        clone_dir.parent.mkdir(parents=True, exist_ok=True)
        if not self._sparse_path:
            await self._git_streaming(
                ["git", "clone", "--progress", repo_url, str(clone_dir)],
                "git clone",
            )
            return

        await self._git_streaming(
            [
                "git",
                "clone",
                "--filter=blob:none",
                "--no-checkout",
                "--progress",
                repo_url,
                str(clone_dir),
            ],
            "git clone",
        )
        result = await self._runner.run(
            ["git", "sparse-checkout", "init", "--cone"], cwd=clone_dir
        )
        result.check("git sparse-checkout init")
        result = await self._runner.run(
            ["git", "sparse-checkout", "set", self._sparse_path], cwd=clone_dir
        )
        result.check("git sparse-checkout set")
        await self._git_streaming(
            ["git", "checkout", "--progress"], "git checkout", cwd=clone_dir
        )

    async def _git_streaming(
        self,
        cmd: list[str],
        description: str,
        *,
        cwd: Path | None = None,
    ) -> None:
        progress_filter = CloneProgressFilter()

        def on_line(line: str) -> None:
            if progress_filter.accept(line):
                emit_safely(
                    self._listener,
                    ProgressEvent(
                        kind=ProgressKind.CLONE,
                        percent=parse_percent(line),
                        message=line,
                    ),
                )

        result = await self._runner.stream(cmd, on_line, cwd=cwd)
        result.check(description)

    def _report(self, level: LogLevel, message: str) -> None:
        emit_safely(self._listener, LogEvent(level=level, message=message))
