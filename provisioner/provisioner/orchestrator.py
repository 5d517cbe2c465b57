"""Orchestrator for the sequential provisioning pipeline.

This module runs the provisioning stages in a fixed order, tracks a
StageRecord per stage, forwards every event to the caller's listener and
decides between abort and continue when a stage fails.

Stages:
    tools         probe developer tools (warnings only)
    plugin        copy or sparse-clone the plugin tree
    artifact      resolve, download or import, stage and patch the V8 build
    manifest      enable the plugin in the project manifest (skipped if it
                  is missing or unreadable)
    dependencies  install the scripting project's packages
"""

from __future__ import annotations

import asyncio
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING

import structlog

from .acquirer import PluginAcquirer
from .commands import CommandRunner
from .config_patcher import ConfigPatcher
from .dependencies import DependencyInstaller
from .downloader import ArtifactDownloader
from .exceptions import ExtractionError, ManifestError, ProvisionError
from .layout import ProjectLayout
from .manifest import ManifestPatcher
from .models import (
    ArtifactSource,
    LogLevel,
    LogRecord,
    PipelineResult,
    PipelineState,
    PluginSource,
    ProvisionerSettings,
    ScriptEngine,
    StageRecord,
    StageStatus,
)
from .probes import ToolProbe, missing_tools_error
from .stager import ArchiveStager
from .streaming import LogEvent, StageEvent, emit_safely
from .version_resolver import DEFAULT_CATALOG, VersionResolver, order_candidates

if TYPE_CHECKING:
    from .models import ProvisioningConfig
    from .streaming import EventListener, StreamEvent

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class Stage:
    """One named step of the pipeline.

    Attributes:
        name: Stage identifier used in results.
        title: Human-readable title.
        run: Coroutine doing the work; returns the completion detail.
        skip_reason: Returns a "skipped ..." detail when the stage does
            not apply, or None to run it.
    """

    name: str
    title: str
    run: Callable[[], Awaitable[str]]
    skip_reason: Callable[[], str | None]


class Orchestrator:
    """Runs the provisioning pipeline for one project.

    The orchestrator is responsible for:
    - Running stages strictly in order
    - Keeping one StageRecord per stage and publishing every transition
    - Collecting the run's log history
    - Aborting on the first fatal error, warning on non-fatal ones

    Completed stages are never rolled back after an abort.

    Example:
        >>> orchestrator = Orchestrator(config, listener=print)
        >>> result = await orchestrator.run()
        >>> result.success
        True
    """

    def __init__(
        self,
        config: ProvisioningConfig,
        settings: ProvisionerSettings | None = None,
        listener: EventListener | None = None,
        runner: CommandRunner | None = None,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            config: What to install. Never mutated.
            settings: Provisioner tunables. Defaults are used if omitted.
            listener: Receives progress, log and stage events synchronously.
            runner: Runs external commands. A default runner is created
                if omitted.
        """
        self.config = config
        self.settings = settings or ProvisionerSettings()
        self.layout = ProjectLayout.for_manifest(config.project_path)
        self._listener = listener
        self._log = logger.bind(component="orchestrator")

        runner = runner or CommandRunner()
        self._probe = ToolProbe(runner)
        self._acquirer = PluginAcquirer(
            runner,
            repositories={
                PluginSource.REMOTE_PRIMARY: self.settings.primary_repository,
                PluginSource.REMOTE_MIRROR: self.settings.mirror_repository,
            },
            sparse_path=self.settings.sparse_path,
            listener=self._emit,
        )
        self._resolver = VersionResolver(listener=self._emit)
        self._downloader = ArtifactDownloader(
            connect_timeout=self.settings.connect_timeout_seconds,
            transfer_timeout=self.settings.transfer_timeout_seconds,
            sample_interval=self.settings.progress_interval_seconds,
            proxy=config.proxy.effective_url,
            listener=self._emit,
        )
        self._stager = ArchiveStager(listener=self._emit)
        self._patcher = ConfigPatcher(listener=self._emit)
        self._manifest = ManifestPatcher(listener=self._emit)
        self._installer = DependencyInstaller(
            runner, self.settings.install_command, listener=self._emit
        )

        self._pipeline = (
            Stage("tools", "Check developer tools", self._run_tools, _never_skip),
            Stage("plugin", "Install plugin", self._run_plugin, _never_skip),
            Stage("artifact", "Install V8", self._run_artifact, self._skip_artifact),
            Stage("manifest", "Enable plugin", self._run_manifest, self._skip_manifest),
            Stage(
                "dependencies",
                "Install dependencies",
                self._run_dependencies,
                self._skip_dependencies,
            ),
        )

        self._state = PipelineState.IDLE
        self._stages: list[StageRecord] = []
        self._logs: list[LogRecord] = []
        self._current_stage: str | None = None
        self._expected_version: str | None = None
        self._installed_version: str | None = None
        self._resume = asyncio.Event()
        self._resume.set()

    @property
    def state(self) -> PipelineState:
        """Global pipeline state."""
        return self._state

    @property
    def stages(self) -> list[StageRecord]:
        """Snapshots of the current run's stage records."""
        return [record.model_copy() for record in self._stages]

    @property
    def paused(self) -> bool:
        """Whether the next stage is being held back."""
        return not self._resume.is_set()

    def pause(self) -> None:
        """Hold the pipeline before the next stage starts.

        A stage that is already running is not interrupted.
        """
        self._resume.clear()
        self._log.info("pipeline_paused", current_stage=self._current_stage)

    def resume(self) -> None:
        """Let a paused pipeline continue with its next stage."""
        self._resume.set()
        self._log.info("pipeline_resumed")

    async def run(self) -> PipelineResult:
        """Run every stage in order.

        Returns:
            PipelineResult with the stage records and full log history.
            On abort it names the failing stage and carries its error
            message verbatim.

        Raises:
            RuntimeError: If this orchestrator is already running.
        """
        if self._state == PipelineState.RUNNING:
            raise RuntimeError("Pipeline is already running")

        run_id = str(uuid.uuid4())[:8]
        start_time = datetime.now(tz=UTC)
        self._stages = [StageRecord(name=s.name, title=s.title) for s in self._pipeline]
        self._logs = []
        self._expected_version = None
        self._installed_version = None
        self._state = PipelineState.RUNNING
        for record in self._stages:
            self._publish(record)

        log = self._log.bind(run_id=run_id)
        log.info(
            "run_started",
            project=str(self.config.project_path),
            plugin_source=self.config.plugin_source.value,
            script_engine=self.config.script_engine.value,
            artifact_source=self.config.artifact_source.value,
        )

        failed_stage: str | None = None
        error_message: str | None = None

        for stage, record in zip(self._pipeline, self._stages, strict=True):
            await self._wait_if_paused()
            error = await self._run_stage(stage, record)
            if error is not None:
                failed_stage = stage.name
                error_message = error
                break

        self._current_stage = None
        end_time = datetime.now(tz=UTC)
        if failed_stage is None:
            self._state = PipelineState.COMPLETED
            self._report(LogLevel.SUCCESS, "Provisioning complete")
        else:
            self._state = PipelineState.ABORTED
            log.warning("run_aborted", failed_stage=failed_stage, error=error_message)

        result = PipelineResult(
            run_id=run_id,
            success=failed_stage is None,
            state=self._state,
            failed_stage=failed_stage,
            error_message=error_message,
            stages=self.stages,
            logs=list(self._logs),
            installed_version=self._installed_version,
            expected_version=self._expected_version,
            start_time=start_time,
            end_time=end_time,
        )

        log.info(
            "run_completed",
            success=result.success,
            warnings=len(result.warnings),
            duration_seconds=result.duration_seconds,
        )
        return result

    async def _run_stage(self, stage: Stage, record: StageRecord) -> str | None:
        """Run one stage and update its record.

        Returns:
            The fatal error message, or None if the pipeline may continue.
        """
        log = self._log.bind(stage=stage.name)
        self._current_stage = stage.name

        skip_reason = stage.skip_reason()
        if skip_reason is not None:
            log.info("stage_skipped", reason=skip_reason)
            now = datetime.now(tz=UTC)
            record.started_at = now
            self._finish(record, StageStatus.COMPLETED, skip_reason, now)
            self._report(LogLevel.INFO, f"{stage.title}: {skip_reason}")
            return None

        record.status = StageStatus.RUNNING
        record.started_at = datetime.now(tz=UTC)
        self._publish(record)
        log.info("stage_started")

        try:
            detail = await stage.run()
        except ProvisionError as e:
            if e.fatal:
                log.warning("stage_failed", error=e.message, error_type=type(e).__name__)
                self._report(LogLevel.ERROR, f"{stage.title} failed: {e.message}")
                self._finish(record, StageStatus.FAILED, e.message)
                return e.message
            log.warning("stage_warning", error=e.message, error_type=type(e).__name__)
            self._report(LogLevel.WARNING, e.message)
            detail = f"completed with warning: {e.message}"
        except Exception as e:
            log.exception("stage_crashed")
            message = f"Unexpected error: {e}"
            self._report(LogLevel.ERROR, f"{stage.title} failed: {message}")
            self._finish(record, StageStatus.FAILED, message)
            return message

        log.info("stage_completed", detail=detail)
        self._finish(record, StageStatus.COMPLETED, detail)
        return None

    async def _wait_if_paused(self) -> None:
        if self._resume.is_set():
            return
        self._report(LogLevel.INFO, "Paused, waiting to resume")
        await self._resume.wait()

    # Stages

    async def _run_tools(self) -> str:
        statuses = await self._probe.probe_all()
        for status in statuses:
            if status.installed:
                version = status.version or "unknown version"
                self._report(LogLevel.SUCCESS, f"{status.name} found ({version})")
        error = missing_tools_error(statuses)
        if error is not None:
            raise error
        return "all tools found"

    async def _run_plugin(self) -> str:
        plugin_dir = await self._acquirer.acquire(self.config, self.layout)
        return f"installed at {plugin_dir}"

    def _skip_artifact(self) -> str | None:
        if self.config.script_engine != ScriptEngine.BINARY_ENGINE:
            return f"skipped: {self.config.script_engine.value} needs no V8 build"
        return None

    async def _run_artifact(self) -> str:
        layout = self.layout
        if layout.build_config.is_file():
            expected = self._resolver.resolve_file(layout.build_config)
        else:
            expected = self._resolver.resolve(None)
        self._expected_version = expected

        if self.config.artifact_source == ArtifactSource.MANUAL:
            if self.config.artifact_path is None:
                raise ExtractionError("Manual import selected but no artifact path was given")
            staged = await self._stager.stage(
                self.config.artifact_path, layout.staging_dir, layout.artifact_root
            )
        else:
            catalog = self.settings.catalog or DEFAULT_CATALOG
            candidates = order_candidates(catalog, expected)
            await self._downloader.download(candidates, layout.archive_path)
            try:
                staged = await self._stager.stage(
                    layout.archive_path, layout.staging_dir, layout.artifact_root
                )
            finally:
                layout.archive_path.unlink(missing_ok=True)

        self._installed_version = staged.version
        if expected and expected != staged.version:
            self._report(
                LogLevel.WARNING,
                f"Installed V8 {staged.version} differs from the expected {expected}",
            )

        self._patcher.patch_file(layout.build_config, staged.version)
        return f"installed {staged.path.name}"

    def _skip_manifest(self) -> str | None:
        if not self.layout.manifest_path.is_file():
            return f"skipped: {self.layout.manifest_path.name} not found"
        try:
            self._manifest.read(self.layout.manifest_path)
        except ManifestError as e:
            message = f"{e.message}; enable {self.layout.plugin_name} manually"
            self._report(LogLevel.WARNING, message)
            return f"skipped: {e.message}"
        return None

    async def _run_manifest(self) -> str:
        added = self._manifest.enable(self.layout.manifest_path, self.layout.plugin_name)
        return "plugin entry added" if added else "plugin entry enabled"

    def _skip_dependencies(self) -> str | None:
        if not self._installer.applicable(self.layout.scripts_dir):
            return "skipped: no package.json in the scripting project"
        return None

    async def _run_dependencies(self) -> str:
        await self._installer.install(self.layout.scripts_dir)
        return "dependencies installed"

    # Events

    def _finish(
        self,
        record: StageRecord,
        status: StageStatus,
        detail: str,
        finished_at: datetime | None = None,
    ) -> None:
        record.status = status
        record.detail = detail
        record.finished_at = finished_at or datetime.now(tz=UTC)
        self._publish(record)

    def _publish(self, record: StageRecord) -> None:
        emit_safely(self._listener, StageEvent(record=record.model_copy()))

    def _emit(self, event: StreamEvent) -> None:
        """Record log events in the run history, then forward everything."""
        if isinstance(event, LogEvent):
            if event.stage is None:
                event.stage = self._current_stage
            self._logs.append(
                LogRecord(level=event.level, message=event.message, timestamp=event.timestamp)
            )
        emit_safely(self._listener, event)

    def _report(self, level: LogLevel, message: str) -> None:
        self._emit(LogEvent(level=level, message=message))


def _never_skip() -> str | None:
    return None
