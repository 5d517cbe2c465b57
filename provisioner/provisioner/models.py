"""Core data models for the provisioner.

This module defines Pydantic models for the provisioning configuration,
the download candidate catalog, stage records and pipeline results.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum
from pathlib import Path  # noqa: TC003 - needed at runtime by Pydantic

from pydantic import BaseModel, ConfigDict, Field


class PluginSource(str, Enum):
    """Where the plugin source tree comes from."""

    REMOTE_PRIMARY = "remote-primary"
    REMOTE_MIRROR = "remote-mirror"
    LOCAL = "local"


class ScriptEngine(str, Enum):
    """Scripting engine backing the plugin."""

    BINARY_ENGINE = "binary-engine"
    LIGHTWEIGHT_ENGINE = "lightweight-engine"
    HOST_RUNTIME = "host-runtime"


class ArtifactSource(str, Enum):
    """How the binary artifact is obtained."""

    AUTO = "auto"
    MANUAL = "manual"


class StageStatus(str, Enum):
    """Status of a single pipeline stage."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class PipelineState(str, Enum):
    """Global state of a pipeline run."""

    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    ABORTED = "aborted"


class LogLevel(str, Enum):
    """Level of a user-facing log record."""

    DEBUG = "debug"
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


class ProxySettings(BaseModel):
    """HTTP proxy used for artifact downloads."""

    model_config = ConfigDict(frozen=True)

    enabled: bool = Field(default=False, description="Whether the proxy is used")
    url: str = Field(default="", description="Proxy URL, e.g. http://127.0.0.1:7890")

    @property
    def effective_url(self) -> str | None:
        """Proxy URL to hand to the HTTP client, or None."""
        if self.enabled and self.url:
            return self.url
        return None


class ProvisioningConfig(BaseModel):
    """Immutable snapshot of what the caller wants installed.

    Supplied at pipeline start and never mutated by the pipeline.
    """

    model_config = ConfigDict(frozen=True)

    project_path: Path = Field(..., description="Absolute path to the .uproject manifest")
    plugin_source: PluginSource = Field(
        default=PluginSource.REMOTE_PRIMARY, description="Where to obtain the plugin tree"
    )
    local_plugin_path: Path | None = Field(
        default=None, description="Local plugin tree (plugin_source=local)"
    )
    script_engine: ScriptEngine = Field(
        default=ScriptEngine.BINARY_ENGINE, description="Scripting engine to configure"
    )
    artifact_source: ArtifactSource = Field(
        default=ArtifactSource.AUTO, description="Download the artifact or import it"
    )
    artifact_path: Path | None = Field(
        default=None, description="Archive or directory to import (artifact_source=manual)"
    )
    proxy: ProxySettings = Field(default_factory=ProxySettings)

    @property
    def project_dir(self) -> Path:
        """Directory containing the project manifest."""
        return self.project_path.parent


class VersionCandidate(BaseModel):
    """A downloadable artifact version."""

    model_config = ConfigDict(frozen=True)

    version: str = Field(..., description="Dotted version string")
    url: str = Field(..., description="Download URL")


class StageRecord(BaseModel):
    """State of one pipeline stage within a single run."""

    name: str = Field(..., description="Stage name")
    title: str = Field(default="", description="Human-readable stage title")
    status: StageStatus = Field(default=StageStatus.PENDING)
    detail: str = Field(default="", description="Latest detail text")
    started_at: datetime | None = Field(default=None)
    finished_at: datetime | None = Field(default=None)

    @property
    def skipped(self) -> bool:
        """Whether the stage completed without doing any work."""
        return self.status == StageStatus.COMPLETED and self.detail.startswith("skipped")


class LogRecord(BaseModel):
    """User-facing log line produced during a run."""

    level: LogLevel
    message: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(tz=UTC))


class PipelineResult(BaseModel):
    """Final outcome of a pipeline run."""

    run_id: str = Field(..., description="Unique run identifier")
    success: bool
    state: PipelineState
    failed_stage: str | None = Field(default=None, description="Name of the aborting stage")
    error_message: str | None = Field(default=None, description="Aborting error, verbatim")
    stages: list[StageRecord] = Field(default_factory=list)
    logs: list[LogRecord] = Field(default_factory=list)
    installed_version: str | None = Field(default=None)
    expected_version: str | None = Field(default=None)
    start_time: datetime
    end_time: datetime | None = None

    @property
    def duration_seconds(self) -> float | None:
        """Run duration in seconds."""
        if self.end_time is None:
            return None
        return (self.end_time - self.start_time).total_seconds()

    @property
    def warnings(self) -> list[LogRecord]:
        """Warning records emitted during the run."""
        return [r for r in self.logs if r.level == LogLevel.WARNING]


class ToolStatus(BaseModel):
    """Presence probe result for a developer tool."""

    name: str
    installed: bool
    version: str | None = None
    install_url: str = ""


class ProvisionerSettings(BaseModel):
    """Tunables of the provisioner itself, as opposed to what to install."""

    log_level: LogLevel = Field(default=LogLevel.INFO, description="Console log level")
    connect_timeout_seconds: float = Field(
        default=30.0, description="HTTP connect timeout per download request"
    )
    transfer_timeout_seconds: float = Field(
        default=300.0, description="HTTP total transfer timeout per download request"
    )
    progress_interval_seconds: float = Field(
        default=0.5, description="Download progress sampling interval"
    )
    primary_repository: str = Field(
        default="https://github.com/Tencent/puerts.git",
        description="Clone URL for plugin_source=remote-primary",
    )
    mirror_repository: str = Field(
        default="https://gitee.com/mirrors/puerts.git",
        description="Clone URL for plugin_source=remote-mirror",
    )
    sparse_path: str | None = Field(
        default="unreal/Puerts",
        description="Repository subdirectory holding the plugin. None clones everything.",
    )
    catalog: list[VersionCandidate] | None = Field(
        default=None, description="Download catalog override. None uses the built-in catalog."
    )
    install_command: list[str] = Field(
        default_factory=lambda: ["npm", "install", "--loglevel=error"],
        description="Dependency install command for the scripting project",
    )
