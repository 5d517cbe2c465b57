"""Puerts Provisioner Core Library.

Installs the Puerts plugin and a version-matched V8 build into an Unreal
project, then patches the project so the toolchain picks them up.

Module Overview:
    acquirer: Plugin tree acquisition (local copy or sparse git clone)
    commands: Uniform external command runner built on asyncio subprocesses
    config: YAML-based configuration management (XDG spec compliant)
    config_patcher: Rewrites the V8 version assertion in JsEnv.Build.cs
    dependencies: Package-manager install for the scripting project
    downloader: Artifact download with ordered mirror fallback
    exceptions: Error taxonomy with fatal and non-fatal failures
    layout: Filesystem layout of a host project
    logging_config: structlog setup
    manifest: Plugin enablement in the .uproject manifest
    models: Pydantic data models for configuration and results
    orchestrator: Sequential provisioning pipeline
    patterns: Historical forms of the version assertion
    probes: Developer tool presence probes
    stager: Archive extraction and version directory relocation
    streaming: Progress, log and stage events
    version_resolver: Expected version detection and candidate ordering
"""

from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as get_package_version

from provisioner.acquirer import CloneProgressFilter, PluginAcquirer
from provisioner.commands import CommandResult, CommandRunner
from provisioner.config import ConfigError, ConfigManager, get_config_dir, get_default_config_path
from provisioner.config_patcher import ConfigPatcher, PatchResult
from provisioner.dependencies import DependencyInstaller
from provisioner.downloader import ArtifactDownloader, DownloadResult
from provisioner.exceptions import (
    AcquisitionError,
    CommandError,
    DependencyInstallError,
    DownloadError,
    ExtractionError,
    ManifestError,
    PatchError,
    ProbeError,
    ProvisionError,
)
from provisioner.layout import ProjectLayout
from provisioner.logging_config import configure_logging
from provisioner.manifest import ManifestPatcher, enable_plugin
from provisioner.models import (
    ArtifactSource,
    LogLevel,
    LogRecord,
    PipelineResult,
    PipelineState,
    PluginSource,
    ProvisionerSettings,
    ProvisioningConfig,
    ProxySettings,
    ScriptEngine,
    StageRecord,
    StageStatus,
    ToolStatus,
    VersionCandidate,
)
from provisioner.orchestrator import Orchestrator
from provisioner.probes import ToolProbe, ToolSpec
from provisioner.stager import ArchiveStager, StagedArtifact
from provisioner.streaming import (
    EventListener,
    EventRecorder,
    EventType,
    LogEvent,
    ProgressEvent,
    ProgressKind,
    StageEvent,
    StreamEvent,
)
from provisioner.version_resolver import DEFAULT_CATALOG, VersionResolver, order_candidates

try:
    __version__ = get_package_version("puerts-provisioner")
except PackageNotFoundError:
    __version__ = "0.0.0"

__all__ = [
    "DEFAULT_CATALOG",
    "AcquisitionError",
    "ArchiveStager",
    "ArtifactDownloader",
    "ArtifactSource",
    "CloneProgressFilter",
    "CommandError",
    "CommandResult",
    "CommandRunner",
    "ConfigError",
    "ConfigManager",
    "ConfigPatcher",
    "DependencyInstallError",
    "DependencyInstaller",
    "DownloadError",
    "DownloadResult",
    "EventListener",
    "EventRecorder",
    "EventType",
    "ExtractionError",
    "LogEvent",
    "LogLevel",
    "LogRecord",
    "ManifestError",
    "ManifestPatcher",
    "Orchestrator",
    "PatchError",
    "PatchResult",
    "PipelineResult",
    "PipelineState",
    "PluginAcquirer",
    "PluginSource",
    "ProbeError",
    "ProgressEvent",
    "ProgressKind",
    "ProjectLayout",
    "ProvisionError",
    "ProvisionerSettings",
    "ProvisioningConfig",
    "ProxySettings",
    "ScriptEngine",
    "StageEvent",
    "StageRecord",
    "StageStatus",
    "StagedArtifact",
    "StreamEvent",
    "ToolProbe",
    "ToolSpec",
    "ToolStatus",
    "VersionCandidate",
    "VersionResolver",
    "__version__",
    "configure_logging",
    "enable_plugin",
    "get_config_dir",
    "get_default_config_path",
    "order_candidates",
]
