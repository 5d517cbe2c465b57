"""Tests for data models and project layout."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest
from pydantic import ValidationError

from provisioner.layout import ProjectLayout
from provisioner.models import (
    LogLevel,
    LogRecord,
    PipelineResult,
    PipelineState,
    ProvisioningConfig,
    ProxySettings,
    StageRecord,
    StageStatus,
)


class TestProvisioningConfig:
    """Tests for ProvisioningConfig."""

    def test_frozen(self) -> None:
        """The configuration snapshot cannot be mutated."""
        config = ProvisioningConfig(project_path=Path("/work/Game/Game.uproject"))
        with pytest.raises(ValidationError):
            config.project_path = Path("/other")  # type: ignore[misc]

    def test_project_dir(self) -> None:
        """The project root is the manifest's parent."""
        config = ProvisioningConfig(project_path=Path("/work/Game/Game.uproject"))
        assert config.project_dir == Path("/work/Game")

    def test_proxy_effective_url(self) -> None:
        """A proxy is only used when enabled and set."""
        assert ProxySettings().effective_url is None
        assert ProxySettings(enabled=False, url="http://p:1").effective_url is None
        assert ProxySettings(enabled=True, url="").effective_url is None
        assert ProxySettings(enabled=True, url="http://p:1").effective_url == "http://p:1"


class TestStageRecord:
    """Tests for StageRecord."""

    def test_defaults(self) -> None:
        """Records start pending."""
        record = StageRecord(name="tools")
        assert record.status == StageStatus.PENDING
        assert not record.skipped

    def test_skipped(self) -> None:
        """Completed records with a skipped detail count as skipped."""
        record = StageRecord(name="artifact", status=StageStatus.COMPLETED, detail="skipped: x")
        assert record.skipped


class TestPipelineResult:
    """Tests for PipelineResult."""

    def test_duration_and_warnings(self) -> None:
        """Duration comes from the timestamps; warnings filter the logs."""
        start = datetime(2024, 1, 1, tzinfo=UTC)
        result = PipelineResult(
            run_id="abc",
            success=True,
            state=PipelineState.COMPLETED,
            logs=[
                LogRecord(level=LogLevel.INFO, message="a"),
                LogRecord(level=LogLevel.WARNING, message="b"),
            ],
            start_time=start,
            end_time=start + timedelta(seconds=12.5),
        )

        assert result.duration_seconds == 12.5
        assert [r.message for r in result.warnings] == ["b"]

    def test_duration_without_end(self) -> None:
        """A result without an end time has no duration."""
        result = PipelineResult(
            run_id="abc",
            success=False,
            state=PipelineState.RUNNING,
            start_time=datetime.now(tz=UTC),
        )
        assert result.duration_seconds is None


class TestProjectLayout:
    """Tests for ProjectLayout."""

    def test_paths(self) -> None:
        """All paths derive from the manifest location."""
        layout = ProjectLayout.for_manifest(Path("/work/Game/Game.uproject"))
        plugin = Path("/work/Game/Plugins/Puerts")

        assert layout.project_dir == Path("/work/Game")
        assert layout.plugin_dir == plugin
        assert layout.build_config == plugin / "Source" / "JsEnv" / "JsEnv.Build.cs"
        assert layout.artifact_root == plugin / "ThirdParty"
        assert layout.artifact_dir("10.6.194") == plugin / "ThirdParty" / "v8_10.6.194"
        assert layout.archive_path == Path("/work/Game/Temp/v8_bin.tgz")
        assert layout.staging_dir == Path("/work/Game/Temp/v8_temp")
        assert layout.clone_dir == Path("/work/Game/Temp/puerts_clone")
        assert layout.scripts_dir == Path("/work/Game/Scripts/TypeScript")
