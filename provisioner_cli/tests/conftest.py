"""Shared test fixtures for CLI tests."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

import pytest

if TYPE_CHECKING:
    from collections.abc import Generator
    from pathlib import Path


@pytest.fixture(autouse=True)
def isolated_config_dir(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> Generator[Path, None, None]:
    """Isolate tests from the real user configuration directory.

    Sets XDG_CONFIG_HOME to a temporary directory so that tests never read
    or write ~/.config/puerts-provisioner/.
    """
    config_home = tmp_path / "xdg_config"
    config_home.mkdir(parents=True, exist_ok=True)
    monkeypatch.setenv("XDG_CONFIG_HOME", str(config_home))
    yield config_home


@pytest.fixture(autouse=True)
def logging_levels(monkeypatch: pytest.MonkeyPatch) -> list[str]:
    """Record configure_logging() calls instead of reconfiguring structlog.

    The CLI runner closes its output streams after each invocation, so
    loggers cached by a real configuration would write to closed files.
    """
    levels: list[str] = []
    monkeypatch.setattr("provisioner_cli.main.configure_logging", levels.append)
    return levels


@pytest.fixture
def project(tmp_path: Path) -> Path:
    """An Unreal project manifest with no plugins enabled."""
    project_dir = tmp_path / "Game"
    project_dir.mkdir()
    manifest = project_dir / "Game.uproject"
    manifest.write_text(json.dumps({"FileVersion": 3, "Plugins": []}), encoding="utf-8")
    return manifest


@pytest.fixture
def plugin_source(tmp_path: Path) -> Path:
    """A minimal local plugin tree."""
    root = tmp_path / "puerts_src"
    build_dir = root / "Source" / "JsEnv"
    build_dir.mkdir(parents=True)
    (build_dir / "JsEnv.Build.cs").write_text(
        "UseV8Version = SupportedV8Versions.V10_6_194;\n", encoding="utf-8"
    )
    (root / "Puerts.uplugin").write_text("{}\n", encoding="utf-8")
    return root
