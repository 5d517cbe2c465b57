"""Tests for project manifest plugin enablement."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

import pytest

from provisioner.exceptions import ManifestError
from provisioner.manifest import ManifestPatcher, enable_plugin
from provisioner.models import LogLevel
from provisioner.streaming import EventRecorder

if TYPE_CHECKING:
    from pathlib import Path


class TestEnablePlugin:
    """Tests for enable_plugin()."""

    def test_appends_new_entry(self) -> None:
        """A missing plugin is appended enabled."""
        document = {"FileVersion": 3, "Plugins": [{"Name": "ModelingToolsEditorMode", "Enabled": True}]}

        assert enable_plugin(document, "Puerts")
        assert document["Plugins"][-1] == {"Name": "Puerts", "Enabled": True}
        assert len(document["Plugins"]) == 2

    def test_enables_existing_entry(self) -> None:
        """An existing disabled entry is switched on in place."""
        document = {"Plugins": [{"Name": "Puerts", "Enabled": False, "MarketplaceURL": "x"}]}

        assert not enable_plugin(document, "Puerts")
        assert document["Plugins"] == [{"Name": "Puerts", "Enabled": True, "MarketplaceURL": "x"}]

    def test_creates_plugins_section(self) -> None:
        """Manifests without a Plugins list get one."""
        document: dict = {"FileVersion": 3}

        assert enable_plugin(document, "Puerts")
        assert document["Plugins"] == [{"Name": "Puerts", "Enabled": True}]

    def test_malformed_plugins_section(self) -> None:
        """A non-list Plugins value is rejected."""
        with pytest.raises(ManifestError):
            enable_plugin({"Plugins": {"Name": "Puerts"}}, "Puerts")


class TestManifestPatcher:
    """Tests for ManifestPatcher."""

    def test_enable_writes_full_document(self, project: Path) -> None:
        """Other keys survive and the plugin is enabled on disk."""
        recorder = EventRecorder()

        added = ManifestPatcher(listener=recorder).enable(project, "Puerts")

        data = json.loads(project.read_text(encoding="utf-8"))
        assert added
        assert data["FileVersion"] == 3
        assert data["EngineAssociation"] == "5.3"
        assert data["Plugins"] == [{"Name": "Puerts", "Enabled": True}]
        assert recorder.messages(LogLevel.SUCCESS) == ["Project file updated"]

    def test_enable_twice_is_stable(self, project: Path) -> None:
        """A second run does not duplicate the entry."""
        patcher = ManifestPatcher()
        patcher.enable(project, "Puerts")
        first = project.read_text(encoding="utf-8")

        assert not patcher.enable(project, "Puerts")
        assert project.read_text(encoding="utf-8") == first

    def test_reads_utf8_bom(self, tmp_path: Path) -> None:
        """Manifests saved with a byte order mark are accepted."""
        path = tmp_path / "Game.uproject"
        path.write_bytes(b"\xef\xbb\xbf" + json.dumps({"FileVersion": 3}).encode("utf-8"))

        ManifestPatcher().enable(path, "Puerts")

        assert json.loads(path.read_text(encoding="utf-8"))["Plugins"][0]["Name"] == "Puerts"

    def test_invalid_json(self, tmp_path: Path) -> None:
        """Unparsable manifests raise ManifestError and are not rewritten."""
        path = tmp_path / "Game.uproject"
        path.write_text("{ not json", encoding="utf-8")

        with pytest.raises(ManifestError, match="Cannot read project file"):
            ManifestPatcher().enable(path, "Puerts")
        assert path.read_text(encoding="utf-8") == "{ not json"

    def test_not_an_object(self, tmp_path: Path) -> None:
        """A JSON array is not a manifest."""
        path = tmp_path / "Game.uproject"
        path.write_text("[]", encoding="utf-8")

        with pytest.raises(ManifestError, match="not a JSON object"):
            ManifestPatcher().read(path)

    def test_missing_file(self, tmp_path: Path) -> None:
        """A missing manifest is a ManifestError."""
        with pytest.raises(ManifestError):
            ManifestPatcher().read(tmp_path / "Missing.uproject")
