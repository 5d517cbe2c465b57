"""Filesystem layout of a host project.

All paths the pipeline touches are derived here from the project
manifest location.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from .patterns import ARTIFACT_PREFIX

PLUGIN_NAME = "Puerts"


@dataclass(frozen=True)
class ProjectLayout:
    """Paths inside one Unreal project.

    Example:
        >>> layout = ProjectLayout.for_manifest(Path("/work/Game/Game.uproject"))
        >>> layout.build_config
        PosixPath('/work/Game/Plugins/Puerts/Source/JsEnv/JsEnv.Build.cs')
    """

    project_dir: Path
    manifest_path: Path
    plugin_name: str = PLUGIN_NAME

    @classmethod
    def for_manifest(cls, manifest_path: Path, plugin_name: str = PLUGIN_NAME) -> ProjectLayout:
        """Build the layout for a ``.uproject`` file."""
        manifest_path = manifest_path.expanduser()
        return cls(
            project_dir=manifest_path.parent,
            manifest_path=manifest_path,
            plugin_name=plugin_name,
        )

    @property
    def plugin_dir(self) -> Path:
        """Installed plugin tree."""
        return self.project_dir / "Plugins" / self.plugin_name

    @property
    def build_config(self) -> Path:
        """Build-configuration document asserting the V8 version."""
        return self.plugin_dir / "Source" / "JsEnv" / "JsEnv.Build.cs"

    @property
    def artifact_root(self) -> Path:
        """Directory holding the installed ``v8_<version>`` directory."""
        return self.plugin_dir / "ThirdParty"

    def artifact_dir(self, version: str) -> Path:
        """Installed artifact directory for ``version``."""
        return self.artifact_root / f"{ARTIFACT_PREFIX}_{version}"

    @property
    def temp_dir(self) -> Path:
        """Project scratch directory."""
        return self.project_dir / "Temp"

    @property
    def archive_path(self) -> Path:
        """Where a downloaded artifact archive is written."""
        return self.temp_dir / "v8_bin.tgz"

    @property
    def staging_dir(self) -> Path:
        """Scratch directory the archive is expanded into."""
        return self.temp_dir / "v8_temp"

    @property
    def clone_dir(self) -> Path:
        """Working directory of the sparse clone."""
        return self.temp_dir / "puerts_clone"

    @property
    def scripts_dir(self) -> Path:
        """Scripting project whose dependencies get installed."""
        return self.project_dir / "Scripts" / "TypeScript"
