"""Artifact staging: extract, identify the version directory, relocate.

An artifact archive must contain exactly one top-level directory named
``v8_<dotted-version>``. That directory replaces any previously installed
``v8_*`` directory under the artifact root, so the root never holds more
than one installed V8 build.
"""

from __future__ import annotations

import asyncio
import re
import tarfile
import zipfile
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

import structlog

from . import fsutil
from .exceptions import ExtractionError
from .models import LogLevel
from .patterns import ARTIFACT_PREFIX
from .streaming import LogEvent, emit_safely

if TYPE_CHECKING:
    from pathlib import Path

    from .streaming import EventListener

logger = structlog.get_logger(__name__)

VERSION_DIR_PATTERN = re.compile(rf"^{re.escape(ARTIFACT_PREFIX)}_(\d+(?:\.\d+)+)$")


class ArchiveFormat(str, Enum):
    """Supported artifact containers."""

    TAR_GZ = "tar.gz"
    ZIP = "zip"
    DIRECTORY = "directory"


def detect_format(path: Path) -> ArchiveFormat | None:
    """Infer the container format from a path.

    Args:
        path: Archive file or directory.

    Returns:
        The format, or None if unsupported.
    """
    if path.is_dir():
        return ArchiveFormat.DIRECTORY
    name = path.name.lower()
    if name.endswith((".tgz", ".tar.gz")):
        return ArchiveFormat.TAR_GZ
    if name.endswith(".zip"):
        return ArchiveFormat.ZIP
    return None


def parse_version_dir(name: str) -> str | None:
    """Return the version encoded in a ``v8_<version>`` directory name."""
    match = VERSION_DIR_PATTERN.match(name)
    return match.group(1) if match else None


@dataclass(frozen=True)
class StagedArtifact:
    """An installed artifact directory."""

    version: str
    path: Path


class ArchiveStager:
    """Installs an artifact archive or directory into the artifact root."""

    def __init__(self, listener: EventListener | None = None) -> None:
        self._listener = listener
        self._log = logger.bind(component="archive_stager")

    async def stage(self, source: Path, staging_dir: Path, artifact_root: Path) -> StagedArtifact:
        """Install ``source`` under ``artifact_root``.

        Args:
            source: ``.tgz``/``.tar.gz``/``.zip`` archive, or a directory.
            staging_dir: Scratch directory; recreated empty and always
                removed before returning.
            artifact_root: Directory receiving ``v8_<version>``.

        Returns:
            The installed artifact.

        Raises:
            ExtractionError: If the source cannot be read or does not hold
                exactly one version directory. The artifact root is left
                unchanged.
        """
        if not source.exists():
            raise ExtractionError(f"Artifact not found: {source}")
        fmt = detect_format(source)
        if fmt is None:
            raise ExtractionError(f"Unsupported artifact format: {source.name}")

        version = parse_version_dir(source.name) if fmt == ArchiveFormat.DIRECTORY else None
        if version:
            return await self._import_version_dir(source, version, staging_dir, artifact_root)

        await fsutil.remove_tree(staging_dir)
        staging_dir.mkdir(parents=True, exist_ok=True)
        try:
            await self.extract(source, staging_dir, fmt)
            staged, version = self.find_version_dir(staging_dir)
            self._report(LogLevel.SUCCESS, f"Found V8 version directory {staged.name}")
            target = await self._install(staged, artifact_root, copy=False)
        finally:
            await fsutil.remove_tree(staging_dir)

        return StagedArtifact(version=version, path=target)

    async def _import_version_dir(
        self, source: Path, version: str, staging_dir: Path, artifact_root: Path
    ) -> StagedArtifact:
        """Install a directory that is already named ``v8_<version>``."""
        target = artifact_root / source.name
        if target.exists() and source.resolve() == target.resolve():
            self._log.info("artifact_already_installed", path=str(target))
            await self._remove_installed(artifact_root, keep=target)
            self._report(LogLevel.INFO, f"{source.name} is already installed")
            return StagedArtifact(version=version, path=target)

        self._report(LogLevel.INFO, f"Importing {source.name}")
        if not source.resolve().is_relative_to(artifact_root.resolve()):
            target = await self._install(source, artifact_root, copy=True)
            return StagedArtifact(version=version, path=target)

        # The source lives under the root that is about to be cleared
        await fsutil.remove_tree(staging_dir)
        staged = staging_dir / source.name
        try:
            try:
                await fsutil.copy_tree(source, staged)
            except OSError as e:
                raise ExtractionError(f"Failed to copy {source.name}: {e}") from e
            target = await self._install(staged, artifact_root, copy=False)
        finally:
            await fsutil.remove_tree(staging_dir)
        return StagedArtifact(version=version, path=target)

    async def extract(self, source: Path, staging_dir: Path, fmt: ArchiveFormat) -> None:
        """Expand ``source`` into ``staging_dir``.

        Raises:
            ExtractionError: If the archive is corrupt or unreadable.
        """
        log = self._log.bind(source=str(source), format=fmt.value)
        self._report(LogLevel.INFO, f"Extracting {source.name}")

        def extract_tar() -> None:
            with tarfile.open(source, "r:*") as tar:
                tar.extractall(staging_dir, filter="data")

        def extract_zip() -> None:
            with zipfile.ZipFile(source, "r") as zf:
                zf.extractall(staging_dir)

        try:
            if fmt == ArchiveFormat.TAR_GZ:
                await asyncio.to_thread(extract_tar)
            elif fmt == ArchiveFormat.ZIP:
                await asyncio.to_thread(extract_zip)
            else:
                await fsutil.remove_tree(staging_dir)
                await fsutil.copy_tree(source, staging_dir)
        except (tarfile.TarError, zipfile.BadZipFile, OSError) as e:
            log.warning("extract_failed", error=str(e))
            raise ExtractionError(f"Failed to extract {source.name}: {e}") from e

        log.info("extracted")
        self._report(LogLevel.SUCCESS, "Extraction complete")

    def find_version_dir(self, staging_dir: Path) -> tuple[Path, str]:
        """Select the single ``v8_<version>`` child of ``staging_dir``.

        Returns:
            The directory and its version string.

        Raises:
            ExtractionError: On zero or several matching directories.
        """
        children = sorted(staging_dir.iterdir())
        matches = [
            (child, version)
            for child in children
            if child.is_dir() and (version := parse_version_dir(child.name))
        ]

        if len(matches) != 1:
            names = ", ".join(child.name for child in children) or "(empty)"
            self._log.warning(
                "version_dir_mismatch",
                staging=str(staging_dir),
                matches=len(matches),
                contents=names,
            )
            if not matches:
                raise ExtractionError(
                    f"Malformed V8 package: no {ARTIFACT_PREFIX}_x.y.z directory found "
                    f"(contents: {names})"
                )
            raise ExtractionError(
                f"Malformed V8 package: {len(matches)} version directories found "
                f"({', '.join(m[0].name for m in matches)})"
            )
        return matches[0]

    async def _remove_installed(self, artifact_root: Path, keep: Path | None = None) -> None:
        """Delete every installed version directory except ``keep``."""
        if not artifact_root.is_dir():
            return
        for existing in artifact_root.iterdir():
            if existing == keep or not existing.is_dir() or not parse_version_dir(existing.name):
                continue
            self._log.info("removing_installed_artifact", path=str(existing))
            self._report(LogLevel.INFO, f"Removing previous {existing.name}")
            await fsutil.remove_tree(existing)

    async def _install(self, source: Path, artifact_root: Path, *, copy: bool) -> Path:
        target = artifact_root / source.name
        log = self._log.bind(source=str(source), target=str(target))

        await self._remove_installed(artifact_root)
        artifact_root.mkdir(parents=True, exist_ok=True)

        try:
            if copy:
                await fsutil.copy_tree(source, target)
            else:
                await fsutil.move_tree(source, target)
        except OSError as e:
            log.warning("artifact_install_failed", error=str(e))
            raise ExtractionError(f"Installing {source.name} failed: {e}") from e

        log.info("artifact_installed")
        self._report(LogLevel.SUCCESS, f"V8 installed to {target}")
        return target

    def _report(self, level: LogLevel, message: str) -> None:
        emit_safely(self._listener, LogEvent(level=level, message=message))
