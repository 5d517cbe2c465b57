"""Project manifest (``.uproject``) plugin enablement."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

import structlog

from .exceptions import ManifestError
from .models import LogLevel
from .streaming import LogEvent, emit_safely

if TYPE_CHECKING:
    from pathlib import Path

    from .streaming import EventListener

logger = structlog.get_logger(__name__)


def enable_plugin(document: dict[str, Any], plugin_name: str) -> bool:
    """Enable ``plugin_name`` in a parsed manifest, in place.

    Args:
        document: Parsed ``.uproject`` JSON object.
        plugin_name: Plugin to enable.

    Returns:
        True if a new entry was appended, False if an existing one was
        switched on.

    Raises:
        ManifestError: If ``Plugins`` is present but not a list.
    """
    plugins = document.setdefault("Plugins", [])
    if not isinstance(plugins, list):
        raise ManifestError("Project file has a malformed Plugins section")

    for entry in plugins:
        if isinstance(entry, dict) and entry.get("Name") == plugin_name:
            entry["Enabled"] = True
            return False

    plugins.append({"Name": plugin_name, "Enabled": True})
    return True


class ManifestPatcher:
    """Enables a plugin in the host project's manifest."""

    def __init__(self, listener: EventListener | None = None) -> None:
        self._listener = listener
        self._log = logger.bind(component="manifest_patcher")

    def read(self, path: Path) -> dict[str, Any]:
        """Load a manifest.

        Raises:
            ManifestError: If the file is missing, unreadable or not a JSON
                object.
        """
        try:
            data = json.loads(path.read_text(encoding="utf-8-sig"))
        except (OSError, json.JSONDecodeError) as e:
            self._log.warning("manifest_unreadable", path=str(path), error=str(e))
            raise ManifestError(f"Cannot read project file {path.name}: {e}") from e
        if not isinstance(data, dict):
            raise ManifestError(f"Project file {path.name} is not a JSON object")
        return data

    def write(self, path: Path, document: dict[str, Any]) -> None:
        """Serialize a manifest back to disk in full.

        Raises:
            ManifestError: If the file cannot be written.
        """
        try:
            path.write_text(json.dumps(document, indent=2) + "\n", encoding="utf-8")
        except OSError as e:
            self._log.warning("manifest_write_failed", path=str(path), error=str(e))
            raise ManifestError(f"Cannot write project file {path.name}: {e}") from e

    def enable(self, path: Path, plugin_name: str) -> bool:
        """Enable ``plugin_name`` in the manifest at ``path``.

        Returns:
            True if an entry was added, False if an existing one was enabled.

        Raises:
            ManifestError: If the manifest cannot be read or written.
        """
        document = self.read(path)
        added = enable_plugin(document, plugin_name)
        self.write(path, document)

        self._log.info("plugin_enabled", path=str(path), plugin=plugin_name, added=added)
        if added:
            self._report(LogLevel.INFO, f"Added {plugin_name} to the project plugins")
        else:
            self._report(LogLevel.INFO, f"Enabled {plugin_name} in the project plugins")
        self._report(LogLevel.SUCCESS, "Project file updated")
        return added

    def _report(self, level: LogLevel, message: str) -> None:
        emit_safely(self._listener, LogEvent(level=level, message=message))
