"""Expected artifact version detection and candidate ordering.

Reads the plugin's build configuration to find which V8 build it expects,
then moves that build to the front of the download catalog.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

import structlog

from .models import LogLevel, VersionCandidate
from .patterns import DETECTION_PATTERNS, AssignmentPattern
from .streaming import LogEvent, emit_safely

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence
    from pathlib import Path

    from .streaming import EventListener

logger = structlog.get_logger(__name__)

_RELEASES = "https://github.com/puerts/backend-v8/releases/download"

DEFAULT_CATALOG: tuple[VersionCandidate, ...] = (
    VersionCandidate(
        version="9.4.146.24",
        url=f"{_RELEASES}/V8_9.4.146.24_240430/v8_bin_9.4.146.24.tgz",
    ),
    VersionCandidate(
        version="8.4.371.19",
        url=f"{_RELEASES}/V8_8.4.371.19_230911/v8_bin_8.4.371.19.tgz",
    ),
    VersionCandidate(
        version="11.8.172",
        url=f"{_RELEASES}/V8_11.8.172_with_new_wrap_241205/v8_bin_11.8.172.tgz",
    ),
    VersionCandidate(
        version="10.6.194",
        url=f"{_RELEASES}/V8_10.6.194_240612/v8_bin_10.6.194.tgz",
    ),
)


@dataclass(frozen=True)
class VersionDetection:
    """A detected version and the form it was read from."""

    version: str
    pattern: AssignmentPattern


class VersionResolver:
    """Finds the artifact version a build configuration expects.

    Detection is read-only. Patterns are tried in priority order and the
    first hit wins.
    """

    def __init__(
        self,
        patterns: Sequence[AssignmentPattern] = DETECTION_PATTERNS,
        listener: EventListener | None = None,
    ) -> None:
        self._patterns = tuple(patterns)
        self._listener = listener
        self._log = logger.bind(component="version_resolver")

    def detect(self, content: str | None) -> VersionDetection | None:
        """Detect the expected version in build-configuration text.

        Args:
            content: Document text. None means the document is not
                available yet, which is treated as no expectation.

        Returns:
            VersionDetection for the first matching form, or None.
        """
        if content is None:
            self._log.debug("no_build_config")
            return None

        for pattern in self._patterns:
            version = pattern.detect(content)
            if version:
                self._log.info("version_detected", version=version, method=pattern.name)
                self._report(
                    LogLevel.SUCCESS,
                    f"Detected expected V8 version {version} ({pattern.description})",
                )
                return VersionDetection(version=version, pattern=pattern)

        self._log.info("version_not_detected")
        return None

    def resolve(self, content: str | None) -> str | None:
        """Return only the detected version string."""
        detection = self.detect(content)
        return detection.version if detection else None

    def resolve_file(self, path: Path) -> str | None:
        """Detect the expected version from a file on disk.

        A missing or unreadable file yields None.
        """
        try:
            content = path.read_text(encoding="utf-8")
        except OSError as e:
            self._log.warning("build_config_unreadable", path=str(path), error=str(e))
            self._report(
                LogLevel.WARNING,
                f"Cannot read {path.name}; using the default download order",
            )
            return None
        return self.resolve(content)

    def _report(self, level: LogLevel, message: str) -> None:
        emit_safely(self._listener, LogEvent(level=level, message=message))


def order_candidates(
    catalog: Iterable[VersionCandidate],
    expected: str | None,
) -> list[VersionCandidate]:
    """Order the download catalog for an expected version.

    The matching candidate moves to the front; the rest keep their
    relative order. Without a match the catalog order is unchanged.

    Args:
        catalog: Candidates in canonical order.
        expected: Detected version, or None.

    Returns:
        New list of candidates.

    Example:
        >>> [c.version for c in order_candidates(DEFAULT_CATALOG, "10.6.194")]
        ['10.6.194', '9.4.146.24', '8.4.371.19', '11.8.172']
    """
    candidates = list(catalog)
    if expected is None:
        return candidates
    preferred = [c for c in candidates if c.version == expected]
    if not preferred:
        logger.info("expected_version_not_in_catalog", version=expected)
        return candidates
    return preferred[:1] + [c for c in candidates if c is not preferred[0]]
