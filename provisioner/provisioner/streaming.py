"""Streaming event types delivered to pipeline listeners.

Events are pushed synchronously to a listener in the order they are
produced. Nothing is buffered or coalesced here: download progress is
already sampled by the downloader and clone progress is de-duplicated by
the acquirer before an event is built.

Event Types:
    - ProgressEvent: clone or download progress
    - LogEvent: user-facing log line
    - StageEvent: snapshot of a stage record after a transition
"""

from __future__ import annotations

import json
import re
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any, ClassVar

import structlog

from .models import LogLevel, StageRecord

logger = structlog.get_logger(__name__)

_PERCENT_RE = re.compile(r"(\d{1,3})%")


class EventType(str, Enum):
    """Types of events emitted by the pipeline."""

    PROGRESS = "progress"
    LOG = "log"
    STAGE = "stage"


class ProgressKind(str, Enum):
    """What a progress event measures."""

    CLONE = "clone"
    DOWNLOAD = "download"


@dataclass(slots=True)
class StreamEvent:
    """Base class for pipeline events."""

    event_type: ClassVar[EventType]

    timestamp: datetime = field(default_factory=lambda: datetime.now(tz=UTC))

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "type": self.event_type.value,
            "timestamp": self.timestamp.isoformat(),
        }

    def to_json(self) -> str:
        """Convert to JSON string."""
        return json.dumps(self.to_dict())


@dataclass(slots=True)
class ProgressEvent(StreamEvent):
    """Clone or download progress.

    Attributes:
        kind: Whether this is clone or download progress
        percent: Completion percentage (0-100), or None if unknown
        message: Human-readable progress message
        throughput: Instantaneous transfer rate in bytes/s (download only)
        bytes_downloaded: Bytes received so far (download only)
        bytes_total: Expected body size, 0 if the server did not say
    """

    event_type: ClassVar[EventType] = EventType.PROGRESS

    kind: ProgressKind = ProgressKind.DOWNLOAD
    percent: float | None = None
    message: str = ""
    throughput: float | None = None
    bytes_downloaded: int | None = None
    bytes_total: int | None = None

    @property
    def throughput_mbps(self) -> float | None:
        """Throughput in MB/s."""
        if self.throughput is None:
            return None
        return self.throughput / (1024 * 1024)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        d = StreamEvent.to_dict(self)
        d["kind"] = self.kind.value
        d["message"] = self.message
        # Only include non-None optional fields
        if self.percent is not None:
            d["percent"] = self.percent
        if self.throughput is not None:
            d["throughput"] = self.throughput
        if self.bytes_downloaded is not None:
            d["bytes_downloaded"] = self.bytes_downloaded
        if self.bytes_total is not None:
            d["bytes_total"] = self.bytes_total
        return d


@dataclass(slots=True)
class LogEvent(StreamEvent):
    """User-facing log line.

    Attributes:
        level: Severity of the line
        message: The line text
        stage: Stage that produced the line, if any
    """

    event_type: ClassVar[EventType] = EventType.LOG

    level: LogLevel = LogLevel.INFO
    message: str = ""
    stage: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        d = StreamEvent.to_dict(self)
        d.update({"level": self.level.value, "message": self.message})
        if self.stage:
            d["stage"] = self.stage
        return d


@dataclass(slots=True)
class StageEvent(StreamEvent):
    """A stage changed status or detail."""

    event_type: ClassVar[EventType] = EventType.STAGE

    record: StageRecord | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        d = StreamEvent.to_dict(self)
        if self.record is not None:
            d["stage"] = self.record.model_dump(mode="json")
        return d


EventListener = Callable[[StreamEvent], None]


class EventRecorder:
    """Listener that keeps every event it receives.

    Example:
        >>> recorder = EventRecorder()
        >>> orchestrator = Orchestrator(config, listener=recorder)
    """

    def __init__(self) -> None:
        self.events: list[StreamEvent] = []

    def __call__(self, event: StreamEvent) -> None:
        self.events.append(event)

    def of_type(self, event_cls: type[StreamEvent]) -> list[StreamEvent]:
        """Return recorded events of one class, in arrival order."""
        return [e for e in self.events if isinstance(e, event_cls)]

    def progress(self, kind: ProgressKind) -> list[ProgressEvent]:
        """Return recorded progress events of one kind."""
        return [e for e in self.events if isinstance(e, ProgressEvent) and e.kind == kind]

    def messages(self, level: LogLevel | None = None) -> list[str]:
        """Return recorded log messages, optionally filtered by level."""
        return [
            e.message
            for e in self.events
            if isinstance(e, LogEvent) and (level is None or e.level == level)
        ]


def emit_safely(listener: EventListener | None, event: StreamEvent) -> None:
    """Deliver an event; listener exceptions are logged, never propagated."""
    if listener is None:
        return
    try:
        listener(event)
    except Exception as e:
        logger.warning("listener_error", event_type=event.event_type.value, error=str(e))


def parse_percent(line: str) -> float | None:
    """Extract the last ``NN%`` figure from a progress line.

    Args:
        line: A progress line such as ``Receiving objects:  45% (450/1000)``.

    Returns:
        Percentage clamped to 0-100, or None if the line has none.
    """
    matches = _PERCENT_RE.findall(line)
    if not matches:
        return None
    return float(min(int(matches[-1]), 100))
