"""Build-configuration patching.

Rewrites the V8 version assertion in ``JsEnv.Build.cs`` so the host
toolchain links against the installed artifact. The first form found is
rewritten and nothing else in the document changes.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

import structlog

from .exceptions import PatchError
from .models import LogLevel
from .patterns import PATCH_PATTERNS, AssignmentPattern, assignment_hint
from .streaming import LogEvent, emit_safely

if TYPE_CHECKING:
    from collections.abc import Sequence
    from pathlib import Path

    from .streaming import EventListener

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class PatchResult:
    """Outcome of a successful patch.

    Attributes:
        content: Document text after the patch.
        pattern: The form that was rewritten.
        changed: Whether the text differs from the input.
    """

    content: str
    pattern: AssignmentPattern
    changed: bool


class ConfigPatcher:
    """Points the build configuration at an installed V8 version."""

    def __init__(
        self,
        patterns: Sequence[AssignmentPattern] = PATCH_PATTERNS,
        listener: EventListener | None = None,
    ) -> None:
        self._patterns = tuple(patterns)
        self._listener = listener
        self._log = logger.bind(component="config_patcher")

    def patch(self, content: str, version: str) -> PatchResult:
        """Rewrite the first matching version assertion.

        Args:
            content: Build-configuration text.
            version: Installed dotted version.

        Returns:
            PatchResult with the new text.

        Raises:
            PatchError: If no known form is present. The caller keeps the
                original text; the error carries the assignment to add.
        """
        for pattern in self._patterns:
            rewritten = pattern.rewrite(content, version)
            if rewritten is None:
                continue
            self._log.info("config_patched", pattern=pattern.name, version=version)
            return PatchResult(
                content=rewritten,
                pattern=pattern,
                changed=rewritten != content,
            )

        hint = assignment_hint(version)
        self._log.warning("no_version_assertion", version=version)
        raise PatchError(
            f"UseV8Version setting not found; set it manually: {hint}",
            suggestion=hint,
        )

    def patch_file(self, path: Path, version: str) -> PatchResult:
        """Patch a build-configuration file in place.

        The file is rewritten in full, and only when the text changed.

        Raises:
            PatchError: If the file cannot be read or written, or has no
                known assertion. The file is left untouched.
        """
        hint = assignment_hint(version)
        try:
            # newline="" keeps CRLF line endings intact on the way back out
            with path.open("r", encoding="utf-8", newline="") as f:
                content = f.read()
        except OSError as e:
            self._log.warning("build_config_unreadable", path=str(path), error=str(e))
            raise PatchError(
                f"Cannot read {path.name}: {e}; set it manually: {hint}",
                suggestion=hint,
            ) from e

        result = self.patch(content, version)
        if result.changed:
            try:
                with path.open("w", encoding="utf-8", newline="") as f:
                    f.write(result.content)
            except OSError as e:
                self._log.warning("build_config_write_failed", path=str(path), error=str(e))
                raise PatchError(
                    f"Cannot write {path.name}: {e}; set it manually: {hint}",
                    suggestion=hint,
                ) from e

        value = result.pattern.display_value(version)
        self._report(
            LogLevel.SUCCESS,
            f"{path.name} updated ({result.pattern.description}): UseV8Version = {value}",
        )
        return result

    def _report(self, level: LogLevel, message: str) -> None:
        emit_safely(self._listener, LogEvent(level=level, message=message))
