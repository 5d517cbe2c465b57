"""Error taxonomy for the provisioning pipeline.

Every component raises a ``ProvisionError`` subclass with a human-readable
cause. The orchestrator decides from ``fatal`` whether a failure aborts
the run or is only reported as a warning.
"""

from __future__ import annotations


class ProvisionError(Exception):
    """Base class for all provisioning failures."""

    fatal: bool = True

    def __init__(self, message: str, *, fatal: bool | None = None) -> None:
        """Initialize the error.

        Args:
            message: Human-readable cause.
            fatal: Override the class default for whether the run aborts.
        """
        super().__init__(message)
        self.message = message
        if fatal is not None:
            self.fatal = fatal


class ProbeError(ProvisionError):
    """A developer tool is missing. Reported, never aborts."""

    fatal = False


class CommandError(ProvisionError):
    """An external command exited with a non-zero status."""

    def __init__(
        self,
        message: str,
        *,
        exit_code: int | None = None,
        stderr: str = "",
        fatal: bool | None = None,
    ) -> None:
        super().__init__(message, fatal=fatal)
        self.exit_code = exit_code
        self.stderr = stderr


class AcquisitionError(ProvisionError):
    """The plugin tree could not be copied or cloned."""


class DownloadError(ProvisionError):
    """Every download candidate failed."""

    def __init__(self, message: str, *, attempts: int = 0) -> None:
        super().__init__(message)
        self.attempts = attempts


class ExtractionError(ProvisionError):
    """The archive is unreadable or does not hold exactly one version directory."""


class PatchError(ProvisionError):
    """No known version assertion was found in the build configuration."""

    fatal = False

    def __init__(self, message: str, *, suggestion: str = "") -> None:
        super().__init__(message)
        self.suggestion = suggestion


class ManifestError(ProvisionError):
    """The project manifest could not be read or written."""


class DependencyInstallError(ProvisionError):
    """The scripting project's package install failed."""
