"""Presence probes for developer tools.

Probe results only decide whether a warning is shown; a missing tool
never blocks the pipeline.
"""

from __future__ import annotations

from dataclasses import dataclass

import structlog

from .commands import CommandRunner
from .exceptions import CommandError, ProbeError
from .models import ToolStatus

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class ToolSpec:
    """How to probe one tool."""

    name: str
    command: tuple[str, ...]
    version_prefix: str = ""
    install_url: str = ""

    def parse_version(self, output: str) -> str:
        """Strip the tool's banner from its version output."""
        line = output.strip().splitlines()[0] if output.strip() else ""
        if self.version_prefix and line.startswith(self.version_prefix):
            line = line[len(self.version_prefix) :]
        return line.strip()


DEFAULT_TOOLS: tuple[ToolSpec, ...] = (
    ToolSpec(
        name="Node.js",
        command=("node", "--version"),
        version_prefix="v",
        install_url="https://nodejs.org/",
    ),
    ToolSpec(
        name="Git",
        command=("git", "--version"),
        version_prefix="git version ",
        install_url="https://git-scm.com/",
    ),
)


class ToolProbe:
    """Runs ``--version`` style probes."""

    def __init__(
        self,
        runner: CommandRunner | None = None,
        tools: tuple[ToolSpec, ...] = DEFAULT_TOOLS,
    ) -> None:
        self._runner = runner or CommandRunner()
        self._tools = tools
        self._log = logger.bind(component="tool_probe")

    async def probe(self, spec: ToolSpec) -> ToolStatus:
        """Probe a single tool."""
        try:
            result = await self._runner.run(spec.command)
        except CommandError:
            result = None

        if result is None or not result.success:
            self._log.info("tool_missing", tool=spec.name)
            return ToolStatus(name=spec.name, installed=False, install_url=spec.install_url)

        version = spec.parse_version(result.stdout or result.stderr)
        self._log.info("tool_found", tool=spec.name, version=version)
        return ToolStatus(
            name=spec.name,
            installed=True,
            version=version or None,
            install_url=spec.install_url,
        )

    async def probe_all(self) -> list[ToolStatus]:
        """Probe every configured tool, one after another."""
        return [await self.probe(spec) for spec in self._tools]


def missing_tools_error(statuses: list[ToolStatus]) -> ProbeError | None:
    """Build the warning for missing tools, or None if all are present."""
    missing = [s for s in statuses if not s.installed]
    if not missing:
        return None
    hints = "; ".join(
        f"{s.name} ({s.install_url})" if s.install_url else s.name for s in missing
    )
    return ProbeError(f"Missing tools, install manually: {hints}")
