"""Shared test fixtures for provisioner tests."""

from __future__ import annotations

import io
import json
import tarfile
import zipfile
from typing import TYPE_CHECKING, Any

import pytest

from provisioner.commands import CommandResult

if TYPE_CHECKING:
    from collections.abc import Callable, Generator, Sequence
    from pathlib import Path

    from provisioner.exceptions import CommandError


BUILD_CONFIG_V10 = """\
using UnrealBuildTool;
using System.IO;

public class JsEnv : ModuleRules
{
    private bool UseNewV8 = true;

    private SupportedV8Versions UseV8Version =
#if UE_4_25_OR_LATER
        SupportedV8Versions.V10_6_194;
#else
        SupportedV8Versions.VDeprecated;
#endif

    public JsEnv(ReadOnlyTargetRules Target) : base(Target)
    {
        PCHUsage = PCHUsageMode.UseExplicitOrSharedPCHs;
        PublicDefinitions.Add("USING_IN_UNREAL_ENGINE");
    }
}
"""

BUILD_CONFIG_NO_ASSERTION = """\
using UnrealBuildTool;

public class JsEnv : ModuleRules
{
    public JsEnv(ReadOnlyTargetRules Target) : base(Target)
    {
        PCHUsage = PCHUsageMode.UseExplicitOrSharedPCHs;
    }
}
"""


class FakeRunner:
    """CommandRunner stand-in that records calls and replays scripted results.

    Responses are matched on a command prefix; the most recent registration
    wins. Unmatched commands succeed with empty output.
    """

    def __init__(self) -> None:
        self.calls: list[tuple[tuple[str, ...], Path | None]] = []
        self._responses: list[tuple[tuple[str, ...], dict[str, Any]]] = []

    def on(
        self,
        *prefix: str,
        exit_code: int = 0,
        stdout: str = "",
        stderr: str = "",
        lines: Sequence[str] = (),
        action: Callable[[tuple[str, ...], Path | None], None] | None = None,
        error: CommandError | None = None,
    ) -> None:
        """Script the response for commands starting with ``prefix``."""
        self._responses.append(
            (
                prefix,
                {
                    "exit_code": exit_code,
                    "stdout": stdout,
                    "stderr": stderr,
                    "lines": tuple(lines),
                    "action": action,
                    "error": error,
                },
            )
        )

    @property
    def commands(self) -> list[tuple[str, ...]]:
        """Commands in call order."""
        return [args for args, _ in self.calls]

    def _respond(
        self,
        cmd: Sequence[str],
        cwd: Path | None,
        on_line: Callable[[str], None] | None = None,
    ) -> CommandResult:
        args = tuple(str(c) for c in cmd)
        self.calls.append((args, cwd))
        for prefix, spec in reversed(self._responses):
            if args[: len(prefix)] != prefix:
                continue
            if spec["error"] is not None:
                raise spec["error"]
            if spec["action"] is not None:
                spec["action"](args, cwd)
            if on_line is not None:
                for line in spec["lines"]:
                    if line.strip():
                        on_line(line.strip())
            return CommandResult(
                args=args,
                exit_code=spec["exit_code"],
                stdout=spec["stdout"],
                stderr=spec["stderr"],
            )
        return CommandResult(args=args, exit_code=0)

    async def run(self, cmd: Sequence[str], *, cwd: Path | None = None) -> CommandResult:
        return self._respond(cmd, cwd)

    async def stream(
        self,
        cmd: Sequence[str],
        on_stderr_line: Callable[[str], None],
        *,
        cwd: Path | None = None,
    ) -> CommandResult:
        return self._respond(cmd, cwd, on_stderr_line)


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


@pytest.fixture
def fake_runner() -> FakeRunner:
    """A fresh scripted command runner."""
    return FakeRunner()


@pytest.fixture
def plugin_source(tmp_path: Path) -> Path:
    """A local plugin tree whose build file expects V8 10.6.194."""
    root = tmp_path / "puerts_src"
    build_dir = root / "Source" / "JsEnv"
    build_dir.mkdir(parents=True)
    (build_dir / "JsEnv.Build.cs").write_text(BUILD_CONFIG_V10, encoding="utf-8")
    (root / "Puerts.uplugin").write_text('{"FriendlyName": "Puerts"}\n', encoding="utf-8")
    return root


@pytest.fixture
def project(tmp_path: Path) -> Path:
    """An Unreal project manifest with no plugins enabled."""
    project_dir = tmp_path / "Game"
    project_dir.mkdir()
    manifest = project_dir / "Game.uproject"
    manifest.write_text(
        json.dumps({"FileVersion": 3, "EngineAssociation": "5.3", "Plugins": []}, indent=2),
        encoding="utf-8",
    )
    return manifest


def _archive_members(names: Sequence[str]) -> dict[str, bytes]:
    members: dict[str, bytes] = {}
    for name in names:
        members[f"{name}/Lib/Win64/wee8.lib"] = b"lib-" + name.encode()
        members[f"{name}/Inc/v8.h"] = b"// header\n"
    return members


@pytest.fixture
def make_tgz() -> Callable[..., bytes]:
    """Build an in-memory .tgz with one subtree per top-level name."""

    def build(*names: str) -> bytes:
        buffer = io.BytesIO()
        with tarfile.open(fileobj=buffer, mode="w:gz") as tar:
            for path, data in _archive_members(names).items():
                info = tarfile.TarInfo(path)
                info.size = len(data)
                tar.addfile(info, io.BytesIO(data))
        return buffer.getvalue()

    return build


@pytest.fixture
def make_zip() -> Callable[..., bytes]:
    """Build an in-memory .zip with one subtree per top-level name."""

    def build(*names: str) -> bytes:
        buffer = io.BytesIO()
        with zipfile.ZipFile(buffer, "w") as zf:
            for path, data in _archive_members(names).items():
                zf.writestr(path, data)
        return buffer.getvalue()

    return build


@pytest.fixture
def build_config_v10() -> str:
    """Build file text asserting V8 10.6.194 in the UE 4.25+ block."""
    return BUILD_CONFIG_V10


@pytest.fixture
def build_config_plain() -> str:
    """Build file text without any V8 version assertion."""
    return BUILD_CONFIG_NO_ASSERTION
