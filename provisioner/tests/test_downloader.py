"""Tests for ArtifactDownloader.

Requests go to a local aiohttp test server so that fallback order,
redirects and failures are observable.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer as HttpServer

from provisioner.downloader import (
    DEFAULT_CONNECT_TIMEOUT,
    DEFAULT_SAMPLE_INTERVAL,
    DEFAULT_TRANSFER_TIMEOUT,
    ArtifactDownloader,
    describe_status,
)
from provisioner.exceptions import DownloadError
from provisioner.models import LogLevel, VersionCandidate
from provisioner.streaming import EventRecorder, ProgressKind

if TYPE_CHECKING:
    from pathlib import Path

PAYLOAD = bytes(range(256)) * 64  # 16 KB


def make_app(hits: list[str]) -> web.Application:
    """Application with one route per server behaviour."""

    async def ok(request: web.Request) -> web.Response:
        hits.append(request.path)
        return web.Response(body=PAYLOAD)

    async def alternate(request: web.Request) -> web.Response:
        hits.append(request.path)
        return web.Response(body=b"alternate body")

    async def missing(request: web.Request) -> web.Response:
        hits.append(request.path)
        return web.Response(status=404)

    async def error(request: web.Request) -> web.Response:
        hits.append(request.path)
        return web.Response(status=500)

    async def redirect(request: web.Request) -> web.Response:
        hits.append(request.path)
        raise web.HTTPFound("/ok")

    async def double_redirect(request: web.Request) -> web.Response:
        hits.append(request.path)
        raise web.HTTPMovedPermanently("/redirect")

    async def stalled(request: web.Request) -> web.StreamResponse:
        hits.append(request.path)
        response = web.StreamResponse()
        await response.prepare(request)
        await response.write(b"x" * 1024)
        await asyncio.sleep(1.0)
        await response.write(b"y" * 1024)
        return response

    app = web.Application()
    app.router.add_get("/ok", ok)
    app.router.add_get("/alternate", alternate)
    app.router.add_get("/missing", missing)
    app.router.add_get("/error", error)
    app.router.add_get("/redirect", redirect)
    app.router.add_get("/double", double_redirect)
    app.router.add_get("/stalled", stalled)
    return app


def candidates(server: HttpServer, *paths: str) -> list[VersionCandidate]:
    return [
        VersionCandidate(version=f"1.0.{i}", url=str(server.make_url(path)))
        for i, path in enumerate(paths)
    ]


class TestDownloaderInit:
    """Tests for downloader defaults."""

    def test_default_timeouts(self) -> None:
        """Connect and transfer timeouts default to 30 s and 5 min."""
        downloader = ArtifactDownloader()

        assert downloader._connect_timeout == DEFAULT_CONNECT_TIMEOUT == 30.0
        assert downloader._transfer_timeout == DEFAULT_TRANSFER_TIMEOUT == 300.0
        assert downloader._sample_interval == DEFAULT_SAMPLE_INTERVAL == 0.5

    def test_describe_status(self) -> None:
        """Common statuses get a hint."""
        assert describe_status(404).startswith("HTTP 404")
        assert "server error" in describe_status(503)
        assert describe_status(418) == "HTTP 418"


class TestDownload:
    """Tests for ArtifactDownloader.download()."""

    @pytest.mark.asyncio
    async def test_first_candidate_succeeds(self, tmp_path: Path) -> None:
        """One attempt, body written in full."""
        hits: list[str] = []
        target = tmp_path / "v8_bin.tgz"

        async with HttpServer(make_app(hits)) as server:
            result = await ArtifactDownloader().download(
                candidates(server, "/ok", "/alternate"), target
            )

        assert hits == ["/ok"]
        assert result.attempts == 1
        assert result.bytes_downloaded == len(PAYLOAD)
        assert target.read_bytes() == PAYLOAD

    @pytest.mark.asyncio
    async def test_fallback_in_order(self, tmp_path: Path) -> None:
        """Failing candidates are tried once each, in list order."""
        hits: list[str] = []
        target = tmp_path / "v8_bin.tgz"
        recorder = EventRecorder()

        async with HttpServer(make_app(hits)) as server:
            sources = candidates(server, "/missing", "/error", "/alternate", "/ok")
            result = await ArtifactDownloader(listener=recorder).download(sources, target)

        assert hits == ["/missing", "/error", "/alternate"]
        assert result.attempts == 3
        assert result.candidate == sources[2]
        assert target.read_bytes() == b"alternate body"
        assert len(recorder.messages(LogLevel.WARNING)) == 2

    @pytest.mark.asyncio
    async def test_all_candidates_fail(self, tmp_path: Path) -> None:
        """The last candidate's error surfaces and no file remains."""
        hits: list[str] = []
        target = tmp_path / "v8_bin.tgz"

        async with HttpServer(make_app(hits)) as server:
            with pytest.raises(DownloadError) as exc_info:
                await ArtifactDownloader().download(
                    candidates(server, "/missing", "/error"), target
                )

        assert hits == ["/missing", "/error"]
        assert exc_info.value.message == describe_status(500)
        assert exc_info.value.attempts == 2
        assert not target.exists()

    @pytest.mark.asyncio
    async def test_no_candidates(self, tmp_path: Path) -> None:
        """An empty list fails immediately."""
        with pytest.raises(DownloadError):
            await ArtifactDownloader().download([], tmp_path / "v8_bin.tgz")

    @pytest.mark.asyncio
    async def test_single_redirect_followed(self, tmp_path: Path) -> None:
        """A 302 is followed once to its Location."""
        hits: list[str] = []
        target = tmp_path / "v8_bin.tgz"

        async with HttpServer(make_app(hits)) as server:
            result = await ArtifactDownloader().download(candidates(server, "/redirect"), target)

        assert hits == ["/redirect", "/ok"]
        assert result.attempts == 1
        assert target.read_bytes() == PAYLOAD

    @pytest.mark.asyncio
    async def test_second_redirect_not_followed(self, tmp_path: Path) -> None:
        """Only one level of redirect is followed."""
        hits: list[str] = []
        target = tmp_path / "v8_bin.tgz"

        async with HttpServer(make_app(hits)) as server:
            with pytest.raises(DownloadError) as exc_info:
                await ArtifactDownloader().download(candidates(server, "/double"), target)

        assert hits == ["/double", "/redirect"]
        assert exc_info.value.message == "HTTP 302"
        assert not target.exists()

    @pytest.mark.asyncio
    async def test_timeout_removes_partial_file(self, tmp_path: Path) -> None:
        """A transfer exceeding the total timeout fails over and cleans up."""
        hits: list[str] = []
        target = tmp_path / "v8_bin.tgz"

        async with HttpServer(make_app(hits)) as server:
            downloader = ArtifactDownloader(transfer_timeout=0.3)
            with pytest.raises(DownloadError) as exc_info:
                await downloader.download(candidates(server, "/stalled"), target)

        assert "timed out" in exc_info.value.message
        assert not target.exists()

    @pytest.mark.asyncio
    async def test_progress_events(self, tmp_path: Path) -> None:
        """Samples carry byte counts and the last event reports 100%."""
        hits: list[str] = []
        recorder = EventRecorder()

        async with HttpServer(make_app(hits)) as server:
            downloader = ArtifactDownloader(sample_interval=0.05, chunk_size=512, listener=recorder)
            await downloader.download(candidates(server, "/stalled"), tmp_path / "v8_bin.tgz")

        events = recorder.progress(ProgressKind.DOWNLOAD)
        assert events[-1].percent == 100.0
        assert events[-1].bytes_downloaded == 2048
        downloaded = [e.bytes_downloaded for e in events]
        assert downloaded == sorted(downloaded)
        assert all(e.throughput is not None for e in events[:-1])

    @pytest.mark.asyncio
    async def test_progress_sampled_while_stalled(self, tmp_path: Path) -> None:
        """A transfer that stops receiving data keeps emitting samples."""
        hits: list[str] = []
        recorder = EventRecorder()

        async with HttpServer(make_app(hits)) as server:
            downloader = ArtifactDownloader(sample_interval=0.1, listener=recorder)
            await downloader.download(candidates(server, "/stalled"), tmp_path / "v8_bin.tgz")

        samples = recorder.progress(ProgressKind.DOWNLOAD)[:-1]
        stalled = [e for e in samples if e.bytes_downloaded == 1024]
        assert len(stalled) >= 3
        assert stalled[-1].throughput == 0.0
        assert stalled[-1].percent is None
