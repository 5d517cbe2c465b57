"""Artifact downloader with ordered mirror fallback.

Candidates are tried strictly one after another. A failing candidate is
never retried; the downloader falls back to the next source instead.

Features:
    - 30 s connect timeout, 5 min total transfer timeout per request
    - One level of 301/302 redirect following
    - Progress sampled every 500 ms with instantaneous throughput
    - Partial files removed on every failure path
"""

from __future__ import annotations

import asyncio
import contextlib
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING
from urllib.parse import urljoin

import aiohttp
import structlog

from .exceptions import DownloadError
from .models import LogLevel, VersionCandidate
from .streaming import LogEvent, ProgressEvent, ProgressKind, emit_safely

if TYPE_CHECKING:
    from collections.abc import Sequence
    from pathlib import Path

    from .streaming import EventListener

logger = structlog.get_logger(__name__)

DEFAULT_CONNECT_TIMEOUT = 30.0
DEFAULT_TRANSFER_TIMEOUT = 300.0
DEFAULT_SAMPLE_INTERVAL = 0.5
DEFAULT_CHUNK_SIZE = 65536  # 64 KB chunks
REDIRECT_STATUSES = (301, 302)
USER_AGENT = "Mozilla/5.0 (compatible; puerts-provisioner)"


@dataclass
class DownloadResult:
    """Result of a successful download.

    Attributes:
        candidate: The candidate that was downloaded.
        path: Local file the body was written to.
        bytes_downloaded: Body size in bytes.
        attempts: Number of candidates tried, including the winner.
        duration_seconds: Time spent on the winning candidate.
    """

    candidate: VersionCandidate
    path: Path
    bytes_downloaded: int
    attempts: int
    duration_seconds: float

    @property
    def download_speed_mbps(self) -> float | None:
        """Calculate download speed in MB/s."""
        if self.duration_seconds <= 0 or self.bytes_downloaded <= 0:
            return None
        return (self.bytes_downloaded / (1024 * 1024)) / self.duration_seconds


def describe_status(status: int) -> str:
    """Human-readable reason for a non-200 status."""
    message = f"HTTP {status}"
    if status == 404:
        message += " - file not found, check the download URL"
    elif status == 403:
        message += " - access denied, authentication may be required"
    elif status >= 500:
        message += " - server error, try again later"
    return message


class ArtifactDownloader:
    """Downloads one artifact from an ordered list of sources.

    Example:
        >>> downloader = ArtifactDownloader(listener=print)
        >>> result = await downloader.download(candidates, Path("/tmp/v8_bin.tgz"))
        >>> result.candidate.version
        '10.6.194'
    """

    def __init__(
        self,
        *,
        connect_timeout: float = DEFAULT_CONNECT_TIMEOUT,
        transfer_timeout: float = DEFAULT_TRANSFER_TIMEOUT,
        sample_interval: float = DEFAULT_SAMPLE_INTERVAL,
        proxy: str | None = None,
        listener: EventListener | None = None,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> None:
        """Initialize the downloader.

        Args:
            connect_timeout: Seconds allowed to establish a connection.
            transfer_timeout: Seconds allowed for a whole request.
            sample_interval: Seconds between progress samples.
            proxy: HTTP proxy URL, or None for a direct connection.
            listener: Receives progress and log events.
            chunk_size: Read size for the response body.
        """
        self._connect_timeout = connect_timeout
        self._transfer_timeout = transfer_timeout
        self._sample_interval = sample_interval
        self._proxy = proxy
        self._listener = listener
        self._chunk_size = chunk_size
        self._log = logger.bind(component="downloader")

    async def download(
        self,
        candidates: Sequence[VersionCandidate],
        target: Path,
    ) -> DownloadResult:
        """Download the first candidate that succeeds.

        Args:
            candidates: Sources in the order they should be tried.
            target: File to write the body to.

        Returns:
            DownloadResult for the winning candidate.

        Raises:
            DownloadError: If every candidate failed. Carries the last
                candidate's error; no file is left at ``target``.
        """
        if not candidates:
            raise DownloadError("No download sources configured")

        target.parent.mkdir(parents=True, exist_ok=True)
        timeout = aiohttp.ClientTimeout(
            total=self._transfer_timeout,
            connect=self._connect_timeout,
        )
        total = len(candidates)
        last_error = ""

        async with aiohttp.ClientSession(
            timeout=timeout,
            headers={"User-Agent": USER_AGENT},
        ) as session:
            for index, candidate in enumerate(candidates, start=1):
                log = self._log.bind(url=candidate.url, version=candidate.version)
                self._report(LogLevel.INFO, f"Trying download source {index}/{total}")
                log.info("download_attempt", attempt=index, total=total)
                start_time = time.monotonic()

                try:
                    size = await self._fetch(session, candidate.url, target)
                except DownloadError as e:
                    last_error = e.message
                except (aiohttp.ClientError, TimeoutError, OSError) as e:
                    last_error = self._describe_exception(e)
                else:
                    duration = time.monotonic() - start_time
                    log.info("download_succeeded", bytes=size, duration_seconds=duration)
                    self._report(LogLevel.SUCCESS, f"Download succeeded (source {index})")
                    return DownloadResult(
                        candidate=candidate,
                        path=target,
                        bytes_downloaded=size,
                        attempts=index,
                        duration_seconds=duration,
                    )

                target.unlink(missing_ok=True)
                log.warning("download_attempt_failed", attempt=index, error=last_error)
                self._report(LogLevel.WARNING, f"Download failed: {last_error}")

        self._log.error("all_sources_failed", attempts=total, last_error=last_error)
        raise DownloadError(last_error, attempts=total)

    async def _fetch(self, session: aiohttp.ClientSession, url: str, target: Path) -> int:
        """Fetch one URL, following a single redirect.

        Returns:
            Number of body bytes written.

        Raises:
            DownloadError: On a non-200 final status.
        """
        async with session.get(url, allow_redirects=False, proxy=self._proxy) as response:
            location = response.headers.get("Location")
            if response.status not in REDIRECT_STATUSES or not location:
                return await self._consume(response, target)
            redirect_url = urljoin(str(response.url), location)

        self._log.debug("following_redirect", url=url, location=redirect_url)
        async with session.get(redirect_url, allow_redirects=False, proxy=self._proxy) as response:
            return await self._consume(response, target)

    async def _consume(self, response: aiohttp.ClientResponse, target: Path) -> int:
        """Stream a 200 response body to ``target`` with sampled progress.

        Samples are taken on a fixed cadence by a ticker task, so a stalled
        transfer keeps reporting its byte count and a falling throughput.
        """
        if response.status != 200:
            raise DownloadError(describe_status(response.status))

        total_size = response.content_length or 0
        bytes_downloaded = 0

        async def sample() -> None:
            last_sample_time = time.monotonic()
            last_sample_bytes = 0
            while True:
                await asyncio.sleep(self._sample_interval)
                now = time.monotonic()
                elapsed = now - last_sample_time
                throughput = (bytes_downloaded - last_sample_bytes) / elapsed if elapsed else 0.0
                self._emit_progress(bytes_downloaded, total_size, throughput)
                last_sample_time = now
                last_sample_bytes = bytes_downloaded

        sampler = asyncio.create_task(sample())
        try:
            with target.open("wb") as f:
                async for chunk in response.content.iter_chunked(self._chunk_size):
                    f.write(chunk)
                    bytes_downloaded += len(chunk)
        finally:
            sampler.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await sampler

        emit_safely(
            self._listener,
            ProgressEvent(
                kind=ProgressKind.DOWNLOAD,
                percent=100.0,
                message="Download complete",
                bytes_downloaded=bytes_downloaded,
                bytes_total=total_size or bytes_downloaded,
            ),
        )
        return bytes_downloaded

    def _emit_progress(self, downloaded: int, total: int, throughput: float) -> None:
        percent = min(round(downloaded / total * 100), 100) if total > 0 else None
        mb = 1024 * 1024
        if total > 0:
            message = f"{downloaded / mb:.2f} / {total / mb:.2f} MB ({throughput / mb:.2f} MB/s)"
        else:
            message = f"{downloaded / mb:.2f} MB ({throughput / mb:.2f} MB/s)"
        emit_safely(
            self._listener,
            ProgressEvent(
                kind=ProgressKind.DOWNLOAD,
                percent=float(percent) if percent is not None else None,
                message=message,
                throughput=throughput,
                bytes_downloaded=downloaded,
                bytes_total=total,
            ),
        )

    @staticmethod
    def _describe_exception(error: BaseException) -> str:
        if isinstance(error, TimeoutError | aiohttp.ServerTimeoutError):
            return "Download timed out, check the network connection"
        if isinstance(error, aiohttp.ClientError):
            return f"Network error: {error}"
        return f"Write error: {error}"

    def _report(self, level: LogLevel, message: str) -> None:
        emit_safely(self._listener, LogEvent(level=level, message=message))
