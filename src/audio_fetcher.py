"""
Remote Audio Fetcher
Resolves YouTube metadata through yt-dlp and streams the best audio-only track
to a temporary file under a wall-clock deadline and a byte ceiling.
"""

import asyncio
import logging
import os
import re
import secrets
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, AsyncIterator, Dict, Optional

import httpx
import yt_dlp
from yt_dlp.utils import DownloadError

from config.platform import AppConfig
from errors import (
    DownloadFailed,
    DownloadTimeout,
    DownloadTooLarge,
    Forbidden,
    InvalidSourceUrl,
    NotFound,
    SourceUnavailable,
)
from models import FetchResult, VideoInfo

logger = logging.getLogger(__name__)

_YOUTUBE_URL_RE = re.compile(
    r"^(?:https?://)?"
    r"(?:(?:www|m|music)\.)?"
    r"(?:youtube\.com/(?:watch\?(?:[^#]*&)?v=|shorts/|embed/|v/|live/)|youtu\.be/)"
    r"(?P<id>[A-Za-z0-9_-]{11})"
    r"(?:[?&#/].*)?$"
)
_UNSAFE_FILENAME_CHARS = re.compile(r"[^a-zA-Z0-9\s\-_()]")
_AGE_RESTRICTED = re.compile(r"\bage\b|age[- ]restricted", re.IGNORECASE)

LIVE_STATUSES = {"is_live", "is_upcoming", "post_live", "was_live"}
CHUNK_SIZE = 64 * 1024


@dataclass
class ResolvedVideo:
    info: VideoInfo
    stream: Dict[str, Any] = field(default_factory=dict)

    @property
    def stream_url(self) -> str:
        return self.stream["url"]

    @property
    def http_headers(self) -> Dict[str, str]:
        return dict(self.stream.get("http_headers") or {})


def validate_url(url: str) -> str:
    """Return the video id, or raise InvalidSourceUrl."""
    match = _YOUTUBE_URL_RE.match((url or "").strip())
    if not match:
        raise InvalidSourceUrl("Invalid YouTube URL format")
    return match.group("id")


def clean_filename(title: str, video_id: str, max_length: int = 128) -> str:
    cleaned = _UNSAFE_FILENAME_CHARS.sub("", title).strip()

    # Room for " (<videoId>).m4a" plus slack
    max_title_length = max_length - len(video_id) - 20
    if len(cleaned) > max_title_length:
        cleaned = cleaned[:max_title_length].strip()

    return f"{cleaned} ({video_id}).m4a"


def is_live_content(info: Dict[str, Any]) -> bool:
    if info.get("is_live") or info.get("was_live"):
        return True
    live_status = info.get("live_status")
    if live_status in LIVE_STATUSES:
        return True
    # Streams that have not ended report no duration
    return live_status is None and not info.get("duration")


def select_audio_format(info: Dict[str, Any]) -> Dict[str, Any]:
    """Pick the best audio-only stream, preferring m4a/mp4 containers."""
    candidates = [
        fmt for fmt in info.get("formats") or []
        if fmt.get("url")
        and fmt.get("vcodec") == "none"
        and fmt.get("acodec") not in (None, "none")
    ]
    if not candidates:
        raise SourceUnavailable("No audio-only stream available for this video")

    def rank(fmt: Dict[str, Any]):
        preferred = fmt.get("ext") in ("m4a", "mp4")
        bitrate = fmt.get("abr") or fmt.get("tbr") or 0
        return (preferred, bitrate)

    return max(candidates, key=rank)


def remove_temp_file(path: Path) -> None:
    try:
        os.remove(path)
        logger.info(f"Cleaned up temporary file: {path}")
    except OSError as e:
        logger.error(f"Failed to cleanup temporary file {path}: {e}")


@asynccontextmanager
async def temporary_download(tmp_dir: str, video_id: str) -> AsyncIterator[Path]:
    """Yield a unique temp path; whatever was written there is removed on exit."""
    path = Path(tmp_dir) / f"youtube_{int(time.time() * 1000)}_{secrets.token_hex(4)}_{video_id}.m4a"
    try:
        yield path
    finally:
        if path.exists():
            remove_temp_file(path)


class RemoteAudioFetcher:
    def __init__(self, config: AppConfig, client: Optional[httpx.AsyncClient] = None):
        self.max_bytes = config.max_remote_bytes
        self.timeout_seconds = config.download_timeout_seconds
        self.max_filename_length = config.max_filename_length
        self.client = client

    def _extract_info(self, url: str) -> Dict[str, Any]:
        options = {
            "quiet": True,
            "no_warnings": True,
            "noplaylist": True,
            "skip_download": True,
        }
        with yt_dlp.YoutubeDL(options) as ydl:
            info = ydl.extract_info(url, download=False)
            if not info:
                raise DownloadError("No info extracted")
            return ydl.sanitize_info(info)

    async def resolve(self, url: str) -> ResolvedVideo:
        """
        Validate the URL and resolve metadata plus the audio stream to download.

        Raises:
            InvalidSourceUrl: URL is not a YouTube video URL
            SourceUnavailable: Live, private, age-restricted or otherwise unavailable video
        """
        video_id = validate_url(url)

        try:
            info = await asyncio.to_thread(self._extract_info, url)
        except DownloadError as e:
            message = str(e)
            if "Video unavailable" in message:
                raise SourceUnavailable("Video is unavailable or has been removed")
            if "Private video" in message:
                raise SourceUnavailable("Video is private or restricted")
            if _AGE_RESTRICTED.search(message):
                raise SourceUnavailable("Age-restricted content cannot be downloaded")
            raise SourceUnavailable(f"Failed to get video information: {message}")

        if is_live_content(info):
            raise SourceUnavailable("Live streams cannot be downloaded")
        if info.get("availability") in ("private", "needs_auth"):
            raise SourceUnavailable("Video is private and cannot be downloaded")
        if (info.get("age_limit") or 0) >= 18:
            raise SourceUnavailable("Age-restricted content cannot be downloaded")

        video_info = VideoInfo(
            title=info.get("title") or video_id,
            author=info.get("uploader") or info.get("channel") or "",
            duration=int(info.get("duration") or 0),
            video_id=info.get("id") or video_id,
            description=info.get("description"),
        )
        stream = select_audio_format(info)
        logger.info(
            f"Resolved video {video_info.video_id}: {video_info.title!r} "
            f"({video_info.duration}s, format {stream.get('format_id')})"
        )
        return ResolvedVideo(info=video_info, stream=stream)

    def filename_for(self, video: VideoInfo) -> str:
        return clean_filename(video.title, video.video_id, self.max_filename_length)

    async def _stream_to_file(
        self,
        client: httpx.AsyncClient,
        stream_url: str,
        destination: Path,
        headers: Dict[str, str],
    ) -> int:
        downloaded = 0
        async with client.stream("GET", stream_url, headers=headers) as response:
            if response.status_code == 403:
                raise Forbidden("Video access forbidden - may be geo-restricted or require authentication")
            if response.status_code == 404:
                raise NotFound("Video not found or has been removed")
            if not response.is_success:
                raise DownloadFailed(f"Download failed: HTTP {response.status_code}")

            with open(destination, "wb") as out:
                async for chunk in response.aiter_bytes(CHUNK_SIZE):
                    downloaded += len(chunk)
                    if downloaded > self.max_bytes:
                        raise DownloadTooLarge(
                            f"Download aborted: File size exceeds {self.max_bytes // (1024 * 1024)}MB limit"
                        )
                    out.write(chunk)
        return downloaded

    async def download(
        self,
        stream_url: str,
        destination: Path,
        http_headers: Optional[Dict[str, str]] = None,
    ) -> int:
        """
        Stream `stream_url` into `destination`.

        Returns:
            Number of bytes written

        Raises:
            DownloadTimeout: Deadline exceeded
            DownloadTooLarge: Byte ceiling exceeded mid-transfer
            Forbidden / NotFound: Source answered 403 / 404
            DownloadFailed: Any other transport or write failure
        """
        headers = http_headers or {}
        try:
            if self.client is not None:
                return await asyncio.wait_for(
                    self._stream_to_file(self.client, stream_url, destination, headers),
                    timeout=self.timeout_seconds,
                )
            async with httpx.AsyncClient(timeout=30.0, follow_redirects=True) as client:
                return await asyncio.wait_for(
                    self._stream_to_file(client, stream_url, destination, headers),
                    timeout=self.timeout_seconds,
                )
        except asyncio.TimeoutError:
            raise DownloadTimeout(f"Download timeout after {self.timeout_seconds:g} seconds")
        except httpx.HTTPError as e:
            raise DownloadFailed(f"Download failed: {e}")
        except OSError as e:
            raise DownloadFailed(f"File write error: {e}")

    async def fetch(
        self,
        url: str,
        destination: Path,
        resolved: Optional[ResolvedVideo] = None,
    ) -> FetchResult:
        """Resolve (unless already resolved) and download into `destination`."""
        if resolved is None:
            resolved = await self.resolve(url)

        logger.info(f"Starting download of: {resolved.info.title}")
        size = await self.download(resolved.stream_url, destination, resolved.http_headers)
        logger.info(f"Download completed: {size} bytes")

        return FetchResult(
            size_bytes=size,
            title=resolved.info.title,
            author=resolved.info.author,
            video_id=resolved.info.video_id,
            duration_seconds=resolved.info.duration,
        )
