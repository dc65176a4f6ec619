"""
Video downloader capability interface shared by every backend.

Backends are chosen once from configuration (see downloaders.create_downloader)
and then used through this interface only.
"""

import abc
import logging
from typing import Iterator

from vidscribe.core.audio_select import formats_from_ytdlp, get_best_audio_format
from vidscribe.core.constants import ErrorCode
from vidscribe.core.error_codes import NotFoundError, UpstreamError
from vidscribe.core.models import VideoFormat, VideoInfo

logger = logging.getLogger(__name__)

_UNAVAILABLE_MARKERS = (
    "video unavailable", "is not available", "private video", "has been removed",
    "does not exist", "account associated with this video has been terminated",
)
_GEO_MARKERS = ("geo restriction", "geo-restricted", "in your country",
                "from your location")
_RESTRICTED_MARKERS = ("confirm your age", "age-restricted", "age restricted",
                       "inappropriate for some users", "members-only", "join this channel")


def classify_ytdlp_error(message: str):
    """
    Map a yt-dlp error message (CLI stderr or DownloadError text) to a typed error.
    Unrecognised failures are treated as transient upstream errors.
    """
    text = (message or "").strip()
    lower = text.lower()
    excerpt = text[:300]
    if any(m in lower for m in _GEO_MARKERS):
        return NotFoundError(f"Geo-blocked: {excerpt}", code=ErrorCode.GEO_BLOCKED)
    if any(m in lower for m in _RESTRICTED_MARKERS):
        return NotFoundError(f"Restricted content (login/age required): {excerpt}",
                             code=ErrorCode.RESTRICTED_CONTENT)
    if any(m in lower for m in _UNAVAILABLE_MARKERS):
        return NotFoundError(f"Video unavailable: {excerpt}")
    return UpstreamError(f"yt-dlp failed: {excerpt}")


def _format_upload_date(value) -> str | None:
    """yt-dlp YYYYMMDD → YYYY-MM-DD."""
    if not value:
        return None
    value = str(value)
    if len(value) == 8 and value.isdigit():
        return f"{value[:4]}-{value[4:6]}-{value[6:]}"
    return value


def video_info_from_ytdlp(info: dict) -> VideoInfo:
    duration = info.get('duration')
    return VideoInfo(
        id=info.get('id') or '',
        title=info.get('title') or '',
        author=info.get('channel') or info.get('uploader') or '',
        description=info.get('description') or '',
        upload_date=_format_upload_date(info.get('upload_date')),
        duration_sec=float(duration) if duration else None,
        formats=tuple(formats_from_ytdlp(info)),
    )


def pick_caption_language(available, preferred: str) -> str | None:
    """
    Choose a caption language from the available codes.
    Exact preferred code, then a regional variant of it, then English.
    """
    available = list(available)
    for wanted in dict.fromkeys((preferred, 'en')):
        if wanted in available:
            return wanted
        for lang in available:
            if lang.startswith(f"{wanted}-") or lang.startswith(f"{wanted}."):
                return lang
    return None


class VideoDownloader(abc.ABC):
    """Uniform capability set over interchangeable download backends."""

    name = "base"

    @abc.abstractmethod
    def get_info(self, video_url: str) -> VideoInfo:
        """Fetch metadata; NotFoundError / UpstreamError on failure."""

    def get_formats(self, video_url: str) -> list[VideoFormat]:
        return list(self.get_info(video_url).formats)

    def get_best_audio_format(self, formats: list[VideoFormat]) -> VideoFormat | None:
        return get_best_audio_format(formats)

    @abc.abstractmethod
    def download_audio(self, video_url: str, fmt: VideoFormat) -> Iterator[bytes]:
        """Return a lazily consumed iterator of audio bytes."""

    @abc.abstractmethod
    def download_captions(self, video_id: str) -> str | None:
        """Best-effort caption content; None when no track exists."""
