"""
Downloader backend using the embedded yt_dlp library for extraction and
requests for streaming the selected media URL.
"""

import logging
from typing import Iterator

import requests
import yt_dlp
from yt_dlp.utils import DownloadError

from vidscribe.core.constants import (
    DownloaderBackend, DEFAULT_SUBTITLE_LANGUAGE, HTTP_TIMEOUT, STREAM_CHUNK_SIZE,
)
from vidscribe.core.downloader_base import (
    VideoDownloader, classify_ytdlp_error, video_info_from_ytdlp, pick_caption_language,
)
from vidscribe.core.error_codes import UpstreamError
from vidscribe.core.models import VideoFormat, VideoInfo
from vidscribe.core.url_parse import watch_url

logger = logging.getLogger(__name__)


class YtDlpLibraryDownloader(VideoDownloader):
    """In-process yt-dlp extraction; media bytes come straight from the CDN URL."""

    name = DownloaderBackend.YTDLP_LIB

    def __init__(self, proxy_url: str | None = None,
                 subtitle_language: str = DEFAULT_SUBTITLE_LANGUAGE,
                 session: requests.Session | None = None,
                 ydl_factory=None):
        self.proxy_url = proxy_url
        self.subtitle_language = subtitle_language or DEFAULT_SUBTITLE_LANGUAGE
        self.session = session or requests.Session()
        if proxy_url:
            self.session.proxies.update({'http': proxy_url, 'https': proxy_url})
        self._ydl_factory = ydl_factory or yt_dlp.YoutubeDL

    def _ydl_opts(self) -> dict:
        opts = {
            'quiet': True,
            'no_warnings': True,
            'skip_download': True,
            'noplaylist': True,
        }
        if self.proxy_url:
            opts['proxy'] = self.proxy_url
        return opts

    def _extract(self, video_url: str) -> dict:
        try:
            with self._ydl_factory(self._ydl_opts()) as ydl:
                info = ydl.extract_info(video_url, download=False)
        except DownloadError as e:
            raise classify_ytdlp_error(str(e)) from e
        except Exception as e:
            raise UpstreamError(f"yt-dlp extraction failed: {e}") from e

        if not info:
            raise UpstreamError(f"yt-dlp returned no information for {video_url}")
        return info

    def get_info(self, video_url: str) -> VideoInfo:
        info = video_info_from_ytdlp(self._extract(video_url))
        logger.info("Fetched metadata for %s: %r (%d formats)", info.id, info.title, len(info.formats))
        return info

    def download_audio(self, video_url: str, fmt: VideoFormat) -> Iterator[bytes]:
        if not fmt.url:
            # Stream URLs expire; re-resolve when the format came from a cached listing
            fresh = {f.format_id: f for f in self.get_formats(video_url)}
            if fmt.format_id not in fresh or not fresh[fmt.format_id].url:
                raise UpstreamError(f"No stream URL for format {fmt.format_id}")
            fmt = fresh[fmt.format_id]
        return self._stream(fmt)

    def _stream(self, fmt: VideoFormat) -> Iterator[bytes]:
        try:
            resp = self.session.get(fmt.url, headers=fmt.http_headers or None,
                                    stream=True, timeout=HTTP_TIMEOUT)
            resp.raise_for_status()
        except requests.RequestException as e:
            raise UpstreamError(f"Audio request failed for format {fmt.format_id}: {e}") from e

        try:
            for chunk in resp.iter_content(chunk_size=STREAM_CHUNK_SIZE):
                if chunk:
                    yield chunk
        except requests.RequestException as e:
            raise UpstreamError(f"Audio stream interrupted: {e}") from e
        finally:
            resp.close()

    def download_captions(self, video_id: str) -> str | None:
        try:
            info = self._extract(watch_url(video_id))
        except Exception as e:
            logger.warning("Captions lookup failed for %s: %s", video_id, e)
            return None

        # Manual tracks win over automatic ones
        for kind in ('subtitles', 'automatic_captions'):
            tracks = info.get(kind) or {}
            lang = pick_caption_language(tracks, self.subtitle_language)
            if lang is None:
                continue
            url = next((t.get('url') for t in tracks[lang] if t.get('ext') == 'vtt'), None)
            if not url:
                continue
            try:
                resp = self.session.get(url, timeout=HTTP_TIMEOUT)
                resp.raise_for_status()
            except requests.RequestException as e:
                logger.warning("Caption download failed for %s (%s): %s", video_id, lang, e)
                continue
            logger.info("Using %s %s for %s", lang, kind, video_id)
            return resp.text

        logger.info("No captions available for %s", video_id)
        return None
