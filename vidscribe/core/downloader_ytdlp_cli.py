"""
Downloader backend driving the yt-dlp command-line binary.
"""

import json
import logging
import tempfile
from pathlib import Path
from typing import Iterator

from vidscribe.core.cleanup import FileManager
from vidscribe.core.constants import (
    DownloaderBackend, DEFAULT_SUBTITLE_LANGUAGE, YTDLP_INFO_TIMEOUT, YTDLP_CAPTIONS_TIMEOUT,
)
from vidscribe.core.downloader_base import (
    VideoDownloader, classify_ytdlp_error, video_info_from_ytdlp, pick_caption_language,
)
from vidscribe.core.error_codes import UpstreamError
from vidscribe.core.models import VideoFormat, VideoInfo
from vidscribe.core.security_utils import run_subprocess_capture, StreamedProcess, redact
from vidscribe.core.url_parse import watch_url

logger = logging.getLogger(__name__)


class YtDlpCliDownloader(VideoDownloader):
    """Runs ``yt-dlp`` as a subprocess for metadata, audio and captions."""

    name = DownloaderBackend.YTDLP_CLI

    def __init__(self, binary: str = "yt-dlp", proxy_url: str | None = None,
                 subtitle_language: str = DEFAULT_SUBTITLE_LANGUAGE,
                 temp_dir: Path | None = None, file_manager: FileManager | None = None):
        self.binary = binary
        self.proxy_url = proxy_url
        self.subtitle_language = subtitle_language or DEFAULT_SUBTITLE_LANGUAGE
        self.temp_dir = Path(temp_dir) if temp_dir else None
        self.file_manager = file_manager or FileManager()

    def _base_args(self) -> list[str]:
        args = [self.binary, "--no-playlist", "--no-warnings"]
        if self.proxy_url:
            args.extend(["--proxy", self.proxy_url])
        return args

    def _error_from_stderr(self, stderr: str):
        return classify_ytdlp_error(redact(stderr or "", self.proxy_url))

    def get_info(self, video_url: str) -> VideoInfo:
        args = self._base_args() + ["--dump-json", "--skip-download", video_url]

        try:
            result = run_subprocess_capture(args, timeout=YTDLP_INFO_TIMEOUT)
        except Exception as e:
            raise UpstreamError(f"yt-dlp metadata fetch failed: {e}") from e

        if result.returncode != 0:
            raise self._error_from_stderr(result.stderr)

        try:
            data = json.loads(result.stdout)
        except json.JSONDecodeError as e:
            raise UpstreamError(f"Failed to parse yt-dlp JSON: {e}") from e

        info = video_info_from_ytdlp(data)
        logger.info("Fetched metadata for %s: %r (%d formats)", info.id, info.title, len(info.formats))
        return info

    def download_audio(self, video_url: str, fmt: VideoFormat) -> Iterator[bytes]:
        args = self._base_args() + ["--quiet", "-f", fmt.format_id, "-o", "-", video_url]
        return self._stream(StreamedProcess(args))

    def _stream(self, proc: StreamedProcess) -> Iterator[bytes]:
        try:
            yield from proc
        finally:
            proc.close()
        if proc.returncode != 0:
            error = self._error_from_stderr(proc.stderr)
            if not isinstance(error, UpstreamError):
                raise error
            raise UpstreamError(f"yt-dlp audio stream exited rc={proc.returncode}: "
                                f"{redact(proc.stderr, self.proxy_url)[:300]}")

    def download_captions(self, video_id: str) -> str | None:
        if self.temp_dir:
            self.file_manager.ensure_directory(self.temp_dir)
        work_dir = Path(tempfile.mkdtemp(prefix="captions-", dir=self.temp_dir))
        try:
            return self._fetch_captions(video_id, work_dir)
        finally:
            self.file_manager.cleanup_directory(work_dir)

    def _fetch_captions(self, video_id: str, work_dir: Path) -> str | None:
        langs = [self.subtitle_language, f"{self.subtitle_language}-.*"]
        if self.subtitle_language != "en":
            langs.extend(["en", "en-.*"])

        args = self._base_args() + [
            "--skip-download",
            "--write-subs",
            "--write-auto-subs",
            "--sub-langs", ",".join(langs),
            "--sub-format", "vtt",
            "-o", str(work_dir / "%(id)s.%(ext)s"),
            watch_url(video_id),
        ]

        try:
            result = run_subprocess_capture(args, timeout=YTDLP_CAPTIONS_TIMEOUT)
        except Exception as e:
            logger.warning("Captions fetch error for %s: %s", video_id, e)
            return None

        if result.returncode != 0:
            logger.warning("yt-dlp captions exited rc=%s for %s", result.returncode, video_id)

        # Files are written as <id>.<lang>.vtt
        by_lang = {}
        for path in sorted(work_dir.glob("*.vtt")):
            parts = path.name.split(".")
            if len(parts) >= 3 and path.stat().st_size > 0:
                by_lang[parts[-2]] = path

        lang = pick_caption_language(by_lang, self.subtitle_language)
        if lang is None:
            logger.info("No captions available for %s", video_id)
            return None

        logger.info("Using %s captions for %s", lang, video_id)
        return by_lang[lang].read_text(encoding="utf-8", errors="replace")
