"""
Video download service: one "get a usable transcript for this video" operation
built from the downloader backend, the caption service and the metadata API.
"""

import logging
from pathlib import Path

from vidscribe.core.captions_parse import CaptionService
from vidscribe.core.cleanup import FileManager, stream_to_file
from vidscribe.core.constants import TranscriptSource, ErrorCode, COMMENTS_LIMIT
from vidscribe.core.error_codes import JobError, NotFoundError
from vidscribe.core.models import TranscriptResult, VideoInfo, VideoMetadata
from vidscribe.core.progress import LoggingProgressTracker
from vidscribe.core.security_utils import sanitize_filename
from vidscribe.core.url_parse import resolve_video_url, extract_video_id

logger = logging.getLogger(__name__)


def _format_duration(seconds: float | None) -> str:
    if not seconds:
        return "Unknown"
    total = int(seconds)
    hours, rem = divmod(total, 3600)
    minutes, secs = divmod(rem, 60)
    if hours:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes}:{secs:02d}"


def build_fallback_transcript(meta: VideoMetadata) -> str:
    """Structured plain-text stand-in for a missing caption track."""
    title = meta.title or meta.video_id
    channel = meta.channel or "Unknown channel"
    comments = "\n\n".join(c for c in meta.comments if c) or "No comments available."

    sections = [
        f"# {title}",
        "## Video Information\n"
        f"- **Channel**: {channel}\n"
        f"- **Published**: {meta.published_at or 'Unknown'}\n"
        f"- **Duration**: {_format_duration(meta.duration_sec)}",
        f"## Description\n{meta.description.strip() or 'No description available.'}",
        f"## Summary\nThis video appears to be about {title}. "
        f"The content is presented by {channel}.",
        f"## Top Comments\n{comments}",
        "Note: This is a structured summary created from video metadata "
        "as direct transcription is not available.",
    ]
    return "\n\n".join(sections)


class VideoDownloadService:
    """Drives a downloader backend into transcripts and audio files."""

    def __init__(self, downloader, caption_service: CaptionService | None = None,
                 metadata_client=None, comments_limit: int = COMMENTS_LIMIT,
                 file_manager: FileManager | None = None):
        self.downloader = downloader
        self.caption_service = caption_service or CaptionService()
        self.metadata_client = metadata_client
        self.comments_limit = comments_limit
        self.file_manager = file_manager or FileManager()

    def acquire_transcript(self, video_url: str) -> TranscriptResult:
        """
        Return a non-empty transcript for the video.

        Captions are preferred; when none exist or they parse to nothing the
        transcript is synthesized from metadata. Raises InvalidInputError for
        an unparseable URL and propagates NotFoundError / UpstreamError from
        the downloader info lookup.
        """
        url = resolve_video_url(video_url)
        video_id = extract_video_id(url)

        info = self.downloader.get_info(url)

        captions = self._fetch_captions(video_id)
        if captions:
            text = self.caption_service.extract_transcription(captions)
            if text.strip():
                logger.info("Transcript for %s from captions (%d chars)", video_id, len(text))
                return TranscriptResult(text=text, source=TranscriptSource.CAPTIONS, video_info=info)
            logger.info("Captions for %s yielded no text", video_id)

        text = build_fallback_transcript(self._fallback_metadata(video_id, info))
        logger.info("Transcript for %s from metadata fallback (%d chars)", video_id, len(text))
        return TranscriptResult(text=text, source=TranscriptSource.METADATA, video_info=info)

    def _fetch_captions(self, video_id: str) -> str | None:
        try:
            return self.downloader.download_captions(video_id)
        except Exception as e:
            logger.warning("Caption fetch failed for %s: %s", video_id, e)
            return None

    def _fallback_metadata(self, video_id: str, info: VideoInfo) -> VideoMetadata:
        """Metadata API when configured, else the downloader's VideoInfo."""
        meta = None
        if self.metadata_client is not None:
            try:
                meta = self.metadata_client.fetch_video(video_id)
            except JobError as e:
                logger.warning("Metadata API lookup failed for %s, using extractor data: %s",
                               video_id, e)

        if meta is None:
            meta = VideoMetadata(
                video_id=video_id,
                title=info.title,
                channel=info.author,
                description=info.description,
                published_at=info.upload_date,
                duration_sec=info.duration_sec,
            )

        if self.metadata_client is not None and self.comments_limit > 0:
            try:
                meta.comments = self.metadata_client.fetch_top_comments(video_id, self.comments_limit)
            except JobError as e:
                logger.warning("Could not fetch comments for %s: %s", video_id, e)
        return meta

    def download_audio_file(self, video_url: str, output_dir: Path,
                            info: VideoInfo | None = None, progress=None) -> Path:
        """
        Stream the best audio-only format to <output_dir>/<videoId>.<ext>.
        No partial file survives a failure.
        """
        url = resolve_video_url(video_url)
        video_id = extract_video_id(url)

        formats = list(info.formats) if info is not None and info.formats else \
            self.downloader.get_formats(url)
        fmt = self.downloader.get_best_audio_format(formats)
        if fmt is None:
            raise NotFoundError(f"No audio-only format available for {video_id}",
                                code=ErrorCode.NO_AUDIO_FORMAT)

        self.file_manager.ensure_directory(output_dir)
        ext = sanitize_filename(fmt.container) or "bin"
        path = Path(output_dir) / f"{sanitize_filename(video_id)}.{ext}"
        self.file_manager.cleanup(path)

        progress = progress or LoggingProgressTracker(label=f"audio {video_id}")
        chunks = self.downloader.download_audio(url, fmt)
        written = stream_to_file(chunks, path, progress, total_bytes=fmt.filesize,
                                 file_manager=self.file_manager)
        logger.info("Downloaded audio for %s: %s (%d bytes)", video_id, path, written)
        return path
