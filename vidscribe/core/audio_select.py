"""
Audio format selection policy and yt-dlp format mapping.
"""

import logging

from vidscribe.core.models import VideoFormat

logger = logging.getLogger(__name__)

_NO_CODEC = ('none', None, '')


def _to_float(value) -> float | None:
    if value is None:
        return None
    try:
        return float(value)
    except (ValueError, TypeError):
        return None


def format_from_ytdlp(fmt: dict) -> VideoFormat:
    """
    Map one yt-dlp format dict to a VideoFormat.

    audio_only = has an audio codec and no video codec; video_only is the
    converse, so the two can never both be true.
    """
    acodec = fmt.get('acodec')
    vcodec = fmt.get('vcodec')
    has_audio = acodec not in _NO_CODEC
    has_video = vcodec not in _NO_CODEC

    quality = fmt.get('format_note') or ''
    if not quality and fmt.get('height'):
        quality = f"{fmt['height']}p"

    filesize = fmt.get('filesize') or fmt.get('filesize_approx')

    return VideoFormat(
        format_id=str(fmt.get('format_id', '')),
        container=fmt.get('ext') or 'unknown',
        quality=quality or 'unknown',
        audio_only=has_audio and not has_video,
        video_only=has_video and not has_audio,
        audio_codec=acodec if has_audio else None,
        video_codec=vcodec if has_video else None,
        audio_bitrate=_to_float(fmt.get('abr')),
        video_bitrate=_to_float(fmt.get('vbr')),
        filesize=int(filesize) if filesize else None,
        url=fmt.get('url'),
        http_headers=dict(fmt.get('http_headers') or {}),
    )


def formats_from_ytdlp(info: dict) -> list[VideoFormat]:
    """Map the 'formats' list of a yt-dlp info dict; missing list → []."""
    return [format_from_ytdlp(f) for f in (info.get('formats') or []) if f.get('format_id')]


def get_best_audio_format(formats: list[VideoFormat]) -> VideoFormat | None:
    """
    Select the audio-only format with the highest audio bitrate.

    Policy:
    1. Filter to audio_only formats; none → None
    2. Missing bitrate counts as 0
    3. Ties keep original list order (sorted() is stable)
    """
    audio = [f for f in formats if f.audio_only]
    if not audio:
        logger.info("No audio-only formats among %d formats", len(formats))
        return None

    ranked = sorted(audio, key=lambda f: f.audio_bitrate or 0, reverse=True)
    # reverse=True keeps stability for equal keys, so ties stay in list order
    best = ranked[0]
    logger.info("Selected audio format: format_id=%s abr=%s container=%s",
                best.format_id, best.audio_bitrate, best.container)
    return best
