"""
YouTube URL parsing and validation.
"""

import re
from urllib.parse import urlparse, parse_qs

from vidscribe.core.constants import (
    YOUTUBE_URL_PATTERNS, YOUTUBE_WATCH_URL, VIDEO_ID_RE, ErrorCode,
)
from vidscribe.core.error_codes import InvalidInputError


def extract_video_id(url: str) -> str | None:
    """
    Extract the 11-character video_id from a YouTube URL.
    Returns None if the URL is not a valid YouTube URL.
    """
    if not url:
        return None
    url = url.strip()
    if not url:
        return None

    # Try regex patterns
    for pattern in YOUTUBE_URL_PATTERNS:
        m = re.search(pattern, url)
        if m:
            return m.group(1)

    # Fallback: parse query string for 'v' parameter
    parsed = urlparse(url)
    if 'youtube.com' in parsed.netloc or 'youtu.be' in parsed.netloc:
        qs = parse_qs(parsed.query)
        v = qs.get('v', [None])[0]
        if v and re.match(VIDEO_ID_RE, v):
            return v

    return None


def validate_youtube_url(url: str) -> str:
    """
    Validate a YouTube URL and return the video_id.
    Raises InvalidInputError if invalid.
    """
    video_id = extract_video_id(url)
    if not video_id:
        raise InvalidInputError(f"Not a valid YouTube URL: {url}", code=ErrorCode.INVALID_URL)
    return video_id


def is_youtube_url(url: str) -> bool:
    """Quick check if a string looks like a YouTube URL."""
    return extract_video_id(url) is not None


def is_video_id(value: str) -> bool:
    return bool(value) and re.match(VIDEO_ID_RE, value) is not None


def watch_url(video_id: str) -> str:
    return YOUTUBE_WATCH_URL.format(video_id=video_id)


def resolve_video_url(value: str) -> str:
    """Accept either a bare video id or a URL; return a canonical watch URL."""
    value = (value or '').strip()
    if is_video_id(value):
        return watch_url(value)
    return watch_url(validate_youtube_url(value))
