"""
YouTube Data API v3 client for the metadata-based transcript fallback.
"""

import re
import logging

import requests

from vidscribe.core.constants import YOUTUBE_API_BASE, COMMENTS_LIMIT, HTTP_TIMEOUT
from vidscribe.core.error_codes import NotFoundError, UpstreamError
from vidscribe.core.models import VideoMetadata

logger = logging.getLogger(__name__)

_DURATION_RE = re.compile(
    r'^P(?:(?P<days>\d+)D)?(?:T(?:(?P<hours>\d+)H)?(?:(?P<minutes>\d+)M)?(?:(?P<seconds>\d+(?:\.\d+)?)S)?)?$'
)


def parse_iso8601_duration(value: str | None) -> int | None:
    """'PT1H2M3S' → 3723. Returns None for missing or malformed values."""
    if not value:
        return None
    m = _DURATION_RE.match(value.strip())
    if not m or value.strip() in ('P', 'PT'):
        return None
    parts = {k: float(v) if v else 0.0 for k, v in m.groupdict().items()}
    return int(parts['days'] * 86400 + parts['hours'] * 3600
               + parts['minutes'] * 60 + parts['seconds'])


class YouTubeMetadataClient:
    """Fetches video snippet, content details and top comments."""

    def __init__(self, api_key: str, session: requests.Session | None = None,
                 base_url: str = YOUTUBE_API_BASE):
        self.api_key = api_key
        self.session = session or requests.Session()
        self.base_url = base_url.rstrip('/')

    def _get(self, endpoint: str, params: dict) -> requests.Response:
        params = dict(params, key=self.api_key)
        try:
            return self.session.get(f"{self.base_url}/{endpoint}", params=params,
                                    timeout=HTTP_TIMEOUT)
        except requests.exceptions.Timeout as e:
            raise UpstreamError(f"YouTube API {endpoint} request timed out") from e
        except requests.RequestException as e:
            # Exception text may contain the key-bearing URL
            raise UpstreamError(f"YouTube API {endpoint} request failed: "
                                f"{type(e).__name__}") from e

    def fetch_video(self, video_id: str) -> VideoMetadata:
        resp = self._get("videos", {'id': video_id, 'part': 'snippet,contentDetails'})
        if resp.status_code == 404:
            raise NotFoundError(f"Video not found: {video_id}")
        if resp.status_code != 200:
            raise UpstreamError(f"YouTube API videos returned {resp.status_code}: {resp.text[:200]}")

        try:
            items = resp.json().get('items') or []
        except ValueError as e:
            raise UpstreamError("Failed to parse YouTube API response JSON") from e
        if not items:
            raise NotFoundError(f"Video not found: {video_id}")

        snippet = items[0].get('snippet') or {}
        details = items[0].get('contentDetails') or {}
        published = snippet.get('publishedAt') or None
        return VideoMetadata(
            video_id=video_id,
            title=snippet.get('title') or '',
            channel=snippet.get('channelTitle') or '',
            description=snippet.get('description') or '',
            published_at=published[:10] if published else None,
            duration_sec=parse_iso8601_duration(details.get('duration')),
        )

    def fetch_top_comments(self, video_id: str, limit: int = COMMENTS_LIMIT) -> list[str]:
        """Top-level comments by relevance. Disabled comments or quota → []."""
        if limit <= 0:
            return []
        resp = self._get("commentThreads", {
            'videoId': video_id,
            'part': 'snippet',
            'maxResults': limit,
            'order': 'relevance',
            'textFormat': 'plainText',
        })
        if resp.status_code == 403:
            logger.warning("Comments unavailable for %s (403)", video_id)
            return []
        if resp.status_code != 200:
            raise UpstreamError(f"YouTube API commentThreads returned {resp.status_code}")

        comments = []
        try:
            items = resp.json().get('items') or []
        except ValueError as e:
            raise UpstreamError("Failed to parse YouTube API comments JSON") from e
        for item in items:
            text = (item.get('snippet', {})
                        .get('topLevelComment', {})
                        .get('snippet', {})
                        .get('textDisplay'))
            if text:
                comments.append(text.strip())
        return comments[:limit]
