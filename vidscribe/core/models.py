"""
Data models (plain dataclasses) for the transcript worker.
"""

from dataclasses import dataclass, field
from typing import Any, Optional


@dataclass(frozen=True)
class VideoFormat:
    format_id: str
    container: str = "unknown"
    quality: str = "unknown"
    audio_only: bool = False
    video_only: bool = False
    audio_codec: Optional[str] = None
    video_codec: Optional[str] = None
    audio_bitrate: Optional[float] = None   # kbps
    video_bitrate: Optional[float] = None   # kbps
    filesize: Optional[int] = None
    url: Optional[str] = None
    http_headers: dict = field(default_factory=dict, compare=False, hash=False)


@dataclass(frozen=True)
class VideoInfo:
    id: str
    title: str
    author: str = ""
    description: str = ""
    upload_date: Optional[str] = None       # YYYY-MM-DD
    duration_sec: Optional[float] = None
    formats: tuple = ()


@dataclass
class DownloadProgress:
    bytes_downloaded: int
    total_bytes: Optional[int] = None

    @property
    def percent(self) -> Optional[float]:
        if not self.total_bytes:
            return None
        return self.bytes_downloaded / self.total_bytes * 100


@dataclass
class JobPayload:
    video_id: str
    user_id: str
    source_url: str
    document_id: Optional[str] = None
    collection_id: Optional[str] = None
    processing_options: Optional[dict] = None


@dataclass
class JobMessage:
    message_id: int
    body: Any                               # raw queue body, JSON text or dict
    read_count: int = 1
    enqueued_at: Optional[str] = None


@dataclass
class TranscriptResult:
    text: str
    source: str                             # TranscriptSource
    video_info: VideoInfo


@dataclass
class Document:
    title: str
    original_content: str
    source_url: str
    transcription: str
    user_id: str
    video_id: Optional[str] = None
    content_type: str = "youtube"
    processing_status: str = "transcribed"
    id: Optional[str] = None

    def to_row(self) -> dict[str, Any]:
        row = {
            'title': self.title,
            'original_content': self.original_content,
            'content_type': self.content_type,
            'source_url': self.source_url,
            'transcription': self.transcription,
            'user_id': self.user_id,
            'processing_status': self.processing_status,
        }
        if self.video_id:
            row['video_id'] = self.video_id
        return row


@dataclass
class SummaryGenerationEvent:
    user_id: str
    transcript_text: str
    summary_type: str
    video_id: Optional[str] = None
    document_id: Optional[str] = None
    processing_options: Optional[dict] = None


@dataclass
class VideoMetadata:
    """Snippet + content details from the metadata API (or the downloader)."""
    video_id: str
    title: str
    channel: str = ""
    description: str = ""
    published_at: Optional[str] = None      # YYYY-MM-DD
    duration_sec: Optional[float] = None
    comments: list = field(default_factory=list)


@dataclass
class JobOutcome:
    """What the dispatcher did with one queue message."""
    message_id: int
    status: str                             # JobStatus
    stage: str                              # last JobStage reached
    video_id: Optional[str] = None
    document_id: Optional[str] = None
    acked: bool = False
    dead_lettered: bool = False
    error_code: Optional[str] = None
    error_message: Optional[str] = None
