"""
Shared constants for the Vidscribe transcript worker.
Single source of truth — imported by every other module.
"""

import pathlib
import tempfile

# ── Application identity ──────────────────────────────────────────────
APP_NAME = "vidscribe-worker"
APP_VERSION = "1.0.0"

# ── Filesystem paths ─────────────────────────────────────────────────
DEFAULT_TEMP_DIR = pathlib.Path(tempfile.gettempdir()) / "vidscribe"
CONFIG_ENV_VAR = "VIDSCRIBE_CONFIG"

# ── Processing status values (video_processing.status) ───────────────
class JobStatus:
    PROCESSING = "processing"
    COMPLETED = "completed"
    ERROR = "error"

# ── Job stage values (ordered) ────────────────────────────────────────
class JobStage:
    RECEIVED = "RECEIVED"
    DOWNLOADING = "DOWNLOADING"
    TRANSCRIBING = "TRANSCRIBING"
    PERSISTED = "PERSISTED"
    SCHEDULED = "SCHEDULED"
    ACKED = "ACKED"

# ── Transcript sources ────────────────────────────────────────────────
class TranscriptSource:
    CAPTIONS = "captions"
    METADATA = "metadata"

# ── Document fields ───────────────────────────────────────────────────
DOCUMENT_CONTENT_TYPE = "youtube"
DOCUMENT_PROCESSING_STATUS = "transcribed"

# ── Downloader backends ───────────────────────────────────────────────
class DownloaderBackend:
    YTDLP_CLI = "yt-dlp"
    YTDLP_LIB = "yt-dlp-lib"

DOWNLOADER_BACKENDS = (DownloaderBackend.YTDLP_CLI, DownloaderBackend.YTDLP_LIB)

# ── Bucket kinds ──────────────────────────────────────────────────────
class BucketKind:
    RAW_MEDIA = "rawMedia"
    PROCESSED_TRANSCRIPTS = "processedTranscripts"
    DOCUMENTS = "documents"
    MEDIA = "media"

# ── Summary types ─────────────────────────────────────────────────────
class SummaryType:
    SHORT = "short"
    LONG = "long"

# ── Error codes ───────────────────────────────────────────────────────
class ErrorCode:
    # Permanent: dead-lettered
    INVALID_INPUT = "ERR_INVALID_INPUT"
    INVALID_URL = "ERR_INVALID_URL"
    VIDEO_UNAVAILABLE = "ERR_VIDEO_UNAVAILABLE"
    GEO_BLOCKED = "ERR_GEO_BLOCKED"
    RESTRICTED_CONTENT = "ERR_RESTRICTED_CONTENT"
    NO_AUDIO_FORMAT = "ERR_NO_AUDIO_FORMAT"

    # Fatal to the process
    CONFIGURATION = "ERR_CONFIGURATION"

    # Absorbed locally
    UNSUPPORTED_CAPTION_FORMAT = "ERR_UNSUPPORTED_CAPTION_FORMAT"

    # Retryable
    UPSTREAM = "ERR_UPSTREAM"
    DOWNLOAD_FAILED = "ERR_DOWNLOAD_FAILED"
    NETWORK_TRANSIENT = "ERR_NETWORK_TRANSIENT"
    PERSISTENCE = "ERR_PERSISTENCE"
    SCHEDULE_FAILED = "ERR_SCHEDULE_FAILED"
    TTS_FAILED = "ERR_TTS_FAILED"

    UNEXPECTED = "ERR_UNEXPECTED"

RETRYABLE_ERRORS = {
    ErrorCode.UPSTREAM,
    ErrorCode.DOWNLOAD_FAILED,
    ErrorCode.NETWORK_TRANSIENT,
    ErrorCode.PERSISTENCE,
    ErrorCode.SCHEDULE_FAILED,
    ErrorCode.TTS_FAILED,
    ErrorCode.UNEXPECTED,
}

# ── Queue defaults ────────────────────────────────────────────────────
DEFAULT_QUEUE_NAME = "video_processing_queue"
VISIBILITY_TIMEOUT_SEC = 300
MAX_ATTEMPTS = 5
POLL_INTERVAL_SEC = 1.0
IDLE_BACKOFF_SEC = 5.0

# ── Supabase tables / RPC ─────────────────────────────────────────────
STATUS_TABLE = "video_processing"
DOCUMENTS_TABLE = "documents"
RPC_QUEUE_RECEIVE = "pgmq_receive"
RPC_QUEUE_DELETE = "pgmq_delete"

# ── Event scheduling ──────────────────────────────────────────────────
EVENT_SOURCE = "custom.transcription"
EVENT_DETAIL_TYPE = "SummaryGenerationRequest"
DEFAULT_EVENT_BUS = "default"
DEFAULT_SUMMARY_TYPES = [SummaryType.SHORT, SummaryType.LONG]
DEFAULT_SUMMARY_DELAYS = {SummaryType.SHORT: 0, SummaryType.LONG: 1}

# ── Subprocess / network timeouts (seconds) ───────────────────────────
YTDLP_INFO_TIMEOUT = 60
YTDLP_CAPTIONS_TIMEOUT = 60
HTTP_TIMEOUT = 30
STREAM_CHUNK_SIZE = 64 * 1024

# ── Progress reporting ────────────────────────────────────────────────
PROGRESS_LOG_INTERVAL_SEC = 1.0

# ── Metadata fallback ─────────────────────────────────────────────────
YOUTUBE_API_BASE = "https://www.googleapis.com/youtube/v3"
COMMENTS_LIMIT = 25
DEFAULT_SUBTITLE_LANGUAGE = "en"

# ── Speech synthesis ──────────────────────────────────────────────────
TTS_API_URL = "https://api.openai.com/v1/audio/speech"
TTS_MODEL = "tts-1"
TTS_VOICE = "alloy"
TTS_MAX_LENGTH = 4000
TTS_MAX_CHUNKS = 3
AUDIO_SUMMARY_PREFIX = "audio-summaries"

# ── Misc ──────────────────────────────────────────────────────────────
YOUTUBE_WATCH_URL = "https://www.youtube.com/watch?v={video_id}"
YOUTUBE_URL_PATTERNS = [
    r'(?:https?://)?(?:www\.)?youtube\.com/watch\?(?:.*&)?v=([a-zA-Z0-9_-]{11})',
    r'(?:https?://)?youtu\.be/([a-zA-Z0-9_-]{11})',
    r'(?:https?://)?(?:www\.)?youtube\.com/embed/([a-zA-Z0-9_-]{11})',
    r'(?:https?://)?(?:www\.)?youtube\.com/v/([a-zA-Z0-9_-]{11})',
    r'(?:https?://)?(?:www\.)?youtube\.com/shorts/([a-zA-Z0-9_-]{11})',
    r'(?:https?://)?(?:www\.)?youtube\.com/live/([a-zA-Z0-9_-]{11})',
    r'(?:https?://)?m\.youtube\.com/watch\?(?:.*&)?v=([a-zA-Z0-9_-]{11})',
]
VIDEO_ID_RE = r'^[a-zA-Z0-9_-]{11}$'

# Characters forbidden in file names
UNSAFE_FILENAME_CHARS = r'[<>:"/\\|?*\x00-\x1f]'
MAX_FILENAME_LEN = 200

# Extension → MIME type for uploads
CONTENT_TYPES = {
    ".mp3": "audio/mpeg",
    ".m4a": "audio/mp4",
    ".mp4": "video/mp4",
    ".webm": "audio/webm",
    ".opus": "audio/ogg",
    ".ogg": "audio/ogg",
    ".wav": "audio/wav",
    ".json": "application/json",
    ".txt": "text/plain",
    ".vtt": "text/vtt",
}
DEFAULT_CONTENT_TYPE = "application/octet-stream"

# Environment variables read by WorkerConfig (env name → config key)
ENV_KEYS = {
    "SUPABASE_URL": "supabase_url",
    "SUPABASE_SERVICE_ROLE_KEY": "supabase_key",
    "AWS_REGION": "aws_region",
    "AWS_ENDPOINT": "aws_endpoint",
    "AWS_EVENT_BUS_NAME": "event_bus_name",
    "YOUTUBE_API_KEY": "youtube_api_key",
    "OPENAI_API_KEY": "tts_api_key",
    "PROXY_URL": "proxy_url",
    "TEMP_DIR": "temp_dir",
    "DOWNLOADER_BACKEND": "downloader_backend",
    "VIDEO_QUEUE_NAME": "queue_name",
    "WORKER_COUNT": "worker_count",
    "LOG_LEVEL": "log_level",
    "LOG_FILE": "log_file",
}

BUCKET_ENV_KEYS = {
    BucketKind.RAW_MEDIA: "RAW_MEDIA_BUCKET",
    BucketKind.PROCESSED_TRANSCRIPTS: "PROCESSED_TRANSCRIPTS_BUCKET",
    BucketKind.DOCUMENTS: "DOCUMENTS_BUCKET",
    BucketKind.MEDIA: "MEDIA_BUCKET",
}
