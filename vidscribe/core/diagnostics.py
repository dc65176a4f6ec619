"""
Diagnostics: tool version detection and startup checks.
"""

import shutil
import logging

from vidscribe.core.security_utils import run_subprocess_capture
from vidscribe.core.constants import DownloaderBackend, BucketKind

logger = logging.getLogger(__name__)


def get_ytdlp_version(binary: str = "yt-dlp") -> str:
    """Return the yt-dlp binary version string, or an error message."""
    try:
        result = run_subprocess_capture([binary, "--version"], timeout=10)
        if result.returncode == 0:
            return result.stdout.strip()
        return f"Error (rc={result.returncode})"
    except FileNotFoundError:
        return "Not installed"
    except Exception as e:
        return f"Error: {e}"


def get_ytdlp_library_version() -> str:
    try:
        from yt_dlp.version import __version__
        return __version__
    except ImportError:
        return "Not installed"


def check_prerequisites(config) -> list[str]:
    """Return a list of missing tools needed by the configured backend."""
    missing = []
    if config.downloader_backend == DownloaderBackend.YTDLP_CLI and not shutil.which("yt-dlp"):
        missing.append("yt-dlp (install with: pip install yt-dlp)")
    return missing


def get_diagnostics(config) -> dict:
    """Gather diagnostic information (never includes secrets)."""
    if config.downloader_backend == DownloaderBackend.YTDLP_CLI:
        ytdlp = get_ytdlp_version()
    else:
        ytdlp = get_ytdlp_library_version()
    buckets = config.buckets
    return {
        "downloader_backend": config.downloader_backend,
        "ytdlp_version": ytdlp,
        "queue_name": config.queue_name,
        "visibility_timeout_sec": config.visibility_timeout_sec,
        "max_attempts": config.max_attempts,
        "worker_count": config.worker_count,
        "buckets": {kind: buckets.get(kind) for kind in (BucketKind.RAW_MEDIA, BucketKind.MEDIA)},
        "metadata_api": bool(config.get('youtube_api_key')),
        "speech_api": bool(config.get('tts_api_key')),
        "proxy": bool(config.get('proxy_url')),
    }
