"""
Backend selection: one downloader per process, picked from configuration.
"""

import logging

from vidscribe.core.constants import DownloaderBackend
from vidscribe.core.downloader_base import VideoDownloader
from vidscribe.core.error_codes import ConfigurationError

logger = logging.getLogger(__name__)


def create_downloader(config) -> VideoDownloader:
    backend = config.downloader_backend
    proxy_url = config.get('proxy_url')
    language = config.get('subtitle_language')

    if backend == DownloaderBackend.YTDLP_CLI:
        from vidscribe.core.downloader_ytdlp_cli import YtDlpCliDownloader
        downloader = YtDlpCliDownloader(proxy_url=proxy_url, subtitle_language=language,
                                        temp_dir=config.temp_dir)
    elif backend == DownloaderBackend.YTDLP_LIB:
        from vidscribe.core.downloader_ytdlp_lib import YtDlpLibraryDownloader
        downloader = YtDlpLibraryDownloader(proxy_url=proxy_url, subtitle_language=language)
    else:
        raise ConfigurationError(f"Unknown downloader backend {backend!r}")

    logger.info("Using downloader backend: %s%s", backend, " (via proxy)" if proxy_url else "")
    return downloader
