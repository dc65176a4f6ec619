"""
Download progress reporting, rate-limited to keep logs readable.
"""

import time
import logging

from vidscribe.core.constants import PROGRESS_LOG_INTERVAL_SEC
from vidscribe.core.models import DownloadProgress

logger = logging.getLogger(__name__)


def _format_bytes(n: int) -> str:
    if n < 1024:
        return f"{n} B"
    size = n / 1024
    for unit in ('KB', 'MB'):
        if size < 1024:
            return f"{size:.1f} {unit}"
        size /= 1024
    return f"{size:.1f} GB"


class LoggingProgressTracker:
    """Logs download progress at most once per interval."""

    def __init__(self, label: str = "download", interval_sec: float = PROGRESS_LOG_INTERVAL_SEC,
                 clock=time.monotonic):
        self.label = label
        self.interval_sec = interval_sec
        self._clock = clock
        self._last_report: float | None = None
        self.last: DownloadProgress | None = None
        self.reports = 0

    def on_progress(self, bytes_downloaded: int, total_bytes: int | None = None):
        self.last = DownloadProgress(bytes_downloaded, total_bytes)
        now = self._clock()
        if self._last_report is not None and now - self._last_report < self.interval_sec:
            return
        self._last_report = now
        self.reports += 1

        percent = self.last.percent
        if percent is None:
            logger.info("%s: %s downloaded", self.label, _format_bytes(bytes_downloaded))
        else:
            logger.info("%s: %.1f%% (%s / %s)", self.label, percent,
                        _format_bytes(bytes_downloaded), _format_bytes(total_bytes))

    def on_complete(self, total: int):
        logger.info("%s complete: %s", self.label, _format_bytes(total))

    def on_error(self, error: Exception):
        logger.error("%s failed: %s", self.label, error)
