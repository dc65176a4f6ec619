"""
Worker configuration manager.
Defaults, merged with an optional JSON file, then with environment variables.
"""

import json
import logging
import os
from pathlib import Path

from vidscribe.core.constants import (
    CONFIG_ENV_VAR, DEFAULT_TEMP_DIR, DEFAULT_QUEUE_NAME, DEFAULT_EVENT_BUS,
    VISIBILITY_TIMEOUT_SEC, MAX_ATTEMPTS, POLL_INTERVAL_SEC, IDLE_BACKOFF_SEC,
    COMMENTS_LIMIT, DEFAULT_SUBTITLE_LANGUAGE, DEFAULT_SUMMARY_TYPES,
    DEFAULT_SUMMARY_DELAYS, DOWNLOADER_BACKENDS, DownloaderBackend,
    ENV_KEYS, BUCKET_ENV_KEYS, SummaryType,
)
from vidscribe.core.error_codes import ConfigurationError

# Validation bounds
_VISIBILITY_MIN = 30
_VISIBILITY_MAX = 3600
_ATTEMPTS_MIN = 1
_ATTEMPTS_MAX = 100
_WORKERS_MIN = 1
_WORKERS_MAX = 16
_COMMENTS_MAX = 100

logger = logging.getLogger(__name__)

_DEFAULTS = {
    'downloader_backend': DownloaderBackend.YTDLP_CLI,
    'queue_name': DEFAULT_QUEUE_NAME,
    'visibility_timeout_sec': VISIBILITY_TIMEOUT_SEC,
    'poll_interval_sec': POLL_INTERVAL_SEC,
    'idle_backoff_sec': IDLE_BACKOFF_SEC,
    'max_attempts': MAX_ATTEMPTS,
    'worker_count': 1,
    'summary_types': list(DEFAULT_SUMMARY_TYPES),
    'summary_delay_minutes': dict(DEFAULT_SUMMARY_DELAYS),
    'comments_limit': COMMENTS_LIMIT,
    'subtitle_language': DEFAULT_SUBTITLE_LANGUAGE,
    'archive_audio_without_captions': True,
    'temp_dir': str(DEFAULT_TEMP_DIR),
    'buckets': {},
    'aws_region': None,
    'aws_endpoint': None,
    'event_bus_name': DEFAULT_EVENT_BUS,
    'supabase_url': None,
    'supabase_key': None,
    'youtube_api_key': None,
    'tts_api_key': None,
    'proxy_url': None,
    'log_level': 'INFO',
    'log_file': None,
}


def _buckets_from_env(environ) -> dict:
    """PROJECT_PREFIX + <KIND>_BUCKET → {kind: '<prefix>-<bucket>'}."""
    prefix = environ.get('PROJECT_PREFIX', '')
    buckets = {}
    for kind, env_name in BUCKET_ENV_KEYS.items():
        name = environ.get(env_name)
        if name:
            buckets[kind] = f"{prefix}-{name}" if prefix else name
    return buckets


class WorkerConfig:
    """Read-only worker configuration."""

    def __init__(self, config_path: Path | None = None, environ=None):
        self.environ = os.environ if environ is None else environ
        env_path = self.environ.get(CONFIG_ENV_VAR)
        self.path = config_path or (Path(env_path) if env_path else None)
        self._data: dict = {}
        self.load()

    def load(self):
        """Load config: defaults, then the JSON file, then the environment."""
        self._data = json.loads(json.dumps(_DEFAULTS))
        if self.path and self.path.exists():
            try:
                with open(self.path, 'r') as f:
                    saved = json.load(f)
                self._data.update(saved)
            except Exception as e:
                logger.warning("Failed to load config %s: %s", self.path, e)

        for env_name, key in ENV_KEYS.items():
            value = self.environ.get(env_name)
            if value:
                self._data[key] = value

        env_buckets = _buckets_from_env(self.environ)
        if env_buckets:
            buckets = dict(self._data.get('buckets') or {})
            buckets.update(env_buckets)
            self._data['buckets'] = buckets

        for key in list(self._data):
            self._data[key] = self._validate(key, self._data[key])

    def _validate(self, key: str, value):
        """Validate and coerce config values to safe ranges."""
        if key == 'visibility_timeout_sec':
            return self._clamp_int(key, value, VISIBILITY_TIMEOUT_SEC, _VISIBILITY_MIN, _VISIBILITY_MAX)

        if key == 'max_attempts':
            return self._clamp_int(key, value, MAX_ATTEMPTS, _ATTEMPTS_MIN, _ATTEMPTS_MAX)

        if key == 'worker_count':
            return self._clamp_int(key, value, 1, _WORKERS_MIN, _WORKERS_MAX)

        if key == 'comments_limit':
            return self._clamp_int(key, value, COMMENTS_LIMIT, 0, _COMMENTS_MAX)

        if key in ('poll_interval_sec', 'idle_backoff_sec'):
            try:
                return max(0.0, float(value))
            except (TypeError, ValueError):
                logger.warning("Invalid %s %r — using default", key, value)
                return _DEFAULTS[key]

        if key == 'archive_audio_without_captions':
            if isinstance(value, str):
                return value.strip().lower() in ('1', 'true', 'yes', 'on')
            return bool(value)

        if key == 'summary_types':
            if not isinstance(value, list):
                logger.warning("Invalid summary_types %r — using defaults", value)
                return list(DEFAULT_SUMMARY_TYPES)
            valid = [v for v in value if v in (SummaryType.SHORT, SummaryType.LONG)]
            if len(valid) != len(value):
                logger.warning("Ignoring unknown summary types in %r", value)
            return valid

        if key == 'summary_delay_minutes':
            if not isinstance(value, dict):
                logger.warning("Invalid summary_delay_minutes %r — using defaults", value)
                return dict(DEFAULT_SUMMARY_DELAYS)
            delays = {}
            for summary_type, minutes in value.items():
                try:
                    delays[summary_type] = max(0, int(minutes))
                except (TypeError, ValueError):
                    logger.warning("Invalid delay %r for %s — using 0", minutes, summary_type)
                    delays[summary_type] = 0
            return delays

        if key == 'buckets' and not isinstance(value, dict):
            logger.warning("Invalid buckets mapping %r — ignoring", value)
            return {}

        if key == 'downloader_backend' and value not in DOWNLOADER_BACKENDS:
            raise ConfigurationError(
                f"Unknown downloader backend {value!r}; expected one of {', '.join(DOWNLOADER_BACKENDS)}"
            )

        return value

    @staticmethod
    def _clamp_int(key, value, default, low, high):
        try:
            value = int(value)
        except (TypeError, ValueError):
            logger.warning("Invalid %s %r — using default", key, value)
            return default
        return max(low, min(high, value))

    def get(self, key: str, default=None):
        return self._data.get(key, default)

    def require(self, *keys: str):
        """Raise ConfigurationError naming every missing key."""
        missing = [k for k in keys if not self._data.get(k)]
        if missing:
            raise ConfigurationError(f"Missing required configuration: {', '.join(missing)}")

    @property
    def downloader_backend(self) -> str:
        return self._data['downloader_backend']

    @property
    def queue_name(self) -> str:
        return self._data['queue_name']

    @property
    def visibility_timeout_sec(self) -> int:
        return self._data['visibility_timeout_sec']

    @property
    def max_attempts(self) -> int:
        return self._data['max_attempts']

    @property
    def worker_count(self) -> int:
        return self._data['worker_count']

    @property
    def buckets(self) -> dict:
        return dict(self._data.get('buckets') or {})

    @property
    def temp_dir(self) -> Path:
        return Path(self._data['temp_dir'])

    def summary_delay(self, summary_type: str) -> int:
        return self._data['summary_delay_minutes'].get(summary_type, 0)
