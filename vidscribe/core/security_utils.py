"""
Security utilities for the transcript worker.
- Filename sanitization for temp and object keys
- Safe subprocess execution (argument arrays only)
- Secret redaction for log lines
"""

import re
import subprocess
import logging
from typing import Iterator

from vidscribe.core.constants import UNSAFE_FILENAME_CHARS, MAX_FILENAME_LEN, STREAM_CHUNK_SIZE

logger = logging.getLogger(__name__)


# ── Filename / key safety ─────────────────────────────────────────────

def sanitize_filename(name: str) -> str:
    """Sanitize a value (video id, container ext) for use in a file name or object key."""
    if not name:
        return ""
    safe = re.sub(UNSAFE_FILENAME_CHARS, '_', name)
    safe = safe.replace('..', '')
    safe = re.sub(r'[_\s]+', '_', safe).strip('_')
    if len(safe) > MAX_FILENAME_LEN:
        safe = safe[:MAX_FILENAME_LEN]
    return safe.strip('.')


def redact(text: str, *secrets: str | None) -> str:
    """Replace any secret occurring in text (proxy credentials, API keys)."""
    for secret in secrets:
        if secret:
            text = text.replace(secret, '***')
    return text


# ── Subprocess safety ─────────────────────────────────────────────────

def _check_args(args):
    if not isinstance(args, (list, tuple)):
        raise TypeError("Subprocess args must be a list/tuple, not a string")


def run_subprocess(args: list[str], **kwargs) -> subprocess.CompletedProcess:
    """
    Execute a subprocess using argument arrays only.
    shell=True is explicitly forbidden.
    """
    _check_args(args)

    # Force shell=False, dropping any caller-supplied value
    kwargs.pop('shell', None)

    logger.debug("Running subprocess: %s", args[0])
    return subprocess.run(args, shell=False, **kwargs)


def run_subprocess_capture(args: list[str], timeout: int = 300, **kwargs) -> subprocess.CompletedProcess:
    """Run subprocess and capture stdout/stderr."""
    return run_subprocess(
        args,
        capture_output=True,
        text=True,
        timeout=timeout,
        **kwargs,
    )


class StreamedProcess:
    """
    A subprocess whose stdout is consumed incrementally.

    Iterating yields raw stdout chunks; the pipe buffer gives natural
    backpressure (the child blocks when the consumer stops reading).
    stderr is collected to a temp file so it can never fill its pipe.
    """

    def __init__(self, args: list[str], chunk_size: int = STREAM_CHUNK_SIZE):
        _check_args(args)
        self.args = list(args)
        self.chunk_size = chunk_size
        self.returncode: int | None = None
        self.stderr = ""
        self._proc: subprocess.Popen | None = None
        self._stderr_file = None

    def __iter__(self) -> Iterator[bytes]:
        import tempfile

        self._stderr_file = tempfile.TemporaryFile()
        logger.debug("Streaming subprocess: %s", self.args[0])
        self._proc = subprocess.Popen(
            self.args, shell=False,
            stdout=subprocess.PIPE, stderr=self._stderr_file,
        )
        try:
            while True:
                chunk = self._proc.stdout.read(self.chunk_size)
                if not chunk:
                    break
                yield chunk
            self.returncode = self._proc.wait()
        finally:
            self.close()

    def close(self):
        """Terminate the child if still running and collect stderr."""
        proc = self._proc
        if proc is not None:
            if proc.poll() is None:
                proc.kill()
                proc.wait()
            if self.returncode is None:
                self.returncode = proc.returncode
            if proc.stdout:
                proc.stdout.close()
        if self._stderr_file is not None:
            self._stderr_file.seek(0)
            self.stderr = self._stderr_file.read().decode('utf-8', errors='replace')
            self._stderr_file.close()
            self._stderr_file = None
