"""
File lifecycle: temp directories, partial-file cleanup and streamed writes.
"""

import shutil
import logging
from pathlib import Path
from typing import Iterable

from vidscribe.core.constants import ErrorCode
from vidscribe.core.error_codes import JobError, UpstreamError

logger = logging.getLogger(__name__)


class FileManager:
    """Directory and file housekeeping. Cleanup never raises."""

    def ensure_directory(self, path: Path) -> Path:
        path = Path(path)
        path.mkdir(parents=True, exist_ok=True)
        return path

    def cleanup(self, path: Path | None):
        """Delete a file if present."""
        if path is None:
            return
        path = Path(path)
        try:
            if path.exists():
                path.unlink()
                logger.debug("Deleted: %s", path)
        except OSError as e:
            logger.warning("Failed to delete %s: %s", path, e)

    def cleanup_directory(self, path: Path | None):
        """Remove a directory tree if present."""
        if path is None:
            return
        path = Path(path)
        if not path.exists():
            return
        try:
            shutil.rmtree(path)
            logger.debug("Deleted: %s", path)
        except OSError as e:
            logger.warning("Failed to delete %s: %s", path, e)


def _close_source(chunks):
    close = getattr(chunks, 'close', None)
    if close is None:
        return
    try:
        close()
    except Exception as e:
        logger.debug("Error closing download stream: %s", e)


def stream_to_file(chunks: Iterable[bytes], path: Path, progress=None,
                   total_bytes: int | None = None,
                   file_manager: FileManager | None = None) -> int:
    """
    Copy a byte-chunk iterator into a file, one chunk at a time.

    The source is only pulled after the previous chunk has been written, so
    memory stays bounded by a single chunk. A failure on either side closes
    the source, removes the partial file and raises once: typed JobErrors
    propagate unchanged, other source errors become UpstreamError and sink
    errors become DOWNLOAD_FAILED.

    Returns the number of bytes written.
    """
    file_manager = file_manager or FileManager()
    path = Path(path)
    written = 0
    iterator = iter(chunks)

    try:
        with open(path, 'wb') as sink:
            while True:
                try:
                    chunk = next(iterator)
                except StopIteration:
                    break
                except JobError:
                    raise
                except Exception as e:
                    raise UpstreamError(f"Download stream failed after {written} bytes: {e}") from e

                if not chunk:
                    continue
                try:
                    sink.write(chunk)
                except OSError as e:
                    raise JobError(ErrorCode.DOWNLOAD_FAILED,
                                   f"Failed writing {path.name} after {written} bytes: {e}") from e
                written += len(chunk)
                if progress is not None:
                    progress.on_progress(written, total_bytes)
    except BaseException as e:
        _close_source(iterator)
        file_manager.cleanup(path)
        if progress is not None and isinstance(e, Exception):
            progress.on_error(e)
        raise

    if progress is not None:
        progress.on_complete(written)
    return written
