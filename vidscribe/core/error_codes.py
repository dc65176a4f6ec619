"""
Standardised error handling for the transcript worker.

Every failure that crosses a collaborator boundary is re-raised as one of the
typed errors below so the job dispatcher can decide between redelivery and
dead-lettering without inspecting messages.
"""

from vidscribe.core.constants import ErrorCode, RETRYABLE_ERRORS


class JobError(Exception):
    """Raised when a job encounters a known error condition."""

    default_code = ErrorCode.UNEXPECTED

    def __init__(self, code: str | None, message: str, retryable: bool | None = None):
        self.code = code or self.default_code
        self.message = message
        # auto-detect retryable from code if not explicitly set
        self.retryable = retryable if retryable is not None else (self.code in RETRYABLE_ERRORS)
        super().__init__(f"[{self.code}] {message}")


class _TypedJobError(JobError):
    def __init__(self, message: str, code: str | None = None, retryable: bool | None = None):
        super().__init__(code, message, retryable)


class InvalidInputError(_TypedJobError):
    """The job payload can never be processed (bad URL, missing ids)."""
    default_code = ErrorCode.INVALID_INPUT


class NotFoundError(_TypedJobError):
    """The platform reports the video missing, private or blocked."""
    default_code = ErrorCode.VIDEO_UNAVAILABLE


class UpstreamError(_TypedJobError):
    """Transient transport or platform failure."""
    default_code = ErrorCode.UPSTREAM


class UnsupportedFormatError(_TypedJobError):
    default_code = ErrorCode.UNSUPPORTED_CAPTION_FORMAT


class ConfigurationError(_TypedJobError):
    """Missing bucket or credential mapping. Fatal to the process."""
    default_code = ErrorCode.CONFIGURATION


class PersistenceError(_TypedJobError):
    default_code = ErrorCode.PERSISTENCE


def is_retryable(code: str) -> bool:
    return code in RETRYABLE_ERRORS


def is_permanent(error: BaseException) -> bool:
    """Permanent failures are dead-lettered instead of redelivered."""
    return isinstance(error, (InvalidInputError, NotFoundError))
