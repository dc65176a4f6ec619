"""
Job dispatcher and worker loop.
Receives one queue message at a time and drives it through the pipeline:
RECEIVED → DOWNLOADING → TRANSCRIBING → PERSISTED → SCHEDULED → ACKED.
"""

import logging
import threading
import time
from typing import Callable, Optional

from vidscribe.core.constants import (
    JobStatus, JobStage, ErrorCode, BucketKind, TranscriptSource,
    DOCUMENT_CONTENT_TYPE, DOCUMENT_PROCESSING_STATUS,
)
from vidscribe.core.db_supabase import parse_payload, now_iso
from vidscribe.core.error_codes import (
    JobError, ConfigurationError, NotFoundError, UpstreamError, is_permanent,
)
from vidscribe.core.models import (
    Document, JobMessage, JobOutcome, JobPayload, SummaryGenerationEvent, TranscriptResult,
)
from vidscribe.core.security_utils import sanitize_filename
from vidscribe.core.url_parse import resolve_video_url, extract_video_id

logger = logging.getLogger(__name__)


class _JobState:
    """Mutable bookkeeping for the message currently in flight."""

    def __init__(self, message: JobMessage):
        self.message = message
        self.payload: Optional[JobPayload] = None
        self.video_id: Optional[str] = None
        self.stage = JobStage.RECEIVED
        self.document_id: Optional[str] = None
        self.started = time.monotonic()


class JobDispatcher:
    """
    Polls the queue and processes one message at a time.

    Correctness across dispatchers relies on the queue's visibility timeout;
    there is no in-process locking around jobs.
    """

    def __init__(self, context, name: str = "dispatcher"):
        self.context = context
        self.config = context.config
        self.db = context.db
        self.name = name
        self._worker_thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()
        self._stop_after_current = threading.Event()
        self._running = False
        self.fatal_error: Optional[BaseException] = None

        # Callbacks
        self.on_job_finished: Optional[Callable[[JobOutcome], None]] = None

    # ── Loop control ──────────────────────────────────────────────────

    def start(self):
        """Start the worker thread."""
        if self._running:
            return
        self._stop_event.clear()
        self._stop_after_current.clear()
        self._running = True
        self._worker_thread = threading.Thread(target=self._worker_loop, name=self.name, daemon=True)
        self._worker_thread.start()

    def stop(self):
        """Stop polling; an in-flight job is abandoned to redelivery."""
        self._stop_event.set()

    def stop_after_current(self):
        """Stop after the current job finishes."""
        self._stop_after_current.set()

    def join(self, timeout: float | None = None):
        if self._worker_thread is not None:
            self._worker_thread.join(timeout)

    def is_running(self) -> bool:
        return self._running

    def _worker_loop(self):
        """Main worker loop — processes one message at a time."""
        idle_backoff = self.config.get('idle_backoff_sec')
        poll_interval = self.config.get('poll_interval_sec')
        logger.info("%s started (queue=%s)", self.name, self.config.queue_name)
        try:
            while not self._stop_event.is_set():
                if self._stop_after_current.is_set():
                    break
                try:
                    handled = self.run_once()
                except ConfigurationError as e:
                    logger.critical("%s stopping on configuration error: %s", self.name, e)
                    self.fatal_error = e
                    break
                except Exception as e:
                    logger.error("Worker loop error: %s", e, exc_info=True)
                    self._stop_event.wait(idle_backoff)
                    continue

                if not handled:
                    logger.debug("No messages in queue, waiting %.1fs", idle_backoff)
                    self._stop_event.wait(idle_backoff)
                elif poll_interval:
                    self._stop_event.wait(poll_interval)
        finally:
            self._running = False
            logger.info("%s stopped", self.name)

    def run_once(self) -> bool:
        """Receive and process at most one message. Returns True if one was handled."""
        message = self.db.receive_message()
        if message is None:
            return False
        outcome = self.process_message(message)
        if self.on_job_finished:
            self.on_job_finished(outcome)
        return True

    # ── Job processing pipeline ───────────────────────────────────────

    def process_message(self, message: JobMessage) -> JobOutcome:
        """
        Process a single message through the full pipeline.
        ConfigurationError is recorded and then re-raised to stop the worker.
        """
        state = _JobState(message)
        logger.info("Processing message %s (attempt %d)", message.message_id, message.read_count)

        try:
            return self._process(state)
        except ConfigurationError as e:
            self._record_error(state, e, dead_lettered=False)
            raise
        except JobError as e:
            return self._handle_job_error(state, e)
        except Exception as e:
            logger.error("Unexpected error processing message %s: %s",
                         message.message_id, e, exc_info=True)
            error = JobError(ErrorCode.UNEXPECTED, str(e)[:2000])
            error.__cause__ = e
            return self._handle_job_error(state, error)

    def _process(self, state: _JobState) -> JobOutcome:
        payload = state.payload = parse_payload(state.message.body)
        state.video_id = payload.video_id or None
        video_url = resolve_video_url(payload.source_url or payload.video_id)
        state.video_id = state.video_id or extract_video_id(video_url)

        # ── Redelivery of a finished job ──
        if self.db.get_status(state.video_id, payload.user_id) == JobStatus.COMPLETED:
            logger.info("Video %s already completed for user %s — acknowledging",
                        state.video_id, payload.user_id)
            return self._outcome(state, JobStatus.COMPLETED, acked=self._ack(state))

        self._set_stage(state, JobStage.RECEIVED, error_message=None)

        # ── Stage 1: Metadata + captions (or fallback) ──
        self._set_stage(state, JobStage.DOWNLOADING)
        result = self.context.download_service.acquire_transcript(video_url)

        audio_url = None
        if result.source == TranscriptSource.METADATA and self.config.get('archive_audio_without_captions'):
            audio_url = self._archive_audio(state, video_url, result)
        self._check_deadline(state)

        # ── Stage 2: Transcript ready ──
        self._set_stage(state, JobStage.TRANSCRIBING, transcript_source=result.source)

        # ── Stage 3: Persist document ──
        state.document_id = self._persist_document(state, result)
        self._set_stage(state, JobStage.PERSISTED, document_id=state.document_id)

        # ── Stage 4: Schedule summaries ──
        scheduled = self._schedule_summaries(state, result)
        self._set_stage(state, JobStage.SCHEDULED, summaries_scheduled=scheduled)
        self._check_deadline(state)

        # ── Stage 5: Complete and acknowledge ──
        extra = {'stage': JobStage.SCHEDULED, 'document_id': state.document_id,
                 'transcription': result.text, 'completed_at': now_iso(),
                 'error_message': None}
        if audio_url:
            extra['audio_url'] = audio_url
        self.db.update_status(state.video_id, payload.user_id, JobStatus.COMPLETED, **extra)
        acked = self._ack(state)

        logger.info("Completed video %s → document %s (%s, %.1fs)", state.video_id,
                    state.document_id, result.source, time.monotonic() - state.started)
        return self._outcome(state, JobStatus.COMPLETED, acked=acked)

    def _set_stage(self, state: _JobState, stage: str, **extra):
        state.stage = stage
        self.db.update_status(state.video_id, state.payload.user_id, JobStatus.PROCESSING,
                              stage=stage, **extra)

    def _check_deadline(self, state: _JobState):
        elapsed = time.monotonic() - state.started
        if elapsed > self.config.visibility_timeout_sec:
            logger.warning("Message %s has run %.0fs, past the %ds visibility timeout; "
                           "it may be redelivered", state.message.message_id, elapsed,
                           self.config.visibility_timeout_sec)

    def _archive_audio(self, state: _JobState, video_url: str, result: TranscriptResult) -> Optional[str]:
        """
        Download audio for a caption-less video and store it in the raw media bucket.
        Returns None when the video has no audio to archive; the transcript
        does not depend on it.
        """
        storage = self.context.storage.get_storage_service(BucketKind.RAW_MEDIA)
        work_dir = self.config.temp_dir / f"msg-{state.message.message_id}"
        file_manager = self.context.download_service.file_manager
        try:
            path = self.context.download_service.download_audio_file(
                video_url, work_dir, info=result.video_info)
        except NotFoundError as e:
            logger.warning("Skipping audio archive for %s: %s", state.video_id, e.message)
            return None
        else:
            key = (f"raw-media/{sanitize_filename(state.payload.user_id)}/"
                   f"{sanitize_filename(state.video_id)}{path.suffix}")
            return storage.upload_file(path, key)
        finally:
            file_manager.cleanup_directory(work_dir)

    def _persist_document(self, state: _JobState, result: TranscriptResult) -> str:
        payload = state.payload
        info = result.video_info
        doc = Document(
            title=info.title or f"YouTube Video: {state.video_id}",
            original_content=result.text,
            source_url=payload.source_url or resolve_video_url(state.video_id),
            transcription=result.text,
            user_id=payload.user_id,
            video_id=state.video_id,
            content_type=DOCUMENT_CONTENT_TYPE,
            processing_status=DOCUMENT_PROCESSING_STATUS,
        )
        fields = doc.to_row()
        if payload.collection_id:
            fields['collection_id'] = payload.collection_id

        # Reuse an existing document so redelivery never duplicates one
        document_id = payload.document_id or self.db.find_document(state.video_id, payload.user_id)
        if document_id:
            self.db.update_document(document_id, fields)
            logger.info("Updated document %s for video %s", document_id, state.video_id)
            return document_id

        document_id = self.db.insert_document(fields)
        logger.info("Created document %s for video %s", document_id, state.video_id)
        return document_id

    def _schedule_summaries(self, state: _JobState, result: TranscriptResult) -> list[str]:
        scheduled = []
        for summary_type in self.config.get('summary_types'):
            event = SummaryGenerationEvent(
                user_id=state.payload.user_id,
                transcript_text=result.text,
                summary_type=summary_type,
                video_id=state.video_id,
                document_id=state.document_id,
                processing_options=state.payload.processing_options,
            )
            if self.context.scheduler.schedule(event, self.config.summary_delay(summary_type)):
                scheduled.append(summary_type)
        return scheduled

    def _ack(self, state: _JobState) -> bool:
        """
        Delete a completed message. A failed delete is only logged: the
        redelivered message finds the completed status and is acked then.
        """
        try:
            self.db.delete_message(state.message.message_id)
        except JobError as e:
            logger.error("Failed to delete message %s: %s", state.message.message_id, e)
            return False
        state.stage = JobStage.ACKED
        try:
            self.db.update_status(state.video_id, state.payload.user_id,
                                  JobStatus.COMPLETED, stage=JobStage.ACKED)
        except JobError as e:
            logger.warning("Could not record ACKED stage for %s: %s", state.video_id, e)
        return True

    # ── Failure handling ──────────────────────────────────────────────

    def _should_dead_letter(self, state: _JobState, error: JobError) -> bool:
        if is_permanent(error):
            return True
        if isinstance(error, UpstreamError):
            return False
        return state.message.read_count >= self.config.max_attempts

    def _handle_job_error(self, state: _JobState, error: JobError) -> JobOutcome:
        """Record the failure, then dead-letter or leave the message for redelivery."""
        dead_letter = self._should_dead_letter(state, error)
        self._record_error(state, error, dead_lettered=dead_letter)

        acked = False
        if dead_letter:
            try:
                self.db.delete_message(state.message.message_id)
                acked = True
                logger.warning("Dead-lettered message %s after %d attempt(s): %s",
                               state.message.message_id, state.message.read_count, error)
            except JobError as e:
                logger.error("Failed to dead-letter message %s: %s", state.message.message_id, e)
        else:
            logger.warning("Message %s failed at %s, leaving for redelivery: %s",
                           state.message.message_id, state.stage, error)

        return self._outcome(state, JobStatus.ERROR, acked=acked, dead_lettered=dead_letter,
                             error=error)

    def _record_error(self, state: _JobState, error: JobError, dead_lettered: bool):
        """Best effort: a failed status write never masks the original error."""
        if state.payload is None or not state.video_id:
            logger.error("Message %s unprocessable: %s", state.message.message_id, error)
            return
        try:
            self.db.update_status(
                state.video_id, state.payload.user_id, JobStatus.ERROR,
                stage=state.stage,
                error_code=error.code,
                error_message=error.message[:2000],
                retryable=not dead_lettered and error.retryable,
                dead_lettered=dead_lettered,
                attempts=state.message.read_count,
            )
        except Exception as e:
            logger.error("Failed to record error status for %s: %s", state.video_id, e)

    def _outcome(self, state: _JobState, status: str, acked: bool = False,
                 dead_lettered: bool = False, error: JobError | None = None) -> JobOutcome:
        return JobOutcome(
            message_id=state.message.message_id,
            status=status,
            stage=state.stage,
            video_id=state.video_id,
            document_id=state.document_id,
            acked=acked,
            dead_lettered=dead_lettered,
            error_code=error.code if error else None,
            error_message=error.message if error else None,
        )
