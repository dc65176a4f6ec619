"""
Supabase gateway: processing status, documents and the pgmq-backed job queue.

All Supabase failures surface as PersistenceError.
"""

import json
import logging
from datetime import datetime, timezone

from supabase import create_client, Client

from vidscribe.core.constants import (
    STATUS_TABLE, DOCUMENTS_TABLE, RPC_QUEUE_RECEIVE, RPC_QUEUE_DELETE,
    DEFAULT_QUEUE_NAME, VISIBILITY_TIMEOUT_SEC,
)
from vidscribe.core.error_codes import PersistenceError, InvalidInputError
from vidscribe.core.models import JobMessage, JobPayload

logger = logging.getLogger(__name__)


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _pick(data: dict, *keys):
    for key in keys:
        value = data.get(key)
        if value not in (None, ''):
            return value
    return None


def parse_payload(raw) -> JobPayload:
    """
    Build a JobPayload from a queue message body (JSON text or dict).
    Accepts camelCase and snake_case keys.
    """
    if isinstance(raw, (str, bytes)):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError as e:
            raise InvalidInputError(f"Queue message is not valid JSON: {e}") from e
    if not isinstance(raw, dict):
        raise InvalidInputError(f"Queue message must be an object, got {type(raw).__name__}")

    video_id = _pick(raw, 'videoId', 'video_id')
    user_id = _pick(raw, 'userId', 'user_id')
    source_url = _pick(raw, 'sourceUrl', 'source_url', 'url')
    if not user_id:
        raise InvalidInputError("Queue message is missing userId")
    if not video_id and not source_url:
        raise InvalidInputError("Queue message needs videoId or sourceUrl")

    options = _pick(raw, 'processingOptions', 'processing_options', 'options')
    return JobPayload(
        video_id=str(video_id) if video_id else '',
        user_id=str(user_id),
        source_url=source_url or '',
        document_id=_pick(raw, 'documentId', 'document_id'),
        collection_id=_pick(raw, 'collectionId', 'collection_id'),
        processing_options=options if isinstance(options, dict) else None,
    )


class DatabaseGateway:
    """Thin wrapper over a supabase-py Client."""

    def __init__(self, client: Client, queue_name: str = DEFAULT_QUEUE_NAME,
                 visibility_timeout: int = VISIBILITY_TIMEOUT_SEC):
        self.client = client
        self.queue_name = queue_name
        self.visibility_timeout = visibility_timeout

    @classmethod
    def from_config(cls, config) -> "DatabaseGateway":
        client = create_client(config.get('supabase_url'), config.get('supabase_key'))
        return cls(client, config.queue_name, config.visibility_timeout_sec)

    # ── Processing status ────────────────────────────────────────────

    def update_status(self, video_id: str, user_id: str, status: str, **extra):
        """Set status (plus any extra columns) on the (video_id, user_id) record."""
        row = {'status': status, 'updated_at': now_iso()}
        row.update(extra)
        try:
            (self.client.table(STATUS_TABLE)
                .update(row)
                .eq('video_id', video_id)
                .eq('user_id', user_id)
                .execute())
        except Exception as e:
            raise PersistenceError(f"Failed to update status for {video_id}: {e}") from e
        logger.debug("Status %s → %s %s", video_id, status, extra.get('stage', ''))

    def get_status(self, video_id: str, user_id: str) -> str | None:
        try:
            resp = (self.client.table(STATUS_TABLE)
                    .select('status')
                    .eq('video_id', video_id)
                    .eq('user_id', user_id)
                    .limit(1)
                    .execute())
        except Exception as e:
            raise PersistenceError(f"Failed to read status for {video_id}: {e}") from e
        rows = resp.data or []
        return rows[0].get('status') if rows else None

    # ── Documents ────────────────────────────────────────────────────

    def insert_document(self, fields: dict) -> str:
        try:
            resp = self.client.table(DOCUMENTS_TABLE).insert(fields).execute()
        except Exception as e:
            raise PersistenceError(f"Failed to insert document: {e}") from e
        rows = resp.data or []
        if not rows or not rows[0].get('id'):
            raise PersistenceError("Document insert returned no id")
        return str(rows[0]['id'])

    def find_document(self, video_id: str, user_id: str) -> str | None:
        try:
            resp = (self.client.table(DOCUMENTS_TABLE)
                    .select('id')
                    .eq('video_id', video_id)
                    .eq('user_id', user_id)
                    .limit(1)
                    .execute())
        except Exception as e:
            raise PersistenceError(f"Failed to look up document for {video_id}: {e}") from e
        rows = resp.data or []
        return str(rows[0]['id']) if rows else None

    def update_document(self, document_id: str, fields: dict):
        try:
            self.client.table(DOCUMENTS_TABLE).update(fields).eq('id', document_id).execute()
        except Exception as e:
            raise PersistenceError(f"Failed to update document {document_id}: {e}") from e

    # ── Queue ────────────────────────────────────────────────────────

    def receive_message(self) -> JobMessage | None:
        """
        Receive one message, hiding it for the visibility timeout.
        Returns None when the queue is empty.
        """
        try:
            resp = self.client.rpc(RPC_QUEUE_RECEIVE, {
                'queue_name': self.queue_name,
                'visibility_timeout': self.visibility_timeout,
            }).execute()
        except Exception as e:
            raise PersistenceError(f"Queue receive failed: {e}") from e

        data = resp.data
        if isinstance(data, list):
            data = data[0] if data else None
        if not data:
            return None

        message_id = data.get('message_id', data.get('msg_id'))
        if message_id is None:
            return None
        message_id = int(message_id)

        read_count = int(data.get('read_ct') or data.get('read_count') or 1)
        return JobMessage(message_id=message_id, body=data.get('message'), read_count=read_count,
                          enqueued_at=data.get('enqueued_at'))

    def delete_message(self, message_id: int) -> bool:
        try:
            resp = self.client.rpc(RPC_QUEUE_DELETE, {
                'queue_name': self.queue_name,
                'message_id': int(message_id),
            }).execute()
        except Exception as e:
            raise PersistenceError(f"Queue delete of {message_id} failed: {e}") from e
        return resp.data is not False
