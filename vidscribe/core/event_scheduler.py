"""
Summary-generation events on AWS EventBridge.
"""

import json
import logging
from datetime import datetime, timedelta, timezone

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from vidscribe.core.constants import (
    EVENT_SOURCE, EVENT_DETAIL_TYPE, DEFAULT_EVENT_BUS, SummaryType, ErrorCode,
)
from vidscribe.core.error_codes import InvalidInputError, UpstreamError
from vidscribe.core.models import SummaryGenerationEvent

logger = logging.getLogger(__name__)

# Processing option that must be true for each summary type when options are given
_TYPE_OPTION = {
    SummaryType.SHORT: 'generateShortForm',
    SummaryType.LONG: 'generateLongForm',
}


def should_schedule(event: SummaryGenerationEvent) -> bool:
    options = event.processing_options
    if not options:
        return True
    flag = _TYPE_OPTION.get(event.summary_type)
    return flag is None or options.get(flag) is True


def build_detail(event: SummaryGenerationEvent) -> dict:
    source_id = event.video_id or event.document_id
    if not source_id:
        raise InvalidInputError("Either video_id or document_id must be provided")

    options = {'generateAudio': True}
    options.update(event.processing_options or {})
    detail = {
        'user_id': event.user_id,
        'video_id': source_id,
        'source_type': 'video' if event.video_id else 'document',
        'transcript_text': event.transcript_text,
        'summary_type': event.summary_type,
        'processing_options': options,
    }
    if event.document_id:
        detail['document_id'] = event.document_id
    return detail


class EventBridgeScheduler:
    """Puts delayed SummaryGenerationRequest events on an event bus."""

    def __init__(self, client, event_bus_name: str = DEFAULT_EVENT_BUS, clock=None):
        self.client = client
        self.event_bus_name = event_bus_name or DEFAULT_EVENT_BUS
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    @classmethod
    def from_config(cls, config) -> "EventBridgeScheduler":
        kwargs = {}
        if config.get('aws_region'):
            kwargs['region_name'] = config.get('aws_region')
        return cls(boto3.client("events", **kwargs), config.get('event_bus_name'))

    def schedule(self, event: SummaryGenerationEvent, delay_minutes: int = 0) -> bool:
        """
        Schedule one summary event. Returns False when the processing options
        opt out of this summary type.
        """
        if not should_schedule(event):
            logger.info("Skipping %s summary for %s: not enabled in processing options",
                        event.summary_type, event.video_id or event.document_id)
            return False

        detail = build_detail(event)
        event_time = self._clock() + timedelta(minutes=max(0, delay_minutes))
        logger.info("Scheduling %s summary for %s %s at %s",
                    event.summary_type, detail['source_type'], detail['video_id'],
                    event_time.isoformat())

        try:
            resp = self.client.put_events(Entries=[{
                'EventBusName': self.event_bus_name,
                'Source': EVENT_SOURCE,
                'DetailType': EVENT_DETAIL_TYPE,
                'Time': event_time,
                'Detail': json.dumps(detail),
            }])
        except (BotoCoreError, ClientError) as e:
            raise UpstreamError(f"Failed to schedule {event.summary_type} summary: {e}",
                                code=ErrorCode.SCHEDULE_FAILED) from e

        if resp.get('FailedEntryCount'):
            entry = (resp.get('Entries') or [{}])[0]
            raise UpstreamError(f"EventBridge rejected {event.summary_type} summary: "
                                f"{entry.get('ErrorCode')} {entry.get('ErrorMessage')}",
                                code=ErrorCode.SCHEDULE_FAILED)
        return True
