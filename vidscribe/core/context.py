"""
Worker context: every long-lived collaborator, built once at process start
and shared by all dispatchers.
"""

import logging
from dataclasses import dataclass
from typing import Any, Optional

from vidscribe.core.captions_parse import CaptionParserFactory, CaptionService
from vidscribe.core.config import WorkerConfig
from vidscribe.core.constants import BucketKind
from vidscribe.core.db_supabase import DatabaseGateway
from vidscribe.core.downloaders import create_downloader
from vidscribe.core.error_codes import ConfigurationError
from vidscribe.core.event_scheduler import EventBridgeScheduler
from vidscribe.core.storage import StorageServiceFactory
from vidscribe.core.video_download import VideoDownloadService
from vidscribe.core.yt_metadata import YouTubeMetadataClient

logger = logging.getLogger(__name__)


@dataclass
class WorkerContext:
    config: WorkerConfig
    db: Any                                 # DatabaseGateway
    scheduler: Any                          # EventBridgeScheduler
    download_service: VideoDownloadService
    storage: StorageServiceFactory
    parser_factory: Optional[CaptionParserFactory] = None

    @classmethod
    def from_config(cls, config: WorkerConfig) -> "WorkerContext":
        """Build real collaborators. Raises ConfigurationError on missing settings."""
        config.require('supabase_url', 'supabase_key')

        storage = StorageServiceFactory.from_config(config)
        if config.get('archive_audio_without_captions'):
            # Resolve now so a missing bucket stops startup, not a job
            storage.bucket_name(BucketKind.RAW_MEDIA)

        api_key = config.get('youtube_api_key')
        metadata_client = YouTubeMetadataClient(api_key) if api_key else None
        if metadata_client is None:
            logger.info("No YouTube API key; fallback transcripts use extractor metadata only")

        parser_factory = CaptionParserFactory()
        download_service = VideoDownloadService(
            create_downloader(config),
            caption_service=CaptionService(parser_factory),
            metadata_client=metadata_client,
            comments_limit=config.get('comments_limit'),
        )

        try:
            db = DatabaseGateway.from_config(config)
        except Exception as e:
            raise ConfigurationError(f"Could not create Supabase client: {e}") from e

        try:
            scheduler = EventBridgeScheduler.from_config(config)
        except Exception as e:
            raise ConfigurationError(f"Could not create EventBridge client: {e}") from e

        return cls(
            config=config,
            db=db,
            scheduler=scheduler,
            download_service=download_service,
            storage=storage,
            parser_factory=parser_factory,
        )
