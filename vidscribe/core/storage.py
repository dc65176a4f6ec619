"""
Object storage on S3 (or an S3-compatible endpoint) via boto3.

StorageServiceFactory keeps exactly one StorageService per bucket name for
the lifetime of the worker context.
"""

import logging
import threading
from pathlib import Path

import boto3
from boto3.exceptions import S3UploadFailedError
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from vidscribe.core.constants import CONTENT_TYPES, DEFAULT_CONTENT_TYPE
from vidscribe.core.error_codes import ConfigurationError, UpstreamError

logger = logging.getLogger(__name__)

# S3 error codes that mean the deployment itself is wrong
_CONFIG_ERROR_CODES = {"NoSuchBucket", "InvalidAccessKeyId", "SignatureDoesNotMatch", "AccessDenied"}


def guess_content_type(key: str) -> str:
    return CONTENT_TYPES.get(Path(key).suffix.lower(), DEFAULT_CONTENT_TYPE)


def _is_custom_endpoint(endpoint: str | None) -> bool:
    return bool(endpoint) and "amazonaws.com" not in endpoint


class StorageService:
    """Uploads into a single bucket."""

    def __init__(self, bucket: str, client, region: str | None = None,
                 endpoint: str | None = None):
        self.bucket = bucket
        self.client = client
        self.region = region
        self.endpoint = endpoint

    def public_url(self, key: str) -> str:
        if _is_custom_endpoint(self.endpoint):
            return f"{self.endpoint.rstrip('/')}/{self.bucket}/{key}"
        if self.region:
            return f"https://{self.bucket}.s3.{self.region}.amazonaws.com/{key}"
        return f"https://{self.bucket}.s3.amazonaws.com/{key}"

    def _raise_for(self, key: str, e: Exception):
        if isinstance(e, ClientError):
            code = e.response.get("Error", {}).get("Code", "")
            if code in _CONFIG_ERROR_CODES:
                raise ConfigurationError(f"S3 bucket '{self.bucket}' rejected upload of {key}: {code}") from e
        raise UpstreamError(f"Failed to upload {key} to bucket '{self.bucket}': {e}") from e

    def upload_bytes(self, key: str, data: bytes, content_type: str | None = None) -> str:
        content_type = content_type or guess_content_type(key)
        try:
            self.client.put_object(Bucket=self.bucket, Key=key, Body=data, ContentType=content_type)
        except (BotoCoreError, ClientError) as e:
            self._raise_for(key, e)
        logger.info("Uploaded %d bytes to s3://%s/%s", len(data), self.bucket, key)
        return self.public_url(key)

    def upload_file(self, path: Path, key: str, content_type: str | None = None) -> str:
        """Upload a local file; boto3 switches to multipart for large files."""
        content_type = content_type or guess_content_type(str(path))
        try:
            self.client.upload_file(str(path), self.bucket, key,
                                    ExtraArgs={"ContentType": content_type})
        except (BotoCoreError, ClientError, S3UploadFailedError) as e:
            self._raise_for(key, e)
        logger.info("Uploaded %s to s3://%s/%s", Path(path).name, self.bucket, key)
        return self.public_url(key)


class StorageServiceFactory:
    """
    Resolves a bucket kind to a cached StorageService.

    The cache is the only shared mutable state between dispatcher threads,
    so every access goes through the lock.
    """

    def __init__(self, buckets: dict, region: str | None = None, endpoint: str | None = None,
                 client_factory=None):
        self.buckets = dict(buckets or {})
        self.region = region
        self.endpoint = endpoint
        self._client_factory = client_factory or self._default_client
        self._instances: dict[str, StorageService] = {}
        self._lock = threading.Lock()

    @classmethod
    def from_config(cls, config, client_factory=None) -> "StorageServiceFactory":
        return cls(config.buckets, region=config.get('aws_region'),
                   endpoint=config.get('aws_endpoint'), client_factory=client_factory)

    def _default_client(self):
        kwargs = {}
        if self.region:
            kwargs['region_name'] = self.region
        if _is_custom_endpoint(self.endpoint):
            kwargs['endpoint_url'] = self.endpoint
            kwargs['config'] = Config(s3={'addressing_style': 'path'})
        return boto3.client("s3", **kwargs)

    def bucket_name(self, bucket_kind: str) -> str:
        name = self.buckets.get(bucket_kind)
        if not name:
            raise ConfigurationError(f"No bucket configured for '{bucket_kind}'")
        return name

    def get_storage_service(self, bucket_kind: str) -> StorageService:
        bucket = self.bucket_name(bucket_kind)
        with self._lock:
            service = self._instances.get(bucket)
            if service is None:
                logger.debug("Creating storage service for bucket %s", bucket)
                service = StorageService(bucket, self._client_factory(),
                                         region=self.region, endpoint=self.endpoint)
                self._instances[bucket] = service
            return service

    def clear_instances(self):
        """Drop every cached service. Not for use while uploads are in flight."""
        with self._lock:
            self._instances.clear()
