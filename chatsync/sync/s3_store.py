"""S3-compatible object store (AWS S3, Aliyun OSS, MinIO, ...)."""

import asyncio
import logging

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from chatsync.config import Settings
from chatsync.exceptions import InvalidConfigError, ObjectNotFoundError, ObjectStoreError
from chatsync.sync.object_store import JSON_CONTENT_TYPE, ObjectStore

logger = logging.getLogger(__name__)

NOT_FOUND_CODES = {"NoSuchKey", "404", "NotFound"}


class S3ObjectStore(ObjectStore):
    """Handles object reads and writes against one S3 bucket.

    boto3 is blocking, so every call runs in a worker thread to keep the
    event loop responsive while a sync pass is in flight.
    """

    def __init__(self, settings: Settings = None, client=None):
        """Initialize S3 client.

        Args:
            settings: Bucket, credentials and endpoint (defaults to environment)
            client: Pre-built boto3 S3 client (mainly for tests)
        """
        if settings is None:
            settings = Settings()
        if not settings.s3_bucket:
            raise InvalidConfigError("S3 bucket is not configured (CHATSYNC_S3_BUCKET)")

        self.s3 = client or boto3.client(
            "s3",
            aws_access_key_id=settings.s3_access_key_id,
            aws_secret_access_key=settings.s3_secret_access_key,
            region_name=settings.s3_region,
            endpoint_url=settings.resolved_s3_endpoint,
        )
        self.bucket = settings.s3_bucket
        self.prefix = settings.s3_prefix.strip("/")

    def _make_key(self, key: str) -> str:
        """Convert an object key to an S3 key with prefix."""
        key = key.lstrip("/")
        return f"{self.prefix}/{key}" if self.prefix else key

    @staticmethod
    def _is_not_found(error: ClientError) -> bool:
        return error.response.get("Error", {}).get("Code") in NOT_FOUND_CODES

    async def get(self, key: str) -> bytes:
        s3_key = self._make_key(key)
        try:
            response = await asyncio.to_thread(
                self.s3.get_object, Bucket=self.bucket, Key=s3_key
            )
            return await asyncio.to_thread(response["Body"].read)
        except ClientError as e:
            if self._is_not_found(e):
                raise ObjectNotFoundError(f"Object not found: {key}") from e
            logger.error(f"Error reading object {key}: {e}")
            raise ObjectStoreError(f"Failed to read object {key}: {e}") from e
        except BotoCoreError as e:
            raise ObjectStoreError(f"Failed to read object {key}: {e}") from e

    async def put(
        self, key: str, data: bytes, content_type: str = JSON_CONTENT_TYPE
    ) -> None:
        s3_key = self._make_key(key)
        try:
            await asyncio.to_thread(
                self.s3.put_object,
                Bucket=self.bucket,
                Key=s3_key,
                Body=data,
                ContentType=content_type,
            )
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Error writing object {key}: {e}")
            raise ObjectStoreError(f"Failed to write object {key}: {e}") from e
        logger.debug(f"Wrote s3://{self.bucket}/{s3_key} ({len(data)} bytes)")

    async def delete(self, key: str) -> None:
        s3_key = self._make_key(key)
        try:
            await asyncio.to_thread(
                self.s3.delete_object, Bucket=self.bucket, Key=s3_key
            )
        except ClientError as e:
            if self._is_not_found(e):
                return
            logger.error(f"Error deleting object {key}: {e}")
            raise ObjectStoreError(f"Failed to delete object {key}: {e}") from e
        except BotoCoreError as e:
            raise ObjectStoreError(f"Failed to delete object {key}: {e}") from e
