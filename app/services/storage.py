import logging
import re
import secrets
import time
from typing import AsyncIterator

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError
from starlette.concurrency import iterate_in_threadpool, run_in_threadpool

from app.config import settings

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024
_MISSING_KEY_CODES = {"NoSuchKey", "404", "NotFound"}


class StorageError(Exception):
    """Object storage could not complete a request"""


class StorageNotFoundError(StorageError):
    def __init__(self, key: str):
        super().__init__(f"Object not found: {key}")
        self.key = key


def sanitize_filename(filename: str) -> str:
    # Remove path components
    basename = re.split(r"[\\/]", filename)[-1] or filename
    # Replace dangerous characters
    cleaned = re.sub(r"[^a-zA-Z0-9._-]", "_", basename)
    cleaned = re.sub(r"_{2,}", "_", cleaned)
    return cleaned[:255]


def generate_storage_key(filename: str) -> str:
    """Unique key of the form uploads/<ms timestamp>-<random>-<sanitized name>"""
    timestamp = int(time.time() * 1000)
    return f"uploads/{timestamp}-{secrets.token_hex(3)}-{sanitize_filename(filename)}"


class S3StorageService:
    """Content storage on any S3-compatible endpoint.

    boto3 is blocking, so every network call is pushed to Starlette's
    threadpool; the event loop only yields while waiting for it.
    """

    def __init__(self, s3_client=None):
        self.bucket = settings.STORAGE_BUCKET_NAME
        self.endpoint_url = settings.STORAGE_ENDPOINT_URL
        self.public_base_url = settings.STORAGE_PUBLIC_URL

        if s3_client is None:
            if not settings.STORAGE_KEY_ID or not settings.STORAGE_APP_KEY:
                logger.warning("Storage credentials not set. Storage service may fail.")
            s3_client = boto3.client(
                's3',
                endpoint_url=self.endpoint_url,
                aws_access_key_id=settings.STORAGE_KEY_ID,
                aws_secret_access_key=settings.STORAGE_APP_KEY,
                region_name=settings.STORAGE_REGION,
                config=Config(signature_version='s3v4'),
            )
        self.s3_client = s3_client

    async def put(self, data: bytes, key: str, content_type: str) -> bool:
        """Upload bytes under ``key``; repeating the same upload is harmless"""
        try:
            await run_in_threadpool(
                self.s3_client.put_object,
                Bucket=self.bucket,
                Key=key,
                Body=data,
                ContentType=content_type,
            )
        except (ClientError, BotoCoreError) as e:
            raise StorageError(f"Failed to upload {key}: {e}") from e
        return True

    async def get_stream(self, key: str, chunk_size: int = CHUNK_SIZE) -> AsyncIterator[bytes]:
        """Open ``key`` for reading and return an async iterator over its bytes.

        Raises StorageNotFoundError before any byte is produced when the key
        does not exist.
        """
        try:
            response = await run_in_threadpool(self.s3_client.get_object, Bucket=self.bucket, Key=key)
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code")
            if code in _MISSING_KEY_CODES:
                raise StorageNotFoundError(key) from e
            raise StorageError(f"Failed to fetch {key}: {e}") from e
        except BotoCoreError as e:
            raise StorageError(f"Failed to fetch {key}: {e}") from e
        return self._iter_body(key, response["Body"], chunk_size)

    async def _iter_body(self, key: str, body, chunk_size: int) -> AsyncIterator[bytes]:
        try:
            async for chunk in iterate_in_threadpool(body.iter_chunks(chunk_size)):
                yield chunk
        except (ClientError, BotoCoreError) as e:
            raise StorageError(f"Stream for {key} failed: {e}") from e
        finally:
            body.close()

    async def delete(self, key: str) -> bool:
        """Delete ``key``; an already-absent key counts as success"""
        try:
            await run_in_threadpool(self.s3_client.delete_object, Bucket=self.bucket, Key=key)
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") in _MISSING_KEY_CODES:
                return True
            raise StorageError(f"Failed to delete {key}: {e}") from e
        except BotoCoreError as e:
            raise StorageError(f"Failed to delete {key}: {e}") from e
        return True

    def public_url(self, key: str) -> str:
        if self.public_base_url:
            return f"{self.public_base_url.rstrip('/')}/{key}"
        base = (self.endpoint_url or f"https://s3.{settings.STORAGE_REGION}.amazonaws.com").rstrip('/')
        return f"{base}/{self.bucket}/{key}"
