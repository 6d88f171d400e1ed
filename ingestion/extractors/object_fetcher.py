"""
Object store fetcher that streams an uploaded file into local staging.

The object body is copied in fixed-size chunks so that multi-hundred-megabyte
uploads never sit in worker memory. Transient failures are retried through
``core.retry.with_retry``; missing objects and access errors fail at once.
"""

import asyncio
import logging
from pathlib import Path
from typing import Optional

import boto3
from botocore.config import Config
from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    ConnectionClosedError,
    ConnectTimeoutError,
    EndpointConnectionError,
    ReadTimeoutError,
    ResponseStreamingError,
)

from core.config import settings
from core.exceptions import (
    FetchError,
    NetworkError,
    ObjectAccessDeniedError,
    ObjectNotFoundError,
    RetryableError,
)
from core.retry import with_retry

logger = logging.getLogger(__name__)

NOT_FOUND_CODES = {"NoSuchKey", "NoSuchBucket", "NotFound", "404"}
ACCESS_DENIED_CODES = {
    "AccessDenied", "Forbidden", "403",
    "InvalidAccessKeyId", "SignatureDoesNotMatch", "ExpiredToken",
}
TRANSIENT_CODES = {
    "SlowDown", "Throttling", "ThrottlingException", "RequestTimeout",
    "InternalError", "ServiceUnavailable", "InternalServerError",
}
NETWORK_EXCEPTIONS = (
    EndpointConnectionError,
    ConnectTimeoutError,
    ReadTimeoutError,
    ConnectionClosedError,
    ResponseStreamingError,
)


def create_s3_client():
    """
    S3 client with short explicit timeouts.

    botocore's own retries are disabled; ``with_retry`` owns the budget.
    """
    return boto3.client(
        "s3",
        region_name=settings.AWS_REGION,
        endpoint_url=settings.S3_ENDPOINT_URL,
        config=Config(
            connect_timeout=settings.S3_CONNECT_TIMEOUT,
            read_timeout=settings.S3_READ_TIMEOUT,
            retries={"max_attempts": 1, "mode": "standard"},
        ),
    )


class ObjectFetcher:
    """
    Download objects to local staging files.

    Attributes:
        max_attempts: Total attempts for transient failures (default: MAX_RETRIES)
        base_delay: Initial retry delay in seconds (default: RETRY_BASE_DELAY)
        chunk_size: Bytes copied per read (default: S3_DOWNLOAD_CHUNK_SIZE)
    """

    def __init__(
        self,
        s3_client=None,
        max_attempts: Optional[int] = None,
        base_delay: Optional[float] = None,
        chunk_size: Optional[int] = None
    ):
        self.s3 = s3_client if s3_client is not None else create_s3_client()
        self.max_attempts = max_attempts or settings.MAX_RETRIES
        self.base_delay = settings.RETRY_BASE_DELAY if base_delay is None else base_delay
        self.chunk_size = chunk_size or settings.S3_DOWNLOAD_CHUNK_SIZE

    async def fetch(self, bucket: str, key: str, destination: Path) -> Path:
        """
        Stream ``s3://bucket/key`` to ``destination``.

        Returns:
            The destination path

        Raises:
            ObjectNotFoundError: Object or bucket does not exist
            ObjectAccessDeniedError: Credentials lack access
            NetworkError: Transient failures persisted past the retry budget
            FetchError: Any other retrieval failure
        """
        destination = Path(destination)

        async def attempt():
            return await asyncio.to_thread(self._download, bucket, key, destination)

        try:
            size = await with_retry(
                attempt,
                max_attempts=self.max_attempts,
                base_delay=self.base_delay,
                jitter=settings.RETRY_JITTER,
                is_retryable=lambda e: isinstance(e, RetryableError),
                description=f"Fetch s3://{bucket}/{key}",
            )
        except FetchError:
            self._discard(destination)
            raise
        except Exception as e:
            self._discard(destination)
            raise FetchError(
                f"Failed to download file: {e}",
                context={"bucket": bucket, "key": key},
                original_exception=e
            )

        logger.info(f"Downloaded s3://{bucket}/{key} to {destination} ({size} bytes)")
        return destination

    def _download(self, bucket: str, key: str, destination: Path) -> int:
        """Blocking streamed copy; runs in a worker thread"""
        context = {"bucket": bucket, "key": key}
        destination.parent.mkdir(parents=True, exist_ok=True)

        try:
            response = self.s3.get_object(Bucket=bucket, Key=key)
            body = response["Body"]
            size = 0
            try:
                with open(destination, "wb") as fh:
                    for chunk in body.iter_chunks(chunk_size=self.chunk_size):
                        fh.write(chunk)
                        size += len(chunk)
            finally:
                body.close()
            return size

        except ClientError as e:
            raise self._map_client_error(e, context)

        except NETWORK_EXCEPTIONS as e:
            raise NetworkError(
                f"Network error while downloading file: {e}",
                context=context,
                original_exception=e
            )

        except BotoCoreError as e:
            raise FetchError(
                f"Failed to download file: {e}",
                context=context,
                original_exception=e
            )

    @staticmethod
    def _map_client_error(e: ClientError, context: dict) -> FetchError:
        err = e.response.get("Error", {}) or {}
        code = str(err.get("Code", ""))
        http_status = e.response.get("ResponseMetadata", {}).get("HTTPStatusCode")
        context = {**context, "error_code": code, "http_status": http_status}

        if code in NOT_FOUND_CODES or http_status == 404:
            return ObjectNotFoundError(
                f"Object not found: s3://{context['bucket']}/{context['key']}",
                context=context,
                original_exception=e
            )

        if code in ACCESS_DENIED_CODES or http_status == 403:
            return ObjectAccessDeniedError(
                f"Access denied to s3://{context['bucket']}/{context['key']}",
                context=context,
                original_exception=e
            )

        if code in TRANSIENT_CODES or (isinstance(http_status, int) and 500 <= http_status < 600):
            return NetworkError(
                f"Object store unavailable ({code or http_status})",
                context=context,
                original_exception=e
            )

        return FetchError(
            f"Failed to download file: {code or e}",
            context=context,
            original_exception=e
        )

    @staticmethod
    def _discard(path: Path):
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            logger.warning(f"Could not remove partial download {path}: {e}")
