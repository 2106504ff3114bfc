"""
Object Storage Client

Async wrapper around the S3 API used by stores, listing and publishing.
Translates provider errors into StorageTransportError / NotFoundError and
logs slow operations.
"""

import asyncio
import logging
import time
import uuid
from collections.abc import AsyncGenerator, AsyncIterable, AsyncIterator, Iterator
from contextlib import AsyncExitStack, contextmanager
from dataclasses import dataclass, field
from typing import Any

import aioboto3
import aiobotocore.config
from botocore.exceptions import BotoCoreError, ClientError
from tenacity import before_sleep_log, retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from ..common import encode_path_for_uri
from ..constants import (
    DEFAULT_S3_MAX_POOL_CONNECTIONS,
    MULTIPART_MIN_PART_SIZE,
    PART_UPLOAD_MAX_ATTEMPTS,
    STREAM_CHUNK_SIZE,
)
from ..exceptions import NotFoundError, StorageTransportError
from ..run_config import ProfileConfig

logger = logging.getLogger(__name__)

NOT_FOUND_CODES = {"404", "NoSuchKey", "NotFound"}
SLOW_OPERATION_SECONDS = 60.0 * 3


def is_not_found_error(error: BaseException) -> bool:
    """Check whether a botocore ClientError reports a missing object."""
    if not isinstance(error, ClientError):
        return False
    code = str(error.response.get("Error", {}).get("Code", ""))
    return code in NOT_FOUND_CODES


@dataclass
class ObjectListingPage:
    """One page of a list_objects_v2 response."""

    keys: list[str] = field(default_factory=list)
    is_truncated: bool = False
    next_token: str | None = None


async def _rechunk(chunks: AsyncIterable[bytes], part_size: int) -> AsyncGenerator[bytes, None]:
    """Regroup an arbitrary chunk stream into parts of exactly part_size bytes (last part may be shorter)."""
    buffer = bytearray()
    async for chunk in chunks:
        buffer.extend(chunk)
        while len(buffer) >= part_size:
            yield bytes(buffer[:part_size])
            del buffer[:part_size]
    if buffer:
        yield bytes(buffer)


class ObjectStorageClient:
    """
    Async S3 client abstraction.

    Holds one persistent aioboto3 client per instance; call close() when done.
    """

    def __init__(self, profile: ProfileConfig | None = None, client: Any = None):
        self.profile = profile or ProfileConfig()
        self._s3_client: Any = client  # Persistent S3 client, may be injected
        self._s3_session: Any = None  # Keep session reference for cleanup
        self._exit_stack: AsyncExitStack | None = None
        self._client_lock = asyncio.Lock()

        # Instance identification for logging
        self._instance_id = str(uuid.uuid4())[:8]

        logger.debug(f"Object storage client created (id={self._instance_id}, endpoint={self.profile.endpoint_url})")

    async def _get_s3_client(self) -> Any:
        """Get or create persistent S3 client."""
        if self._s3_client is None:
            async with self._client_lock:
                # Double-check pattern to prevent race condition
                if self._s3_client is None:
                    max_pool_connections = DEFAULT_S3_MAX_POOL_CONNECTIONS
                    config = aiobotocore.config.AioConfig(
                        max_pool_connections=max_pool_connections,
                        retries={"max_attempts": 3, "mode": "adaptive"},
                        read_timeout=300,
                        connect_timeout=120,
                    )

                    logger.info(
                        f"Creating S3 client (client_id={self._instance_id}, "
                        f"max_pool_connections={max_pool_connections}, region={self.profile.region})"
                    )

                    client_kwargs: dict[str, Any] = {"config": config}
                    # Credentials fall back to boto's default chain when not configured
                    if self.profile.access_key and self.profile.secret_key:
                        client_kwargs["aws_access_key_id"] = self.profile.access_key
                        client_kwargs["aws_secret_access_key"] = self.profile.secret_key
                    if self.profile.region:
                        client_kwargs["region_name"] = self.profile.region
                    if self.profile.endpoint_url:
                        client_kwargs["endpoint_url"] = self.profile.endpoint_url

                    self._s3_session = aioboto3.Session()
                    self._exit_stack = AsyncExitStack()
                    self._s3_client = await self._exit_stack.enter_async_context(
                        self._s3_session.client("s3", **client_kwargs)
                    )

        return self._s3_client

    @contextmanager
    def _operation(self, operation: str, bucket: str, key: str = "") -> Iterator[None]:
        """Time a provider operation and translate its errors."""
        path = f"{bucket}/{key}"
        start_time = time.time()
        try:
            yield
        except ClientError as e:
            if is_not_found_error(e):
                raise NotFoundError(path) from e
            logger.error(f"Storage operation FAILED: {operation} for {path} - {e} (client_id={self._instance_id})")
            raise StorageTransportError(path, e) from e
        except BotoCoreError as e:
            logger.error(f"Storage operation FAILED: {operation} for {path} - {e} (client_id={self._instance_id})")
            raise StorageTransportError(path, e) from e

        duration = time.time() - start_time
        if duration > SLOW_OPERATION_SECONDS:
            logger.warning(
                f"SLOW S3 operation: {operation} for {path} took {duration:.3f}s (client_id={self._instance_id})"
            )

    async def list_objects_page(
        self, bucket: str, prefix: str = "", continuation_token: str | None = None
    ) -> ObjectListingPage:
        """Fetch one page of keys under a prefix."""
        s3_client = await self._get_s3_client()
        request: dict[str, Any] = {"Bucket": bucket, "Prefix": prefix}
        if continuation_token:
            request["ContinuationToken"] = continuation_token

        with self._operation("list_objects_v2", bucket, prefix):
            response = await s3_client.list_objects_v2(**request)

        return ObjectListingPage(
            keys=[item["Key"] for item in response.get("Contents", []) or [] if "Key" in item],
            is_truncated=bool(response.get("IsTruncated", False)),
            next_token=response.get("NextContinuationToken"),
        )

    async def head_object(self, bucket: str, key: str) -> dict[str, Any]:
        """Return object metadata, raising NotFoundError if the object is absent."""
        s3_client = await self._get_s3_client()
        with self._operation("head_object", bucket, key):
            return await s3_client.head_object(Bucket=bucket, Key=key)

    async def object_exists(self, bucket: str, key: str) -> bool:
        """Metadata probe: True if the object exists."""
        try:
            await self.head_object(bucket, key)
        except NotFoundError:
            return False
        return True

    async def put_object(
        self, bucket: str, key: str, body: bytes, content_type: str | None = None, acl: str | None = None
    ) -> None:
        """Single-request upload of an in-memory payload."""
        s3_client = await self._get_s3_client()
        request: dict[str, Any] = {"Bucket": bucket, "Key": key, "Body": body, "ContentLength": len(body)}
        if content_type:
            request["ContentType"] = content_type
        if acl:
            request["ACL"] = acl

        with self._operation("put_object", bucket, key):
            await s3_client.put_object(**request)

    def _calculate_part_size(self, file_size: int) -> int:
        """Calculate optimal part size based on file size."""
        if file_size < 100 * 1024 * 1024:  # < 100MB
            return 2 * MULTIPART_MIN_PART_SIZE
        elif file_size < 1024 * 1024 * 1024:  # < 1GB
            return 16 * 1024 * 1024
        elif file_size < 5 * 1024 * 1024 * 1024:  # < 5GB
            return 32 * 1024 * 1024
        else:
            # Target ~100 parts for very large files, cap at 100MB per part
            target_part_size = file_size // 100
            return min(target_part_size, 100 * 1024 * 1024)

    async def upload_stream(
        self,
        bucket: str,
        key: str,
        chunks: AsyncIterable[bytes],
        content_type: str | None = None,
        acl: str | None = None,
        size_hint: int = 0,
    ) -> None:
        """
        Upload a byte stream without holding it in memory.

        Payloads that fit in one part are sent with a single put_object;
        larger ones use a streaming multipart upload.
        """
        parts = _rechunk(chunks, self._calculate_part_size(size_hint))
        try:
            first_part = await anext(parts, b"")
            second_part = await anext(parts, None)
            if second_part is None:
                await self.put_object(bucket, key, first_part, content_type, acl)
                return

            s3_client = await self._get_s3_client()
            await self._multipart_upload(s3_client, bucket, key, parts, [first_part, second_part], content_type, acl)
        finally:
            await parts.aclose()

    async def _multipart_upload(
        self,
        s3_client: Any,
        bucket: str,
        key: str,
        parts: AsyncIterator[bytes],
        head_parts: list[bytes],
        content_type: str | None = None,
        acl: str | None = None,
    ) -> None:
        """Upload parts using a bounded producer/consumer queue."""
        max_concurrent_parts = 5
        queue_size = 10  # Maximum parts in memory at once

        create_kwargs: dict[str, Any] = {"Bucket": bucket, "Key": key}
        if content_type:
            create_kwargs["ContentType"] = content_type
        if acl:
            create_kwargs["ACL"] = acl

        with self._operation("create_multipart_upload", bucket, key):
            response = await s3_client.create_multipart_upload(**create_kwargs)
        upload_id = response["UploadId"]

        logger.debug(f"Starting streaming multipart upload for {key} (upload_id={upload_id})")

        chunk_queue: asyncio.Queue[tuple[int, bytes] | None] = asyncio.Queue(maxsize=queue_size)
        results: list[tuple[int, str]] = []

        async def producer() -> None:
            part_number = 1
            for part in head_parts:
                await chunk_queue.put((part_number, part))
                part_number += 1
            async for part in parts:
                await chunk_queue.put((part_number, part))
                part_number += 1
            # Signal end of stream with one None per consumer
            for _ in range(max_concurrent_parts):
                await chunk_queue.put(None)

        async def consumer() -> None:
            while True:
                item = await chunk_queue.get()
                if item is None:
                    break
                part_number, chunk = item
                etag = await self._upload_part(s3_client, bucket, key, part_number, upload_id, chunk)
                results.append((part_number, etag))

        tasks = [asyncio.create_task(producer())]
        tasks.extend(asyncio.create_task(consumer()) for _ in range(max_concurrent_parts))

        try:
            await asyncio.gather(*tasks)

            results.sort(key=lambda x: x[0])
            completed_parts = [{"ETag": etag, "PartNumber": part_number} for part_number, etag in results]
            with self._operation("complete_multipart_upload", bucket, key):
                await s3_client.complete_multipart_upload(
                    Bucket=bucket, Key=key, UploadId=upload_id, MultipartUpload={"Parts": completed_parts}
                )
            logger.debug(f"Multipart upload completed ({key}, parts={len(completed_parts)}, upload_id={upload_id})")
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            try:
                await s3_client.abort_multipart_upload(Bucket=bucket, Key=key, UploadId=upload_id)
                logger.error(f"Aborted multipart upload ({key}, upload_id={upload_id})")
            except (ClientError, BotoCoreError) as abort_error:
                logger.warning(f"Could not abort multipart upload ({key}, upload_id={upload_id}): {abort_error}")
            raise

    @retry(
        retry=retry_if_exception_type(StorageTransportError),
        stop=stop_after_attempt(PART_UPLOAD_MAX_ATTEMPTS),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
    async def _upload_part(
        self, s3_client: Any, bucket: str, key: str, part_number: int, upload_id: str, chunk: bytes
    ) -> str:
        """Upload a single part and return its ETag."""
        with self._operation("upload_part", bucket, key):
            part_response = await s3_client.upload_part(
                Bucket=bucket, Key=key, PartNumber=part_number, UploadId=upload_id, Body=chunk
            )
        return part_response["ETag"]

    async def copy_object(
        self,
        bucket: str,
        key: str,
        source_bucket: str,
        source_key: str,
        content_type: str | None = None,
        acl: str | None = None,
    ) -> None:
        """Server-side copy, replacing the content-type metadata."""
        s3_client = await self._get_s3_client()
        request: dict[str, Any] = {
            "Bucket": bucket,
            "Key": key,
            "CopySource": {"Bucket": source_bucket, "Key": source_key},
            "MetadataDirective": "REPLACE",
        }
        if content_type:
            request["ContentType"] = content_type
        if acl:
            request["ACL"] = acl

        with self._operation("copy_object", bucket, key):
            await s3_client.copy_object(**request)

    async def delete_object(self, bucket: str, key: str) -> None:
        """Delete object at bucket/key."""
        s3_client = await self._get_s3_client()
        with self._operation("delete_object", bucket, key):
            await s3_client.delete_object(Bucket=bucket, Key=key)

    async def get_object_stream(
        self, bucket: str, key: str, chunk_size: int = STREAM_CHUNK_SIZE
    ) -> AsyncGenerator[bytes, None]:
        """Stream an object's bytes in chunks."""
        s3_client = await self._get_s3_client()
        with self._operation("get_object", bucket, key):
            response = await s3_client.get_object(Bucket=bucket, Key=key)

        async with response["Body"] as body:
            while True:
                with self._operation("get_object", bucket, key):
                    chunk = await body.read(chunk_size)
                if not chunk:
                    break
                yield chunk

    async def list_buckets(self) -> list[dict[str, Any]]:
        """List all buckets of the account."""
        s3_client = await self._get_s3_client()
        with self._operation("list_buckets", "*"):
            response = await s3_client.list_buckets()
        return response.get("Buckets", [])

    def get_object_url(self, bucket: str, key: str) -> str:
        """Canonical public URL of an object."""
        encoded_key = encode_path_for_uri(key)
        if self.profile.endpoint_url:
            return f"{self.profile.endpoint_url.rstrip('/')}/{bucket}/{encoded_key}"

        region = self.profile.region or "us-east-1"
        host = "s3.amazonaws.com" if region == "us-east-1" else f"s3.{region}.amazonaws.com"
        return f"https://{bucket}.{host}/{encoded_key}"

    async def close(self) -> None:
        """Clean up resources, especially S3 client connections."""
        if self._exit_stack is not None:
            try:
                await self._exit_stack.aclose()
                logger.debug(f"Storage client closed (client_id={self._instance_id})")
            finally:
                self._exit_stack = None
                self._s3_client = None
                self._s3_session = None
