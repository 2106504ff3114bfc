"""
Content-Addressed Storage

Stores byte payloads under key_prefix + SHA1 of their content. An existence
probe runs before every write, so importing identical content twice results
in exactly one physical write. Store operations are reported as StorageEvents
to an injected sink instead of a fixed log.
"""

import asyncio
import hashlib
import logging
import os
import re
import tempfile
from abc import ABC, abstractmethod
from collections.abc import AsyncGenerator, AsyncIterable
from dataclasses import dataclass
from pathlib import Path

import aiofiles
import fsspec

from ..constants import STREAM_CHUNK_SIZE
from ..exceptions import NotFoundError, StorageTransportError
from ..models import EventSink, Resource, StorageEvent, StorageEventType, guess_media_type
from .base import ObjectStorageClient

logger = logging.getLogger(__name__)

ImportSource = bytes | str | os.PathLike | AsyncIterable[bytes]

SHA1_PATTERN = re.compile(r"[0-9a-f]{40}")


def log_storage_event(event: StorageEvent) -> None:
    """Default event sink: write store events to the module logger."""
    match event.event_type:
        case StorageEventType.IMPORTED:
            logger.info(f'Imported resource as object "{event.key}" into storage "{event.store_name}"')
        case StorageEventType.IMPORT_SKIPPED:
            logger.info(
                f'Did not import resource as object "{event.key}" into storage "{event.store_name}" '
                "because that object already existed"
            )
        case StorageEventType.DELETED:
            logger.info(f'Deleted object "{event.key}" from storage "{event.store_name}"')


@dataclass
class _Payload:
    """Hashed import payload, either in memory or spooled to a local file."""

    sha1: str
    md5: str
    size: int
    data: bytes | None = None
    path: Path | None = None


async def read_file_chunks(path: str | Path, chunk_size: int = STREAM_CHUNK_SIZE) -> AsyncGenerator[bytes, None]:
    async with aiofiles.open(path, "rb") as f:
        while True:
            chunk = await f.read(chunk_size)
            if not chunk:
                break
            yield chunk


async def _hash_chunks(chunks: AsyncIterable[bytes], spool_to: Path | None = None) -> tuple[str, str, int]:
    """Hash a chunk stream, optionally copying it to a spool file."""
    sha1 = hashlib.sha1()
    md5 = hashlib.md5()
    size = 0
    spool = await aiofiles.open(spool_to, "wb") if spool_to is not None else None
    try:
        async for chunk in chunks:
            sha1.update(chunk)
            md5.update(chunk)
            size += len(chunk)
            if spool is not None:
                await spool.write(chunk)
    finally:
        if spool is not None:
            await spool.close()
    return sha1.hexdigest(), md5.hexdigest(), size


class ContentStore(ABC):
    """
    Base class for content-addressed stores.

    Subclasses implement the raw object operations; hashing, dedup and event
    reporting live here.
    """

    kind: str = ""

    def __init__(self, name: str, key_prefix: str = "", event_sink: EventSink | None = None):
        self.name = name
        self.key_prefix = key_prefix
        self.event_sink: EventSink = event_sink or log_storage_event
        # Serializes probe and write per key, so identical imports write once
        self._key_locks: dict[str, asyncio.Lock] = {}

    def key_for(self, sha1: str) -> str:
        return f"{self.key_prefix}{sha1}"

    def owns_key(self, key: str) -> bool:
        """True if key has the shape of an object stored by this store."""
        if not key.startswith(self.key_prefix):
            return False
        return SHA1_PATTERN.fullmatch(key[len(self.key_prefix) :]) is not None

    async def put(
        self,
        source: ImportSource,
        collection_name: str,
        filename: str | None = None,
        media_type: str | None = None,
        relative_publication_path: str = "",
    ) -> Resource:
        """
        Import a payload and return the Resource describing it.

        Args:
            source: Raw bytes, a local file path, or an async iterable of byte chunks
            collection_name: Collection the new resource belongs to
            filename: Name used for publication (defaults to the file's basename, else the hash)
            media_type: IANA media type (derived from the filename if omitted)
            relative_publication_path: Optional publication sub-path (e.g. "Images/")
        """
        spool_path: Path | None = None
        location = self.name
        try:
            if isinstance(source, bytes):
                payload = _Payload(
                    sha1=hashlib.sha1(source).hexdigest(),
                    md5=hashlib.md5(source).hexdigest(),
                    size=len(source),
                    data=source,
                )
            elif isinstance(source, str | os.PathLike):
                path = Path(source)
                location = str(path)
                sha1, md5, size = await _hash_chunks(read_file_chunks(path))
                payload = _Payload(sha1=sha1, md5=md5, size=size, path=path)
                filename = filename or path.name
            else:
                fd, temp_name = tempfile.mkstemp(prefix="s3_publishing_")
                os.close(fd)
                spool_path = Path(temp_name)
                sha1, md5, size = await _hash_chunks(source, spool_to=spool_path)
                payload = _Payload(sha1=sha1, md5=md5, size=size, path=spool_path)

            filename = filename or payload.sha1
            media_type = media_type or guess_media_type(filename)
            key = location = self.key_for(payload.sha1)

            async with self._key_locks.setdefault(key, asyncio.Lock()):
                if await self._exists(key):
                    self.event_sink(StorageEvent(StorageEventType.IMPORT_SKIPPED, self.name, key, payload.sha1))
                else:
                    await self._write(key, payload, media_type)
                    self.event_sink(
                        StorageEvent(StorageEventType.IMPORTED, self.name, key, payload.sha1, size=payload.size)
                    )
        except OSError as e:
            raise StorageTransportError(location, e) from e
        finally:
            if spool_path is not None:
                spool_path.unlink(missing_ok=True)

        return Resource(
            sha1=payload.sha1,
            filename=filename,
            file_size=payload.size,
            media_type=media_type,
            collection_name=collection_name,
            relative_publication_path=relative_publication_path,
            md5=payload.md5,
        )

    async def exists(self, sha1: str) -> bool:
        return await self._exists(self.key_for(sha1))

    def get_stream(self, sha1: str) -> AsyncGenerator[bytes, None]:
        """Stream the stored bytes for a hash. Raises NotFoundError on iteration if absent."""
        return self._read(self.key_for(sha1))

    def open_resource_stream(self, resource: Resource) -> AsyncGenerator[bytes, None]:
        """Byte stream producer for a resource, used by targets that upload."""
        return self.get_stream(resource.sha1)

    async def delete(self, sha1: str) -> bool:
        """Delete the stored object for a hash. Raises NotFoundError if nothing is stored."""
        key = self.key_for(sha1)
        if not await self._exists(key):
            raise NotFoundError(key)
        await self._delete(key)
        self.event_sink(StorageEvent(StorageEventType.DELETED, self.name, key, sha1))
        return True

    @abstractmethod
    async def _exists(self, key: str) -> bool: ...

    @abstractmethod
    async def _write(self, key: str, payload: _Payload, media_type: str) -> None: ...

    @abstractmethod
    def _read(self, key: str) -> AsyncGenerator[bytes, None]: ...

    @abstractmethod
    async def _delete(self, key: str) -> None: ...


class ObjectStorageStore(ContentStore):
    """Content-addressed store in an S3 bucket."""

    kind = "s3"

    def __init__(
        self,
        name: str,
        client: ObjectStorageClient,
        bucket: str,
        key_prefix: str = "",
        event_sink: EventSink | None = None,
    ):
        super().__init__(name, key_prefix, event_sink)
        self.client = client
        self.bucket = bucket

    async def _exists(self, key: str) -> bool:
        return await self.client.object_exists(self.bucket, key)

    async def _write(self, key: str, payload: _Payload, media_type: str) -> None:
        if payload.data is not None:
            await self.client.put_object(self.bucket, key, payload.data, content_type=media_type)
        else:
            assert payload.path is not None
            await self.client.upload_stream(
                self.bucket, key, read_file_chunks(payload.path), content_type=media_type, size_hint=payload.size
            )

    async def _read(self, key: str) -> AsyncGenerator[bytes, None]:
        async for chunk in self.client.get_object_stream(self.bucket, key):
            yield chunk

    async def _delete(self, key: str) -> None:
        await self.client.delete_object(self.bucket, key)


class FileSystemStore(ContentStore):
    """Content-addressed store in a local directory, addressed through fsspec."""

    kind = "local"

    def __init__(self, name: str, base_path: str | Path, key_prefix: str = "", event_sink: EventSink | None = None):
        super().__init__(name, key_prefix, event_sink)
        if not base_path:
            raise ValueError("Local storage requires explicit base_path")
        self.base_path = Path(base_path)
        self._fs = fsspec.filesystem("file")

    def _path(self, key: str) -> str:
        return str(self.base_path / key)

    async def _exists(self, key: str) -> bool:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._fs.exists, self._path(key))

    async def _write(self, key: str, payload: _Payload, media_type: str) -> None:
        loop = asyncio.get_running_loop()
        path = self._path(key)
        try:
            await loop.run_in_executor(None, lambda: self._fs.makedirs(str(Path(path).parent), exist_ok=True))
            if payload.data is not None:
                await loop.run_in_executor(None, self._fs.pipe_file, path, payload.data)
            else:
                await loop.run_in_executor(None, self._fs.put_file, str(payload.path), path)
        except OSError as e:
            raise StorageTransportError(path, e) from e

    async def _read(self, key: str) -> AsyncGenerator[bytes, None]:
        path = self._path(key)
        try:
            async with aiofiles.open(path, "rb") as f:
                while True:
                    chunk = await f.read(STREAM_CHUNK_SIZE)
                    if not chunk:
                        break
                    yield chunk
        except FileNotFoundError:
            raise NotFoundError(path) from None
        except OSError as e:
            raise StorageTransportError(path, e) from e

    async def _delete(self, key: str) -> None:
        loop = asyncio.get_running_loop()
        path = self._path(key)
        try:
            await loop.run_in_executor(None, self._fs.rm, path)
        except FileNotFoundError:
            raise NotFoundError(path) from None
        except OSError as e:
            raise StorageTransportError(path, e) from e
