"""
Object Listing Index

Snapshot of the keys stored under a bucket + prefix, built by following
list_objects_v2 continuation tokens until the provider reports no more pages.
"""

import logging
from collections.abc import Iterator
from dataclasses import dataclass, field

from tenacity import before_sleep_log, retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from ..constants import LISTING_MAX_ATTEMPTS
from ..exceptions import StorageTransportError
from .base import ObjectListingPage, ObjectStorageClient

logger = logging.getLogger(__name__)


@dataclass
class ObjectIndex:
    """Mutable set of remote keys observed under a bucket and prefix."""

    bucket: str
    prefix: str
    keys: set[str] = field(default_factory=set)

    def __contains__(self, key: object) -> bool:
        return key in self.keys

    def __len__(self) -> int:
        return len(self.keys)

    def __iter__(self) -> Iterator[str]:
        return iter(self.keys)

    def add(self, key: str) -> None:
        self.keys.add(key)

    def discard(self, key: str) -> None:
        self.keys.discard(key)


@retry(
    retry=retry_if_exception_type(StorageTransportError),
    stop=stop_after_attempt(LISTING_MAX_ATTEMPTS),
    wait=wait_exponential(multiplier=1, min=1, max=10),
    before_sleep=before_sleep_log(logger, logging.WARNING),
    reraise=True,
)
async def _fetch_page(
    client: ObjectStorageClient, bucket: str, prefix: str, continuation_token: str | None
) -> ObjectListingPage:
    return await client.list_objects_page(bucket, prefix, continuation_token)


async def build_object_index(client: ObjectStorageClient, bucket: str, prefix: str = "") -> ObjectIndex:
    """
    Enumerate every key under bucket/prefix.

    Pages are fetched sequentially since each request depends on the previous
    continuation token. An empty bucket yields an empty index. A page that keeps
    failing raises StorageTransportError; a partial index is never returned.
    """
    index = ObjectIndex(bucket=bucket, prefix=prefix)
    continuation_token: str | None = None
    page_count = 0

    while True:
        page = await _fetch_page(client, bucket, prefix, continuation_token)
        page_count += 1
        index.keys.update(page.keys)

        if not page.is_truncated:
            break
        if not page.next_token:
            raise StorageTransportError(
                f"{bucket}/{prefix}", "listing is truncated but no continuation token was returned"
            )
        continuation_token = page.next_token

    logger.debug(f"Indexed {len(index)} objects under {bucket}/{prefix} ({page_count} pages)")
    return index
