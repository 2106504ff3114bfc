"""
S3 publishing target

Publishes single resources to a target bucket by server-side copy (when the
store is itself in S3) or by streaming upload, and removes published objects.
Per-resource failures are reported to the message collector and returned as
failed outcomes; they never raise.
"""

import asyncio
import logging
from typing import TYPE_CHECKING

from ..constants import DEFAULT_TRANSFER_TIMEOUT
from ..exceptions import ConflictError, NotFoundError, StorageTransportError, TransferTimeoutError
from ..models import PublicationAction, PublicationOutcome, Resource
from ..run_config import TargetOptions
from ..storage import ContentStore, ObjectStorageClient, ObjectStorageStore
from . import keys
from .messages import MessageCollector

if TYPE_CHECKING:
    from .collection import Collection

logger = logging.getLogger(__name__)


class S3Target:
    """A publishing target bound to one bucket and key prefix."""

    def __init__(
        self,
        options: TargetOptions,
        client: ObjectStorageClient,
        message_collector: MessageCollector | None = None,
        transfer_timeout: float = DEFAULT_TRANSFER_TIMEOUT,
    ):
        self.options = options
        self.client = client
        self.message_collector = message_collector or MessageCollector()
        self.transfer_timeout = transfer_timeout

    @property
    def name(self) -> str:
        return self.options.name

    @property
    def bucket(self) -> str:
        return self.options.bucket

    @property
    def key_prefix(self) -> str:
        return self.options.key_prefix

    @property
    def acl(self) -> str | None:
        return self.options.acl or None

    @property
    def unpublish_resources(self) -> bool:
        return self.options.unpublish_resources

    def shares_bucket(self, store: ContentStore) -> bool:
        return isinstance(store, ObjectStorageStore) and store.bucket == self.bucket

    def is_in_place(self, store: ContentStore) -> bool:
        """True if the store already keeps its objects where this target publishes them."""
        return self.shares_bucket(store) and store.key_prefix == self.key_prefix

    def resolve_key(self, resource: Resource) -> str:
        return keys.resolve_key(resource, self.key_prefix)

    def get_public_persistent_resource_uri(self, resource: Resource) -> str:
        return keys.resolve_uri(resource, self.options, self.client.get_object_url)

    def get_public_static_resource_uri(self, relative_path: str) -> str:
        return keys.static_resource_uri(relative_path, self.options, self.client.get_object_url)

    async def publish_resource(self, resource: Resource, collection: "Collection") -> PublicationOutcome:
        """Publish one resource of a collection, regardless of what is already in the bucket."""
        if self.is_in_place(collection.store):
            logger.debug(
                f'Skipping single resource publishing for bucket "{self.bucket}", storage and target are the same.'
            )
            return PublicationOutcome(resource, self.resolve_key(resource), PublicationAction.SKIPPED)
        return await self.transfer(resource, collection.store)

    async def transfer(
        self, resource: Resource, store: ContentStore, timeout: float | None = None
    ) -> PublicationOutcome:
        """
        Copy or upload a resource to its key in the target bucket.

        Args:
            resource: Resource to publish
            store: Store holding the resource's bytes
            timeout: Seconds before the transfer is abandoned (defaults to the target's transfer_timeout)

        Returns:
            Outcome with action COPIED or UPLOADED, or FAILED with the reason
        """
        key = self.resolve_key(resource)
        timeout = self.transfer_timeout if timeout is None else timeout

        try:
            try:
                async with asyncio.timeout(timeout):
                    if isinstance(store, ObjectStorageStore):
                        await self._copy(resource, store, key)
                        action = PublicationAction.COPIED
                    else:
                        await self._upload(resource, store, key)
                        action = PublicationAction.UPLOADED
            except TimeoutError:
                raise TransferTimeoutError(key, timeout) from None
        except NotFoundError:
            message = (
                f"Could not publish resource with SHA1 hash {resource.sha1} of collection "
                f"{resource.collection_name} because there seems to be no corresponding data in the storage."
            )
            return self._failed(resource, key, message)
        except (StorageTransportError, ConflictError) as e:
            message = (
                f'Could not publish resource with SHA1 hash {resource.sha1} (MD5: {resource.md5 or "-"}) '
                f'to object "{key}" in bucket "{self.bucket}": {e}'
            )
            return self._failed(resource, key, message)

        return PublicationOutcome(resource, key, action)

    async def _copy(self, resource: Resource, store: ObjectStorageStore, key: str) -> None:
        source_key = store.key_for(resource.sha1)
        if store.bucket == self.bucket and source_key == key:
            raise ConflictError(f'Refusing to copy object "{key}" in bucket "{self.bucket}" onto itself')

        await self.client.copy_object(
            self.bucket,
            key,
            source_bucket=store.bucket,
            source_key=source_key,
            content_type=resource.media_type,
            acl=self.acl,
        )
        logger.debug(
            f'Successfully published resource as object "{key}" in bucket "{self.bucket}" '
            f'with SHA1 hash "{resource.sha1}" by copying from bucket "{store.bucket}"'
        )

    async def _upload(self, resource: Resource, store: ContentStore, key: str) -> None:
        await self.client.upload_stream(
            self.bucket,
            key,
            store.open_resource_stream(resource),
            content_type=resource.media_type,
            acl=self.acl,
            size_hint=resource.file_size,
        )
        logger.debug(
            f'Successfully published resource as object "{key}" in bucket "{self.bucket}" '
            f'with SHA1 hash "{resource.sha1}" by uploading from storage "{store.name}"'
        )

    def _failed(self, resource: Resource, key: str, message: str) -> PublicationOutcome:
        self.message_collector.append(message)
        return PublicationOutcome(resource, key, PublicationAction.FAILED, error=message)

    async def delete_object(self, key: str) -> bool:
        """Delete a published object. Failures are reported and return False."""
        try:
            await self.client.delete_object(self.bucket, key)
        except (StorageTransportError, NotFoundError) as e:
            self.message_collector.append(f'Could not delete object "{key}" from bucket "{self.bucket}": {e}')
            return False
        logger.debug(f'Deleted object "{key}" from bucket "{self.bucket}"')
        return True

    async def unpublish_resource(self, resource: Resource, collection: "Collection") -> bool:
        """
        Remove a published resource from the target.

        Returns True if an object was deleted. Nothing happens when unpublishing
        is disabled or when the collection's store lives in the target itself.
        """
        if not self.unpublish_resources:
            logger.debug(f'Skipping unpublishing of resource {resource.sha1}, "unpublish_resources" is disabled')
            return False
        if self.is_in_place(collection.store):
            logger.debug(
                f'Skipping resource unpublishing from bucket "{self.bucket}", storage and target are the same.'
            )
            return False

        key = self.resolve_key(resource)
        deleted = await self.delete_object(key)
        if deleted:
            logger.debug(f'Unpublished resource {resource.sha1} (object "{key}") from bucket "{self.bucket}"')
        return deleted
