"""
Publication Reconciler

Brings a target bucket in line with a collection: every resource of the
collection is published under its resolved key, and keys nobody claimed are
unpublished. Resources already present under their key are skipped, so a
second run over an unchanged collection transfers nothing.
"""

import asyncio
import logging
import time
from collections.abc import Callable

from ..common import format_duration
from ..constants import DEFAULT_PUBLISH_CONCURRENCY
from ..models import PublicationAction, PublicationOutcome, ReconciliationResult, Resource
from ..storage import ObjectIndex, build_object_index
from .collection import Collection
from .target import S3Target

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[PublicationOutcome], None]


async def publish_collection(
    collection: Collection,
    target: S3Target,
    *,
    index: ObjectIndex | None = None,
    concurrency: int = DEFAULT_PUBLISH_CONCURRENCY,
    transfer_timeout: float | None = None,
    progress_callback: ProgressCallback | None = None,
) -> ReconciliationResult:
    """
    Publish all resources of a collection to a target and purge obsolete objects.

    Args:
        collection: Collection to publish (resources are enumerated lazily)
        target: Target to publish to
        index: Previously built index of the target's keys; listed fresh if omitted
        concurrency: Number of concurrent transfer workers
        transfer_timeout: Seconds per copy/upload (defaults to the target's setting)
        progress_callback: Called with each resource's outcome as soon as it is known

    Returns:
        ReconciliationResult with one outcome per resource plus deleted keys

    Raises:
        StorageTransportError: If the target listing fails
        ValueError: If the given index belongs to another bucket or prefix
    """
    store = collection.store
    result = ReconciliationResult(collection_name=collection.name, target_name=target.name)

    if target.is_in_place(store):
        logger.debug(f'Skipping resource publishing for bucket "{target.bucket}", storage and target are the same.')
        result.in_place = True
        return result

    if concurrency < 1:
        raise ValueError(f"concurrency must be at least 1, got {concurrency}")

    start_time = time.time()

    if index is None:
        index = await build_object_index(target.client, target.bucket, target.key_prefix)
    elif (index.bucket, index.prefix) != (target.bucket, target.key_prefix):
        raise ValueError(
            f"Object index for {index.bucket}/{index.prefix} does not match target {target.bucket}/{target.key_prefix}"
        )

    potentially_obsolete = set(index.keys)
    if target.shares_bucket(store):
        # Objects of the backing store are never publications
        potentially_obsolete = {key for key in potentially_obsolete if not store.owns_key(key)}

    logger.info(
        f'Publishing collection "{collection.name}" to bucket "{target.bucket}" '
        f"({len(index)} existing objects, {concurrency} workers)"
    )

    # Resolved key -> outcome of the first resource that claimed it
    claims: dict[str, asyncio.Future[PublicationOutcome]] = {}
    queue: asyncio.Queue[Resource | None] = asyncio.Queue(maxsize=concurrency * 2)

    async def reconcile(resource: Resource) -> PublicationOutcome:
        key = target.resolve_key(resource)
        claim = claims.get(key)
        if claim is not None:
            return _follow_claim(target, resource, key, await claim)

        # Claims happen before the first await, so workers never race on a key
        claim = asyncio.get_running_loop().create_future()
        claims[key] = claim
        if key in potentially_obsolete:
            potentially_obsolete.discard(key)
            logger.debug(f'Skipping resource "{key}" ({resource.sha1}), already published')
            outcome = PublicationOutcome(resource, key, PublicationAction.SKIPPED)
        else:
            try:
                outcome = await target.transfer(resource, store, timeout=transfer_timeout)
            except BaseException:
                claim.cancel()
                raise
        claim.set_result(outcome)
        return outcome

    async def producer() -> None:
        async for resource in collection.resources():
            await queue.put(resource)
        for _ in range(concurrency):
            await queue.put(None)

    async def worker() -> None:
        while True:
            resource = await queue.get()
            if resource is None:
                break
            outcome = await reconcile(resource)
            result.outcomes.append(outcome)
            if progress_callback:
                progress_callback(outcome)

    tasks = [asyncio.create_task(producer())]
    tasks.extend(asyncio.create_task(worker()) for _ in range(concurrency))
    try:
        await asyncio.gather(*tasks)
    except BaseException:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise

    for outcome in result.outcomes:
        if outcome.action in (PublicationAction.COPIED, PublicationAction.UPLOADED):
            index.add(outcome.key)

    if not target.unpublish_resources:
        logger.debug(
            f'Skipping resource unpublishing from bucket "{target.bucket}", '
            'because configuration option "unpublish_resources" is false.'
        )
    elif potentially_obsolete:
        await _purge(target, sorted(potentially_obsolete), index, result, concurrency)

    elapsed = time.time() - start_time
    logger.info(f'Published collection "{collection.name}" in {format_duration(elapsed)}: {result.summary()}')
    return result


def _follow_claim(
    target: S3Target, resource: Resource, key: str, first: PublicationOutcome
) -> PublicationOutcome:
    """Outcome of a resource whose key was already handled for another resource in this run."""
    if first.success:
        return PublicationOutcome(resource, key, PublicationAction.SKIPPED)

    message = (
        f"Could not publish resource with SHA1 hash {resource.sha1} to object "
        f'"{key}" in bucket "{target.bucket}": publishing {first.resource.sha1} to the same key failed'
    )
    target.message_collector.append(message)
    return PublicationOutcome(resource, key, PublicationAction.FAILED, error=message)


async def _purge(
    target: S3Target, obsolete_keys: list[str], index: ObjectIndex, result: ReconciliationResult, concurrency: int
) -> None:
    """Delete obsolete keys; failed deletions are recorded, never raised."""
    semaphore = asyncio.Semaphore(concurrency)

    async def delete(key: str) -> tuple[str, bool]:
        async with semaphore:
            return key, await target.delete_object(key)

    for key, deleted in await asyncio.gather(*(delete(key) for key in obsolete_keys)):
        if deleted:
            result.deleted_keys.append(key)
            index.discard(key)
        else:
            result.failed_deletions.append(key)

    logger.info(f'Deleted {len(result.deleted_keys)} obsolete objects from bucket "{target.bucket}"')
