"""
Publishing CLI commands

Bucket maintenance (connect, list-buckets, flush-bucket, upload, diff) and
collection operations (import, publish, republish). Every command takes the
parsed arguments, the loaded settings and a shared ObjectStorageClient and
returns a process exit code.
"""

import argparse
import logging
from pathlib import Path
from typing import Any

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from .common import format_bytes, identifier_from_key, pluralize
from .constants import CONNECTION_TEST_KEY, DELETE_BATCH_SIZE
from .database import SQLiteResourceRepository
from .exceptions import NotFoundError, PublishingError, StorageTransportError
from .models import PublicationAction, PublicationOutcome, guess_media_type
from .publishing import Collection, MessageCollector, S3Target, publish_collection
from .run_config import ProfileConfig, Settings
from .storage import ObjectStorageClient, build_object_index, create_store
from .storage.content_store import read_file_chunks

logger = logging.getLogger(__name__)


def _boto3_client(profile: ProfileConfig) -> Any:
    """Synchronous S3 client for bulk bucket maintenance."""
    return boto3.client(
        "s3",
        aws_access_key_id=profile.access_key,
        aws_secret_access_key=profile.secret_key,
        region_name=profile.region,
        endpoint_url=profile.endpoint_url,
    )


def list_bucket_files(
    profile: ProfileConfig, bucket: str, prefix: str = "", fetch_all: bool = False
) -> tuple[list[tuple[str, int]], bool]:
    """List files in bucket with sizes.

    Args:
        profile: Profile holding credentials and endpoint
        bucket: Bucket name
        prefix: Optional prefix filter
        fetch_all: If False, only fetch first page (1000 items). If True, fetch all.

    Returns:
        Tuple of (files, has_more) where has_more indicates truncated results
    """
    s3_client = _boto3_client(profile)

    list_kwargs = {"Bucket": bucket}
    if prefix:
        list_kwargs["Prefix"] = prefix

    paginator = s3_client.get_paginator("list_objects_v2")
    files = []
    has_more = False

    for page in paginator.paginate(**list_kwargs):
        for obj in page.get("Contents", []):
            key = obj.get("Key")
            size = obj.get("Size")
            if key is not None and size is not None:
                files.append((key, size))

        if not fetch_all:
            has_more = page.get("IsTruncated", False)
            break

    return files, has_more


def delete_bucket_contents(
    profile: ProfileConfig, bucket: str, prefix: str = "", files_to_delete: list[tuple[str, int]] | None = None
) -> tuple[int, int]:
    """Delete all objects under a prefix in batches. Returns (deleted, failed)."""
    s3_client = _boto3_client(profile)

    if files_to_delete is not None:
        objects_to_delete = [key for key, _ in files_to_delete]
    else:
        files, _ = list_bucket_files(profile, bucket, prefix, fetch_all=True)
        objects_to_delete = [key for key, _ in files]

    if not objects_to_delete:
        return 0, 0

    deleted_count = 0
    failed_count = 0

    for i in range(0, len(objects_to_delete), DELETE_BATCH_SIZE):
        batch = objects_to_delete[i : i + DELETE_BATCH_SIZE]
        try:
            response = s3_client.delete_objects(Bucket=bucket, Delete={"Objects": [{"Key": key} for key in batch]})
            deleted_count += len(response.get("Deleted", []))
            failed_count += len(response.get("Errors", []))
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Batch delete failed for {len(batch)} objects in {bucket}: {e}")
            failed_count += len(batch)

        if len(objects_to_delete) > DELETE_BATCH_SIZE:
            print(f"  Deleted {deleted_count:,} objects...")

    return deleted_count, failed_count


def build_collection(
    settings: Settings,
    name: str,
    client: ObjectStorageClient,
    repository: SQLiteResourceRepository,
    message_collector: MessageCollector | None = None,
) -> Collection:
    """Wire a configured collection to its store, target and repository."""
    collection_config = settings.get_collection(name)
    store = create_store(settings.storages[collection_config.storage], client)
    target = S3Target(settings.targets[collection_config.target], client, message_collector)
    return Collection(name=name, store=store, repository=repository, target=target)


def _print_messages(message_collector: MessageCollector) -> None:
    messages = message_collector.flush()
    if messages:
        print(f"\n{len(messages)} {pluralize(len(messages), 'problem')} reported:")
        for collected in messages:
            print(f"  [{collected.severity.name}] {collected.message}")


async def cmd_connect(args: argparse.Namespace, settings: Settings, client: ObjectStorageClient) -> int:
    """Check that the configured credentials can reach S3."""
    try:
        if args.bucket is not None:
            print(f'Access list of objects in bucket "{args.bucket}" with key prefix "{args.prefix}" ...')
            await client.list_objects_page(args.bucket, args.prefix)

            key = f"{args.prefix}{CONNECTION_TEST_KEY}"
            print(f"Writing test object into bucket (arn:aws:s3:::{args.bucket}/{key}) ...")
            await client.put_object(args.bucket, key, b"test", content_type="text/plain")

            print("Deleting test object from bucket ...")
            await client.delete_object(args.bucket, key)
        else:
            print("Listing buckets ...")
            await client.list_buckets()
    except (StorageTransportError, NotFoundError) as e:
        print(f"\n{e}")
        if args.bucket is None or not args.prefix:
            print(
                "Hint: Maybe your IAM policy restricts the user from listing all buckets. "
                'In that case, try using the "--bucket" and "--prefix" arguments.'
            )
        return 1

    print("\nOK")
    return 0


async def cmd_list_buckets(args: argparse.Namespace, settings: Settings, client: ObjectStorageClient) -> int:
    """Print a table of the account's buckets."""
    try:
        buckets = await client.list_buckets()
    except StorageTransportError as e:
        print(e)
        return 1

    if not buckets:
        print("The account currently does not have any buckets.")
        return 0

    print(f"{'Bucket Name':40} Creation Date")
    print("-" * 66)
    for bucket in buckets:
        print(f"{bucket.get('Name', ''):40} {bucket.get('CreationDate', '')}")
    return 0


async def cmd_flush_bucket(args: argparse.Namespace, settings: Settings, client: ObjectStorageClient) -> int:
    """Remove all objects (under an optional prefix) from a bucket."""
    print(f"\nFlushing bucket {args.bucket}")
    print("=" * 60)
    if args.prefix:
        print(f"Prefix: {args.prefix}")

    try:
        files, has_more = list_bucket_files(settings.profile, args.bucket, args.prefix, fetch_all=False)
    except (ClientError, BotoCoreError) as e:
        print(f"Error accessing bucket: {e}")
        return 1

    if not files:
        print("Bucket is already empty")
        return 0

    count_msg = f"{len(files):,}+" if has_more else f"{len(files):,}"
    print(f"Found {count_msg} objects to delete")
    for i, (key, size) in enumerate(files[:5], 1):
        print(f"  {i:2d}. {key} ({format_bytes(size)})")
    if len(files) > 5 or has_more:
        print("  ... and more")

    if args.dry_run:
        print(f"\nDRY RUN: Would delete {count_msg} objects from bucket {args.bucket}")
        return 0

    if not args.yes:
        response = input(f"\nType 'DELETE' to confirm removal of {count_msg} objects: ").strip()
        if response != "DELETE":
            print("Removal cancelled")
            return 0

    try:
        deleted_count, failed_count = delete_bucket_contents(settings.profile, args.bucket, args.prefix)
    except (ClientError, BotoCoreError) as e:
        print(f"Error flushing bucket: {e}")
        return 1

    print(f"\nSuccessfully flushed bucket {args.bucket}: {deleted_count:,} objects deleted")
    if failed_count:
        print(f"  Failed deletions: {failed_count:,}")
        return 2
    return 0


async def cmd_upload(args: argparse.Namespace, settings: Settings, client: ObjectStorageClient) -> int:
    """Upload a local file to a bucket."""
    file_path = Path(args.file)
    if not file_path.is_file():
        print("The specified file does not exist.")
        return 1

    key = args.key or file_path.name
    try:
        await client.upload_stream(
            args.bucket,
            key,
            read_file_chunks(file_path),
            content_type=guess_media_type(file_path.name),
            size_hint=file_path.stat().st_size,
        )
    except (StorageTransportError, NotFoundError) as e:
        print(f"Could not upload {file_path} to {args.bucket}::{key}: {e}")
        return 1

    print(f"Successfully uploaded {file_path} to {args.bucket}::{key}.")
    return 0


async def cmd_import(args: argparse.Namespace, settings: Settings, client: ObjectStorageClient) -> int:
    """Import local files into a collection's store and record them."""
    repository = SQLiteResourceRepository(settings.database)
    collection = build_collection(settings, args.collection, client, repository)

    failures = 0
    for file in args.files:
        try:
            resource = await collection.store.put(Path(file), collection.name)
        except PublishingError as e:
            print(f"Could not import {file}: {e}")
            failures += 1
            continue
        await repository.add(resource)
        print(f"Imported {file} as {resource.sha1} ({format_bytes(resource.file_size)})")

    return 2 if failures else 0


def _print_progress(outcome: PublicationOutcome) -> None:
    if outcome.action is PublicationAction.FAILED:
        print(f"  FAILED {outcome.key}")
    elif outcome.action is not PublicationAction.SKIPPED:
        print(f"  {outcome.action.value} {outcome.key}")


async def cmd_publish(args: argparse.Namespace, settings: Settings, client: ObjectStorageClient) -> int:
    """Reconcile a collection's target with its resources."""
    message_collector = MessageCollector()
    repository = SQLiteResourceRepository(settings.database)
    collection = build_collection(settings, args.collection, client, repository, message_collector)
    assert collection.target is not None

    print(f"Publishing collection {collection.name} ...")
    try:
        result = await publish_collection(
            collection,
            collection.target,
            concurrency=args.concurrency,
            transfer_timeout=args.transfer_timeout,
            progress_callback=_print_progress if args.verbose else None,
        )
    except StorageTransportError as e:
        print(f"Publishing failed: {e}")
        return 1

    print(result.summary())
    _print_messages(message_collector)
    return 2 if result.failure_count else 0


async def cmd_republish(args: argparse.Namespace, settings: Settings, client: ObjectStorageClient) -> int:
    """Force publishing of every resource of a collection."""
    message_collector = MessageCollector()
    repository = SQLiteResourceRepository(settings.database)
    collection = build_collection(settings, args.collection, client, repository, message_collector)
    assert collection.target is not None

    print("Republishing collection ...")
    total = 0
    failed = 0
    async for resource in collection.resources():
        outcome = await collection.target.publish_resource(resource, collection)
        total += 1
        if not outcome.success:
            failed += 1
        _print_progress(outcome)

    print(f"Republished {total - failed} of {total} {pluralize(total, 'resource')}")
    _print_messages(message_collector)
    return 2 if failed else 0


async def cmd_diff(args: argparse.Namespace, settings: Settings, client: ObjectStorageClient) -> int:
    """Report objects in a bucket that have no matching resource, optionally removing them."""
    repository = SQLiteResourceRepository(settings.database)
    try:
        index = await build_object_index(client, args.bucket, args.prefix)
    except StorageTransportError as e:
        print(f"Listing failed: {e}")
        return 1

    missing = 0
    delete_failures = 0
    for key in sorted(index):
        identifier = identifier_from_key(key, args.prefix)
        if await repository.get_by_sha1(identifier) is not None:
            continue

        missing += 1
        if args.debug:
            print(f"S3 object with identifier {identifier} ({key}) is missing in the resource management")
        if args.remove_unregistered:
            try:
                await client.delete_object(args.bucket, key)
            except (StorageTransportError, NotFoundError) as e:
                print(f'Error while deleting object with key "{key}". Details: {e}')
                delete_failures += 1
            else:
                print(f'Successfully deleted object with key "{key}"')

    print(f"\n{missing} {pluralize(missing, 'resource')} missing in the resource management.")
    return 2 if delete_failures else 0


COMMANDS = {
    "connect": cmd_connect,
    "list-buckets": cmd_list_buckets,
    "flush-bucket": cmd_flush_bucket,
    "upload": cmd_upload,
    "import": cmd_import,
    "publish": cmd_publish,
    "republish": cmd_republish,
    "diff": cmd_diff,
}
