"""
Storage Factory Functions

Centralized storage creation from validated configuration.
"""

import logging

from ..models import EventSink
from ..run_config import ProfileConfig, StorageOptions
from .base import ObjectStorageClient
from .content_store import ContentStore, FileSystemStore, ObjectStorageStore

logger = logging.getLogger(__name__)


def create_client(profile: ProfileConfig) -> ObjectStorageClient:
    """Create the S3 client shared by every S3 storage and target of a profile."""
    return ObjectStorageClient(profile)


def create_store(
    options: StorageOptions, client: ObjectStorageClient, event_sink: EventSink | None = None
) -> ContentStore:
    """
    Create a content store from its storage options.

    Args:
        options: Validated storage options
        client: S3 client used by S3 stores
        event_sink: Receiver of store events (defaults to logging)

    Returns:
        ContentStore: Configured store instance
    """
    match options.type:
        case "s3":
            return ObjectStorageStore(
                options.name, client, options.bucket, key_prefix=options.key_prefix, event_sink=event_sink
            )
        case "local":
            return FileSystemStore(
                options.name, options.base_path, key_prefix=options.key_prefix, event_sink=event_sink
            )
        case _:
            raise ValueError(f"Unknown storage type: {options.type}")
