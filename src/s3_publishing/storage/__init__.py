"""
Storage Package

S3 client wrapper, content-addressed stores and the object listing index.
"""

from .base import ObjectListingPage, ObjectStorageClient, is_not_found_error
from .content_store import ContentStore, FileSystemStore, ObjectStorageStore, log_storage_event
from .factories import create_client, create_store
from .listing import ObjectIndex, build_object_index

__all__ = [
    # Client
    "ObjectStorageClient",
    "ObjectListingPage",
    "is_not_found_error",
    # Stores
    "ContentStore",
    "ObjectStorageStore",
    "FileSystemStore",
    "log_storage_event",
    # Factories
    "create_client",
    "create_store",
    # Listing
    "ObjectIndex",
    "build_object_index",
]
