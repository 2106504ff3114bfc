"""
Publishing Package

Key/URI resolution, single-resource publishing and collection reconciliation.
"""

from .collection import Collection
from .keys import relative_publication_path_and_filename, resolve_key, resolve_uri, static_resource_uri
from .messages import CollectedMessage, MessageCollector, Severity
from .reconciler import publish_collection
from .target import S3Target

__all__ = [
    "Collection",
    "CollectedMessage",
    "MessageCollector",
    "S3Target",
    "Severity",
    "publish_collection",
    "relative_publication_path_and_filename",
    "resolve_key",
    "resolve_uri",
    "static_resource_uri",
]
