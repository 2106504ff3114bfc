"""
Resource collections: a named set of resources, the store holding their bytes
and the target they are published to.
"""

from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import TYPE_CHECKING

from ..database import ResourceRepository
from ..models import Resource
from ..storage import ContentStore

if TYPE_CHECKING:
    from .target import S3Target


@dataclass
class Collection:
    name: str
    store: ContentStore
    repository: ResourceRepository
    target: "S3Target | None" = None

    def resources(self) -> AsyncIterator[Resource]:
        """Lazily enumerate the collection's resources. Queried fresh on every call."""
        return self.repository.iter_by_collection(self.name)
