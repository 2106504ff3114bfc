"""
Data models for stored resources, storage events and publication results.
"""

import mimetypes
from collections import Counter
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from pathlib import PurePosixPath

from .constants import DEFAULT_MEDIA_TYPE


def guess_media_type(filename: str) -> str:
    """Derive the IANA media type from a filename's extension."""
    media_type, _ = mimetypes.guess_type(filename, strict=False)
    return media_type or DEFAULT_MEDIA_TYPE


@dataclass(frozen=True)
class Resource:
    """
    A logical, immutable resource.

    Identity is the SHA1 content hash: two resources with the same hash share one
    stored object but may be published under different filenames.
    """

    sha1: str
    filename: str
    file_size: int
    media_type: str
    collection_name: str
    relative_publication_path: str = ""
    md5: str | None = None

    @property
    def file_extension(self) -> str:
        """Extension without the leading dot, empty if the filename has none."""
        return PurePosixPath(self.filename).suffix.lstrip(".")


class StorageEventType(Enum):
    """What happened to a stored object."""

    IMPORTED = "imported"
    IMPORT_SKIPPED = "import_skipped"
    DELETED = "deleted"


@dataclass(frozen=True)
class StorageEvent:
    """Observable record of a store operation, for audit and logging."""

    event_type: StorageEventType
    store_name: str
    key: str
    sha1: str
    size: int | None = None


EventSink = Callable[[StorageEvent], None]


class PublicationAction(Enum):
    """What the publisher did with a resource."""

    SKIPPED = "skipped"
    COPIED = "copied"
    UPLOADED = "uploaded"
    FAILED = "failed"


@dataclass(frozen=True)
class PublicationOutcome:
    """Per-resource publication result. Failures are recorded here instead of raised."""

    resource: Resource
    key: str
    action: PublicationAction
    error: str | None = None

    @property
    def success(self) -> bool:
        return self.action is not PublicationAction.FAILED


@dataclass
class ReconciliationResult:
    """Everything one reconciliation run did."""

    collection_name: str
    target_name: str
    outcomes: list[PublicationOutcome] = field(default_factory=list)
    deleted_keys: list[str] = field(default_factory=list)
    failed_deletions: list[str] = field(default_factory=list)
    in_place: bool = False

    def counts(self) -> dict[PublicationAction, int]:
        counter = Counter(outcome.action for outcome in self.outcomes)
        return {action: counter.get(action, 0) for action in PublicationAction}

    @property
    def failure_count(self) -> int:
        return self.counts()[PublicationAction.FAILED] + len(self.failed_deletions)

    @property
    def transfer_count(self) -> int:
        counts = self.counts()
        return counts[PublicationAction.COPIED] + counts[PublicationAction.UPLOADED]

    @property
    def failed_outcomes(self) -> list[PublicationOutcome]:
        return [outcome for outcome in self.outcomes if not outcome.success]

    def summary(self) -> str:
        if self.in_place:
            return f"Collection {self.collection_name} is stored in place on target {self.target_name}; nothing to do"
        counts = self.counts()
        return (
            f"{len(self.outcomes)} resources: "
            f"{counts[PublicationAction.SKIPPED]} skipped, "
            f"{counts[PublicationAction.COPIED]} copied, "
            f"{counts[PublicationAction.UPLOADED]} uploaded, "
            f"{counts[PublicationAction.FAILED]} failed; "
            f"{len(self.deleted_keys)} obsolete objects deleted, {len(self.failed_deletions)} deletions failed"
        )
