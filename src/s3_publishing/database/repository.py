"""
Resource repository

Persists Resource records per collection and enumerates them lazily. The
publishing core only depends on the ResourceRepository protocol.
"""

import logging
from collections.abc import AsyncIterator
from datetime import UTC, datetime
from pathlib import Path
from typing import Protocol

from ..models import Resource
from .connections import connect_async

logger = logging.getLogger(__name__)

SCHEMA = """
    CREATE TABLE IF NOT EXISTS resources (
        sha1 TEXT NOT NULL,
        filename TEXT NOT NULL,
        file_size INTEGER NOT NULL,
        media_type TEXT NOT NULL,
        relative_publication_path TEXT NOT NULL DEFAULT '',
        collection_name TEXT NOT NULL,
        md5 TEXT,
        created_at TEXT NOT NULL,
        PRIMARY KEY (collection_name, sha1, relative_publication_path, filename)
    )
"""

COLUMNS = "sha1, filename, file_size, media_type, relative_publication_path, collection_name, md5"


class ResourceRepository(Protocol):
    """Source of Resource records, queried at call time."""

    def iter_by_collection(self, collection_name: str) -> AsyncIterator[Resource]: ...

    async def get_by_sha1(self, sha1: str) -> Resource | None: ...


def _row_to_resource(row) -> Resource:
    return Resource(
        sha1=row[0],
        filename=row[1],
        file_size=row[2],
        media_type=row[3],
        relative_publication_path=row[4],
        collection_name=row[5],
        md5=row[6],
    )


class SQLiteResourceRepository:
    """ResourceRepository backed by a SQLite database."""

    def __init__(self, db_path: str | Path):
        self.db_path = Path(db_path)
        self._initialized = False

    async def initialize(self) -> None:
        """Create the schema if needed."""
        if self._initialized:
            return
        async with connect_async(self.db_path, create_parent=True) as db:
            await db.execute(SCHEMA)
            await db.execute("CREATE INDEX IF NOT EXISTS idx_resources_sha1 ON resources (sha1)")
            await db.commit()
        self._initialized = True

    async def add(self, resource: Resource) -> None:
        """Record a resource. Re-adding the same record is a no-op."""
        await self.initialize()
        async with connect_async(self.db_path) as db:
            await db.execute(
                f"INSERT OR IGNORE INTO resources ({COLUMNS}, created_at) VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    resource.sha1,
                    resource.filename,
                    resource.file_size,
                    resource.media_type,
                    resource.relative_publication_path,
                    resource.collection_name,
                    resource.md5,
                    datetime.now(tz=UTC).isoformat(),
                ),
            )
            await db.commit()
        logger.debug(f"Recorded resource {resource.sha1} ({resource.filename}) in {resource.collection_name}")

    async def remove(self, resource: Resource) -> bool:
        """Remove a resource record. Returns True if a record was deleted."""
        await self.initialize()
        async with connect_async(self.db_path) as db:
            cursor = await db.execute(
                "DELETE FROM resources WHERE collection_name = ? AND sha1 = ? "
                "AND relative_publication_path = ? AND filename = ?",
                (resource.collection_name, resource.sha1, resource.relative_publication_path, resource.filename),
            )
            await db.commit()
            return cursor.rowcount > 0

    async def iter_by_collection(self, collection_name: str) -> AsyncIterator[Resource]:
        """Yield the collection's resources one row at a time. Each call re-queries the database."""
        await self.initialize()
        async with connect_async(self.db_path) as db:
            async with db.execute(
                f"SELECT {COLUMNS} FROM resources WHERE collection_name = ? ORDER BY created_at, sha1",
                (collection_name,),
            ) as cursor:
                async for row in cursor:
                    yield _row_to_resource(row)

    async def get_by_sha1(self, sha1: str) -> Resource | None:
        """Return any resource with the given hash, or None."""
        await self.initialize()
        async with connect_async(self.db_path) as db:
            async with db.execute(f"SELECT {COLUMNS} FROM resources WHERE sha1 = ? LIMIT 1", (sha1,)) as cursor:
                row = await cursor.fetchone()
        return _row_to_resource(row) if row else None

    async def count(self, collection_name: str) -> int:
        await self.initialize()
        async with connect_async(self.db_path) as db:
            async with db.execute(
                "SELECT COUNT(*) FROM resources WHERE collection_name = ?", (collection_name,)
            ) as cursor:
                row = await cursor.fetchone()
        return row[0] if row else 0
