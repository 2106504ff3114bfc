"""
SQLite connections for the resource repository, opened in WAL mode so a
publishing run can enumerate resources while an import adds new ones.
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from pathlib import Path

import aiosqlite


@asynccontextmanager
async def connect_async(
    db_path: str | Path, timeout: float = 30.0, create_parent: bool = False
) -> AsyncGenerator[aiosqlite.Connection, None]:
    """
    Open the resource database with WAL mode enabled.

    Args:
        db_path: Path of the SQLite file
        timeout: Seconds to wait for the database lock when connecting
        create_parent: Create the file's directory first (for a new database)
    """
    if create_parent:
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
    async with aiosqlite.connect(str(db_path), timeout=timeout) as conn:
        await conn.execute("PRAGMA journal_mode=WAL")
        await conn.execute("PRAGMA synchronous=NORMAL")
        await conn.execute("PRAGMA busy_timeout=5000")
        yield conn
