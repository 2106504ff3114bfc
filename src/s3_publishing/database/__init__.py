"""
Database package for resource records.
"""

from .connections import connect_async
from .repository import ResourceRepository, SQLiteResourceRepository

__all__ = ["connect_async", "ResourceRepository", "SQLiteResourceRepository"]
