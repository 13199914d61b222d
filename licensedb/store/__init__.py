"""Store package: SQLite-backed record store."""

from contextlib import asynccontextmanager
from typing import AsyncIterator

from .schema import COLLECTIONS, SCHEMA_VERSION
from .sqlite_store import SQLiteStore, parse_timestamp, utcnow

__all__ = [
    "COLLECTIONS",
    "SCHEMA_VERSION",
    "SQLiteStore",
    "open_store",
    "parse_timestamp",
    "utcnow",
]


@asynccontextmanager
async def open_store(data_file: str) -> AsyncIterator[SQLiteStore]:
    """Open a store for the duration of the block (creates tables on first use)."""
    store = SQLiteStore(data_file)
    await store.initialize()
    try:
        yield store
    finally:
        await store.close()
