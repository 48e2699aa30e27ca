"""SQLite connection and migration helpers."""

from __future__ import annotations

import asyncio
import weakref
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Optional

import aiosqlite

SCHEMA_PATH = Path(__file__).with_name("schema.sql")

_write_locks: "weakref.WeakKeyDictionary[aiosqlite.Connection, asyncio.Lock]" = (
    weakref.WeakKeyDictionary()
)


def _casefold(value: Optional[str]) -> Optional[str]:
    return value.casefold() if isinstance(value, str) else value


async def _init_connection(db: aiosqlite.Connection) -> None:
    await db.execute("PRAGMA journal_mode = WAL")
    await db.execute("PRAGMA synchronous = NORMAL")
    await db.execute("PRAGMA cache_size = 10000")
    await db.execute("PRAGMA temp_store = MEMORY")
    # SQLite's LOWER() only folds ASCII; keyword search needs the Unicode fold.
    await db.create_function("casefold", 1, _casefold, deterministic=True)


async def run_migrations(db: aiosqlite.Connection) -> None:
    schema_sql = SCHEMA_PATH.read_text(encoding="utf-8")
    await db.executescript(schema_sql)
    await db.commit()


def write_lock(db: aiosqlite.Connection) -> asyncio.Lock:
    """Lock serializing write transactions on one shared connection."""
    lock = _write_locks.get(db)
    if lock is None:
        lock = asyncio.Lock()
        _write_locks[db] = lock
    return lock


@asynccontextmanager
async def transaction(db: aiosqlite.Connection) -> AsyncIterator[aiosqlite.Connection]:
    """Run a unit of writes alone on the connection; commit on success, roll back on error.

    All statements of the connection share one SQLite transaction, so two
    interleaved units would commit or roll back each other's rows. Holding the
    write lock for the whole unit keeps them apart. Not reentrant.
    """
    async with write_lock(db):
        try:
            yield db
        except BaseException:
            await db.rollback()
            raise
        await db.commit()


@asynccontextmanager
async def get_db(db_path: str = "data/knowledge.db") -> AsyncIterator[aiosqlite.Connection]:
    path = Path(db_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    db = await aiosqlite.connect(str(path))
    try:
        db.row_factory = aiosqlite.Row
        await _init_connection(db)
        await run_migrations(db)
        yield db
    finally:
        await db.close()
