"""Async SQLite connection wrapper with WAL mode, schema init, and transactions."""

import asyncio
import logging
import sqlite3
from collections.abc import AsyncIterator, Iterable
from contextlib import asynccontextmanager

import aiosqlite

from pagetree.db.schema import SCHEMA_SQL
from pagetree.errors import ConflictError

logger = logging.getLogger(__name__)


class Transaction:
    """A unit of work on an open write transaction.

    Statements issued here are not committed individually; the owning
    ``Database.transaction()`` block commits or rolls back all of them.
    """

    def __init__(self, connection: aiosqlite.Connection) -> None:
        self._conn = connection

    async def execute(self, sql: str, params: tuple | None = None) -> aiosqlite.Cursor:
        return await self._conn.execute(sql, params or ())

    async def executemany(self, sql: str, rows: Iterable[tuple]) -> None:
        await self._conn.executemany(sql, list(rows))

    async def fetchone(self, sql: str, params: tuple | None = None) -> aiosqlite.Row | None:
        cursor = await self._conn.execute(sql, params or ())
        return await cursor.fetchone()

    async def fetchall(self, sql: str, params: tuple | None = None) -> list[aiosqlite.Row]:
        cursor = await self._conn.execute(sql, params or ())
        return list(await cursor.fetchall())


class Database:
    """Thin async wrapper around aiosqlite with WAL mode and auto-schema.

    The connection runs in autocommit mode; multi-statement writes go through
    ``transaction()``, which opens ``BEGIN IMMEDIATE`` so the write lock is
    held before the first read of the unit of work. One connection is shared
    by every request, so access to it is serialized by an asyncio lock whose
    acquisition is bounded by ``lock_timeout``.
    """

    def __init__(self, connection: aiosqlite.Connection, lock_timeout: float = 5.0) -> None:
        self._conn = connection
        self._lock = asyncio.Lock()
        self._lock_timeout = lock_timeout

    @classmethod
    async def connect(
        cls,
        path: str = "pagetree.db",
        *,
        lock_timeout: float = 5.0,
    ) -> "Database":
        """Create a connection with WAL mode, foreign keys, and schema init."""
        conn = await aiosqlite.connect(path, isolation_level=None)
        conn.row_factory = aiosqlite.Row
        await conn.execute("PRAGMA journal_mode=WAL")
        await conn.execute("PRAGMA foreign_keys=ON")
        await conn.execute(f"PRAGMA busy_timeout={int(lock_timeout * 1000)}")
        db = cls(conn, lock_timeout=lock_timeout)
        await db._ensure_schema()
        return db

    async def _ensure_schema(self) -> None:
        """Create tables if they don't exist. Idempotent."""
        await self._conn.executescript(SCHEMA_SQL)

    @asynccontextmanager
    async def _locked(self) -> AsyncIterator[None]:
        try:
            await asyncio.wait_for(self._lock.acquire(), timeout=self._lock_timeout)
        except asyncio.TimeoutError:
            raise ConflictError("Timed out waiting for the store lock") from None
        try:
            yield
        finally:
            self._lock.release()

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[Transaction]:
        """Run a block of statements atomically.

        Commits when the block exits normally, rolls back on any exception.
        Failing to obtain SQLite's write lock surfaces as ConflictError.
        """
        async with self._locked():
            try:
                await self._conn.execute("BEGIN IMMEDIATE")
            except sqlite3.OperationalError as e:
                raise ConflictError(f"Could not begin transaction: {e}") from e

            try:
                yield Transaction(self._conn)
            except BaseException:
                if self._conn.in_transaction:
                    await self._conn.execute("ROLLBACK")
                logger.debug("Transaction rolled back")
                raise

            try:
                await self._conn.execute("COMMIT")
            except sqlite3.OperationalError as e:
                if self._conn.in_transaction:
                    await self._conn.execute("ROLLBACK")
                raise ConflictError(f"Could not commit transaction: {e}") from e

    async def execute(self, sql: str, params: tuple | None = None) -> aiosqlite.Cursor:
        """Execute a single SQL statement (autocommitted)."""
        async with self._locked():
            return await self._conn.execute(sql, params or ())

    async def fetchone(self, sql: str, params: tuple | None = None) -> aiosqlite.Row | None:
        """Execute and return a single row."""
        async with self._locked():
            cursor = await self._conn.execute(sql, params or ())
            return await cursor.fetchone()

    async def fetchall(self, sql: str, params: tuple | None = None) -> list[aiosqlite.Row]:
        """Execute and return all rows."""
        async with self._locked():
            cursor = await self._conn.execute(sql, params or ())
            return list(await cursor.fetchall())

    async def close(self) -> None:
        """Close the database connection."""
        await self._conn.close()
