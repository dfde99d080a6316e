"""
Bounded aiosqlite connection pool.

A fixed set of connections is handed out through an asyncio.Queue, so reads
and writes can run on separate handles without opening a connection per call.
"""

import asyncio
import logging
from collections.abc import AsyncIterator, Iterator
from contextlib import asynccontextmanager, contextmanager
from pathlib import Path

import aiosqlite

from repeater.domain.constants import BUSY_TIMEOUT, DEFAULT_POOL_SIZE
from repeater.domain.exceptions import PersistenceError

logger = logging.getLogger(__name__)


@contextmanager
def persistence_errors(operation: str) -> Iterator[None]:
    """Re-raise storage driver errors as PersistenceError."""
    try:
        yield
    except aiosqlite.Error as e:
        raise PersistenceError(f"{operation} failed: {e}") from e


async def _rollback(conn: aiosqlite.Connection) -> None:
    # No-op when the connection is not inside a transaction.
    try:
        await conn.rollback()
    except (aiosqlite.Error, ValueError) as e:
        logger.warning(f"Rollback failed: {e}")


class ConnectionPool:
    def __init__(self, db_path: Path, size: int = DEFAULT_POOL_SIZE):
        if size < 1:
            raise ValueError("Pool size must be at least 1")
        self.db_path = db_path
        self.size = size
        # None is a wake-up marker put in the queue on close
        self._idle: asyncio.Queue[aiosqlite.Connection | None] = asyncio.Queue(maxsize=size)
        self._connections: list[aiosqlite.Connection] = []
        self._closed = True

    @property
    def closed(self) -> bool:
        return self._closed

    async def open(self) -> None:
        if not self._closed:
            return
        with persistence_errors("Opening database"):
            try:
                for _ in range(self.size):
                    # isolation_level=None: transactions are managed explicitly
                    conn = await aiosqlite.connect(
                        self.db_path, timeout=BUSY_TIMEOUT, isolation_level=None
                    )
                    conn.row_factory = aiosqlite.Row
                    self._connections.append(conn)
                    self._idle.put_nowait(conn)
            except BaseException:
                await self._close_all()
                raise
        self._closed = False
        logger.debug(f"Opened {self.size} connections to {self.db_path}")

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True

        # Wake every acquire() still waiting on the old queue
        idle = self._idle
        while not idle.empty():
            idle.get_nowait()
        idle.put_nowait(None)

        await self._close_all()
        logger.debug(f"Closed connection pool for {self.db_path}")

    async def _close_all(self) -> None:
        connections, self._connections = self._connections, []
        self._idle = asyncio.Queue(maxsize=self.size)
        for conn in connections:
            try:
                await conn.close()
            except aiosqlite.Error as e:
                logger.warning(f"Failed to close connection: {e}")

    @asynccontextmanager
    async def acquire(self) -> AsyncIterator[aiosqlite.Connection]:
        """
        Borrow a connection; it goes back to the pool on every exit path.

        A connection handed back inside a transaction is rolled back first.

        Raises:
            PersistenceError: The pool is closed, or closes while waiting.
        """
        if self._closed:
            raise PersistenceError(f"Connection pool for {self.db_path} is closed")
        idle = self._idle
        conn = await idle.get()
        if conn is None:
            idle.put_nowait(None)
            raise PersistenceError(f"Connection pool for {self.db_path} is closed")

        try:
            yield conn
        finally:
            if not self._closed:
                try:
                    if conn.in_transaction:
                        await asyncio.shield(_rollback(conn))
                finally:
                    if not self._closed:
                        self._idle.put_nowait(conn)

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[aiosqlite.Connection]:
        """
        Run the body inside a write transaction.

        Commits on success. Any exception, cancellation included, rolls back
        before the connection is returned. The rollback is shielded and queued
        behind any statement still running on the connection's worker thread,
        so a BEGIN abandoned while waiting on the lock is undone as well.
        """
        async with self.acquire() as conn:
            try:
                await conn.execute("BEGIN IMMEDIATE")
                yield conn
                await conn.commit()
            except BaseException:
                await asyncio.shield(_rollback(conn))
                raise
