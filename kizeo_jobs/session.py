"""Connection registry and the unit-of-work session used by ledger stores."""

import logging
from typing import Optional

import asyncpg

from kizeo_jobs.errors import SessionUnavailableError

# Errors meaning the connection itself is gone, as opposed to a bad query.
CONNECTION_ERRORS = (
    asyncpg.exceptions.PostgresConnectionError,
    asyncpg.exceptions.InterfaceError,
    ConnectionError,
    OSError,
)


def is_connection_error(exc: BaseException) -> bool:
    """Return True when an exception signals a lost database connection."""
    return isinstance(exc, CONNECTION_ERRORS)


class ConnectionRegistry:
    """Owns the connection pool and hands out fresh connections."""

    def __init__(self, db_pool: asyncpg.Pool):
        self.db_pool = db_pool

    @classmethod
    async def create(
        cls, db_dsn: str, min_size: int = 1, max_size: int = 4
    ) -> "ConnectionRegistry":
        """Create a registry backed by a new pool."""
        pool = await asyncpg.create_pool(db_dsn, min_size=min_size, max_size=max_size)
        return cls(pool)

    async def acquire(self) -> asyncpg.Connection:
        return await self.db_pool.acquire()

    async def release(self, conn: asyncpg.Connection) -> None:
        await self.db_pool.release(conn)

    async def close(self) -> None:
        await self.db_pool.close()

    def open_session(self, logger: Optional[logging.Logger] = None) -> "LedgerSession":
        return LedgerSession(self, logger)


class LedgerSession:
    """
    A single long-lived connection that can be checked and replaced.

    Stores read ``session.connection`` on every call, so after
    ``reacquire()`` the same store keeps working on the new connection.

    Usage:
        async with registry.open_session() as session:
            store = JobStore(session)
            ...
    """

    def __init__(
        self,
        registry: ConnectionRegistry,
        logger: Optional[logging.Logger] = None,
    ):
        self.registry = registry
        self.logger = logger or logging.getLogger(__name__)
        self._conn: Optional[asyncpg.Connection] = None

    async def __aenter__(self) -> "LedgerSession":
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def open(self) -> None:
        if self._conn is None:
            self._conn = await self.registry.acquire()

    @property
    def connection(self) -> asyncpg.Connection:
        if self._conn is None:
            raise SessionUnavailableError("Session is not open")
        return self._conn

    def is_usable(self) -> bool:
        """Check whether the current connection can still run statements."""
        return self._conn is not None and not self._conn.is_closed()

    async def reacquire(self) -> None:
        """Drop the current connection and take a fresh one from the registry."""
        await self._discard()
        try:
            self._conn = await self.registry.acquire()
        except Exception as e:
            raise SessionUnavailableError(
                f"Could not reacquire a database connection: {e}"
            ) from e
        self.logger.warning("Database session reacquired")

    async def ensure_usable(self) -> bool:
        """
        Reacquire the connection if it is no longer usable.

        Returns:
            True if a new connection was acquired, False if the current one was kept

        Raises:
            SessionUnavailableError: If no new connection could be acquired
        """
        if self.is_usable():
            return False
        await self.reacquire()
        return True

    async def close(self) -> None:
        await self._discard()

    async def _discard(self) -> None:
        conn, self._conn = self._conn, None
        if conn is None:
            return
        try:
            await self.registry.release(conn)
        except CONNECTION_ERRORS as e:
            self.logger.warning(f"Failed to release database connection: {e}")
