"""RisqLab – PostgreSQL connection pool.

All storage classes borrow connections from one :class:`DatabaseManager`
per process. The pool is created lazily on the first
:meth:`DatabaseManager.get_connection` call, so building engines and
parsing CLI arguments never touches the database.

Storage code owns its transactions (``commit`` on success). If the body
of a ``get_connection`` block raises, any open transaction is rolled
back before the connection goes back to the pool, so a failed write for
one timestamp or asset cannot poison the next unit of a batch run.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Dict, Generator, Optional

from psycopg2 import pool
from psycopg2.extensions import TRANSACTION_STATUS_IDLE
from psycopg2.extensions import connection as PsycopgConnection

from risqlab.core.config import DatabaseConfig, RisqlabConfig, get_config
from risqlab.core.logging import get_logger


logger = get_logger(__name__)

APPLICATION_NAME = "risqlab"


class DatabaseError(Exception):
    """Raised when a pool or connection cannot be obtained."""


class DatabaseManager:
    """Connection pool for the RisqLab database.

    Usage::

        db = get_db_manager()
        with db.get_connection() as conn:
            cursor = conn.cursor()
            try:
                cursor.execute("SELECT COUNT(*) FROM index_history")
                (count,) = cursor.fetchone()
            finally:
                cursor.close()
    """

    def __init__(self, config: RisqlabConfig) -> None:
        self.config = config
        self._pool: Optional[pool.SimpleConnectionPool] = None

    @staticmethod
    def _connection_kwargs(db_config: DatabaseConfig) -> Dict[str, Any]:
        """Keyword arguments for :func:`psycopg2.connect`."""

        return {
            "host": db_config.host,
            "port": db_config.port,
            "dbname": db_config.name,
            "user": db_config.user,
            "password": db_config.password,
            "application_name": APPLICATION_NAME,
        }

    def _get_or_create_pool(self) -> pool.SimpleConnectionPool:
        if self._pool is not None:
            return self._pool

        db_config = self.config.db
        try:
            self._pool = pool.SimpleConnectionPool(
                1,
                db_config.pool_size,
                **self._connection_kwargs(db_config),
            )
        except Exception as exc:  # pragma: no cover - connection errors
            logger.error("Cannot connect to %s@%s:%s: %s", db_config.name, db_config.host, db_config.port, exc)
            raise DatabaseError(f"Failed to create connection pool for database {db_config.name!r}") from exc

        logger.info(
            "Connection pool ready for %s@%s:%s (max %d connections)",
            db_config.name,
            db_config.host,
            db_config.port,
            db_config.pool_size,
        )
        return self._pool

    @contextmanager
    def get_connection(self) -> Generator[PsycopgConnection, None, None]:
        """Borrow a pooled connection for the duration of the block.

        Raises:
            DatabaseError: If no connection can be acquired.
        """

        pool_obj = self._get_or_create_pool()
        try:
            conn = pool_obj.getconn()
        except Exception as exc:  # pragma: no cover - connection errors
            logger.error("Failed to acquire database connection: %s", exc)
            raise DatabaseError("Failed to acquire database connection") from exc

        try:
            yield conn
        except Exception:
            if not conn.closed and conn.get_transaction_status() != TRANSACTION_STATUS_IDLE:
                conn.rollback()
            raise
        finally:
            pool_obj.putconn(conn, close=bool(conn.closed))

    def close_all(self) -> None:
        """Close every pooled connection; the next use creates a new pool."""

        if self._pool is None:
            return
        self._pool.closeall()
        self._pool = None
        logger.info("Closed database connection pool")


_db_manager: Optional[DatabaseManager] = None


def get_db_manager() -> DatabaseManager:
    """Return the process-wide :class:`DatabaseManager` for :func:`get_config`."""

    global _db_manager
    if _db_manager is None:
        _db_manager = DatabaseManager(get_config())
    return _db_manager
