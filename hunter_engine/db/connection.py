"""
PostgreSQL connection pool

Connections handed out by the pool return rows as dicts. Use
connection() for single statements the caller commits itself and
transaction() when several statements must land together.
"""
import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

import psycopg
from psycopg.rows import dict_row
from psycopg_pool import AsyncConnectionPool

from hunter_engine.config import DATABASE_URL, DB_POOL_MAX_SIZE, DB_POOL_MIN_SIZE
from hunter_engine.exceptions import ConfigurationError, wrap_external_exception

logger = logging.getLogger(__name__)


class Database:
    """Owns the AsyncConnectionPool for the postgres backend"""

    def __init__(
        self,
        connection_string: str = DATABASE_URL,
        min_size: int = DB_POOL_MIN_SIZE,
        max_size: int = DB_POOL_MAX_SIZE,
        open_timeout: float = 10.0
    ):
        self.connection_string = connection_string
        self.min_size = min_size
        self.max_size = max_size
        self.open_timeout = open_timeout
        self._pool: Optional[AsyncConnectionPool] = None

    @property
    def is_open(self) -> bool:
        return self._pool is not None

    async def init_pool(self) -> None:
        """
        Open the pool and wait until min_size connections are ready

        Raises:
            CollaboratorUnavailableError: the server could not be reached in time
        """
        if self._pool is not None:
            logger.debug("Connection pool already open")
            return

        logger.info(f"Opening postgres pool (min={self.min_size}, max={self.max_size})")
        pool = AsyncConnectionPool(
            self.connection_string,
            min_size=self.min_size,
            max_size=self.max_size,
            kwargs={"row_factory": dict_row},
            open=False
        )
        try:
            await pool.open(wait=True, timeout=self.open_timeout)
        except psycopg.Error as e:
            await pool.close()
            raise wrap_external_exception(e, operation="init_pool")
        self._pool = pool

    async def close_pool(self) -> None:
        if self._pool is None:
            return
        logger.info("Closing postgres pool")
        pool, self._pool = self._pool, None
        await pool.close()

    @asynccontextmanager
    async def connection(self) -> AsyncGenerator[psycopg.AsyncConnection, None]:
        if self._pool is None:
            raise ConfigurationError(
                "Postgres pool used before init_pool()",
                config_key="DATABASE_URL"
            )
        async with self._pool.connection() as conn:
            yield conn

    @asynccontextmanager
    async def transaction(self) -> AsyncGenerator[psycopg.AsyncConnection, None]:
        """Connection inside a transaction; commits on exit, rolls back on error"""
        async with self.connection() as conn:
            async with conn.transaction():
                yield conn


db = Database()
