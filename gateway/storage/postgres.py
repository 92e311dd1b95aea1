"""Postgres data-store collaborator (psycopg 3 + psycopg_pool).

The pool is created lazily on first use so the app can boot, and answer
``/health``, before the database is reachable. SQL parameter style is
psycopg's ``%s`` placeholders.
"""
from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from typing import Any, Iterator, Optional, Sequence

from psycopg import errors
from psycopg.rows import dict_row
from psycopg_pool import ConnectionPool, PoolTimeout

from gateway.storage.errors import ConstraintViolation, DatabaseUnavailable
from gateway.storage.models import BandMembership, LocalUser

logger = logging.getLogger(__name__)

SCHEMA_STATEMENTS = (
    """
    CREATE TABLE IF NOT EXISTS users (
        id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
        cognito_id TEXT UNIQUE NOT NULL,
        email TEXT UNIQUE,
        phone_number TEXT UNIQUE,
        first_name TEXT,
        last_name TEXT,
        display_name TEXT,
        hometown TEXT,
        instrument TEXT,
        created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
        updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS bands (
        id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
        name TEXT NOT NULL,
        created_at TIMESTAMPTZ NOT NULL DEFAULT now()
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS user_bands (
        id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
        user_id UUID NOT NULL REFERENCES users(id) ON DELETE CASCADE,
        band_id UUID NOT NULL REFERENCES bands(id) ON DELETE CASCADE,
        role TEXT NOT NULL DEFAULT 'member',
        status TEXT NOT NULL DEFAULT 'active',
        joined_at TIMESTAMPTZ NOT NULL DEFAULT now(),
        UNIQUE (user_id, band_id)
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_user_bands_user ON user_bands (user_id)",
)

USER_COLUMNS = (
    "id, cognito_id, email, phone_number, first_name, last_name, "
    "display_name, hometown, instrument, created_at"
)


class Database:
    """Lazily initialized connection pool with small query helpers.

    Args:
        dsn: libpq connection string
        min_size: Minimum pooled connections
        max_size: Maximum pooled connections
        timeout: Seconds to wait for a free connection
        apply_schema: Run ``SCHEMA_STATEMENTS`` on first initialization
    """

    def __init__(self, dsn: str, min_size: int = 1, max_size: int = 10, timeout: float = 10.0, apply_schema: bool = True):
        if not dsn:
            raise ValueError("DATABASE_URL is required for the Postgres store")
        self.dsn = dsn
        self.min_size = min_size
        self.max_size = max_size
        self.timeout = timeout
        self.apply_schema = apply_schema
        self._pool: Optional[ConnectionPool] = None
        self._init_lock = threading.Lock()

    def __repr__(self) -> str:
        return f"Database(initialized={self._pool is not None})"

    @property
    def initialized(self) -> bool:
        return self._pool is not None

    def initialize(self) -> ConnectionPool:
        """Create the pool (and schema) once; later calls are no-ops."""
        if self._pool is not None:
            return self._pool
        with self._init_lock:
            if self._pool is not None:
                return self._pool
            logger.info("Initializing database pool (min=%d, max=%d)", self.min_size, self.max_size)
            pool = ConnectionPool(
                self.dsn,
                min_size=self.min_size,
                max_size=self.max_size,
                timeout=self.timeout,
                kwargs={"row_factory": dict_row, "autocommit": False},
                open=False,
            )
            try:
                pool.open(wait=True, timeout=self.timeout)
                if self.apply_schema:
                    with pool.connection() as conn, conn.transaction():
                        for statement in SCHEMA_STATEMENTS:
                            conn.execute(statement)
            except (PoolTimeout, errors.OperationalError) as exc:
                pool.close()
                logger.error("Database initialization failed: %s", type(exc).__name__)
                raise DatabaseUnavailable("Database connection failed") from exc
            self._pool = pool
            return pool

    def close(self) -> None:
        with self._init_lock:
            if self._pool is not None:
                self._pool.close()
                self._pool = None

    @contextmanager
    def transaction(self) -> Iterator[Any]:
        """Yield a connection inside a transaction.

        Commits when the block exits normally, rolls back on exception.
        """
        pool = self.initialize()
        try:
            with pool.connection() as conn, conn.transaction():
                yield conn
        except PoolTimeout as exc:
            raise DatabaseUnavailable("No database connection available") from exc

    def fetch_one(self, sql: str, params: Sequence[Any] = ()) -> Optional[dict]:
        with self.transaction() as conn:
            return conn.execute(sql, params).fetchone()

    def fetch_all(self, sql: str, params: Sequence[Any] = ()) -> list[dict]:
        with self.transaction() as conn:
            return conn.execute(sql, params).fetchall()

    def ping(self) -> bool:
        try:
            return self.fetch_one("SELECT 1 AS ok") is not None
        except (DatabaseUnavailable, errors.OperationalError):
            return False


class PostgresUserStore:
    """User and membership queries against ``users``/``user_bands``/``bands``."""

    def __init__(self, database: Database):
        self.database = database

    def find_by_subject(self, cognito_id: str) -> Optional[LocalUser]:
        row = self.database.fetch_one(
            f"SELECT {USER_COLUMNS} FROM users WHERE cognito_id = %s",
            (cognito_id,),
        )
        return LocalUser.from_row(row) if row else None

    def insert_user(self, cognito_id: str, email: Optional[str], phone_number: Optional[str] = None) -> LocalUser:
        """Insert a user row; the store generates ``id`` and ``created_at``.

        Raises:
            ConstraintViolation: A row for ``cognito_id`` (or the same email)
                already exists
        """
        try:
            row = self.database.fetch_one(
                f"""
                INSERT INTO users (cognito_id, email, phone_number)
                VALUES (%s, %s, %s)
                ON CONFLICT (cognito_id) DO NOTHING
                RETURNING {USER_COLUMNS}
                """,
                (cognito_id, email, phone_number),
            )
        except errors.UniqueViolation as exc:
            raise ConstraintViolation("user already exists", {"field": "email"}) from exc
        if row is None:
            raise ConstraintViolation("user already exists", {"field": "cognito_id"})
        return LocalUser.from_row(row)

    def active_memberships(self, user_id: str) -> list[BandMembership]:
        rows = self.database.fetch_all(
            """
            SELECT b.id, b.name, ub.role, ub.status
            FROM bands b
            JOIN user_bands ub ON b.id = ub.band_id
            WHERE ub.user_id = %s AND ub.status = 'active'
            ORDER BY b.name
            """,
            (user_id,),
        )
        return [BandMembership.from_row(row) for row in rows]
