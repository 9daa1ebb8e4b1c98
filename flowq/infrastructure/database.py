"""Centralized database access

**DATABASE POLICY**: flowq uses ONE SQLite database: flowq/data/flowq.db
(FLOWQ_DB_PATH overrides it).

Learned state (workflow mappings, outcome embeddings), the raw execution
audit, claims, and the downstream business tables all live in it and are
reached through get_db_connection() / db_transaction().

Batch workers share a fixed pool of WAL-mode connections. Writers that
collide get "database is locked" from SQLite; repositories wrap their writes
in @retry_on_db_lock(), which backs off through the shared RetryPolicy.
"""

from __future__ import annotations

import atexit
import os
import sqlite3
from collections.abc import Callable, Generator
from contextlib import contextmanager
from functools import lru_cache
from pathlib import Path
from queue import Empty, Queue
from typing import Any, TypeVar

from flowq.config import (
    DB_CONNECT_TIMEOUT,
    DB_POOL_SIZE,
    DB_POOL_TIMEOUT,
    DB_RETRY_BASE_DELAY,
    DB_RETRY_JITTER,
    DB_RETRY_MAX,
    DB_RETRY_MAX_DELAY,
)
from flowq.infrastructure.retry import RetryPolicy
from flowq.infrastructure.settings import FLOWQ_ROOT
from flowq.observability.logging import get_logger
from flowq.observability.telemetry import counter

F = TypeVar("F", bound=Callable[..., Any])

DB_PATH = FLOWQ_ROOT / "data" / "flowq.db"

logger = get_logger(__name__)


def is_lock_error(exc: Exception) -> bool:
    """SQLITE_BUSY / SQLITE_LOCKED surface as OperationalError with these words."""
    if not isinstance(exc, sqlite3.OperationalError):
        return False
    message = str(exc).lower()
    return "locked" in message or "busy" in message


def retry_on_db_lock(
    max_retries: int = DB_RETRY_MAX, base_delay: float = DB_RETRY_BASE_DELAY
) -> Callable[[F], F]:
    """
    Retry a database operation while SQLite reports the file as locked.

    Any other error propagates on the first attempt.

    Usage:
        @retry_on_db_lock()
        def my_database_operation():
            with db_transaction() as conn:
                conn.execute("INSERT INTO ...")
    """
    policy = RetryPolicy(
        stage="database.lock",
        max_attempts=max_retries + 1,
        base_delay=base_delay,
        max_delay=DB_RETRY_MAX_DELAY,
        jitter=DB_RETRY_JITTER,
        retry_if=is_lock_error,
    )

    def decorator(func: F) -> F:
        return policy.wrap(func)  # type: ignore[return-value]

    return decorator


def open_connection(db_path: Path) -> sqlite3.Connection:
    """
    Open a connection configured for concurrent workers.

    Raises:
        RuntimeError: If the file fails SQLite's quick integrity check
    """
    conn = sqlite3.connect(str(db_path), timeout=DB_CONNECT_TIMEOUT, check_same_thread=False)
    try:
        verdict = conn.execute("PRAGMA quick_check(1)").fetchone()[0]
    except sqlite3.DatabaseError as e:
        verdict = str(e)
    if verdict != "ok":
        conn.close()
        counter("database.corruption_detected")
        logger.critical("Database integrity check failed for %s: %s", db_path, verdict)
        raise RuntimeError(f"Database corruption detected: {verdict}")

    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA synchronous=NORMAL")
    conn.execute("PRAGMA foreign_keys=ON")
    conn.row_factory = sqlite3.Row
    return conn


class ConnectionPool:
    """
    Fixed set of connections shared by worker threads.

    A caller waits up to `timeout` seconds for a free connection. Repositories
    never hold one connection while asking for another, so the pool only has
    to be at least as large as the batch worker count.
    """

    def __init__(self, db_path: Path, size: int = DB_POOL_SIZE, timeout: float = DB_POOL_TIMEOUT):
        self.db_path = db_path
        self.size = size
        self.timeout = timeout
        self.closed = False
        self._idle: Queue[sqlite3.Connection] = Queue(maxsize=size)
        for _ in range(size):
            self._idle.put(open_connection(db_path))
        atexit.register(self.close_all)

    @contextmanager
    def connection(self) -> Generator[sqlite3.Connection, None, None]:
        if self.closed:
            raise RuntimeError("Connection pool has been closed")
        try:
            conn = self._idle.get(timeout=self.timeout)
        except Empty:
            counter("database.pool_exhausted")
            raise RuntimeError(
                f"No free database connection after {self.timeout}s (pool size {self.size})"
            ) from None

        try:
            yield conn
        finally:
            if self.closed:
                conn.close()
            else:
                self._idle.put_nowait(conn)

    def stats(self) -> dict[str, Any]:
        available = self._idle.qsize()
        in_use = self.size - available
        return {
            "pool_size": self.size,
            "available": available,
            "in_use": in_use,
            "usage_percent": round(in_use / self.size * 100, 1) if self.size else 0,
            "closed": self.closed,
        }

    def close_all(self) -> None:
        self.closed = True
        while True:
            try:
                self._idle.get_nowait().close()
            except Empty:
                break


def get_db_path() -> Path:
    if env_path := os.getenv("FLOWQ_DB_PATH"):
        return Path(env_path)
    return DB_PATH


@lru_cache(maxsize=1)
def get_pool() -> ConnectionPool:
    """
    Process-wide pool for the configured database.

    Tests close the pool and call get_pool.cache_clear() to point it at a
    fresh database.
    """
    return ConnectionPool(get_db_path())


@contextmanager
def get_db_connection() -> Generator[sqlite3.Connection, None, None]:
    """
    Pooled connection for reads.

    Raises:
        FileNotFoundError: If the database hasn't been initialized
    """
    db_path = get_db_path()
    if not db_path.exists():
        raise FileNotFoundError(f"Database not found: {db_path}\nRun init_database() first")

    with get_pool().connection() as conn:
        yield conn


@contextmanager
def db_transaction() -> Generator[sqlite3.Connection, None, None]:
    """Pooled connection that commits on success and rolls back on error."""
    with get_db_connection() as conn:
        try:
            yield conn
        except Exception:
            conn.rollback()
            raise
        conn.commit()


def get_pool_stats() -> dict[str, Any]:
    """Connection pool health metrics (reported by /health)."""
    return get_pool().stats()


def validate_schema() -> bool:
    """
    Raises:
        ValueError: If tables are missing
    """
    from flowq.infrastructure.database_schema import validate_schema as _validate_schema

    with get_db_connection() as conn:
        return _validate_schema(conn)


def init_database() -> None:
    """Create the schema (idempotent: CREATE TABLE IF NOT EXISTS)."""
    from flowq.infrastructure.database_schema import init_database as _init_database

    _init_database(get_db_path())
