"""SQLite-backed persistence for accounts."""
from __future__ import annotations

import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator, Optional


def _ensure_directory(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)


def resolve_database_path(env_value: Optional[str]) -> Path:
    """Resolve the on-disk path for the application database."""

    if env_value:
        return Path(env_value).expanduser().resolve(strict=False)
    base_dir = Path(__file__).resolve().parent.parent / "data"
    return (base_dir / "accounts.sqlite3").resolve(strict=False)


# Largest value an SQLite INTEGER column can hold.
SQLITE_MAX_INTEGER = 2**63 - 1


def current_timestamp() -> datetime:
    return datetime.now(timezone.utc)


def serialize_datetime(value: datetime) -> str:
    return value.isoformat()


def parse_datetime(value: str) -> datetime:
    return datetime.fromisoformat(value)


_SCHEMA = """
CREATE TABLE IF NOT EXISTS accounts (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name VARCHAR(100) NOT NULL,
    email VARCHAR(255) NOT NULL,
    age INTEGER NOT NULL CHECK (age BETWEEN 0 AND 150),
    password_hash VARCHAR(255),
    role VARCHAR(20) NOT NULL DEFAULT 'USER',
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    CONSTRAINT uq_accounts_email UNIQUE (email)
);

CREATE INDEX IF NOT EXISTS idx_accounts_email ON accounts(email);
CREATE INDEX IF NOT EXISTS idx_accounts_role ON accounts(role);
"""


class Database:
    """Simple wrapper around SQLite handing out one connection per unit of work.

    Work that must commit or roll back as a whole runs inside
    :meth:`transaction`. Nested calls on the same thread join the outer
    transaction instead of opening a second connection, so a service method
    can call another transactional method without splitting the unit.
    """

    def __init__(self, path: Path, *, timeout: float = 5.0) -> None:
        _ensure_directory(path)
        self._path = path
        self._timeout = timeout
        self._local = threading.local()

    @property
    def path(self) -> Path:
        return self._path

    def _connect(self) -> sqlite3.Connection:
        # Autocommit mode; transactions are opened explicitly with BEGIN.
        conn = sqlite3.connect(
            self._path,
            timeout=self._timeout,
            isolation_level=None,
            check_same_thread=False,
        )
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    def initialize(self) -> None:
        """Create the required tables if they do not already exist."""

        conn = self._connect()
        try:
            conn.executescript(_SCHEMA)
        finally:
            conn.close()

    @contextmanager
    def transaction(self, *, read_only: bool = False) -> Iterator[sqlite3.Connection]:
        """Yield a connection inside a transaction, committing on success."""

        active: Optional[sqlite3.Connection] = getattr(self._local, "connection", None)
        if active is not None:
            yield active
            return

        conn = self._connect()
        if read_only:
            conn.execute("PRAGMA query_only = ON")
        self._local.connection = conn
        try:
            conn.execute("BEGIN" if read_only else "BEGIN IMMEDIATE")
            try:
                yield conn
            except BaseException:
                conn.rollback()
                raise
            conn.commit()
        finally:
            self._local.connection = None
            conn.close()

    @property
    def in_transaction(self) -> bool:
        return getattr(self._local, "connection", None) is not None


__all__ = [
    "Database",
    "current_timestamp",
    "parse_datetime",
    "SQLITE_MAX_INTEGER",
    "resolve_database_path",
    "serialize_datetime",
]
