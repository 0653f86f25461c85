# Area: Room
"""
live_battle._room.database — Database Initialization
====================================================

Handles SQLite database initialization and connection management for
durable room state. One connection is shared per ``Database`` so that
``:memory:`` databases work; a re-entrant lock serializes access and
nested ``transaction()`` blocks commit only at the outermost level.
"""

import sqlite3
import logging
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, List, Optional, Union

logger = logging.getLogger("live_battle.room.database")

# Path to schema file
SCHEMA_PATH = Path(__file__).parent / "schema.sql"


def get_connection(db_path: str = ":memory:") -> sqlite3.Connection:
    """
    Get a database connection.

    Args:
        db_path: Path to the SQLite database file

    Returns:
        SQLite connection with row factory set
    """
    conn = sqlite3.connect(db_path, check_same_thread=False)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


def init_database(conn: sqlite3.Connection) -> None:
    """
    Initialize the database with schema.

    Args:
        conn: Open SQLite connection
    """
    with open(SCHEMA_PATH, "r") as f:
        schema = f.read()
    conn.executescript(schema)
    conn.commit()


class Database:
    """Shared SQLite connection with nested transaction support."""

    def __init__(self, db_path: str = ":memory:"):
        self.db_path = db_path
        self._conn = get_connection(db_path)
        self._lock = threading.RLock()
        self._depth = 0
        init_database(self._conn)
        logger.info(f"Database initialized at {db_path}")

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """
        Run a block of statements atomically.

        Inner blocks join the outermost transaction; the outermost block
        commits on success and rolls back on any exception.
        """
        with self._lock:
            self._depth += 1
            try:
                yield self._conn
                if self._depth == 1:
                    self._conn.commit()
            except Exception:
                if self._depth == 1:
                    self._conn.rollback()
                raise
            finally:
                self._depth -= 1

    def close(self) -> None:
        with self._lock:
            self._conn.close()


class BaseRepository:
    """
    Base class for database repositories.

    Provides common database operations on a shared ``Database``.
    """

    def __init__(self, database: Database):
        """
        Initialize repository.

        Args:
            database: The shared database
        """
        self.db = database

    def _execute(
        self, query: str, params: tuple = (), fetch: bool = False
    ) -> Union[List[dict], int]:
        """
        Execute a query.

        Args:
            query: SQL query string
            params: Query parameters
            fetch: If True, fetch and return results

        Returns:
            List of row dicts if fetch=True, else the affected row count
        """
        with self.db.transaction() as conn:
            cursor = conn.execute(query, params)
            if fetch:
                return [dict(row) for row in cursor.fetchall()]
            return cursor.rowcount

    def _execute_one(self, query: str, params: tuple = ()) -> Optional[dict]:
        """Execute query and return single result."""
        results = self._execute(query, params, fetch=True)
        return results[0] if results else None
