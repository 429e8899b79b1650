"""SQLite connection factory shared by the index, analytics and read model."""

import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

import structlog

logger = structlog.get_logger()


class Database:
    """File-backed SQLite database opened with one connection per operation.

    Every unit of work gets its own connection so shard queries can run on
    worker threads in parallel. WAL journaling lets readers proceed while an
    index write or analytics write holds the write lock.
    """

    def __init__(self, path: str | Path, timeout: float = 5.0) -> None:
        """Initialize database handle (call initialize() before use).

        Args:
            path: Filesystem path of the SQLite database.
            timeout: Seconds to wait on a locked database before failing.
        """
        self.path = Path(path)
        self._timeout = timeout

    def initialize(self) -> None:
        """Create the parent directory and switch the database to WAL mode."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(self.path, timeout=self._timeout)
        try:
            conn.execute("PRAGMA journal_mode=WAL")
        finally:
            conn.close()
        logger.info("database_initialized", path=str(self.path))

    @contextmanager
    def connect(self) -> Iterator[sqlite3.Connection]:
        """Open a connection scoped to one transaction.

        Commits when the block exits cleanly, rolls back when it raises.

        Yields:
            Connection with sqlite3.Row row factory.
        """
        conn = sqlite3.connect(
            self.path, timeout=self._timeout, check_same_thread=False
        )
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except BaseException:
            conn.rollback()
            raise
        finally:
            conn.close()

    def executescript(self, script: str) -> None:
        """Run a multi-statement DDL script.

        Args:
            script: SQL statements separated by semicolons.
        """
        with self.connect() as conn:
            conn.executescript(script)

    def ping(self) -> None:
        """Run a trivial query, raising sqlite3.Error if unreachable."""
        with self.connect() as conn:
            conn.execute("SELECT 1").fetchone()


def escape_like(fragment: str) -> str:
    """Escape LIKE wildcards so user input matches literally (ESCAPE '\\')."""
    return (
        fragment.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    )
