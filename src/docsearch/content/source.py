"""Read model over canonical review records, used to rebuild the index."""

from collections.abc import Iterator
from typing import Protocol

import structlog

from docsearch.content.schemas import (
    RECORD_MODELS,
    ContentType,
    IndexableRecord,
)
from docsearch.db import Database, escape_like

logger = structlog.get_logger()

# Canonical tables owned by the review application. Created here only so a
# standalone deployment (and the test suite) has a read model to rebuild from.
CANONICAL_SCHEMA = """
CREATE TABLE IF NOT EXISTS users (
    id TEXT PRIMARY KEY NOT NULL,
    name TEXT NOT NULL,
    email TEXT
);

CREATE TABLE IF NOT EXISTS document_metadata (
    doc_path TEXT PRIMARY KEY NOT NULL,
    title TEXT NOT NULL,
    description TEXT,
    category TEXT,
    deleted_at INTEGER
);

CREATE TABLE IF NOT EXISTS comments (
    id TEXT PRIMARY KEY NOT NULL,
    doc_path TEXT NOT NULL,
    user_id TEXT NOT NULL REFERENCES users(id),
    content TEXT NOT NULL,
    line_content TEXT,
    resolved INTEGER NOT NULL DEFAULT 0,
    created_at INTEGER NOT NULL,
    deleted_at INTEGER
);

CREATE TABLE IF NOT EXISTS suggestions (
    id TEXT PRIMARY KEY NOT NULL,
    doc_path TEXT NOT NULL,
    user_id TEXT NOT NULL REFERENCES users(id),
    description TEXT,
    original_text TEXT NOT NULL,
    suggested_text TEXT NOT NULL,
    status TEXT NOT NULL DEFAULT 'pending',
    created_at INTEGER NOT NULL,
    deleted_at INTEGER
);

CREATE TABLE IF NOT EXISTS discussions (
    id TEXT PRIMARY KEY NOT NULL,
    doc_path TEXT NOT NULL,
    user_id TEXT NOT NULL REFERENCES users(id),
    title TEXT NOT NULL,
    description TEXT,
    status TEXT NOT NULL DEFAULT 'open',
    created_at INTEGER NOT NULL,
    deleted_at INTEGER
);

CREATE TABLE IF NOT EXISTS discussion_messages (
    id TEXT PRIMARY KEY NOT NULL,
    discussion_id TEXT NOT NULL REFERENCES discussions(id),
    user_id TEXT NOT NULL REFERENCES users(id),
    content TEXT NOT NULL,
    created_at INTEGER NOT NULL,
    deleted_at INTEGER
);
"""

_SELECTS: dict[ContentType, str] = {
    ContentType.DOCUMENT: """
        SELECT doc_path, title, description AS content, category
        FROM document_metadata
        WHERE deleted_at IS NULL
        ORDER BY doc_path
    """,
    ContentType.COMMENT: """
        SELECT c.id, c.doc_path, c.content, u.name AS author_name, c.user_id,
               c.line_content, c.resolved, c.created_at
        FROM comments c
        JOIN users u ON c.user_id = u.id
        WHERE c.deleted_at IS NULL
        ORDER BY c.created_at
    """,
    ContentType.SUGGESTION: """
        SELECT s.id, s.doc_path, s.description, s.original_text,
               s.suggested_text, u.name AS author_name, s.user_id,
               s.status, s.created_at
        FROM suggestions s
        JOIN users u ON s.user_id = u.id
        WHERE s.deleted_at IS NULL
        ORDER BY s.created_at
    """,
    ContentType.DISCUSSION: """
        SELECT d.id, d.doc_path, d.title, d.description, u.name AS author_name,
               d.user_id, d.status, d.created_at
        FROM discussions d
        JOIN users u ON d.user_id = u.id
        WHERE d.deleted_at IS NULL
        ORDER BY d.created_at
    """,
    ContentType.MESSAGE: """
        SELECT dm.id, dm.discussion_id, dm.content, u.name AS author_name,
               dm.user_id, dm.created_at
        FROM discussion_messages dm
        JOIN discussions d
          ON dm.discussion_id = d.id AND d.deleted_at IS NULL
        JOIN users u ON dm.user_id = u.id
        WHERE dm.deleted_at IS NULL
        ORDER BY dm.created_at
    """,
}


class ContentSource(Protocol):
    """Typed accessor over live (not soft-deleted) canonical records."""

    def iter_records(self, content_type: ContentType) -> Iterator[IndexableRecord]:
        """Yield every live record of one content type."""
        ...

    def match_authors(self, fragment: str, limit: int) -> list[tuple[str, str, int]]:
        """Users whose name contains a fragment, with live comment counts."""
        ...


class SqliteContentSource:
    """Content source reading the review application's canonical tables."""

    def __init__(self, db: Database) -> None:
        """Initialize content source.

        Args:
            db: Database holding the canonical tables.
        """
        self._db = db

    def initialize(self) -> None:
        """Create the canonical tables when they do not exist yet."""
        self._db.executescript(CANONICAL_SCHEMA)

    def iter_records(self, content_type: ContentType) -> Iterator[IndexableRecord]:
        """Yield every live record of one content type with its author name.

        Rows are fetched eagerly so no read transaction stays open while the
        caller writes into the index.

        Args:
            content_type: Which canonical table to read.

        Yields:
            Validated indexable records.
        """
        with self._db.connect() as conn:
            rows = conn.execute(_SELECTS[content_type]).fetchall()
        logger.debug("content_source_read", type=content_type.value, rows=len(rows))

        model = RECORD_MODELS[content_type]
        for row in rows:
            data = dict(row)
            if content_type is ContentType.COMMENT:
                data["resolved"] = bool(data["resolved"])
            for key in ("content", "category"):
                if key in data and data[key] is None:
                    data[key] = ""
            yield model.model_validate(data)

    def match_authors(self, fragment: str, limit: int) -> list[tuple[str, str, int]]:
        """Users whose name contains a fragment, most active commenters first.

        Users without any live comment still match, with a count of zero.

        Args:
            fragment: Case-insensitive substring of the user name.
            limit: Maximum users returned.

        Returns:
            (user_id, name, comment_count) triples.
        """
        with self._db.connect() as conn:
            rows = conn.execute(
                """
                SELECT u.id, u.name, COUNT(c.id) AS comment_count
                FROM users u
                LEFT JOIN comments c
                  ON c.user_id = u.id AND c.deleted_at IS NULL
                WHERE u.name LIKE ? ESCAPE '\\'
                GROUP BY u.id, u.name
                ORDER BY comment_count DESC, u.name
                LIMIT ?
                """,
                (f"%{escape_like(fragment)}%", limit),
            ).fetchall()
        return [(row["id"], row["name"], int(row["comment_count"])) for row in rows]
