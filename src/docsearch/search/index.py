"""FTS5-backed full-text index with one shard per content type."""

import sqlite3
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Any, Literal

import structlog

from docsearch.content.schemas import (
    ContentType,
    IndexableComment,
    IndexableDiscussion,
    IndexableDiscussionMessage,
    IndexableDocument,
    IndexableRecord,
    IndexableSuggestion,
)
from docsearch.db import Database, escape_like
from docsearch.search.schemas import SearchResult

logger = structlog.get_logger()

SNIPPET_TOKENS = 32
SNIPPET_OPEN = "<mark>"
SNIPPET_CLOSE = "</mark>"
SNIPPET_ELLIPSIS = "..."


@dataclass(frozen=True)
class Column:
    """One FTS5 column. Unindexed columns are stored for filtering only."""

    name: str
    indexed: bool = False
    weight: float = 0.0


@dataclass(frozen=True)
class Condition:
    """Equality or range predicate on a denormalized column."""

    column: str
    op: Literal["=", "<=", ">="]
    value: Any


@dataclass(frozen=True)
class ShardQuery:
    """A fully planned query against a single shard."""

    content_type: ContentType
    match: str
    conditions: tuple[Condition, ...] = ()


def _document_row(doc: IndexableDocument) -> dict[str, Any]:
    return {
        "doc_path": doc.doc_path,
        "title": doc.title,
        "content": doc.content,
        "category": doc.category,
    }


def _comment_row(comment: IndexableComment) -> dict[str, Any]:
    return {
        "comment_id": comment.id,
        "doc_path": comment.doc_path,
        "content": comment.content,
        "author_name": comment.author_name,
        "line_content": comment.line_content or "",
        "user_id": comment.user_id,
        "created_at": comment.created_at,
        "resolved": 1 if comment.resolved else 0,
    }


def _suggestion_row(suggestion: IndexableSuggestion) -> dict[str, Any]:
    return {
        "suggestion_id": suggestion.id,
        "doc_path": suggestion.doc_path,
        "description": suggestion.description or "",
        "original_text": suggestion.original_text,
        "suggested_text": suggestion.suggested_text,
        "author_name": suggestion.author_name,
        "user_id": suggestion.user_id,
        "status": suggestion.status,
        "created_at": suggestion.created_at,
    }


def _discussion_row(discussion: IndexableDiscussion) -> dict[str, Any]:
    return {
        "discussion_id": discussion.id,
        "doc_path": discussion.doc_path,
        "title": discussion.title,
        "description": discussion.description or "",
        "author_name": discussion.author_name,
        "user_id": discussion.user_id,
        "status": discussion.status,
        "created_at": discussion.created_at,
    }


def _message_row(message: IndexableDiscussionMessage) -> dict[str, Any]:
    return {
        "message_id": message.id,
        "discussion_id": message.discussion_id,
        "content": message.content,
        "author_name": message.author_name,
        "user_id": message.user_id,
        "created_at": message.created_at,
    }


def _document_result(row: sqlite3.Row, score: float) -> SearchResult:
    return SearchResult(
        id=row["doc_path"],
        type=ContentType.DOCUMENT,
        doc_path=row["doc_path"],
        title=row["title"],
        content=row["content"] or "",
        snippet=row["snippet"],
        score=score,
    )


def _comment_result(row: sqlite3.Row, score: float) -> SearchResult:
    return SearchResult(
        id=row["comment_id"],
        type=ContentType.COMMENT,
        doc_path=row["doc_path"],
        content=row["content"],
        snippet=row["snippet"],
        author_name=row["author_name"],
        author_id=row["user_id"],
        status="resolved" if row["resolved"] else "open",
        created_at=row["created_at"],
        score=score,
    )


def _suggestion_result(row: sqlite3.Row, score: float) -> SearchResult:
    return SearchResult(
        id=row["suggestion_id"],
        type=ContentType.SUGGESTION,
        doc_path=row["doc_path"],
        content=row["description"] or row["suggested_text"],
        snippet=row["snippet"],
        author_name=row["author_name"],
        author_id=row["user_id"],
        status=row["status"],
        created_at=row["created_at"],
        score=score,
    )


def _discussion_result(row: sqlite3.Row, score: float) -> SearchResult:
    return SearchResult(
        id=row["discussion_id"],
        type=ContentType.DISCUSSION,
        doc_path=row["doc_path"],
        title=row["title"],
        content=row["description"] or "",
        snippet=row["snippet"],
        author_name=row["author_name"],
        author_id=row["user_id"],
        status=row["status"],
        created_at=row["created_at"],
        score=score,
    )


def _message_result(row: sqlite3.Row, score: float) -> SearchResult:
    return SearchResult(
        id=row["message_id"],
        type=ContentType.MESSAGE,
        doc_path=row["doc_path"],
        content=row["content"],
        snippet=row["snippet"],
        author_name=row["author_name"],
        author_id=row["user_id"],
        created_at=row["created_at"],
        score=score,
    )


@dataclass(frozen=True)
class ShardSpec:
    """Layout of one shard and how records map in and results map out.

    Attributes:
        content_type: Content type stored in the shard.
        table: FTS5 virtual table name.
        key: Column holding the record id.
        columns: Column layout in declaration order (bm25 weights follow it).
        to_row: Record -> column values.
        to_result: Row + score -> SearchResult.
        parent_join: Extra join clause, for shards that borrow doc_path.
        expressions: Column name -> SQL expression overrides.
    """

    content_type: ContentType
    table: str
    key: str
    columns: tuple[Column, ...]
    to_row: Callable[[Any], dict[str, Any]]
    to_result: Callable[[sqlite3.Row, float], SearchResult]
    parent_join: str = ""
    expressions: tuple[tuple[str, str], ...] = ()

    @property
    def ddl(self) -> str:
        cols = ",\n    ".join(
            c.name if c.indexed else f"{c.name} UNINDEXED" for c in self.columns
        )
        return (
            f"CREATE VIRTUAL TABLE IF NOT EXISTS {self.table} USING fts5(\n"
            f"    {cols},\n"
            f"    tokenize='porter unicode61'\n"
            f");"
        )

    def expression(self, column: str) -> str:
        """Qualified SQL expression for a column, honoring overrides."""
        overrides = dict(self.expressions)
        if column in overrides:
            return overrides[column]
        if column not in {c.name for c in self.columns}:
            raise ValueError(f"{self.table} has no column {column}")
        return f"{self.table}.{column}"

    @property
    def rank_expression(self) -> str:
        weights = ", ".join(str(c.weight) for c in self.columns)
        return f"bm25({self.table}, {weights})"

    @property
    def select_list(self) -> str:
        names = [c.name for c in self.columns]
        names += [name for name, _ in self.expressions if name not in names]
        return ", ".join(f"{self.expression(n)} AS {n}" for n in names)


SHARDS: dict[ContentType, ShardSpec] = {
    ContentType.DOCUMENT: ShardSpec(
        content_type=ContentType.DOCUMENT,
        table="documents_fts",
        key="doc_path",
        columns=(
            Column("doc_path"),
            Column("title", indexed=True, weight=10.0),
            Column("content", indexed=True, weight=1.0),
            Column("category", indexed=True, weight=1.0),
        ),
        to_row=_document_row,
        to_result=_document_result,
    ),
    ContentType.COMMENT: ShardSpec(
        content_type=ContentType.COMMENT,
        table="comments_fts",
        key="comment_id",
        columns=(
            Column("comment_id"),
            Column("doc_path"),
            Column("content", indexed=True, weight=10.0),
            Column("author_name", indexed=True, weight=2.0),
            Column("line_content", indexed=True, weight=1.0),
            Column("user_id"),
            Column("created_at"),
            Column("resolved"),
        ),
        to_row=_comment_row,
        to_result=_comment_result,
    ),
    ContentType.SUGGESTION: ShardSpec(
        content_type=ContentType.SUGGESTION,
        table="suggestions_fts",
        key="suggestion_id",
        columns=(
            Column("suggestion_id"),
            Column("doc_path"),
            Column("description", indexed=True, weight=10.0),
            Column("original_text", indexed=True, weight=2.0),
            Column("suggested_text", indexed=True, weight=2.0),
            Column("author_name", indexed=True, weight=1.0),
            Column("user_id"),
            Column("status"),
            Column("created_at"),
        ),
        to_row=_suggestion_row,
        to_result=_suggestion_result,
    ),
    ContentType.DISCUSSION: ShardSpec(
        content_type=ContentType.DISCUSSION,
        table="discussions_fts",
        key="discussion_id",
        columns=(
            Column("discussion_id"),
            Column("doc_path"),
            Column("title", indexed=True, weight=10.0),
            Column("description", indexed=True, weight=5.0),
            Column("author_name", indexed=True, weight=1.0),
            Column("user_id"),
            Column("status"),
            Column("created_at"),
        ),
        to_row=_discussion_row,
        to_result=_discussion_result,
    ),
    ContentType.MESSAGE: ShardSpec(
        content_type=ContentType.MESSAGE,
        table="discussion_messages_fts",
        key="message_id",
        columns=(
            Column("message_id"),
            Column("discussion_id"),
            Column("content", indexed=True, weight=10.0),
            Column("author_name", indexed=True, weight=1.0),
            Column("user_id"),
            Column("created_at"),
        ),
        to_row=_message_row,
        to_result=_message_result,
        # Messages carry no doc_path of their own; it comes from the parent,
        # and a message whose discussion is not indexed never matches.
        parent_join=(
            "JOIN discussions_fts AS parent "
            "ON parent.discussion_id = discussion_messages_fts.discussion_id"
        ),
        expressions=(("doc_path", "parent.doc_path"),),
    ),
}


class SearchIndex:
    """SQLite FTS5 index holding one shard per content type.

    Every method opens its own connection, so shard queries may run on
    separate threads at the same time. Callers that need per-key ordering
    of writes (the index maintainer) serialize around this class.
    """

    def __init__(self, db: Database) -> None:
        """Initialize search index (call initialize() before use).

        Args:
            db: Database that holds the shards.
        """
        self._db = db

    def initialize(self) -> None:
        """Create every shard's FTS5 virtual table."""
        self._db.executescript("\n".join(spec.ddl for spec in SHARDS.values()))
        logger.info("search_index_initialized", shards=len(SHARDS))

    @staticmethod
    def _insert(conn: sqlite3.Connection, spec: ShardSpec, record: IndexableRecord) -> None:
        row = spec.to_row(record)
        names = [c.name for c in spec.columns]
        placeholders = ", ".join("?" for _ in names)
        conn.execute(
            f"INSERT INTO {spec.table} ({', '.join(names)}) VALUES ({placeholders})",
            [row[n] for n in names],
        )

    def upsert(self, content_type: ContentType, record: IndexableRecord) -> None:
        """Replace the row for a record key in one transaction.

        Args:
            content_type: Shard to write.
            record: Record to index.
        """
        spec = SHARDS[content_type]
        with self._db.connect() as conn:
            conn.execute(
                f"DELETE FROM {spec.table} WHERE {spec.key} = ?", (record.record_id,)
            )
            self._insert(conn, spec, record)

    def delete(self, content_type: ContentType, record_id: str) -> int:
        """Remove the row for a record key.

        Args:
            content_type: Shard to write.
            record_id: Key of the record.

        Returns:
            Number of rows removed.
        """
        spec = SHARDS[content_type]
        with self._db.connect() as conn:
            cursor = conn.execute(
                f"DELETE FROM {spec.table} WHERE {spec.key} = ?", (record_id,)
            )
            return cursor.rowcount

    def insert_many(
        self, content_type: ContentType, records: Iterable[IndexableRecord]
    ) -> int:
        """Bulk insert into a shard assumed to be empty of these keys.

        Args:
            content_type: Shard to write.
            records: Records to index.

        Returns:
            Number of rows inserted.
        """
        spec = SHARDS[content_type]
        count = 0
        with self._db.connect() as conn:
            for record in records:
                self._insert(conn, spec, record)
                count += 1
        return count

    def clear_all(self) -> None:
        """Delete every row from every shard."""
        with self._db.connect() as conn:
            for spec in SHARDS.values():
                conn.execute(f"DELETE FROM {spec.table}")

    def count(self, content_type: ContentType) -> int:
        """Number of rows in one shard."""
        spec = SHARDS[content_type]
        with self._db.connect() as conn:
            return int(conn.execute(f"SELECT COUNT(*) FROM {spec.table}").fetchone()[0])

    def search_shard(self, query: ShardQuery) -> list[SearchResult]:
        """Run a MATCH query with predicates against one shard.

        Args:
            query: Planned shard query; `match` must already be escaped.

        Returns:
            Every matching row as a SearchResult with score and snippet.

        Raises:
            sqlite3.Error: On malformed MATCH syntax or database failure.
        """
        spec = SHARDS[query.content_type]
        where = [f"{spec.table} MATCH ?"]
        params: list[Any] = [query.match]
        for cond in query.conditions:
            where.append(f"{spec.expression(cond.column)} {cond.op} ?")
            params.append(cond.value)

        sql = (
            f"SELECT {spec.select_list}, "
            f"snippet({spec.table}, -1, '{SNIPPET_OPEN}', '{SNIPPET_CLOSE}', "
            f"'{SNIPPET_ELLIPSIS}', {SNIPPET_TOKENS}) AS snippet, "
            f"{spec.rank_expression} AS bm25_score "
            f"FROM {spec.table} {spec.parent_join} "
            f"WHERE {' AND '.join(where)} "
            f"ORDER BY bm25_score"
        )
        with self._db.connect() as conn:
            rows = conn.execute(sql, params).fetchall()

        # bm25() is lower-is-better; flip it so higher scores rank first.
        return [spec.to_result(row, -float(row["bm25_score"])) for row in rows]

    def document_titles(self, fragment: str, limit: int) -> list[str]:
        """Indexed document titles containing a fragment.

        Prefix matches come before mid-string matches, then shorter titles.

        Args:
            fragment: Case-insensitive substring.
            limit: Maximum titles returned.
        """
        escaped = escape_like(fragment)
        with self._db.connect() as conn:
            rows = conn.execute(
                """
                SELECT DISTINCT title
                FROM documents_fts
                WHERE title LIKE ? ESCAPE '\\'
                ORDER BY CASE WHEN title LIKE ? ESCAPE '\\' THEN 0 ELSE 1 END,
                         length(title), title
                LIMIT ?
                """,
                (f"%{escaped}%", f"{escaped}%", limit),
            ).fetchall()
        return [row["title"] for row in rows]
