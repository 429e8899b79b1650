"""Pytest configuration and fixtures."""

import sys
from collections.abc import Iterator
from pathlib import Path

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import pytest
from fastapi.testclient import TestClient

from docsearch.analytics import SearchAnalytics
from docsearch.app import create_app
from docsearch.config import Settings
from docsearch.content import (
    ContentType,
    IndexableComment,
    IndexableDiscussion,
    IndexableDiscussionMessage,
    IndexableDocument,
    IndexableRecord,
    IndexableSuggestion,
    SqliteContentSource,
)
from docsearch.db import Database
from docsearch.search import IndexMaintainer, SearchEngine, SearchIndex

# 2023-11-14T22:13:20Z
BASE_MS = 1_700_000_000_000


class FakeClock:
    """Controllable epoch-millisecond clock for analytics tests."""

    def __init__(self, start: int = BASE_MS) -> None:
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Create test settings backed by a temporary database."""
    return Settings(
        host="127.0.0.1",
        port=8000,
        debug=True,
        database_path=str(tmp_path / "search.db"),
    )


@pytest.fixture
def client(settings: Settings) -> Iterator[TestClient]:
    """Create test client with configured app and run its lifespan."""
    app = create_app(settings)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def database(tmp_path: Path) -> Database:
    """Initialized standalone database."""
    db = Database(tmp_path / "unit.db")
    db.initialize()
    return db


@pytest.fixture
def search_index(database: Database) -> SearchIndex:
    """Empty index with every shard created."""
    index = SearchIndex(database)
    index.initialize()
    return index


@pytest.fixture
def content_source(database: Database) -> SqliteContentSource:
    """Canonical read model with empty tables."""
    source = SqliteContentSource(database)
    source.initialize()
    return source


@pytest.fixture
def clock() -> FakeClock:
    """Clock starting at BASE_MS."""
    return FakeClock()


@pytest.fixture
def analytics(database: Database, clock: FakeClock) -> SearchAnalytics:
    """Analytics recorder driven by the fake clock."""
    recorder = SearchAnalytics(database, clock=clock)
    recorder.initialize()
    return recorder


@pytest.fixture
def maintainer(
    search_index: SearchIndex, content_source: SqliteContentSource
) -> IndexMaintainer:
    """Index maintainer over the test index and read model."""
    return IndexMaintainer(search_index, content_source)


@pytest.fixture
def engine(search_index: SearchIndex, analytics: SearchAnalytics) -> SearchEngine:
    """Query engine with default ranking settings."""
    return SearchEngine(search_index, analytics)


@pytest.fixture
def corpus() -> list[tuple[ContentType, IndexableRecord]]:
    """Small review corpus where every record mentions tokens.

    Authors: u1 Alice, u2 Bob, u3 Carol. Message m2 belongs to a
    discussion that is not indexed, so searches never return it.
    """
    return [
        (
            ContentType.DOCUMENT,
            IndexableDocument(
                doc_path="guides/auth.md",
                title="Authentication Guide",
                content="How to configure OAuth login tokens",
                category="guides",
            ),
        ),
        (
            ContentType.DOCUMENT,
            IndexableDocument(
                doc_path="reference/api.md",
                title="API Reference",
                content="Endpoints for tokens and sessions",
                category="reference",
            ),
        ),
        (
            ContentType.COMMENT,
            IndexableComment(
                id="c1",
                doc_path="guides/auth.md",
                content="The token refresh flow is unclear",
                author_name="Alice",
                user_id="u1",
                line_content="Tokens are refreshed automatically",
                resolved=False,
                created_at=BASE_MS + 1000,
            ),
        ),
        (
            ContentType.COMMENT,
            IndexableComment(
                id="c2",
                doc_path="reference/api.md",
                content="Token expiry should be documented",
                author_name="Bob",
                user_id="u2",
                resolved=True,
                created_at=BASE_MS + 2000,
            ),
        ),
        (
            ContentType.SUGGESTION,
            IndexableSuggestion(
                id="s1",
                doc_path="guides/auth.md",
                description="Clarify token lifetime",
                original_text="tokens expire",
                suggested_text="tokens expire after one hour",
                author_name="Alice",
                user_id="u1",
                status="pending",
                created_at=BASE_MS + 3000,
            ),
        ),
        (
            ContentType.DISCUSSION,
            IndexableDiscussion(
                id="d1",
                doc_path="guides/auth.md",
                title="Token rotation policy",
                description="Should we rotate refresh tokens",
                author_name="Carol",
                user_id="u3",
                status="open",
                created_at=BASE_MS + 4000,
            ),
        ),
        (
            ContentType.MESSAGE,
            IndexableDiscussionMessage(
                id="m1",
                discussion_id="d1",
                content="Rotating tokens weekly seems fine",
                author_name="Bob",
                user_id="u2",
                created_at=BASE_MS + 5000,
            ),
        ),
        (
            ContentType.MESSAGE,
            IndexableDiscussionMessage(
                id="m2",
                discussion_id="d-missing",
                content="Orphan token reply",
                author_name="Carol",
                user_id="u3",
                created_at=BASE_MS + 6000,
            ),
        ),
    ]


@pytest.fixture
def seeded_index(
    search_index: SearchIndex, corpus: list[tuple[ContentType, IndexableRecord]]
) -> SearchIndex:
    """Index holding the whole corpus."""
    for content_type, record in corpus:
        search_index.upsert(content_type, record)
    return search_index
