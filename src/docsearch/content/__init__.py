"""Canonical review records and the read model used to rebuild the index."""

from docsearch.content.schemas import (
    RECORD_MODELS,
    CamelModel,
    ContentType,
    IndexableComment,
    IndexableDiscussion,
    IndexableDiscussionMessage,
    IndexableDocument,
    IndexableRecord,
    IndexableSuggestion,
)
from docsearch.content.source import ContentSource, SqliteContentSource

__all__ = [
    "RECORD_MODELS",
    "CamelModel",
    "ContentSource",
    "ContentType",
    "IndexableComment",
    "IndexableDiscussion",
    "IndexableDiscussionMessage",
    "IndexableDocument",
    "IndexableRecord",
    "IndexableSuggestion",
    "SqliteContentSource",
]
