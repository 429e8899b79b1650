"""Pydantic schemas for canonical review records fed into the search index."""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model that speaks camelCase on the wire and snake_case in Python."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ContentType(str, Enum):
    """Searchable content types, one index shard each."""

    DOCUMENT = "document"
    COMMENT = "comment"
    SUGGESTION = "suggestion"
    DISCUSSION = "discussion"
    MESSAGE = "message"

    @property
    def plural(self) -> str:
        """Collection name used for counts and URL segments."""
        return f"{self.value}s"

    @classmethod
    def from_name(cls, name: str) -> "ContentType":
        """Resolve a singular or plural type name.

        Args:
            name: e.g. "comment" or "comments".

        Returns:
            Matching content type.

        Raises:
            ValueError: If the name matches no content type.
        """
        normalized = name.strip().lower()
        for member in cls:
            if normalized in (member.value, member.plural):
                return member
        raise ValueError(f"Unknown content type: {name}")


class IndexableDocument(CamelModel):
    """Document metadata row. Documents are keyed by their path."""

    doc_path: str = Field(min_length=1)
    title: str
    content: str = ""
    category: str = ""

    @property
    def record_id(self) -> str:
        return self.doc_path


class IndexableComment(CamelModel):
    """Inline review comment with its author resolved."""

    id: str = Field(min_length=1)
    doc_path: str
    content: str
    author_name: str
    user_id: str
    line_content: str | None = None
    resolved: bool = False
    created_at: int = Field(description="Unix timestamp (ms)")

    @property
    def record_id(self) -> str:
        return self.id


class IndexableSuggestion(CamelModel):
    """Proposed text change with its author resolved."""

    id: str = Field(min_length=1)
    doc_path: str
    description: str | None = None
    original_text: str
    suggested_text: str
    author_name: str
    user_id: str
    status: str
    created_at: int = Field(description="Unix timestamp (ms)")

    @property
    def record_id(self) -> str:
        return self.id


class IndexableDiscussion(CamelModel):
    """Discussion thread header with its author resolved."""

    id: str = Field(min_length=1)
    doc_path: str
    title: str
    description: str | None = None
    author_name: str
    user_id: str
    status: str
    created_at: int = Field(description="Unix timestamp (ms)")

    @property
    def record_id(self) -> str:
        return self.id


class IndexableDiscussionMessage(CamelModel):
    """Single message inside a discussion thread."""

    id: str = Field(min_length=1)
    discussion_id: str
    content: str
    author_name: str
    user_id: str
    created_at: int = Field(description="Unix timestamp (ms)")

    @property
    def record_id(self) -> str:
        return self.id


IndexableRecord = (
    IndexableDocument
    | IndexableComment
    | IndexableSuggestion
    | IndexableDiscussion
    | IndexableDiscussionMessage
)

RECORD_MODELS: dict[ContentType, type[CamelModel]] = {
    ContentType.DOCUMENT: IndexableDocument,
    ContentType.COMMENT: IndexableComment,
    ContentType.SUGGESTION: IndexableSuggestion,
    ContentType.DISCUSSION: IndexableDiscussion,
    ContentType.MESSAGE: IndexableDiscussionMessage,
}
