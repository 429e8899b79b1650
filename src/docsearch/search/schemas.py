"""Pydantic schemas for search requests, results and index maintenance."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import ConfigDict, Field, ValidationError, field_validator

from docsearch.content.schemas import CamelModel, ContentType
from docsearch.errors import InvalidInput

MAX_QUERY_LENGTH = 200


class SearchScope(str, Enum):
    """Value of the `type` filter: which shards a query fans out to."""

    ALL = "all"
    DOCUMENTS = "documents"
    COMMENTS = "comments"
    SUGGESTIONS = "suggestions"
    DISCUSSIONS = "discussions"
    MESSAGES = "messages"


def _to_epoch_ms(value: datetime) -> int:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return int(value.timestamp() * 1000)


class SearchFilters(CamelModel):
    """Caller-supplied filters. Which ones apply depends on the shard.

    Attributes:
        type: Shard selection (all, or one content type).
        doc_path: Restrict to one document (messages via their discussion).
        user_id: Restrict to records authored by this user.
        status: Status value (comments accept only open/resolved, messages
            ignore it).
        resolved: Boolean form of the comment status filter.
        before: Only records created at or before this instant.
        after: Only records created at or after this instant.
    """

    model_config = ConfigDict(frozen=True)

    type: SearchScope = SearchScope.ALL
    doc_path: str | None = None
    user_id: str | None = None
    status: str | None = None
    resolved: bool | None = None
    before: datetime | None = None
    after: datetime | None = None

    @field_validator("type", mode="before")
    @classmethod
    def normalize_type(cls, v: Any) -> Any:
        """Accept singular type names and treat blank as all."""
        if v is None or v == "":
            return SearchScope.ALL
        if isinstance(v, str) and v.strip().lower() != SearchScope.ALL.value:
            try:
                return SearchScope(ContentType.from_name(v).plural)
            except ValueError:
                return v
        return v

    @field_validator("doc_path", "user_id", "status", mode="before")
    @classmethod
    def blank_to_none(cls, v: Any) -> Any:
        """Treat empty query-string values as absent."""
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @property
    def before_ms(self) -> int | None:
        return _to_epoch_ms(self.before) if self.before else None

    @property
    def after_ms(self) -> int | None:
        return _to_epoch_ms(self.after) if self.after else None

    def applied(self) -> dict[str, Any]:
        """Filters that were actually set, JSON-ready, for the query log."""
        data = self.model_dump(mode="json", by_alias=True, exclude_none=True)
        if data.get("type") == SearchScope.ALL.value:
            data.pop("type")
        return data


class SearchActor(CamelModel):
    """Who is searching, as resolved by the session layer."""

    model_config = ConfigDict(frozen=True)

    user_id: str | None = None
    session_id: str | None = None


class SearchRequest(CamelModel):
    """Immutable description of one search, built once by the caller."""

    model_config = ConfigDict(frozen=True)

    query: str = Field(max_length=MAX_QUERY_LENGTH)
    filters: SearchFilters = Field(default_factory=SearchFilters)
    limit: int = Field(default=20, ge=1)
    offset: int = Field(default=0, ge=0)
    actor: SearchActor = Field(default_factory=SearchActor)


def build_search_request(**kwargs: Any) -> SearchRequest:
    """Construct a SearchRequest, translating validation failures.

    Args:
        **kwargs: query, filters (mapping or SearchFilters), limit, offset, actor.

    Returns:
        Validated request.

    Raises:
        InvalidInput: If any field is malformed.
    """
    try:
        return SearchRequest.model_validate(kwargs)
    except ValidationError as e:
        errors = [
            {"loc": ".".join(str(p) for p in err["loc"]), "msg": err["msg"]}
            for err in e.errors()
        ]
        raise InvalidInput("Invalid search request", details={"errors": errors}) from e


class SearchResult(CamelModel):
    """One ranked hit from any shard. Never persisted.

    Attributes:
        id: Record key (doc path for documents).
        type: Content type of the hit.
        doc_path: Document the hit belongs to.
        title: Title for documents and discussions.
        content: Primary text of the record.
        snippet: Match context with <mark> highlight tags.
        author_name: Display name of the author.
        author_id: User id of the author.
        status: Status (comments report open/resolved).
        created_at: Unix timestamp (ms).
        score: Relevance, higher is better.
    """

    id: str
    type: ContentType
    doc_path: str
    title: str | None = None
    content: str
    snippet: str | None = None
    author_name: str | None = None
    author_id: str | None = None
    status: str | None = None
    created_at: int | None = None
    score: float


class AuthorFacet(CamelModel):
    """Author bucket in the facet summary."""

    id: str
    name: str
    count: int


class SearchFacets(CamelModel):
    """Counts over the full merged result set, before pagination."""

    types: dict[str, int] = Field(default_factory=dict)
    statuses: dict[str, int] = Field(default_factory=dict)
    authors: list[AuthorFacet] = Field(default_factory=list)


class SearchResponse(CamelModel):
    """Paginated search response envelope.

    Attributes:
        query: The original query string.
        results: The requested page of merged results.
        total: Size of the merged set before slicing.
        facets: Type, status and author counts over the merged set.
        limit: Effective (clamped) page size.
        offset: Number of results skipped.
        search_id: Log id to report clicks against, None when short-circuited.
    """

    query: str
    results: list[SearchResult]
    total: int
    facets: SearchFacets
    limit: int
    offset: int
    search_id: str | None = None


class ReindexCounts(CamelModel):
    """Rows written per shard by a full rebuild."""

    documents: int = 0
    comments: int = 0
    suggestions: int = 0
    discussions: int = 0
    messages: int = 0


class IndexStats(ReindexCounts):
    """Current row counts per shard."""

    total_size: int = 0
