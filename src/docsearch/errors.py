"""Error taxonomy for indexing, querying and analytics."""

from typing import Any


class SearchError(Exception):
    """Base class for all errors raised by the search service."""

    status_code = 500

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        """Initialize search error.

        Args:
            message: Error description safe to show to the caller.
            details: Optional structured context for the caller.
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}


class InvalidInput(SearchError):
    """Raised when a request is rejected before touching any index."""

    status_code = 400


class IndexWriteError(SearchError):
    """Raised when a single-record upsert or removal fails."""

    def __init__(self, content_type: str, record_id: str) -> None:
        """Initialize index write error.

        Args:
            content_type: Content type of the failing record.
            record_id: Key of the failing record.
        """
        super().__init__(
            f"Failed to index {content_type} {record_id}",
            details={"type": content_type, "id": record_id},
        )
        self.content_type = content_type
        self.record_id = record_id


class ReindexError(SearchError):
    """Raised when a full rebuild aborts. Shards may be left partially filled."""

    def __init__(self, message: str = "Failed to reindex search content") -> None:
        super().__init__(message)


class SearchExecutionError(SearchError):
    """Opaque query-time failure. The cause is only logged server-side."""

    def __init__(self) -> None:
        super().__init__("Search failed")
