"""Search, click reporting, suggestions and history endpoints."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request, Response, status

from docsearch.analytics.schemas import SearchClick, SearchHistoryEntry
from docsearch.content.schemas import CamelModel
from docsearch.search.schemas import SearchActor, SearchResponse, build_search_request

if TYPE_CHECKING:
    from docsearch.analytics.recorder import SearchAnalytics
    from docsearch.config import Settings
    from docsearch.search.engine import SearchEngine
    from docsearch.suggestions.engine import SuggestionEngine

router = APIRouter(prefix="/search", tags=["search"])


class SuggestionsResponse(CamelModel):
    """Autocomplete suggestions for a partial query."""

    query: str
    suggestions: list[str]


def get_actor(
    x_user_id: str | None = Header(default=None),
    x_session_id: str | None = Header(default=None),
) -> SearchActor:
    """Caller identity as forwarded by the session layer."""
    return SearchActor(user_id=x_user_id or None, session_id=x_session_id or None)


@router.get(
    "",
    response_model=SearchResponse,
    summary="Federated full-text search",
    description="Searches documents, comments, suggestions, discussions and messages.",
)
async def search(
    request: Request,
    q: str = Query(default="", description="Search query string"),
    type: str | None = Query(default=None, description="all or one content type"),
    doc_path: str | None = Query(default=None, alias="docPath"),
    user_id: str | None = Query(default=None, alias="userId"),
    status_filter: str | None = Query(default=None, alias="status"),
    resolved: bool | None = Query(default=None),
    before: str | None = Query(default=None, description="ISO 8601 timestamp"),
    after: str | None = Query(default=None, description="ISO 8601 timestamp"),
    limit: int | None = Query(default=None, description="Results per page"),
    offset: int = Query(default=0, description="Results to skip"),
    actor: SearchActor = Depends(get_actor),
) -> SearchResponse:
    """Search across every content type with filters and facets.

    Malformed filters are rejected with 400 before any shard is queried.

    Args:
        request: FastAPI request (provides access to app state).
        q: Query string; quoted phrases and trailing `*` prefixes are honored.
        type: Shard selection (all, or a content type, singular or plural).
        doc_path: Restrict to one document.
        user_id: Restrict to one author.
        status_filter: Status value.
        resolved: Comment resolution state.
        before: Created at or before this instant.
        after: Created at or after this instant.
        limit: Page size, clamped to the configured maximum.
        offset: Pagination offset.
        actor: Caller identity.

    Returns:
        One page of ranked results with totals, facets and a search id.
    """
    settings: Settings = request.app.state.settings
    engine: SearchEngine = request.app.state.search_engine

    search_request = build_search_request(
        query=q,
        filters={
            "type": type,
            "doc_path": doc_path,
            "user_id": user_id,
            "status": status_filter,
            "resolved": resolved,
            "before": before,
            "after": after,
        },
        limit=limit if limit is not None else settings.default_page_size,
        offset=offset,
        actor=actor,
    )
    return await engine.execute(search_request)


@router.post(
    "/clicks",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Report a click on a search result",
)
async def record_click(request: Request, click: SearchClick) -> Response:
    """Attach a clicked result to a logged search.

    Later clicks on the same search overwrite earlier ones.

    Args:
        request: FastAPI request (provides access to app state).
        click: Search id and the clicked result.

    Returns:
        Empty 204 response.
    """
    analytics: SearchAnalytics = request.app.state.analytics
    await asyncio.to_thread(
        analytics.log_search_click,
        click.search_id,
        click.result_id,
        click.result_type,
        click.result_rank,
    )
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get(
    "/suggestions",
    response_model=SuggestionsResponse,
    summary="Autocomplete suggestions",
)
async def suggestions(
    request: Request,
    q: str = Query(default="", description="Partial query"),
    limit: int = Query(default=10, ge=1, le=50),
    actor: SearchActor = Depends(get_actor),
) -> SuggestionsResponse:
    """Suggest completions from popular queries, history, titles and authors.

    Args:
        request: FastAPI request (provides access to app state).
        q: What the user has typed so far.
        limit: Maximum suggestions.
        actor: Caller identity, enables recent-search suggestions.

    Returns:
        The partial query and its suggestions.
    """
    engine: SuggestionEngine = request.app.state.suggestion_engine
    found = await asyncio.to_thread(engine.get_suggestions, q, actor.user_id, limit)
    return SuggestionsResponse(query=q, suggestions=found)


@router.get(
    "/history",
    response_model=list[SearchHistoryEntry],
    summary="Caller's recent searches",
)
async def history(
    request: Request,
    limit: int = Query(default=50, ge=1, le=100),
    actor: SearchActor = Depends(get_actor),
) -> list[SearchHistoryEntry]:
    """Return the identified caller's saved searches, newest first.

    Args:
        request: FastAPI request (provides access to app state).
        limit: Maximum entries.
        actor: Caller identity; a user id is required.

    Returns:
        Saved history entries.

    Raises:
        HTTPException: 401 when no X-User-Id header is present.
    """
    if actor.user_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="X-User-Id header required",
        )
    analytics: SearchAnalytics = request.app.state.analytics
    return await asyncio.to_thread(
        analytics.get_user_search_history, actor.user_id, limit
    )
