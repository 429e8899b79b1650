"""Index maintenance endpoints called by the entity CRUD layer."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any

from fastapi import APIRouter, Body, Request, Response, status
from pydantic import ValidationError

from docsearch.content.schemas import RECORD_MODELS, ContentType
from docsearch.errors import InvalidInput

if TYPE_CHECKING:
    from docsearch.search.maintainer import IndexMaintainer

router = APIRouter(prefix="/index", tags=["index"])


def _resolve_type(name: str) -> ContentType:
    try:
        return ContentType.from_name(name)
    except ValueError as e:
        raise InvalidInput(str(e), details={"type": name}) from e


@router.put(
    "/{content_type}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Index or re-index one record",
)
async def upsert_record(
    request: Request,
    content_type: str,
    body: dict[str, Any] = Body(...),
) -> Response:
    """Replace the indexed row for a canonical record.

    Args:
        request: FastAPI request (provides access to app state).
        content_type: Shard name, singular or plural.
        body: Current state of the record, camelCase fields.

    Returns:
        Empty 204 response.
    """
    ct = _resolve_type(content_type)
    try:
        record = RECORD_MODELS[ct].model_validate(body)
    except ValidationError as e:
        errors = [
            {"loc": ".".join(str(p) for p in err["loc"]), "msg": err["msg"]}
            for err in e.errors()
        ]
        raise InvalidInput(f"Invalid {ct.value} record", details={"errors": errors}) from e

    maintainer: IndexMaintainer = request.app.state.maintainer
    await asyncio.to_thread(maintainer.upsert, ct, record)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.delete(
    "/{content_type}/{record_id:path}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Remove one record from the index",
)
async def remove_record(request: Request, content_type: str, record_id: str) -> Response:
    """Delete the indexed row for a record. Unknown ids are a no-op.

    Args:
        request: FastAPI request (provides access to app state).
        content_type: Shard name, singular or plural.
        record_id: Record key (document path for documents).

    Returns:
        Empty 204 response.
    """
    ct = _resolve_type(content_type)
    maintainer: IndexMaintainer = request.app.state.maintainer
    await asyncio.to_thread(maintainer.remove, ct, record_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
