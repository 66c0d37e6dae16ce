"""
Generic CRUD handler factory.

Each function returns a FastAPI endpoint bound to a repository dependency,
so every resource router gets the same create / read-one / read-many /
update / delete behavior and the same response envelope:

    {"status": "success", "data": {"data": <document or list>}}

Read-many adds ``results``; delete answers 204 with no body.
"""

from typing import Any, Awaitable, Callable, Dict, Mapping, Optional, Sequence

import structlog
from bson import ObjectId
from fastapi import Body, Depends, Path, Request, Response, status
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from api.src.repositories.entity_repo import EntityRepository
from api.src.services.query_features import Expansion, build_query_request

logger = structlog.get_logger(__name__)

RepoDependency = Callable[..., EntityRepository]
ScopeResolver = Callable[[Request], Mapping[str, Any]]
BodyPreparer = Callable[[Request, Dict[str, Any]], Awaitable[Dict[str, Any]]]


def encode(data: Any) -> Any:
    """JSON-safe representation of store documents."""
    return jsonable_encoder(data, custom_encoder={ObjectId: str})


def send_success(data: Any, status_code: int = status.HTTP_200_OK, **extra: Any) -> JSONResponse:
    content: Dict[str, Any] = {"status": "success"}
    content.update(extra)
    content["data"] = {"data": data}
    return JSONResponse(status_code=status_code, content=encode(content))


def create_one(get_repo: RepoDependency, prepare: Optional[BodyPreparer] = None):
    """
    Build a create handler.

    Args:
        get_repo: Dependency resolving the repository
        prepare: Optional coroutine filling in fields from the request
            (path parameters, the authenticated principal)
    """
    async def handler(
        request: Request,
        body: Dict[str, Any] = Body(...),
        repo: EntityRepository = Depends(get_repo),
    ) -> JSONResponse:
        if prepare is not None:
            body = await prepare(request, body)
        doc = await repo.create(body)
        return send_success(doc, status.HTTP_201_CREATED)

    return handler


def get_one(get_repo: RepoDependency, expansions: Sequence[Expansion] = ()):
    """Build a read-one handler resolving ``expansions`` inline."""
    async def handler(
        doc_id: str = Path(..., alias="id"),
        repo: EntityRepository = Depends(get_repo),
    ) -> JSONResponse:
        doc = await repo.get(doc_id, expansions)
        return send_success(doc)

    return handler


def get_all(
    get_repo: RepoDependency,
    expansions: Sequence[Expansion] = (),
    scope: Optional[ScopeResolver] = None,
):
    """
    Build a read-many handler.

    The query string goes through the query feature builder; ``scope``
    contributes extra equality filters (e.g. the parent tour of a nested
    route) that the client cannot override.
    """
    async def handler(
        request: Request,
        repo: EntityRepository = Depends(get_repo),
    ) -> JSONResponse:
        query = build_query_request(
            request.query_params.multi_items(),
            default_sort=repo.schema.default_sort,
            expansions=expansions,
        )
        docs = await repo.find(query, scope(request) if scope is not None else None)
        return send_success(docs, results=len(docs))

    return handler


def update_one(get_repo: RepoDependency):
    async def handler(
        doc_id: str = Path(..., alias="id"),
        body: Dict[str, Any] = Body(...),
        repo: EntityRepository = Depends(get_repo),
    ) -> JSONResponse:
        doc = await repo.update(doc_id, body)
        return send_success(doc)

    return handler


def delete_one(get_repo: RepoDependency):
    async def handler(
        doc_id: str = Path(..., alias="id"),
        repo: EntityRepository = Depends(get_repo),
    ) -> Response:
        await repo.delete(doc_id)
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    return handler
