"""
Reviews router.

Mounted twice: at ``/reviews`` and nested under ``/tours/{tour_id}/reviews``,
where listing is scoped to the tour and creation fills the tour from the
path. Every route requires authentication.
"""

from typing import Any, Dict

from fastapi import APIRouter, Depends, Request

from api.src.dependencies import get_reviews_repo
from api.src.middleware.auth import protect
from api.src.middleware.rbac import restrict_to
from api.src.models.auth import Role
from api.src.routers import factory
from api.src.services.query_features import Expansion

REVIEW_AUTHOR = Expansion("user", "users", select=("name", "photo"))

router = APIRouter(prefix="/reviews", tags=["Reviews"], dependencies=[Depends(protect)])
tour_reviews_router = APIRouter(
    prefix="/tours/{tour_id}/reviews", tags=["Reviews"], dependencies=[Depends(protect)]
)


async def fill_review_refs(request: Request, body: Dict[str, Any]) -> Dict[str, Any]:
    """Default ``tour`` to the path's tour and ``user`` to the caller."""
    body = dict(body)
    if not body.get("tour") and "tour_id" in request.path_params:
        body["tour"] = request.path_params["tour_id"]
    if not body.get("user"):
        body["user"] = request.state.user.id
    return body


def tour_scope(request: Request) -> Dict[str, Any]:
    return {"tour": request.path_params["tour_id"]}


create_review = factory.create_one(get_reviews_repo, prepare=fill_review_refs)

for target, scope in ((router, None), (tour_reviews_router, tour_scope)):
    target.add_api_route(
        "",
        factory.get_all(get_reviews_repo, (REVIEW_AUTHOR,), scope=scope),
        methods=["GET"],
        name="get_all_reviews",
    )
    target.add_api_route(
        "",
        create_review,
        methods=["POST"],
        name="create_review",
        dependencies=[Depends(restrict_to(Role.USER))],
    )

router.add_api_route(
    "/{id}", factory.get_one(get_reviews_repo, (REVIEW_AUTHOR,)), methods=["GET"], name="get_review"
)
router.add_api_route(
    "/{id}",
    factory.update_one(get_reviews_repo),
    methods=["PATCH"],
    name="update_review",
    dependencies=[Depends(restrict_to(Role.USER, Role.ADMIN))],
)
router.add_api_route(
    "/{id}",
    factory.delete_one(get_reviews_repo),
    methods=["DELETE"],
    name="delete_review",
    status_code=204,
    dependencies=[Depends(restrict_to(Role.USER, Role.ADMIN))],
)
