"""
Tours router.

Reads are public; writes require an admin or lead guide.
"""

from fastapi import APIRouter, Depends, Request

from api.src.dependencies import get_tours_repo
from api.src.middleware.rbac import require_staff
from api.src.models.entities import TOUR_SCHEMA
from api.src.repositories.entity_repo import EntityRepository
from api.src.routers import factory
from api.src.services.query_features import Expansion, build_query_request

router = APIRouter(prefix="/tours", tags=["Tours"])

GUIDES = Expansion("guides", "users", select=("name", "email", "photo", "role"))
REVIEWS = Expansion("reviews", "reviews", select=("review", "rating", "user", "createdAt"), foreign_field="tour")

TOP_CHEAP_PRESET = {
    "limit": "5",
    "sort": "-ratingsAverage,price",
    "fields": "name,price,ratingsAverage,summary,difficulty",
}


@router.get("/top-5-cheap", summary="Five best rated, cheapest tours")
async def top_five_cheap(request: Request, repo: EntityRepository = Depends(get_tours_repo)):
    # Preset keys come last so they override the client's.
    params = list(request.query_params.multi_items()) + list(TOP_CHEAP_PRESET.items())
    query = build_query_request(params, default_sort=TOUR_SCHEMA.default_sort)
    docs = await repo.find(query)
    return factory.send_success(docs, results=len(docs))


router.add_api_route("", factory.get_all(get_tours_repo), methods=["GET"], name="get_all_tours")
router.add_api_route(
    "",
    factory.create_one(get_tours_repo),
    methods=["POST"],
    name="create_tour",
    dependencies=[Depends(require_staff)],
)
router.add_api_route(
    "/{id}", factory.get_one(get_tours_repo, (GUIDES, REVIEWS)), methods=["GET"], name="get_tour"
)
router.add_api_route(
    "/{id}",
    factory.update_one(get_tours_repo),
    methods=["PATCH"],
    name="update_tour",
    dependencies=[Depends(require_staff)],
)
router.add_api_route(
    "/{id}",
    factory.delete_one(get_tours_repo),
    methods=["DELETE"],
    name="delete_tour",
    status_code=204,
    dependencies=[Depends(require_staff)],
)
