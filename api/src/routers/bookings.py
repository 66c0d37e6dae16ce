"""
Bookings router.

Any logged-in user can open a checkout session for a tour; managing booking
records is reserved to admins and lead guides.
"""

import structlog
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.src.config import Settings
from api.src.dependencies import (
    get_app_settings,
    get_bookings_repo,
    get_payment_gateway,
    get_tours_repo,
)
from api.src.middleware.auth import protect
from api.src.middleware.rbac import require_staff
from api.src.models.auth import CurrentUser
from api.src.repositories.entity_repo import EntityRepository
from api.src.routers import factory
from api.src.services.payment_service import PaymentGateway, tour_line_item
from api.src.services.query_features import Expansion

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/bookings", tags=["Bookings"], dependencies=[Depends(protect)])

BOOKED_TOUR = Expansion("tour", "tours", select=("name",))
BOOKED_BY = Expansion("user", "users", select=("name", "email"))


@router.get("/checkout-session/{tour_id}", summary="Create a hosted checkout session for a tour")
async def get_checkout_session(
    tour_id: str,
    request: Request,
    user: CurrentUser = Depends(protect),
    tours: EntityRepository = Depends(get_tours_repo),
    gateway: PaymentGateway = Depends(get_payment_gateway),
    settings: Settings = Depends(get_app_settings),
) -> JSONResponse:
    tour = await tours.get(tour_id)

    base_url = str(request.base_url).rstrip("/")
    session = await gateway.create_checkout_session(
        line_items=[tour_line_item(tour, settings.checkout_currency)],
        success_url=f"{base_url}/?tour={tour['id']}&user={user.id}&price={tour['price']}",
        cancel_url=f"{base_url}/tour/{tour.get('slug', tour['id'])}",
        customer_email=user.email,
        client_reference_id=tour["id"],
    )
    logger.info("checkout_session_issued", tour_id=tour["id"], user_id=user.id)

    return JSONResponse(content=factory.encode({"status": "success", "session": session}))


_staff = [Depends(require_staff)]

router.add_api_route(
    "", factory.get_all(get_bookings_repo, (BOOKED_TOUR, BOOKED_BY)),
    methods=["GET"], name="get_all_bookings", dependencies=_staff,
)
router.add_api_route(
    "", factory.create_one(get_bookings_repo),
    methods=["POST"], name="create_booking", dependencies=_staff,
)
router.add_api_route(
    "/{id}", factory.get_one(get_bookings_repo, (BOOKED_TOUR, BOOKED_BY)),
    methods=["GET"], name="get_booking", dependencies=_staff,
)
router.add_api_route(
    "/{id}", factory.update_one(get_bookings_repo),
    methods=["PATCH"], name="update_booking", dependencies=_staff,
)
router.add_api_route(
    "/{id}", factory.delete_one(get_bookings_repo),
    methods=["DELETE"], name="delete_booking", status_code=204, dependencies=_staff,
)
