"""
Hosted checkout integration.

``PaymentGateway`` is the narrow collaborator the bookings router depends on;
``StripeCheckoutGateway`` implements it with the Stripe SDK. The SDK is
synchronous, so calls run in a worker thread.
"""

import asyncio
from typing import Any, Dict, List, Mapping, Optional, Protocol

import stripe
import structlog

from api.src.config import Settings
from api.src.exceptions import OperationalError

logger = structlog.get_logger(__name__)

TOUR_IMAGE_BASE_URL = "https://www.natours.dev/img/tours"


class PaymentGateway(Protocol):
    async def create_checkout_session(
        self,
        line_items: List[Dict[str, Any]],
        success_url: str,
        cancel_url: str,
        customer_email: str,
        client_reference_id: str,
    ) -> Mapping[str, Any]: ...


def tour_line_item(tour: Mapping[str, Any], currency: str = "usd") -> Dict[str, Any]:
    """Single checkout line item for one seat on ``tour``; amounts in cents."""
    product: Dict[str, Any] = {"name": f"{tour['name']} Tour"}
    if tour.get("summary"):
        product["description"] = tour["summary"]
    if tour.get("imageCover"):
        product["images"] = [f"{TOUR_IMAGE_BASE_URL}/{tour['imageCover']}"]

    return {
        "price_data": {
            "currency": currency,
            "unit_amount": int(round(float(tour["price"]) * 100)),
            "product_data": product,
        },
        "quantity": 1,
    }


class StripeCheckoutGateway:
    """Creates Stripe Checkout sessions."""

    def __init__(self, api_key: Optional[str]):
        self.api_key = api_key

    async def create_checkout_session(
        self,
        line_items: List[Dict[str, Any]],
        success_url: str,
        cancel_url: str,
        customer_email: str,
        client_reference_id: str,
    ) -> Mapping[str, Any]:
        if not self.api_key:
            logger.error("stripe_not_configured")
            raise OperationalError("Payments are not available right now. Try again later!", 503)

        session = await asyncio.to_thread(
            stripe.checkout.Session.create,
            api_key=self.api_key,
            mode="payment",
            payment_method_types=["card"],
            success_url=success_url,
            cancel_url=cancel_url,
            customer_email=customer_email,
            client_reference_id=client_reference_id,
            line_items=line_items,
        )
        logger.info("checkout_session_created", session_id=session.id, reference=client_reference_id)
        return session.to_dict()


def create_payment_gateway(settings: Settings) -> PaymentGateway:
    return StripeCheckoutGateway(settings.stripe_secret_key)
