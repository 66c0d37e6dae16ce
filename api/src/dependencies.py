"""
FastAPI dependency injection for the store, repositories and services.

Provides injectable dependencies for:
- Settings
- Entity repositories (users, tours, reviews, bookings)
- Authentication service
- Payment gateway

Everything is built once per application by ``build_container`` and stored
on ``app.state.container``; the dependencies below only look it up, so tests
can construct an app around a memory store and recording collaborators.
"""

from dataclasses import dataclass

import structlog
from fastapi import Request

from api.src.config import Settings
from api.src.models.entities import BOOKING_SCHEMA, REVIEW_SCHEMA, TOUR_SCHEMA, USER_SCHEMA
from api.src.repositories.document_store import DocumentStore
from api.src.repositories.entity_repo import EntityRepository
from api.src.repositories.memory_store import MemoryDocumentStore
from api.src.repositories.mongo_store import MongoDocumentStore
from api.src.services.auth_service import AuthService
from api.src.services.notifier import Notifier
from api.src.services.payment_service import PaymentGateway
from api.src.services.review_service import RatingsCalculator
from api.src.services.tour_service import derive_tour_slug

logger = structlog.get_logger(__name__)


# ============================================================================
# CONTAINER
# ============================================================================


@dataclass
class AppContainer:
    """Application-scoped resources shared by all requests."""

    settings: Settings
    store: DocumentStore
    users: EntityRepository
    tours: EntityRepository
    reviews: EntityRepository
    bookings: EntityRepository
    auth_service: AuthService
    notifier: Notifier
    payment_gateway: PaymentGateway

    @property
    def repositories(self):
        return (self.users, self.tours, self.reviews, self.bookings)


def create_store(settings: Settings) -> DocumentStore:
    """Instantiate the configured document store backend."""
    if settings.store_backend == "memory":
        logger.info("document_store_selected", backend="memory")
        return MemoryDocumentStore()

    logger.info("document_store_selected", backend="mongodb", database=settings.database_name)
    return MongoDocumentStore(
        settings.mongodb_uri,
        settings.database_name,
        serverSelectionTimeoutMS=settings.database_timeout_ms,
    )


def build_container(
    settings: Settings,
    store: DocumentStore,
    notifier: Notifier,
    payment_gateway: PaymentGateway,
) -> AppContainer:
    """Wire repositories and services around ``store``."""
    users = EntityRepository(USER_SCHEMA, store)
    auth_service = AuthService(users, settings, notifier)
    users.before_save = auth_service.hash_password_fields

    ratings = RatingsCalculator(store)

    return AppContainer(
        settings=settings,
        store=store,
        users=users,
        tours=EntityRepository(TOUR_SCHEMA, store, before_save=derive_tour_slug),
        reviews=EntityRepository(REVIEW_SCHEMA, store, after_write=ratings.after_review_write),
        bookings=EntityRepository(BOOKING_SCHEMA, store),
        auth_service=auth_service,
        notifier=notifier,
        payment_gateway=payment_gateway,
    )


# ============================================================================
# DEPENDENCIES
# ============================================================================


def get_container(request: Request) -> AppContainer:
    return request.app.state.container


def get_app_settings(request: Request) -> Settings:
    return get_container(request).settings


def get_auth_service(request: Request) -> AuthService:
    return get_container(request).auth_service


def get_users_repo(request: Request) -> EntityRepository:
    return get_container(request).users


def get_tours_repo(request: Request) -> EntityRepository:
    return get_container(request).tours


def get_reviews_repo(request: Request) -> EntityRepository:
    return get_container(request).reviews


def get_bookings_repo(request: Request) -> EntityRepository:
    return get_container(request).bookings


def get_payment_gateway(request: Request) -> PaymentGateway:
    return get_container(request).payment_gateway
