"""
Shared fixtures for the API test suite.

The application is built around the in-process document store and recording
doubles for the email and payment collaborators, so no external service is
needed.
"""

import pytest
from fastapi.testclient import TestClient

from api.src.config import Settings
from api.src.main import create_app
from api.src.repositories.memory_store import MemoryDocumentStore
from tests.support import (
    RecordingNotifier,
    RecordingPaymentGateway,
    create_user_with_role,
    make_settings,
    signup,
)


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def store() -> MemoryDocumentStore:
    return MemoryDocumentStore()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def payment_gateway() -> RecordingPaymentGateway:
    return RecordingPaymentGateway()


@pytest.fixture
def app(settings, store, notifier, payment_gateway):
    return create_app(settings=settings, store=store, notifier=notifier, payment_gateway=payment_gateway)


@pytest.fixture
def client(app):
    """Test client; entering the context runs the lifespan (unique indexes)."""
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def container(app):
    return app.state.container


@pytest.fixture
def admin_token(client, container) -> str:
    return create_user_with_role(client, container, "admin", "admin@example.com", "Ada Admin")


@pytest.fixture
def user_token(client) -> str:
    return signup(client, "Laura Wilson", "laura@example.com")
