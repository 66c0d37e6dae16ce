"""
Test doubles and helpers shared by the unit and integration suites.
"""

import asyncio
from typing import Any, Dict, List, Mapping, Optional

from fastapi.testclient import TestClient

from api.src.config import Settings

TEST_SECRET = "test-secret-key-do-not-use-in-production-0123456789"
DEFAULT_PASSWORD = "pass1234"


# ============================================================================
# COLLABORATOR DOUBLES
# ============================================================================


class RecordingNotifier:
    """Notifier double that records messages and can be told to fail."""

    def __init__(self):
        self.sent: List[Dict[str, Any]] = []
        self.fail = False

    async def send_welcome(self, user: Mapping[str, Any], url: str) -> None:
        self._record("welcome", user, url)

    async def send_password_reset(self, user: Mapping[str, Any], url: str) -> None:
        self._record("password_reset", user, url)

    def _record(self, kind: str, user: Mapping[str, Any], url: str) -> None:
        if self.fail:
            raise ConnectionError("SMTP server unavailable")
        self.sent.append({"kind": kind, "email": user.get("email"), "url": url})

    def last(self, kind: str) -> Optional[Dict[str, Any]]:
        matching = [m for m in self.sent if m["kind"] == kind]
        return matching[-1] if matching else None


class RecordingPaymentGateway:
    """Payment gateway double returning a canned checkout session."""

    def __init__(self):
        self.calls: List[Dict[str, Any]] = []

    async def create_checkout_session(self, **kwargs: Any) -> Mapping[str, Any]:
        self.calls.append(kwargs)
        return {"id": "cs_test_123", "url": "https://checkout.example.com/cs_test_123"}


# ============================================================================
# SETTINGS
# ============================================================================


def make_settings(**overrides: Any) -> Settings:
    values = dict(
        environment="staging",
        store_backend="memory",
        jwt_secret_key=TEST_SECRET,
        password_bcrypt_rounds=4,
        email_backend="log",
        rate_limit_enabled=False,
        cors_enabled=False,
        log_level="WARNING",
        log_format="text",
    )
    values.update(overrides)
    return Settings(_env_file=None, **values)


# ============================================================================
# HTTP HELPERS
# ============================================================================


def auth_headers(token: str) -> Dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def signup(client: TestClient, name: str, email: str, password: str = DEFAULT_PASSWORD) -> str:
    """Sign up through the API and return the issued token (cookie jar left empty)."""
    response = client.post(
        "/api/v1/users/signup",
        json={"name": name, "email": email, "password": password, "passwordConfirm": password},
    )
    assert response.status_code == 201, response.text
    client.cookies.clear()
    return response.json()["token"]


def create_user_with_role(
    client: TestClient, container, role: str, email: str, name: str = "Staff Member"
) -> str:
    """Insert a user with ``role`` directly and log in; returns the token."""
    asyncio.run(
        container.users.create(
            {
                "name": name,
                "email": email,
                "role": role,
                "password": DEFAULT_PASSWORD,
                "passwordConfirm": DEFAULT_PASSWORD,
            }
        )
    )
    response = client.post("/api/v1/users/login", json={"email": email, "password": DEFAULT_PASSWORD})
    assert response.status_code == 200, response.text
    client.cookies.clear()
    return response.json()["token"]


def tour_payload(**overrides: Any) -> Dict[str, Any]:
    payload = {
        "name": "The Forest Hiker",
        "duration": 5,
        "maxGroupSize": 25,
        "difficulty": "easy",
        "price": 397,
        "summary": "Breathtaking hike through the Canadian Banff National Park",
        "imageCover": "tour-1-cover.jpg",
    }
    payload.update(overrides)
    return payload
