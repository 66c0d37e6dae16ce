"""
Integration tests for the authentication flow over HTTP.

Tests cover:
- Signup, login and logout (body token and jwt cookie)
- The protect chain: missing, invalid and stale tokens
- Passive session lookup
- Forgot / reset password via the emailed link
- Updating the password and the profile, deactivating the account

Runs against the in-process document store with a recording notifier.
"""

import asyncio
import time

from jose import jwt

from tests.support import DEFAULT_PASSWORD, TEST_SECRET, auth_headers, signup

USERS = "/api/v1/users"


def reset_path(url: str) -> str:
    return url.replace("http://testserver", "")


# ============================================================================
# SIGNUP / LOGIN / LOGOUT
# ============================================================================


class TestSignup:
    """Tests for account creation."""

    def test_signup_returns_token_and_user(self, client, notifier):
        """Test signup answers 201 with a token, the user and the cookie."""
        response = client.post(
            f"{USERS}/signup",
            json={
                "name": "Laura Wilson",
                "email": "laura@example.com",
                "password": DEFAULT_PASSWORD,
                "passwordConfirm": DEFAULT_PASSWORD,
            },
        )

        assert response.status_code == 201
        body = response.json()
        assert body["status"] == "success"
        assert body["token"]
        user = body["data"]["user"]
        assert user["email"] == "laura@example.com"
        assert user["role"] == "user"
        assert "password" not in user
        assert response.cookies.get("jwt") == body["token"]
        assert notifier.last("welcome")["url"] == "http://testserver/me"

    def test_signup_cannot_choose_role(self, client):
        """Test a role in the signup body is ignored."""
        response = client.post(
            f"{USERS}/signup",
            json={
                "name": "Eve",
                "email": "eve@example.com",
                "password": DEFAULT_PASSWORD,
                "passwordConfirm": DEFAULT_PASSWORD,
                "role": "admin",
            },
        )

        assert response.json()["data"]["user"]["role"] == "user"

    def test_signup_password_mismatch(self, client):
        """Test mismatched passwords are a validation error."""
        response = client.post(
            f"{USERS}/signup",
            json={"name": "Eve", "email": "eve@example.com", "password": DEFAULT_PASSWORD, "passwordConfirm": "nope1234"},
        )

        assert response.status_code == 400
        assert response.json() == {"status": "fail", "message": "Invalid input data. Passwords are not the same!"}

    def test_signup_duplicate_email(self, client):
        """Test a second account with the same email is rejected."""
        signup(client, "Laura Wilson", "laura@example.com")

        response = client.post(
            f"{USERS}/signup",
            json={"name": "Laura", "email": "LAURA@example.com", "password": DEFAULT_PASSWORD, "passwordConfirm": DEFAULT_PASSWORD},
        )

        assert response.status_code == 400
        assert response.json()["message"] == "Duplicate field value: laura@example.com. Please use another value!"

    def test_signup_email_failure(self, client, notifier):
        """Test a failing welcome email is reported as a server error."""
        notifier.fail = True

        response = client.post(
            f"{USERS}/signup",
            json={"name": "Eve", "email": "eve@example.com", "password": DEFAULT_PASSWORD, "passwordConfirm": DEFAULT_PASSWORD},
        )

        assert response.status_code == 500
        assert response.json() == {
            "status": "error",
            "message": "There was an error sending the email. Try again later!",
        }


class TestLogin:
    """Tests for credential login."""

    def test_login_success(self, client, user_token):
        """Test correct credentials return a fresh token."""
        response = client.post(f"{USERS}/login", json={"email": "laura@example.com", "password": DEFAULT_PASSWORD})

        assert response.status_code == 200
        assert response.json()["token"]
        assert response.json()["data"]["user"]["name"] == "Laura Wilson"

    def test_login_wrong_password(self, client, user_token):
        """Test a wrong password is a 401 with a bearer challenge."""
        response = client.post(f"{USERS}/login", json={"email": "laura@example.com", "password": "wrongpass"})

        assert response.status_code == 401
        assert response.json() == {"status": "fail", "message": "Incorect email or password"}
        assert response.headers["WWW-Authenticate"] == "Bearer"

    def test_login_missing_fields(self, client):
        """Test missing credentials are a 400."""
        response = client.post(f"{USERS}/login", json={"email": "laura@example.com"})

        assert response.status_code == 400
        assert response.json()["message"] == "Please provide email and password"


class TestProtect:
    """Tests for the authentication chain on protected routes."""

    def test_no_token(self, client):
        """Test a protected route without a token."""
        response = client.get(f"{USERS}/me")

        assert response.status_code == 401
        assert response.json()["message"] == "You are not logged in! Please log in to get access."

    def test_invalid_token(self, client):
        """Test a malformed bearer token."""
        response = client.get(f"{USERS}/me", headers=auth_headers("not-a-jwt"))

        assert response.status_code == 401
        assert response.json()["message"] == "Invalid token. Please log in again"

    def test_expired_token(self, client, user_token):
        """Test an expired token has its own message."""
        me = client.get(f"{USERS}/me", headers=auth_headers(user_token)).json()["data"]["data"]
        issued_at = int(time.time()) - 7200
        token = jwt.encode({"id": me["id"], "iat": issued_at, "exp": issued_at + 60}, TEST_SECRET, algorithm="HS256")

        response = client.get(f"{USERS}/me", headers=auth_headers(token))

        assert response.status_code == 401
        assert response.json()["message"] == "Your token has expired. Please log in again!"

    def test_bearer_token(self, client, user_token):
        """Test the Authorization header grants access."""
        response = client.get(f"{USERS}/me", headers=auth_headers(user_token))

        assert response.status_code == 200
        assert response.json()["data"]["data"]["email"] == "laura@example.com"

    def test_cookie_token(self, client):
        """Test the cookie set by signup grants access."""
        client.post(
            f"{USERS}/signup",
            json={"name": "Laura Wilson", "email": "laura@example.com", "password": DEFAULT_PASSWORD, "passwordConfirm": DEFAULT_PASSWORD},
        )

        response = client.get(f"{USERS}/me")

        assert response.status_code == 200

    def test_logout_replaces_cookie(self, client):
        """Test logout overwrites the cookie so it no longer authenticates."""
        client.post(
            f"{USERS}/signup",
            json={"name": "Laura Wilson", "email": "laura@example.com", "password": DEFAULT_PASSWORD, "passwordConfirm": DEFAULT_PASSWORD},
        )

        response = client.get(f"{USERS}/logout")

        assert response.status_code == 200
        assert response.json() == {"status": "success"}
        assert client.cookies.get("jwt") == "loggedout"
        assert client.get(f"{USERS}/me").status_code == 401

    def test_token_issued_before_password_change(self, client, user_token):
        """Test a token older than the last password change is rejected."""
        me = client.get(f"{USERS}/me", headers=auth_headers(user_token)).json()["data"]["data"]
        issued_at = int(time.time()) - 100
        old_token = jwt.encode(
            {"id": me["id"], "iat": issued_at, "exp": issued_at + 3600}, TEST_SECRET, algorithm="HS256"
        )
        client.patch(
            f"{USERS}/updateMyPassword",
            headers=auth_headers(user_token),
            json={"passwordCurrent": DEFAULT_PASSWORD, "password": "newpass123", "passwordConfirm": "newpass123"},
        )
        client.cookies.clear()

        response = client.get(f"{USERS}/me", headers=auth_headers(old_token))

        assert response.status_code == 401
        assert response.json()["message"] == "User recently changed password! Please log in again."


class TestSession:
    """Tests for the passive is-logged-in lookup."""

    def test_anonymous(self, client):
        """Test no principal without a token."""
        response = client.get(f"{USERS}/session")

        assert response.status_code == 200
        assert response.json() == {"status": "success", "data": {"user": None}}

    def test_bad_token_is_not_an_error(self, client):
        """Test a bad token silently yields no principal."""
        response = client.get(f"{USERS}/session", headers=auth_headers("garbage"))

        assert response.status_code == 200
        assert response.json()["data"]["user"] is None

    def test_logged_in(self, client, user_token):
        """Test the principal is returned when the token checks out."""
        response = client.get(f"{USERS}/session", headers=auth_headers(user_token))

        assert response.json()["data"]["user"]["email"] == "laura@example.com"


# ============================================================================
# PASSWORD RESET
# ============================================================================


class TestPasswordReset:
    """Tests for forgot / reset password."""

    def test_full_reset_flow(self, client, notifier, user_token):
        """Test the emailed link sets a new password."""
        response = client.post(f"{USERS}/forgotPassword", json={"email": "laura@example.com"})

        assert response.status_code == 200
        assert response.json() == {"status": "success", "message": "Token sent to email!"}
        url = notifier.last("password_reset")["url"]
        assert url.startswith("http://testserver/api/v1/users/resetPassword/")

        response = client.patch(reset_path(url), json={"password": "newpass123", "passwordConfirm": "newpass123"})

        assert response.status_code == 200
        assert response.json()["token"]
        client.cookies.clear()
        login = client.post(f"{USERS}/login", json={"email": "laura@example.com", "password": "newpass123"})
        assert login.status_code == 200

    def test_reset_link_is_single_use(self, client, notifier, user_token):
        """Test a used reset token can't be replayed."""
        client.post(f"{USERS}/forgotPassword", json={"email": "laura@example.com"})
        path = reset_path(notifier.last("password_reset")["url"])
        client.patch(path, json={"password": "newpass123", "passwordConfirm": "newpass123"})

        response = client.patch(path, json={"password": "again1234", "passwordConfirm": "again1234"})

        assert response.status_code == 400
        assert response.json()["message"] == "Token is invalid or has expired"

    def test_unknown_email(self, client):
        """Test forgot password for an unknown email."""
        response = client.post(f"{USERS}/forgotPassword", json={"email": "nobody@example.com"})

        assert response.status_code == 404
        assert response.json()["message"] == "There is no user with email address."

    def test_email_failure_clears_token(self, client, notifier, container, user_token):
        """Test a delivery failure is a 500 and leaves no reset token behind."""
        notifier.fail = True

        response = client.post(f"{USERS}/forgotPassword", json={"email": "laura@example.com"})

        assert response.status_code == 500
        stored = asyncio.run(container.users.find_one_raw(email="laura@example.com"))
        assert "passwordResetToken" not in stored
        assert "passwordResetExpires" not in stored


# ============================================================================
# SELF-SERVICE
# ============================================================================


class TestSelfService:
    """Tests for the current user's own account routes."""

    def test_update_my_password_wrong_current(self, client, user_token):
        """Test the current password is checked."""
        response = client.patch(
            f"{USERS}/updateMyPassword",
            headers=auth_headers(user_token),
            json={"passwordCurrent": "wrongpass", "password": "newpass123", "passwordConfirm": "newpass123"},
        )

        assert response.status_code == 401
        assert response.json()["message"] == "Your current password is wrong."

    def test_update_my_password(self, client, user_token):
        """Test a successful change returns a token that works."""
        response = client.patch(
            f"{USERS}/updateMyPassword",
            headers=auth_headers(user_token),
            json={"passwordCurrent": DEFAULT_PASSWORD, "password": "newpass123", "passwordConfirm": "newpass123"},
        )
        client.cookies.clear()

        assert response.status_code == 200
        new_token = response.json()["token"]
        assert client.get(f"{USERS}/me", headers=auth_headers(new_token)).status_code == 200

    def test_update_me_rejects_password(self, client, user_token):
        """Test updateMe refuses password fields."""
        response = client.patch(f"{USERS}/updateMe", headers=auth_headers(user_token), json={"password": "x"})

        assert response.status_code == 400
        assert response.json()["message"] == (
            "This route is not allowed for password updates. Please use /updateMyPassword route"
        )

    def test_update_me_only_changes_allowed_fields(self, client, user_token):
        """Test name changes while a role escalation is ignored."""
        response = client.patch(
            f"{USERS}/updateMe",
            headers=auth_headers(user_token),
            json={"name": "Laura W.", "role": "admin"},
        )

        assert response.status_code == 200
        user = response.json()["data"]["user"]
        assert user["name"] == "Laura W."
        assert user["role"] == "user"

    def test_delete_me(self, client, user_token):
        """Test deactivation blocks the token and the credentials."""
        response = client.delete(f"{USERS}/deleteMe", headers=auth_headers(user_token))

        assert response.status_code == 204
        me = client.get(f"{USERS}/me", headers=auth_headers(user_token))
        assert me.status_code == 401
        assert me.json()["message"] == "The user belonging to this token does no longer exist."
        login = client.post(f"{USERS}/login", json={"email": "laura@example.com", "password": DEFAULT_PASSWORD})
        assert login.status_code == 401
