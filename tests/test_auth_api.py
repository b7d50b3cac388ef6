"""End-to-end tests for /auth endpoints using TestClient over an in-memory SQLite database."""

import unittest
from datetime import timedelta

import jwt
from fastapi.testclient import TestClient

from app.core.config import get_settings
from app.core.database import get_db, get_session_factory
from app.core.security import create_access_token, create_refresh_token, utcnow
from app.main import app
from app.models import RefreshToken, User
from app.services import sessions
from tests.support import (
    TEST_PASSWORD,
    db_override,
    make_engine,
    make_session_factory,
    make_settings,
    make_user,
)

PREFIX = "/api/v1/auth"


class ApiTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.settings = make_settings()
        self.engine = make_engine()
        self.factory = make_session_factory(self.engine)
        self.db = self.factory()
        app.dependency_overrides[get_db] = db_override(self.factory)
        app.dependency_overrides[get_settings] = lambda: self.settings
        app.dependency_overrides[get_session_factory] = lambda: self.factory
        self.client = TestClient(app)

    def tearDown(self) -> None:
        app.dependency_overrides.clear()
        self.client.close()
        self.db.close()
        self.engine.dispose()

    def login(self, username: str = "admin", password: str = TEST_PASSWORD):
        return self.client.post(
            f"{PREFIX}/login",
            json={"username": username, "password": password},
            headers={"User-Agent": "pytest-agent"},
        )

    def use_refresh_cookie(self, token: str) -> None:
        self.client.cookies.clear()
        self.client.cookies.set("refreshToken", token)

    def bearer(self, token: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {token}"}

    def reload(self, user: User) -> User:
        self.db.expire_all()
        return self.db.get(User, user.id)


class TestLogin(ApiTestCase):
    def test_success_returns_verifiable_access_token(self) -> None:
        user = make_user(self.db)
        response = self.login()
        self.assertEqual(response.status_code, 200)
        body = response.json()
        payload = jwt.decode(
            body["accessToken"],
            self.settings.JWT_SECRET.get_secret_value(),
            algorithms=["HS256"],
            audience=self.settings.JWT_AUDIENCE,
        )
        self.assertEqual(payload["id"], user.id)
        self.assertEqual(body["expiresIn"], "24h")
        self.assertEqual(body["tokenType"], "bearer")
        self.assertEqual(body["user"]["username"], "admin")
        self.assertTrue(body["user"]["permissions"]["forklifts"]["create"])
        self.assertNotIn("passwordHash", body["user"])
        self.assertNotIn("refreshTokens", body["user"])

    def test_sets_http_only_refresh_cookie_and_records_session(self) -> None:
        user = make_user(self.db)
        response = self.login()
        cookie_header = response.headers["set-cookie"]
        self.assertIn("refreshToken=", cookie_header)
        self.assertIn("HttpOnly", cookie_header)
        self.assertIn("SameSite=strict", cookie_header)
        self.assertIn("Max-Age=604800", cookie_header)
        self.assertNotIn("Secure", cookie_header)
        user = self.reload(user)
        self.assertEqual(len(user.refresh_tokens), 1)
        record = user.refresh_tokens[0]
        self.assertEqual(record.token, self.client.cookies.get("refreshToken"))
        self.assertEqual(record.user_agent, "pytest-agent")

    def test_bad_password(self) -> None:
        make_user(self.db)
        response = self.login(password="wrong-password")
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()["detail"], "Invalid credentials")

    def test_unknown_user_same_message(self) -> None:
        response = self.login(username="nobody")
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()["detail"], "Invalid credentials")

    def test_malformed_input_is_400(self) -> None:
        response = self.client.post(f"{PREFIX}/login", json={"username": "ad"})
        self.assertEqual(response.status_code, 400)

    def test_fifth_failure_locks_then_correct_password_still_refused(self) -> None:
        user = make_user(self.db, login_attempts=4)
        response = self.login(password="wrong-password")
        self.assertEqual(response.status_code, 401)
        self.assertIn("locked", response.json()["detail"])
        self.assertIn("Retry-After", response.headers)
        user = self.reload(user)
        self.assertEqual(user.login_attempts, 5)
        self.assertTrue(user.is_locked)

        response = self.login()
        self.assertEqual(response.status_code, 401)
        self.assertIn("locked", response.json()["detail"])
        self.assertNotIn("refreshToken", self.client.cookies)

    def test_session_list_capped_at_five(self) -> None:
        user = make_user(self.db)
        tokens = []
        for _ in range(6):
            self.assertEqual(self.login().status_code, 200)
            tokens.append(self.client.cookies.get("refreshToken"))
        user = self.reload(user)
        stored = [r.token for r in user.refresh_tokens]
        self.assertEqual(len(stored), 5)
        self.assertNotIn(tokens[0], stored)
        self.assertEqual(stored[-1], tokens[-1])


class TestAccessGate(ApiTestCase):
    def test_missing_header(self) -> None:
        response = self.client.get(f"{PREFIX}/me")
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()["detail"], "Access denied. No token provided.")

    def test_malformed_token(self) -> None:
        response = self.client.get(f"{PREFIX}/me", headers=self.bearer("not.a.jwt"))
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()["detail"], "Invalid token format")

    def test_expired_token(self) -> None:
        user = make_user(self.db)
        token = create_access_token(user, self.settings, now=utcnow() - timedelta(days=2))
        response = self.client.get(f"{PREFIX}/me", headers=self.bearer(token))
        self.assertEqual(response.status_code, 401)
        self.assertIn("expired", response.json()["detail"])

    def test_not_yet_valid_token(self) -> None:
        user = make_user(self.db)
        now = utcnow()
        token = jwt.encode(
            {
                "id": user.id,
                "type": "access",
                "iat": now,
                "nbf": now + timedelta(hours=1),
                "exp": now + timedelta(hours=2),
                "iss": self.settings.JWT_ISSUER,
                "aud": self.settings.JWT_AUDIENCE,
            },
            self.settings.JWT_SECRET.get_secret_value(),
            algorithm="HS256",
        )
        response = self.client.get(f"{PREFIX}/me", headers=self.bearer(token))
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()["detail"], "Token not active")

    def test_refresh_token_rejected_as_access(self) -> None:
        user = make_user(self.db)
        refresh, _ = create_refresh_token(user.id, self.settings)
        response = self.client.get(f"{PREFIX}/me", headers=self.bearer(refresh))
        self.assertEqual(response.status_code, 401)

    def test_inactive_user(self) -> None:
        user = make_user(self.db, is_active=False)
        token = create_access_token(user, self.settings)
        response = self.client.get(f"{PREFIX}/me", headers=self.bearer(token))
        self.assertEqual(response.status_code, 401)
        self.assertIn("User not found or inactive", response.json()["detail"])

    def test_locked_user(self) -> None:
        user = make_user(self.db, lock_until=utcnow() + timedelta(hours=1))
        token = create_access_token(user, self.settings)
        response = self.client.get(f"{PREFIX}/me", headers=self.bearer(token))
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()["detail"], "Account is temporarily locked")

    def test_token_issued_before_password_change(self) -> None:
        user = make_user(self.db)
        token = create_access_token(user, self.settings, now=utcnow() - timedelta(hours=1))
        user.set_password("brand-new-pass", rounds=4)
        self.db.commit()
        response = self.client.get(f"{PREFIX}/me", headers=self.bearer(token))
        self.assertEqual(response.status_code, 401)
        self.assertIn("Password was recently changed", response.json()["detail"])

    def test_me_returns_profile(self) -> None:
        make_user(self.db)
        token = self.login().json()["accessToken"]
        response = self.client.get(f"{PREFIX}/me", headers=self.bearer(token))
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["username"], "admin")
        self.assertEqual(body["email"], "admin@example.com")
        for hidden in ("passwordHash", "refreshTokens", "resetPasswordToken"):
            self.assertNotIn(hidden, body)


class TestOptionalAuth(ApiTestCase):
    def test_anonymous(self) -> None:
        response = self.client.get(f"{PREFIX}/status")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"authenticated": False, "user": None})

    def test_bad_token_is_ignored(self) -> None:
        response = self.client.get(f"{PREFIX}/status", headers=self.bearer("garbage"))
        self.assertEqual(response.status_code, 200)
        self.assertFalse(response.json()["authenticated"])

    def test_valid_token(self) -> None:
        user = make_user(self.db)
        token = create_access_token(user, self.settings)
        response = self.client.get(f"{PREFIX}/status", headers=self.bearer(token))
        self.assertTrue(response.json()["authenticated"])
        self.assertEqual(response.json()["user"]["id"], user.id)


class TestRefresh(ApiTestCase):
    def test_round_trip_then_revoked(self) -> None:
        user = make_user(self.db)
        access = self.login().json()["accessToken"]
        refresh_token = self.client.cookies.get("refreshToken")

        response = self.client.post(f"{PREFIX}/refresh")
        self.assertEqual(response.status_code, 200)
        new_access = response.json()["accessToken"]
        me = self.client.get(f"{PREFIX}/me", headers=self.bearer(new_access))
        self.assertEqual(me.status_code, 200)

        sessions.revoke_all(self.db, self.reload(user))
        self.use_refresh_cookie(refresh_token)
        response = self.client.post(f"{PREFIX}/refresh")
        self.assertEqual(response.status_code, 401)
        self.assertIsNotNone(access)

    def test_missing_cookie(self) -> None:
        response = self.client.post(f"{PREFIX}/refresh")
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()["detail"], "Refresh token not provided")

    def test_garbage_cookie(self) -> None:
        self.use_refresh_cookie("garbage")
        response = self.client.post(f"{PREFIX}/refresh")
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()["detail"], "Invalid refresh token")

    def test_unregistered_token(self) -> None:
        user = make_user(self.db)
        token, _ = create_refresh_token(user.id, self.settings)
        self.use_refresh_cookie(token)
        response = self.client.post(f"{PREFIX}/refresh")
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()["detail"], "Refresh token expired or invalid")

    def test_access_token_in_cookie_rejected(self) -> None:
        user = make_user(self.db)
        self.use_refresh_cookie(create_access_token(user, self.settings))
        response = self.client.post(f"{PREFIX}/refresh")
        self.assertEqual(response.status_code, 401)


class TestLogout(ApiTestCase):
    def test_logout_revokes_current_session_only(self) -> None:
        user = make_user(self.db)
        self.login()
        other_refresh = self.client.cookies.get("refreshToken")
        access = self.login().json()["accessToken"]
        current_refresh = self.client.cookies.get("refreshToken")

        response = self.client.post(f"{PREFIX}/logout", headers=self.bearer(access))
        self.assertEqual(response.status_code, 200)
        self.assertIn('refreshToken=""', response.headers["set-cookie"])
        stored = [r.token for r in self.reload(user).refresh_tokens]
        self.assertEqual(stored, [other_refresh])
        self.assertNotIn(current_refresh, stored)

    def test_logout_without_cookie_still_clears(self) -> None:
        make_user(self.db)
        access = self.login().json()["accessToken"]
        self.client.cookies.clear()
        response = self.client.post(f"{PREFIX}/logout", headers=self.bearer(access))
        self.assertEqual(response.status_code, 200)
        self.assertIn("refreshToken=", response.headers["set-cookie"])

    def test_logout_all_twice(self) -> None:
        user = make_user(self.db)
        self.login()
        access = self.login().json()["accessToken"]
        for _ in range(2):
            response = self.client.post(f"{PREFIX}/logout-all", headers=self.bearer(access))
            self.assertEqual(response.status_code, 200)
            self.assertEqual(self.reload(user).refresh_tokens, [])


class TestChangePassword(ApiTestCase):
    def test_revokes_all_sessions(self) -> None:
        user = make_user(self.db)
        old_refresh_tokens = []
        access = None
        for _ in range(3):
            access = self.login().json()["accessToken"]
            old_refresh_tokens.append(self.client.cookies.get("refreshToken"))
        self.assertEqual(len(self.reload(user).refresh_tokens), 3)

        response = self.client.post(
            f"{PREFIX}/change-password",
            json={"currentPassword": TEST_PASSWORD, "newPassword": "new-secret-pw"},
            headers=self.bearer(access),
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(self.reload(user).refresh_tokens, [])

        for token in old_refresh_tokens:
            self.use_refresh_cookie(token)
            self.assertEqual(self.client.post(f"{PREFIX}/refresh").status_code, 401)

        self.client.cookies.clear()
        self.assertEqual(self.login(password="new-secret-pw").status_code, 200)
        self.assertEqual(self.login().status_code, 401)

    def test_wrong_current_password(self) -> None:
        user = make_user(self.db)
        access = self.login().json()["accessToken"]
        response = self.client.post(
            f"{PREFIX}/change-password",
            json={"currentPassword": "not-it", "newPassword": "new-secret-pw"},
            headers=self.bearer(access),
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["detail"], "Current password is incorrect")
        self.assertEqual(len(self.reload(user).refresh_tokens), 1)

    def test_new_password_too_short(self) -> None:
        make_user(self.db)
        access = self.login().json()["accessToken"]
        response = self.client.post(
            f"{PREFIX}/change-password",
            json={"currentPassword": TEST_PASSWORD, "newPassword": "abc"},
            headers=self.bearer(access),
        )
        self.assertEqual(response.status_code, 400)


class TestSessionsEndpoints(ApiTestCase):
    def test_list_marks_current_and_prunes_expired(self) -> None:
        user = make_user(self.db)
        sessions.add_session(
            self.db, user, "stale", utcnow() - timedelta(minutes=1), "old-browser", "10.0.0.1"
        )
        self.login()
        access = self.login().json()["accessToken"]

        response = self.client.get(f"{PREFIX}/sessions", headers=self.bearer(access))
        self.assertEqual(response.status_code, 200)
        listed = response.json()["sessions"]
        self.assertEqual(len(listed), 2)
        self.assertEqual([s["isCurrent"] for s in listed], [False, True])
        self.assertEqual(listed[1]["userAgent"], "pytest-agent")
        self.assertEqual(self.db.query(RefreshToken).filter_by(token="stale").count(), 0)

    def test_delete_session(self) -> None:
        user = make_user(self.db)
        self.login()
        access = self.login().json()["accessToken"]
        first_id = self.reload(user).refresh_tokens[0].id

        response = self.client.delete(
            f"{PREFIX}/sessions/{first_id}", headers=self.bearer(access)
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(len(self.reload(user).refresh_tokens), 1)

        response = self.client.delete(
            f"{PREFIX}/sessions/{first_id}", headers=self.bearer(access)
        )
        self.assertEqual(response.status_code, 404)


if __name__ == "__main__":
    unittest.main()
