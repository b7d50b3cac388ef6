"""Tests for the create_user admin seeding script."""

import time
import unittest
from unittest.mock import patch

from app.core.permissions import Action, Resource
from app.core.security import verify_password
from app.models import User
from app.scripts.create_user import main, validate_new_user
from tests.support import make_engine, make_session_factory, make_settings


class TestValidateNewUser(unittest.TestCase):
    def test_valid(self) -> None:
        self.assertIsNone(validate_new_user("owner_1", "owner@example.com", "secret-pass"))

    def test_username_rules(self) -> None:
        self.assertIsNotNone(validate_new_user("ab", "owner@example.com", "secret-pass"))
        self.assertIsNotNone(validate_new_user("has space", "owner@example.com", "secret-pass"))
        self.assertIsNotNone(validate_new_user("x" * 51, "owner@example.com", "secret-pass"))

    def test_email_and_password_rules(self) -> None:
        self.assertIsNotNone(validate_new_user("owner", "not-an-email", "secret-pass"))
        self.assertIsNotNone(validate_new_user("owner", "owner@example.com", "short"))

    def test_long_malformed_email_rejected_quickly(self) -> None:
        started = time.monotonic()
        self.assertIsNotNone(validate_new_user("owner", "a" * 5000 + "!", "secret-pass"))
        self.assertIsNotNone(validate_new_user("owner", "a.b" * 2000 + "@x", "secret-pass"))
        self.assertLess(time.monotonic() - started, 1.0)

    def test_email_forms(self) -> None:
        self.assertIsNone(validate_new_user("owner", "first.last+tag@mail.example.ie", "secret-pass"))
        self.assertIsNotNone(validate_new_user("owner", "owner@localhost", "secret-pass"))
        self.assertIsNotNone(validate_new_user("owner", "own er@example.com", "secret-pass"))


class TestCreateUserMain(unittest.TestCase):
    def setUp(self) -> None:
        self.engine = make_engine()
        self.factory = make_session_factory(self.engine)
        patcher = patch("app.scripts.create_user.SessionLocal", self.factory)
        patcher.start()
        self.addCleanup(patcher.stop)
        settings_patcher = patch(
            "app.scripts.create_user.get_settings", return_value=make_settings()
        )
        settings_patcher.start()
        self.addCleanup(settings_patcher.stop)

    def tearDown(self) -> None:
        self.engine.dispose()

    def test_creates_super_admin(self) -> None:
        code = main(["owner", "Owner@Example.com", "secret-pass", "super_admin"])
        self.assertEqual(code, 0)
        db = self.factory()
        try:
            user = db.query(User).filter_by(username="owner").one()
            self.assertEqual(user.email, "owner@example.com")
            self.assertEqual(user.role, "super_admin")
            self.assertTrue(user.permission_matrix.allows(Resource.USERS, Action.DELETE))
            self.assertTrue(verify_password("secret-pass", user.password_hash))
            self.assertIsNotNone(user.password_changed_at)
        finally:
            db.close()

    def test_rejects_duplicate(self) -> None:
        self.assertEqual(main(["owner", "owner@example.com", "secret-pass"]), 0)
        with patch("sys.stderr"):
            self.assertEqual(main(["owner", "other@example.com", "secret-pass"]), 1)

    def test_rejects_invalid_input(self) -> None:
        with patch("sys.stderr"):
            self.assertEqual(main(["o", "owner@example.com", "secret-pass"]), 1)


if __name__ == "__main__":
    unittest.main()
