"""
Create an admin user (e.g. the first super_admin). Run from project root:
  python -m app.scripts.create_user USERNAME EMAIL PASSWORD [role]
Example:
  python -m app.scripts.create_user owner owner@example.com your-secure-password super_admin
"""
import argparse
import logging
import re
import sys

from sqlalchemy import func

from app.core.config import get_settings
from app.core.database import SessionLocal
from app.core.permissions import Role
from app.core.security import (
    EMAIL_PATTERN,
    PASSWORD_MAX_LEN,
    PASSWORD_MIN_LEN,
    USERNAME_MAX_LEN,
    USERNAME_MIN_LEN,
    USERNAME_PATTERN,
)
from app.models.user import User

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
    datefmt="%Y-%m-%dT%H:%M:%SZ",
)
logger = logging.getLogger(__name__)


def validate_new_user(username: str, email: str, password: str) -> str | None:
    """Return an error message, or None if the values are acceptable."""
    if not (USERNAME_MIN_LEN <= len(username) <= USERNAME_MAX_LEN):
        return f"Username must be {USERNAME_MIN_LEN}-{USERNAME_MAX_LEN} characters."
    if not re.match(USERNAME_PATTERN, username):
        return "Username can only contain letters, numbers, and underscores."
    if not re.match(EMAIL_PATTERN, email):
        return "Please enter a valid email."
    if not (PASSWORD_MIN_LEN <= len(password) <= PASSWORD_MAX_LEN):
        return f"Password must be {PASSWORD_MIN_LEN}-{PASSWORD_MAX_LEN} characters."
    return None


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Create an admin user (no registration UI).")
    parser.add_argument("username", help="Username (3-50 chars, letters, digits, underscore)")
    parser.add_argument("email", help="Email address")
    parser.add_argument("password", help="Password (6-128 chars)")
    parser.add_argument(
        "role",
        nargs="?",
        default=Role.ADMIN.value,
        choices=[r.value for r in Role],
    )
    args = parser.parse_args(argv)

    username = args.username.strip()
    email = args.email.strip().lower()
    error = validate_new_user(username, email, args.password)
    if error:
        print(error, file=sys.stderr)
        return 1

    db = SessionLocal()
    try:
        existing = (
            db.query(User)
            .filter((func.lower(User.username) == username.lower()) | (User.email == email))
            .first()
        )
        if existing:
            print(f"User '{username}' or email '{email}' already exists.", file=sys.stderr)
            return 1
        user = User.create_admin(
            username,
            email,
            args.password,
            role=Role(args.role),
            rounds=get_settings().BCRYPT_ROUNDS,
        )
        db.add(user)
        db.commit()
        logger.info("Created user '%s' with role '%s'", username, args.role)
        return 0
    finally:
        db.close()


if __name__ == "__main__":
    sys.exit(main())
