"""Login, token issuance, refresh and access-token resolution against the user store."""

import logging
from dataclasses import dataclass
from datetime import datetime

import jwt
from sqlalchemy import func
from sqlalchemy.orm import Session

from app.core.config import Settings
from app.core.security import (
    WrongTokenTypeError,
    as_utc,
    create_access_token,
    create_refresh_token,
    decode_access_token,
    decode_refresh_token,
    verify_password,
)
from app.models import User
from app.services import sessions
from app.services.lockout import register_failed_attempt, reset_login_attempts

logger = logging.getLogger(__name__)

INVALID_CREDENTIALS_MESSAGE = "Invalid credentials"
ACCOUNT_LOCKED_MESSAGE = "Account temporarily locked due to too many failed login attempts"


class AuthServiceError(Exception):
    """Base for authentication failures; message is safe to show to the client."""

    def __init__(self, message: str, reason: str) -> None:
        self.message = message
        self.reason = reason
        super().__init__(message)


class InvalidCredentialsError(AuthServiceError):
    def __init__(self, reason: str = "invalid_credentials") -> None:
        super().__init__(INVALID_CREDENTIALS_MESSAGE, reason)


class AccountLockedError(AuthServiceError):
    """Login refused because the account is locked; lock_until lets clients show a countdown."""

    def __init__(self, lock_until: datetime | None) -> None:
        self.lock_until = lock_until
        super().__init__(ACCOUNT_LOCKED_MESSAGE, "account_locked")


class TokenRejectedError(AuthServiceError):
    """An access or refresh token failed verification or no longer maps to a usable user."""


@dataclass
class IssuedTokens:
    access_token: str
    refresh_token: str
    refresh_expires_at: datetime


def find_user_by_username(db: Session, username: str) -> User | None:
    return (
        db.query(User)
        .filter(func.lower(User.username) == username.strip().lower())
        .first()
    )


def authenticate(db: Session, username: str, password: str, settings: Settings) -> User:
    """
    Check credentials, driving the lockout state machine.

    A locked account is refused before the password is looked at. A failed attempt that
    locks the account reports the lock rather than bad credentials.
    """
    user = find_user_by_username(db, username)
    if user is None or not user.is_active:
        raise InvalidCredentialsError("unknown_or_inactive_user")

    if user.is_locked:
        logger.info("Login refused for locked account", extra={"user_id": user.id})
        raise AccountLockedError(as_utc(user.lock_until))

    if not verify_password(password, user.password_hash):
        register_failed_attempt(db, user, settings)
        if user.is_locked:
            raise AccountLockedError(as_utc(user.lock_until))
        logger.info(
            "Login failed: bad password",
            extra={"user_id": user.id, "attempts": user.login_attempts},
        )
        raise InvalidCredentialsError("bad_password")

    reset_login_attempts(db, user)
    return user


def issue_tokens(
    db: Session,
    user: User,
    settings: Settings,
    user_agent: str | None,
    ip_address: str | None,
) -> IssuedTokens:
    """Mint an access/refresh pair; the session record is committed before returning."""
    access_token = create_access_token(user, settings)
    refresh_token, expires_at = create_refresh_token(user.id, settings)
    sessions.add_session(
        db,
        user,
        refresh_token,
        expires_at,
        user_agent=user_agent,
        ip_address=ip_address,
        max_sessions=settings.MAX_SESSIONS,
    )
    return IssuedTokens(
        access_token=access_token,
        refresh_token=refresh_token,
        refresh_expires_at=expires_at,
    )


def refresh_access_token(db: Session, refresh_token: str, settings: Settings) -> str:
    """Exchange a registered, unexpired refresh token for a new access token."""
    try:
        claims = decode_refresh_token(refresh_token, settings)
    except jwt.PyJWTError as e:
        raise TokenRejectedError("Invalid refresh token", _jwt_reason(e)) from e

    user = db.get(User, claims.user_id)
    if user is None or not user.is_active:
        raise TokenRejectedError("Invalid refresh token", "user_inactive")
    if user.is_locked:
        raise TokenRejectedError("Account is temporarily locked", "account_locked")
    if not sessions.has_valid_session(user, refresh_token):
        raise TokenRejectedError("Refresh token expired or invalid", "session_not_found")
    return create_access_token(user, settings)


def change_password(
    db: Session,
    user: User,
    current_password: str,
    new_password: str,
    settings: Settings,
) -> bool:
    """
    Replace the password after verifying the current one and revoke every session.

    Returns False (and changes nothing) if current_password is wrong.
    """
    if not verify_password(current_password, user.password_hash):
        return False
    user.set_password(new_password, rounds=settings.BCRYPT_ROUNDS)
    user.refresh_tokens.clear()
    db.commit()
    logger.info("Password changed; all sessions revoked", extra={"user_id": user.id})
    return True


def deactivate_user(db: Session, user: User) -> None:
    """Soft-disable the account and drop every session in the same commit."""
    user.is_active = False
    user.refresh_tokens.clear()
    db.commit()
    logger.info("User deactivated; all sessions revoked", extra={"user_id": user.id})


def _jwt_reason(error: jwt.PyJWTError) -> str:
    if isinstance(error, jwt.ExpiredSignatureError):
        return "token_expired"
    if isinstance(error, jwt.ImmatureSignatureError):
        return "token_not_yet_valid"
    if isinstance(error, WrongTokenTypeError):
        return "wrong_token_type"
    return "token_malformed"


JWT_MESSAGES = {
    "token_expired": "Token has expired. Please log in again.",
    "token_not_yet_valid": "Token not active",
    "wrong_token_type": "Invalid token type",
    "token_malformed": "Invalid token format",
}


def resolve_access_token(db: Session, token: str, settings: Settings) -> User:
    """
    Verify an access token and load its active, unlocked user.

    Rejects tokens issued before the user's last password change.
    Raises TokenRejectedError; storage errors propagate.
    """
    try:
        claims = decode_access_token(token, settings)
    except jwt.PyJWTError as e:
        reason = _jwt_reason(e)
        raise TokenRejectedError(JWT_MESSAGES[reason], reason) from e

    user = db.get(User, claims.user_id)
    if user is None:
        raise TokenRejectedError(
            "Token is no longer valid. User not found or inactive.", "user_not_found"
        )
    if not user.is_active:
        raise TokenRejectedError(
            "Token is no longer valid. User not found or inactive.", "user_inactive"
        )
    if user.is_locked:
        raise TokenRejectedError("Account is temporarily locked", "account_locked")
    if user.changed_password_after(claims.issued_at):
        raise TokenRejectedError(
            "Password was recently changed. Please log in again.", "password_changed"
        )
    return user
