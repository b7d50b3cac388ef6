"""Password hashing and JWT creation/verification for access and refresh tokens."""

import uuid
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Any, Literal

import bcrypt
import jwt

from app.core.config import Settings, get_settings

if TYPE_CHECKING:
    from app.models.user import User

# Username/email/password rules shared by request schemas and the create_user script.
USERNAME_MIN_LEN = 3
USERNAME_MAX_LEN = 50
USERNAME_PATTERN = r"^[A-Za-z0-9_]+$"
EMAIL_PATTERN = r"^[^\s@]+@[^\s@]+\.[^\s@]+$"
PASSWORD_MIN_LEN = 6
PASSWORD_MAX_LEN = 128

TOKEN_TYPE_ACCESS = "access"
TOKEN_TYPE_REFRESH = "refresh"


class WrongTokenTypeError(jwt.InvalidTokenError):
    """A validly signed token of the other kind was presented (e.g. refresh as access)."""


@dataclass(frozen=True)
class AccessClaims:
    kind: Literal["access"]
    user_id: int
    username: str
    role: str
    permissions: dict[str, Any]
    issued_at: int
    expires_at: int


@dataclass(frozen=True)
class RefreshClaims:
    kind: Literal["refresh"]
    user_id: int
    token_id: str
    issued_at: int
    expires_at: int


def utcnow() -> datetime:
    return datetime.now(UTC)


def as_utc(value: datetime | None) -> datetime | None:
    """Treat naive datetimes (e.g. read back from SQLite) as UTC."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=UTC)


def hash_password(plain_password: str, rounds: int | None = None) -> str:
    """Hash a plain-text password for storage. Do not store plain passwords."""
    if rounds is None:
        rounds = get_settings().BCRYPT_ROUNDS
    # bcrypt has a 72-byte limit; truncate identically on hash and verify.
    pw_bytes = plain_password.encode("utf-8")[:72]
    return bcrypt.hashpw(pw_bytes, bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def verify_password(plain_password: str | None, hashed: str | None) -> bool:
    """Verify a plain password against a stored hash. Never raises."""
    if not plain_password or not hashed:
        return False
    pw_bytes = plain_password.encode("utf-8")[:72]
    try:
        return bcrypt.checkpw(pw_bytes, hashed.encode("utf-8"))
    except (ValueError, TypeError):
        return False


def create_access_token(
    user: "User",
    settings: Settings | None = None,
    now: datetime | None = None,
) -> str:
    """Create a signed access token carrying the user's id, username, role and permissions."""
    settings = settings or get_settings()
    now = now or utcnow()
    payload: dict[str, Any] = {
        "id": user.id,
        "username": user.username,
        "role": user.role,
        "permissions": user.permissions or {},
        "type": TOKEN_TYPE_ACCESS,
        "iat": now,
        "exp": now + timedelta(seconds=settings.access_token_lifetime),
        "iss": settings.JWT_ISSUER,
        "aud": settings.JWT_AUDIENCE,
    }
    return jwt.encode(
        payload,
        settings.JWT_SECRET.get_secret_value(),
        algorithm=settings.JWT_ALGORITHM,
    )


def create_refresh_token(
    user_id: int,
    settings: Settings | None = None,
    now: datetime | None = None,
) -> tuple[str, datetime]:
    """Create a signed refresh token. Returns (token, expires_at)."""
    settings = settings or get_settings()
    now = now or utcnow()
    expires_at = now + timedelta(seconds=settings.refresh_token_lifetime)
    payload: dict[str, Any] = {
        "id": user_id,
        "type": TOKEN_TYPE_REFRESH,
        "jti": uuid.uuid4().hex,
        "iat": now,
        "exp": expires_at,
    }
    token = jwt.encode(
        payload,
        settings.JWT_REFRESH_SECRET.get_secret_value(),
        algorithm=settings.JWT_ALGORITHM,
    )
    return token, expires_at


def _user_id_from(payload: dict[str, Any]) -> int:
    try:
        return int(payload["id"])
    except (KeyError, TypeError, ValueError) as e:
        raise jwt.InvalidTokenError("Token payload has no valid user id") from e


def decode_access_token(token: str, settings: Settings | None = None) -> AccessClaims:
    """
    Decode and validate an access token.

    Raises jwt.ExpiredSignatureError, jwt.ImmatureSignatureError, WrongTokenTypeError
    or another jwt.InvalidTokenError.
    """
    settings = settings or get_settings()
    payload = jwt.decode(
        token,
        settings.JWT_SECRET.get_secret_value(),
        algorithms=[settings.JWT_ALGORITHM],
        audience=settings.JWT_AUDIENCE,
        issuer=settings.JWT_ISSUER,
        options={"require": ["exp", "iat"]},
    )
    if payload.get("type") != TOKEN_TYPE_ACCESS:
        raise WrongTokenTypeError("Invalid token type")
    return AccessClaims(
        kind="access",
        user_id=_user_id_from(payload),
        username=str(payload.get("username", "")),
        role=str(payload.get("role", "")),
        permissions=payload.get("permissions") or {},
        issued_at=int(payload["iat"]),
        expires_at=int(payload["exp"]),
    )


def decode_refresh_token(token: str, settings: Settings | None = None) -> RefreshClaims:
    """Decode and validate a refresh token. Raises jwt.InvalidTokenError subclasses."""
    settings = settings or get_settings()
    payload = jwt.decode(
        token,
        settings.JWT_REFRESH_SECRET.get_secret_value(),
        algorithms=[settings.JWT_ALGORITHM],
        options={"require": ["exp", "iat"]},
    )
    if payload.get("type") != TOKEN_TYPE_REFRESH:
        raise WrongTokenTypeError("Invalid token type")
    return RefreshClaims(
        kind="refresh",
        user_id=_user_id_from(payload),
        token_id=str(payload.get("jti", "")),
        issued_at=int(payload["iat"]),
        expires_at=int(payload["exp"]),
    )
