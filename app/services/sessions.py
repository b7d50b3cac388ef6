"""Per-user registry of active refresh-token sessions, capped to the most recent entries."""

import logging
from datetime import datetime

from sqlalchemy.orm import Session

from app.core.security import utcnow
from app.models import RefreshToken, User

logger = logging.getLogger(__name__)

DEFAULT_MAX_SESSIONS = 5


def add_session(
    db: Session,
    user: User,
    token: str,
    expires_at: datetime,
    user_agent: str | None,
    ip_address: str | None,
    max_sessions: int = DEFAULT_MAX_SESSIONS,
) -> RefreshToken:
    """
    Record a newly issued refresh token and commit.

    When the list grows past max_sessions the oldest records are evicted (FIFO).
    """
    record = RefreshToken(
        token=token,
        created_at=utcnow(),
        expires_at=expires_at,
        user_agent=(user_agent or "Unknown")[:512],
        ip_address=(ip_address or "")[:64] or None,
    )
    user.refresh_tokens.append(record)
    evicted = 0
    while len(user.refresh_tokens) > max_sessions:
        user.refresh_tokens.pop(0)
        evicted += 1
    db.commit()
    if evicted:
        logger.info(
            "Evicted oldest sessions over cap",
            extra={"user_id": user.id, "evicted": evicted},
        )
    return record


def has_valid_session(user: User, token: str, now: datetime | None = None) -> bool:
    """True iff some record matches token and has not expired."""
    now = now or utcnow()
    return any(
        record.token == token and not record.is_expired(now)
        for record in user.refresh_tokens
    )


def revoke_one(db: Session, user: User, token: str) -> int:
    """Remove every record whose token equals token. Returns the number removed."""
    matches = [r for r in user.refresh_tokens if r.token == token]
    for record in matches:
        user.refresh_tokens.remove(record)
    db.commit()
    return len(matches)


def revoke_all(db: Session, user: User) -> int:
    """Remove all of the user's sessions. Calling it on an empty list is a no-op."""
    count = len(user.refresh_tokens)
    user.refresh_tokens.clear()
    db.commit()
    return count


def revoke_by_id(db: Session, user: User, session_id: int) -> bool:
    """Remove the user's session with this id. Returns False if the user has no such session."""
    record = next((r for r in user.refresh_tokens if r.id == session_id), None)
    if record is None:
        return False
    user.refresh_tokens.remove(record)
    db.commit()
    return True


def prune_expired(db: Session, user: User, now: datetime | None = None) -> int:
    """Drop expired records. Commits only when something was removed."""
    now = now or utcnow()
    expired = [r for r in user.refresh_tokens if r.is_expired(now)]
    for record in expired:
        user.refresh_tokens.remove(record)
    if expired:
        db.commit()
    return len(expired)


def list_sessions(db: Session, user: User) -> list[RefreshToken]:
    """Prune expired sessions, then return the remaining ones oldest first."""
    prune_expired(db, user)
    return list(user.refresh_tokens)
