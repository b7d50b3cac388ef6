"""Failed-login counter and time-boxed account lock."""

import logging
from datetime import timedelta

from sqlalchemy import and_, case, literal, null, update
from sqlalchemy.orm import Session

from app.core.config import Settings
from app.core.security import utcnow
from app.models import User

logger = logging.getLogger(__name__)


def register_failed_attempt(db: Session, user: User, settings: Settings) -> None:
    """
    Record a failed credential check in a single UPDATE.

    An expired lock restarts the count at 1. Otherwise the counter is incremented, and
    reaching MAX_LOGIN_ATTEMPTS with no lock set stores lock_until = now + LOCK_TIME.
    Every decision reads the row's current values, so concurrent failures cannot skip
    the lock. An active lock is never extended.
    """
    now = utcnow()
    new_lock = literal(
        now + timedelta(seconds=settings.lock_time_seconds), type_=User.lock_until.type
    )
    lock_expired = and_(User.lock_until.isnot(None), User.lock_until <= now)
    reaches_max = User.login_attempts + 1 >= settings.MAX_LOGIN_ATTEMPTS
    was_locked = user.is_locked

    db.execute(
        update(User)
        .where(User.id == user.id)
        .values(
            login_attempts=case((lock_expired, 1), else_=User.login_attempts + 1),
            lock_until=case(
                (lock_expired, null()),
                (and_(User.lock_until.is_(None), reaches_max), new_lock),
                else_=User.lock_until,
            ),
        )
        .execution_options(synchronize_session=False)
    )
    db.commit()
    db.refresh(user)

    if user.is_locked and not was_locked:
        logger.warning(
            "Account locked after repeated failed logins",
            extra={"user_id": user.id, "attempts": user.login_attempts},
        )


def reset_login_attempts(db: Session, user: User) -> None:
    """Clear the counter and any lock, and stamp last_login."""
    db.execute(
        update(User)
        .where(User.id == user.id)
        .values(login_attempts=0, lock_until=None, last_login=utcnow())
    )
    db.commit()
    db.refresh(user)
