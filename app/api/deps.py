"""Request gates: access-token authentication, optional authentication, permission and role checks."""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Annotated

from fastapi import BackgroundTasks, Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from app.core.config import Settings, get_settings
from app.core.database import get_db, get_session_factory
from app.core.permissions import Action, Resource, Role
from app.core.security import utcnow
from app.models import User
from app.services.auth import TokenRejectedError, resolve_access_token

logger = logging.getLogger(__name__)
security = HTTPBearer(auto_error=False)

BEARER_HEADERS = {"WWW-Authenticate": "Bearer"}


@dataclass
class AuthContext:
    """Authenticated user plus the raw access token that proved it."""

    user: User
    token: str


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers=BEARER_HEADERS,
    )


def get_current_auth(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
    db: Annotated[Session, Depends(get_db)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> AuthContext:
    """Dependency: require a valid Bearer access token. Raises 401 if missing or rejected."""
    if credentials is None or not credentials.credentials:
        logger.info("Auth rejected", extra={"reason": "no_token"})
        raise _unauthorized("Access denied. No token provided.")

    token = credentials.credentials
    try:
        user = resolve_access_token(db, token, settings)
    except TokenRejectedError as e:
        logger.info("Auth rejected", extra={"reason": e.reason})
        raise _unauthorized(e.message) from e
    except SQLAlchemyError as e:
        logger.exception("Auth middleware storage error")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Authentication service error",
        ) from e
    return AuthContext(user=user, token=token)


def get_current_user(
    auth: Annotated[AuthContext, Depends(get_current_auth)],
) -> User:
    """Dependency: the authenticated user."""
    return auth.user


def get_optional_user(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
    db: Annotated[Session, Depends(get_db)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> User | None:
    """Dependency: same checks as get_current_auth, but any failure yields None instead of 401."""
    if credentials is None or not credentials.credentials:
        return None
    try:
        return resolve_access_token(db, credentials.credentials, settings)
    except TokenRejectedError as e:
        logger.debug("Optional auth ignored token", extra={"reason": e.reason})
    except SQLAlchemyError:
        logger.exception("Optional auth storage error; continuing unauthenticated")
    return None


def has_permission(user: User | None, resource: Resource, action: Action) -> bool:
    """True iff user is present and permissions[resource][action] is granted."""
    if user is None:
        return False
    return user.permission_matrix.allows(resource, action)


def check_permission(resource: Resource, action: Action) -> Callable[..., User]:
    """Build a dependency that requires the authenticated user to hold resource:action (403 otherwise)."""

    def _check(user: Annotated[User, Depends(get_current_user)]) -> User:
        if not has_permission(user, resource, action):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Access denied. Missing permission: {resource.value}:{action.value}",
            )
        return user

    return _check


def require_role(*roles: Role) -> Callable[..., User]:
    """Build a dependency that requires the authenticated user's role to be one of roles."""
    allowed = {r.value for r in roles}

    def _check(user: Annotated[User, Depends(get_current_user)]) -> User:
        if user.role not in allowed:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Access denied. Required role: " + " or ".join(r.value for r in roles),
            )
        return user

    return _check


def _touch_last_activity(session_factory: sessionmaker, user_id: int) -> None:
    db = session_factory()
    try:
        db.execute(update(User).where(User.id == user_id).values(last_login=utcnow()))
        db.commit()
    except SQLAlchemyError as e:
        logger.warning("Failed to update user activity: %s", e, extra={"user_id": user_id})
    finally:
        db.close()


def track_activity(
    user: Annotated[User, Depends(get_current_user)],
    background_tasks: BackgroundTasks,
    session_factory: Annotated[sessionmaker, Depends(get_session_factory)],
) -> User:
    """Dependency: schedule a last-activity update after the response; never fails the request."""
    background_tasks.add_task(_touch_last_activity, session_factory, user.id)
    return user
