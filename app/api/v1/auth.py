"""Login, token refresh, logout and session management endpoints."""

import logging
import math
from typing import Annotated

from fastapi import APIRouter, Cookie, Depends, HTTPException, Request, Response, status
from sqlalchemy.orm import Session

from app.api.deps import (
    AuthContext,
    get_current_auth,
    get_current_user,
    get_optional_user,
    track_activity,
)
from app.core.config import Settings, get_settings
from app.core.database import get_db
from app.core.security import utcnow
from app.models import User
from app.schemas.auth import (
    AuthStatusResponse,
    ChangePasswordRequest,
    LoginRequest,
    LoginResponse,
    MessageResponse,
    RefreshResponse,
    SessionInfo,
    SessionsResponse,
    UserSummary,
    user_summary,
)
from app.services import sessions
from app.services.auth import (
    AccountLockedError,
    InvalidCredentialsError,
    TokenRejectedError,
    authenticate,
    change_password,
    issue_tokens,
    refresh_access_token,
)

logger = logging.getLogger(__name__)
router = APIRouter()

REFRESH_COOKIE = "refreshToken"
RefreshCookie = Annotated[str | None, Cookie(alias=REFRESH_COOKIE)]


def _set_refresh_cookie(response: Response, token: str, settings: Settings) -> None:
    response.set_cookie(
        REFRESH_COOKIE,
        token,
        max_age=settings.refresh_token_lifetime,
        httponly=True,
        secure=settings.cookie_secure,
        samesite="strict",
    )


def _clear_refresh_cookie(response: Response, settings: Settings) -> None:
    response.delete_cookie(
        REFRESH_COOKIE,
        httponly=True,
        secure=settings.cookie_secure,
        samesite="strict",
    )


def _client_ip(request: Request) -> str | None:
    return request.client.host if request.client else None


@router.post("/login", response_model=LoginResponse)
def login(
    body: LoginRequest,
    request: Request,
    response: Response,
    db: Annotated[Session, Depends(get_db)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> LoginResponse:
    """
    Authenticate with username and password.

    Returns a JWT access token (send as: Authorization: Bearer <accessToken>) and sets the
    refresh token as an HTTP-only cookie.
    """
    try:
        user = authenticate(db, body.username, body.password, settings)
    except AccountLockedError as e:
        headers = None
        if e.lock_until is not None:
            retry_after = max(1, math.ceil((e.lock_until - utcnow()).total_seconds()))
            headers = {"Retry-After": str(retry_after)}
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=e.message,
            headers=headers,
        ) from e
    except InvalidCredentialsError as e:
        logger.info("Login rejected", extra={"reason": e.reason})
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=e.message,
        ) from e

    tokens = issue_tokens(
        db,
        user,
        settings,
        user_agent=request.headers.get("user-agent", "Unknown"),
        ip_address=_client_ip(request),
    )
    _set_refresh_cookie(response, tokens.refresh_token, settings)
    logger.info("Login succeeded", extra={"user_id": user.id})
    return LoginResponse(
        access_token=tokens.access_token,
        expires_in=settings.JWT_EXPIRE,
        user=user_summary(user),
    )


@router.post("/refresh", response_model=RefreshResponse)
def refresh(
    db: Annotated[Session, Depends(get_db)],
    settings: Annotated[Settings, Depends(get_settings)],
    refresh_token: RefreshCookie = None,
) -> RefreshResponse:
    """Mint a new access token from the refresh-token cookie."""
    if not refresh_token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Refresh token not provided",
        )
    try:
        access_token = refresh_access_token(db, refresh_token, settings)
    except TokenRejectedError as e:
        logger.info("Refresh rejected", extra={"reason": e.reason})
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=e.message,
        ) from e
    return RefreshResponse(access_token=access_token, expires_in=settings.JWT_EXPIRE)


@router.post("/logout", response_model=MessageResponse)
def logout(
    response: Response,
    user: Annotated[User, Depends(get_current_user)],
    db: Annotated[Session, Depends(get_db)],
    settings: Annotated[Settings, Depends(get_settings)],
    refresh_token: RefreshCookie = None,
) -> MessageResponse:
    """Revoke the current session's refresh token. The cookie is cleared either way."""
    if refresh_token:
        sessions.revoke_one(db, user, refresh_token)
    _clear_refresh_cookie(response, settings)
    return MessageResponse(message="Logged out successfully")


@router.post("/logout-all", response_model=MessageResponse)
def logout_all(
    response: Response,
    user: Annotated[User, Depends(get_current_user)],
    db: Annotated[Session, Depends(get_db)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> MessageResponse:
    """Revoke every session of the current user."""
    revoked = sessions.revoke_all(db, user)
    _clear_refresh_cookie(response, settings)
    logger.info("Logged out everywhere", extra={"user_id": user.id, "revoked": revoked})
    return MessageResponse(message="Logged out from all devices successfully")


@router.get("/me", response_model=UserSummary)
def me(
    user: Annotated[User, Depends(track_activity)],
    db: Annotated[Session, Depends(get_db)],
) -> UserSummary:
    """Current user's profile."""
    sessions.prune_expired(db, user)
    return user_summary(user)


@router.get("/status", response_model=AuthStatusResponse)
def auth_status(
    user: Annotated[User | None, Depends(get_optional_user)],
) -> AuthStatusResponse:
    """Report whether the request carries a usable access token; never returns 401."""
    if user is None:
        return AuthStatusResponse(authenticated=False)
    return AuthStatusResponse(authenticated=True, user=user_summary(user))


@router.post("/change-password", response_model=MessageResponse)
def post_change_password(
    body: ChangePasswordRequest,
    response: Response,
    user: Annotated[User, Depends(get_current_user)],
    db: Annotated[Session, Depends(get_db)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> MessageResponse:
    """Change password; every session (this one included) is revoked and must log in again."""
    if not change_password(db, user, body.current_password, body.new_password, settings):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Current password is incorrect",
        )
    _clear_refresh_cookie(response, settings)
    return MessageResponse(message="Password changed successfully. Please log in again.")


@router.get("/sessions", response_model=SessionsResponse)
def get_sessions(
    auth: Annotated[AuthContext, Depends(get_current_auth)],
    db: Annotated[Session, Depends(get_db)],
    refresh_token: RefreshCookie = None,
) -> SessionsResponse:
    """Active sessions of the current user, expired ones pruned first."""
    records = sessions.list_sessions(db, auth.user)
    return SessionsResponse(
        sessions=[
            SessionInfo(
                id=r.id,
                created_at=r.created_at,
                expires_at=r.expires_at,
                user_agent=r.user_agent,
                ip_address=r.ip_address,
                is_current=refresh_token is not None and r.token == refresh_token,
            )
            for r in records
        ]
    )


@router.delete("/sessions/{session_id}", response_model=MessageResponse)
def delete_session(
    session_id: int,
    user: Annotated[User, Depends(get_current_user)],
    db: Annotated[Session, Depends(get_db)],
) -> MessageResponse:
    """Revoke one of the current user's sessions by id."""
    if not sessions.revoke_by_id(db, user, session_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Session not found",
        )
    return MessageResponse(message="Session revoked successfully")
