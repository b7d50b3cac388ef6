"""Pydantic request/response schemas."""

from app.schemas.auth import (
    AuthStatusResponse,
    ChangePasswordRequest,
    CreateUserRequest,
    LoginRequest,
    LoginResponse,
    MessageResponse,
    RefreshResponse,
    SessionInfo,
    SessionsResponse,
    UserSummary,
    UsersListResponse,
)
from app.schemas.health import HealthResponse

__all__ = [
    "AuthStatusResponse",
    "ChangePasswordRequest",
    "CreateUserRequest",
    "HealthResponse",
    "LoginRequest",
    "LoginResponse",
    "MessageResponse",
    "RefreshResponse",
    "SessionInfo",
    "SessionsResponse",
    "UserSummary",
    "UsersListResponse",
]
