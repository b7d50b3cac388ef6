"""Request/response schemas for auth, session and user endpoints (camelCase on the wire)."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from app.core.permissions import PermissionMatrix, Role
from app.core.security import (
    EMAIL_PATTERN,
    PASSWORD_MAX_LEN,
    PASSWORD_MIN_LEN,
    USERNAME_MAX_LEN,
    USERNAME_MIN_LEN,
    USERNAME_PATTERN,
)


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class LoginRequest(CamelModel):
    """Credentials for login."""

    username: str = Field(
        ...,
        min_length=USERNAME_MIN_LEN,
        max_length=USERNAME_MAX_LEN,
        description="Username",
    )
    password: str = Field(
        ...,
        min_length=PASSWORD_MIN_LEN,
        max_length=PASSWORD_MAX_LEN,
        description="Password",
    )


class ChangePasswordRequest(CamelModel):
    current_password: str = Field(..., min_length=1, max_length=PASSWORD_MAX_LEN)
    new_password: str = Field(
        ...,
        min_length=PASSWORD_MIN_LEN,
        max_length=PASSWORD_MAX_LEN,
        description="New password (6-128 characters)",
    )


class UserSummary(CamelModel):
    """Public profile of a user; never includes password, sessions or reset fields."""

    id: int
    username: str
    email: str
    role: str
    permissions: PermissionMatrix
    is_active: bool
    last_login: datetime | None = None
    created_at: datetime | None = None


class LoginResponse(CamelModel):
    """Access token returned after successful login; the refresh token travels in a cookie."""

    access_token: str = Field(..., description="JWT access token")
    token_type: str = Field(default="bearer", description="Token type")
    expires_in: str = Field(..., description="Access token lifetime, e.g. '24h'")
    user: UserSummary


class RefreshResponse(CamelModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: str


class MessageResponse(CamelModel):
    message: str


class AuthStatusResponse(CamelModel):
    authenticated: bool
    user: UserSummary | None = None


class SessionInfo(CamelModel):
    id: int
    created_at: datetime
    expires_at: datetime
    user_agent: str | None = None
    ip_address: str | None = None
    is_current: bool = False


class SessionsResponse(CamelModel):
    sessions: list[SessionInfo]


class CreateUserRequest(CamelModel):
    username: str = Field(
        ...,
        min_length=USERNAME_MIN_LEN,
        max_length=USERNAME_MAX_LEN,
        pattern=USERNAME_PATTERN,
    )
    email: str = Field(..., max_length=255, pattern=EMAIL_PATTERN)
    password: str = Field(..., min_length=PASSWORD_MIN_LEN, max_length=PASSWORD_MAX_LEN)
    role: Role = Role.ADMIN


class UsersListResponse(CamelModel):
    """Response for GET /users."""

    users: list[UserSummary]


def user_summary(user: Any) -> UserSummary:
    return UserSummary(
        id=user.id,
        username=user.username,
        email=user.email,
        role=user.role,
        permissions=user.permission_matrix,
        is_active=user.is_active,
        last_login=user.last_login,
        created_at=user.created_at,
    )
