"""Admin user management: list, create and deactivate accounts (no self-registration)."""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import func
from sqlalchemy.orm import Session

from app.api.deps import check_permission, require_role
from app.core.config import Settings, get_settings
from app.core.database import get_db
from app.core.permissions import Action, Resource, Role
from app.models import User
from app.schemas.auth import CreateUserRequest, UserSummary, UsersListResponse, user_summary
from app.services.auth import deactivate_user as deactivate_user_account

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("", response_model=UsersListResponse)
def list_users(
    _admin: Annotated[User, Depends(check_permission(Resource.USERS, Action.READ))],
    db: Annotated[Session, Depends(get_db)],
) -> UsersListResponse:
    """List all users (requires users:read)."""
    users = db.query(User).order_by(User.id).all()
    return UsersListResponse(users=[user_summary(u) for u in users])


@router.post("", response_model=UserSummary, status_code=status.HTTP_201_CREATED)
def create_user(
    body: CreateUserRequest,
    admin: Annotated[User, Depends(check_permission(Resource.USERS, Action.CREATE))],
    db: Annotated[Session, Depends(get_db)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> UserSummary:
    """Create an account with the role's default permissions (requires users:create)."""
    if body.role == Role.SUPER_ADMIN and admin.role != Role.SUPER_ADMIN.value:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Access denied. Only super_admin can create super_admin accounts",
        )
    email = body.email.strip().lower()
    existing = (
        db.query(User)
        .filter(
            (func.lower(User.username) == body.username.lower()) | (User.email == email)
        )
        .first()
    )
    if existing is not None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Username or email already exists.",
        )
    user = User.create_admin(
        body.username,
        email,
        body.password,
        role=body.role,
        rounds=settings.BCRYPT_ROUNDS,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info("User created", extra={"user_id": user.id, "created_by": admin.id})
    return user_summary(user)


@router.post("/{user_id}/deactivate", response_model=UserSummary)
def deactivate_user(
    user_id: int,
    admin: Annotated[User, Depends(require_role(Role.SUPER_ADMIN))],
    db: Annotated[Session, Depends(get_db)],
) -> UserSummary:
    """Soft-disable an account and revoke all of its sessions (super_admin only)."""
    if user_id == admin.id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="You cannot deactivate your own account.",
        )
    user = db.get(User, user_id)
    if user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    deactivate_user_account(db, user)
    logger.info("Deactivation requested", extra={"user_id": user.id, "deactivated_by": admin.id})
    return user_summary(user)
