"""ORM models for admin users and their refresh-token sessions."""

from datetime import datetime, timedelta

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import relationship

from app.core.permissions import PermissionMatrix, Role, default_permissions
from app.core.security import as_utc, hash_password, utcnow
from app.models.base import Base

PermissionsType = JSON().with_variant(JSONB(), "postgresql")


class User(Base):
    """
    Admin account for JWT authentication and per-resource permissions.

    role: 'admin' or 'super_admin'. Accounts are deactivated via is_active, never deleted.
    """

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    username = Column(String(50), nullable=False, unique=True, index=True)
    email = Column(String(255), nullable=False, unique=True, index=True)
    password_hash = Column(String(255), nullable=False)
    password_changed_at = Column(DateTime(timezone=True), nullable=True)
    role = Column(String(32), nullable=False, default=Role.ADMIN.value)
    permissions = Column(PermissionsType, nullable=False, default=dict)
    is_active = Column(Boolean, nullable=False, default=True, index=True)
    login_attempts = Column(Integer, nullable=False, default=0)
    lock_until = Column(DateTime(timezone=True), nullable=True, index=True)
    last_login = Column(DateTime(timezone=True), nullable=True)
    reset_password_token = Column(String(255), nullable=True)
    reset_password_expire = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        server_default=func.now(),
    )
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        onupdate=utcnow,
        server_default=func.now(),
    )

    refresh_tokens = relationship(
        "RefreshToken",
        back_populates="user",
        cascade="all, delete-orphan",
        order_by="RefreshToken.id",
    )

    @property
    def is_locked(self) -> bool:
        """True iff lock_until is set and still in the future. Evaluated on every access."""
        lock_until = as_utc(self.lock_until)
        return lock_until is not None and lock_until > utcnow()

    @property
    def permission_matrix(self) -> PermissionMatrix:
        return PermissionMatrix.from_stored(self.permissions)

    def set_password(self, plain_password: str, rounds: int | None = None) -> None:
        """
        Replace the password hash.

        password_changed_at is backdated by one second so tokens minted in the same
        instant as the change are not rejected by clock skew between writers.
        """
        self.password_hash = hash_password(plain_password, rounds=rounds)
        self.password_changed_at = utcnow() - timedelta(seconds=1)

    def changed_password_after(self, issued_at: int) -> bool:
        """True if the password changed after a token with this iat (epoch seconds) was issued."""
        changed_at = as_utc(self.password_changed_at)
        if changed_at is None:
            return False
        return issued_at < int(changed_at.timestamp())

    @classmethod
    def create_admin(
        cls,
        username: str,
        email: str,
        password: str,
        role: Role = Role.ADMIN,
        rounds: int | None = None,
    ) -> "User":
        """Build a new active user with the role's default permission matrix."""
        user = cls(
            username=username,
            email=email.strip().lower(),
            role=role.value,
            permissions=default_permissions(role),
            is_active=True,
            login_attempts=0,
        )
        user.set_password(password, rounds=rounds)
        return user


class RefreshToken(Base):
    """One issued refresh token (an active session) for a user."""

    __tablename__ = "refresh_tokens"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    token = Column(Text, nullable=False)
    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        server_default=func.now(),
    )
    expires_at = Column(DateTime(timezone=True), nullable=False)
    user_agent = Column(String(512), nullable=True)
    ip_address = Column(String(64), nullable=True)

    user = relationship("User", back_populates="refresh_tokens")

    def is_expired(self, now: datetime | None = None) -> bool:
        return as_utc(self.expires_at) <= (now or utcnow())
