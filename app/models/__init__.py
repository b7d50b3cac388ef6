"""SQLAlchemy ORM models."""

from app.models.base import Base
from app.models.user import RefreshToken, User

__all__ = ["Base", "RefreshToken", "User"]
