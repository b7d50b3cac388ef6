"""Settings, database sessions, permissions and token/password primitives."""

from app.core.config import Settings, get_settings, settings
from app.core.database import get_db, get_session_factory

__all__ = ["Settings", "get_settings", "settings", "get_db", "get_session_factory"]
