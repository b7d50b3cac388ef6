"""Shared builders for tests: settings, in-memory SQLite engine, users."""

from collections.abc import Generator
from datetime import timedelta

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.config import Settings
from app.core.permissions import Role
from app.core.security import utcnow
from app.models import Base, User

TEST_PASSWORD = "correct-horse"


def make_settings(**overrides: object) -> Settings:
    """Settings independent of the environment, with cheap bcrypt rounds."""
    values: dict[str, object] = {
        "APP_ENV": "dev",
        "DATABASE_URL": "sqlite://",
        "JWT_SECRET": "test-access-secret",
        "JWT_REFRESH_SECRET": "test-refresh-secret",
        "BCRYPT_ROUNDS": 4,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


def make_engine() -> Engine:
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    return engine


def make_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


def db_override(factory: sessionmaker):
    def _get_db() -> Generator[Session, None, None]:
        db = factory()
        try:
            yield db
        finally:
            db.close()

    return _get_db


def make_user(
    db: Session,
    username: str = "admin",
    password: str = TEST_PASSWORD,
    role: Role = Role.ADMIN,
    **fields: object,
) -> User:
    """Persist an active user whose password was set well in the past."""
    user = User.create_admin(username, f"{username}@example.com", password, role=role, rounds=4)
    user.password_changed_at = utcnow() - timedelta(days=1)
    for name, value in fields.items():
        setattr(user, name, value)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user
