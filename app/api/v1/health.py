"""Health check endpoint with database connectivity check."""

from typing import Annotated

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app import __version__
from app.core.config import Settings, get_settings
from app.core.database import check_db_connected, get_db
from app.core.security import utcnow
from app.schemas.health import HealthResponse

router = APIRouter()


@router.get("", response_model=HealthResponse)
def get_health(
    db: Annotated[Session, Depends(get_db)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> HealthResponse:
    """Service status for load balancers and monitoring."""
    return HealthResponse(
        timestamp=utcnow(),
        environment=settings.APP_ENV,
        version=__version__,
        database="connected" if check_db_connected(db) else "disconnected",
    )
