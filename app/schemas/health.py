"""Health check response schema."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    status: Literal["ok"] = "ok"
    timestamp: datetime = Field(description="Server time (UTC) when the check ran")
    environment: str = Field(description="APP_ENV of the running service")
    version: str
    database: Literal["connected", "disconnected"] | None = None
