"""Health check schemas."""

from typing import Any, Dict, Optional

from pydantic import BaseModel


class HealthCheckResponse(BaseModel):
    """Health check response schema."""

    status: str
    version: str
    browser: str
    scheduler: Optional[Dict[str, Any]] = None
    cached_entries: int = 0
