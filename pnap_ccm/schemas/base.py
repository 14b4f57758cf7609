# pnap_ccm/schemas/base.py
"""
Base schemas for API responses
"""

from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime, timezone


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class BaseResponse(BaseModel):
    """
    Standard API response wrapper for operations without a payload
    """
    success: bool = True
    message: str = "Operation successful"
    timestamp: datetime = Field(default_factory=_utcnow)


class ErrorResponse(BaseModel):
    """
    Standard error response
    Used for 4xx and 5xx responses
    """
    success: bool = False
    error: str
    error_code: str
    details: Optional[dict] = None
    timestamp: datetime = Field(default_factory=_utcnow)

    model_config = {
        "json_schema_extra": {
            "example": {
                "success": False,
                "error": "too many active IP blocks found for service default/web",
                "error_code": "CONFLICT",
                "details": None,
                "timestamp": "2026-01-10T10:00:00Z"
            }
        }
    }


class HealthResponse(BaseModel):
    """Health check response"""
    status: str = "healthy"
    service: str = "pnap-ccm"
    version: str = "1.0.0"
    uptime_seconds: Optional[float] = None
    load_balancer: str = "disabled"
    garbage_collector: str = "stopped"
    timestamp: datetime = Field(default_factory=_utcnow)
