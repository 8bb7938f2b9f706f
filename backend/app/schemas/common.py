"""
Klara Backend — Shared Response Schemas
"""

from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class MessageResponse(BaseModel):
    """Plain acknowledgement returned by delete/update endpoints."""
    message: str = Field(description="Human-readable result")


class ErrorResponse(BaseModel):
    """
    Body of every non-2xx response produced by the global exception handlers.

    The handlers in main.py build it directly; routers declare it per status
    through `error_responses` so it shows up in the OpenAPI docs.
    """
    error: str = Field(description="Machine-readable error code, e.g. validation_error")
    message: str = Field(description="User-facing description")
    details: Optional[Dict[str, Any]] = Field(default=None)
    request_id: str = Field(default="", description="Correlation id, also in X-Request-ID")


_ERROR_DESCRIPTIONS = {
    400: "Invalid input",
    401: "Missing or invalid bearer token",
    404: "Resource not found or not owned by the caller",
    500: "Server error",
    503: "AI or memory service unavailable",
}


def error_responses(*status_codes: int) -> Dict[int, Dict[str, Any]]:
    """`responses=` entries documenting ErrorResponse for each status code."""
    return {
        code: {"description": _ERROR_DESCRIPTIONS[code], "model": ErrorResponse}
        for code in status_codes
    }


class HealthResponse(BaseModel):
    """
    status:   healthy | degraded | unhealthy
    database: connected | disconnected
    memory:   configured | not_configured
    """
    status: str
    version: str
    database: str
    memory: str
    uptime_seconds: float
