"""Common schemas used across the API."""

from typing import Any

from pydantic import BaseModel


class SuccessResponse(BaseModel):
    """Generic success response."""

    success: bool = True
    message: str | None = None


class ErrorResponse(BaseModel):
    """Generic error response."""

    success: bool = False
    error: str
    details: dict[str, Any] | None = None
    code: str | None = None


class ValidationIssueSchema(BaseModel):
    code: str
    message: str
    node_id: str | None = None
    edge_id: str | None = None


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "healthy"
    version: str


class RootResponse(BaseModel):
    """Root endpoint response."""

    name: str
    version: str
    status: str
