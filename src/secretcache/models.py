"""Pydantic response models for the HTTP API."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


class StatusResponse(BaseModel):
    """Service readiness response."""

    status: str = Field(..., description="Overall service status: ok or starting")
    ready: bool = Field(..., description="Whether the secret cache finished bootstrapping")
    secret_count: int = Field(..., ge=0, description="Number of cached secrets")
    version: str | None = Field(default=None, description="Service version if available")
    timestamp: datetime = Field(..., description="Current server time")
    metrics: dict[str, Any] = Field(default_factory=dict)


class ErrorResponse(BaseModel):
    """Error schema shared by all non-2xx responses."""

    error: str
    message: str
