"""
Routes Data Transfer Objects (DTOs)

This module contains all Pydantic models used by API routes:
- Request model for the task endpoints
- The {success, data, error} response envelope
- Health check response model
"""

from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class TaskRequest(BaseModel):
    """Request model for the task endpoints."""
    model_config = ConfigDict(populate_by_name=True)

    text: Optional[str] = None
    access_token: Optional[str] = Field(default=None, alias="accessToken")
    timezone: Optional[str] = None


class ApiResponse(BaseModel):
    """Response envelope shared by all task endpoints."""
    success: bool
    data: Optional[Dict[str, Any]] = None
    error: Optional[str] = None


class HealthResponse(BaseModel):
    """Health check response model."""
    status: str
    service: Optional[str] = None
    components: Optional[Dict[str, Any]] = None
