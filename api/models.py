"""
API response models for Beer Diary's JSON endpoints.

The site itself is server-rendered HTML (web/routes.py). The JSON surface is
the health check plus the error envelope returned for /api/ paths. These
Pydantic v2 models are kept apart from the dataclasses in auth/models.py and
diary/models.py, which own the internal domain representation.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str]
