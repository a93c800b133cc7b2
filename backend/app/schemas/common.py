"""
Mailroom Backend — Shared Response Schemas
============================================

What:  The uniform response envelope and the camelCase base model.
Why:   Every endpoint answers `{"success": true, "data": ...}` or
       `{"success": false, "error": ...}` so clients parse one shape.
How:   `ApiModel` maps snake_case attributes to camelCase JSON keys and
       accepts either form on input.
"""

from datetime import datetime
from typing import Generic, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

T = TypeVar("T")


class ApiModel(BaseModel):
    """Base for request/response bodies: camelCase on the wire, ORM-readable."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class Envelope(ApiModel, Generic[T]):
    """
    Success envelope.

    Example:
        {"success": true, "data": {"id": "65a4...", "name": "welcome"}}
    """

    success: bool = True
    data: T
    message: Optional[str] = None


class MessageEnvelope(ApiModel):
    """Success envelope for operations with nothing to return but a message."""

    success: bool = True
    message: str


class ErrorResponse(BaseModel):
    """
    Error envelope used by every exception handler.

    Plain BaseModel: the handlers emit snake_case keys, so no camelCase aliases.

    Fields:
        error: Human-readable description, safe to show to users
        code: Machine-readable error code ("validation_error", "not_found"...)
        details: Extra context for validation errors (e.g. the offending field)
        request_id: Correlation id for finding the request in server logs
    """

    success: bool = False
    error: str
    code: str
    details: Optional[dict] = None
    request_id: Optional[str] = None


class AttachmentInfo(ApiModel):
    """Public view of a stored file; `url` points at the static mount."""

    filename: str
    mimetype: str
    url: str


class HealthResponse(ApiModel):
    status: str = Field(description="Overall service status: healthy, unhealthy")
    version: str
    database: str = Field(description="Database connectivity: connected, disconnected")
    uptime_seconds: float
    checked_at: datetime
