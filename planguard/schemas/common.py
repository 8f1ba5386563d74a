"""
Common/shared Pydantic schemas.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class BaseSchema(BaseModel):
    """
    Base schema with common configuration.

    All schemas should inherit from this.
    """

    model_config = ConfigDict(
        from_attributes=True,  # Allow ORM mode (SQLAlchemy objects)
        populate_by_name=True,
        str_strip_whitespace=True,
        validate_assignment=True,
    )


class MessageResponse(BaseModel):
    """Simple message response."""
    message: str


class ErrorResponse(BaseModel):
    """Body of every domain error response."""

    detail: str = Field(..., description="Human readable message")
    code: str = Field(..., description="Machine readable error code")
    context: dict[str, Any] = Field(default_factory=dict, description="Resource, counts or failed precondition")
