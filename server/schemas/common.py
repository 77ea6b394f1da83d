"""Common Pydantic schemas shared across endpoints."""

from pydantic import BaseModel


class ErrorResponse(BaseModel):
    """Standard error response model."""
    success: bool = False
    message: str
    code: str
