"""Pydantic schemas for API requests and responses."""

from server.schemas.upload import ChunkUploadResponse, UploadStatusResponse
from server.schemas.common import ErrorResponse

__all__ = [
    "ChunkUploadResponse",
    "UploadStatusResponse",
    "ErrorResponse"
]
