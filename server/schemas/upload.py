"""Pydantic schemas for chunk upload and status endpoints."""

from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field


class ChunkUploadResponse(BaseModel):
    """Response model for an accepted chunk."""
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    message: str
    upload_id: str = Field(alias="uploadId")
    stored_file_name: Optional[str] = Field(default=None, alias="storedFileName")


class UploadStatusResponse(BaseModel):
    """Response model for an upload status query."""
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    upload_id: str = Field(alias="uploadId")
    total_chunks: int = Field(alias="totalChunks")
    received_chunks: List[int] = Field(alias="receivedChunks")
    progress: float
