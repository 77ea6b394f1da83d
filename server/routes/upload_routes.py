"""Chunk upload and upload status API routes."""

from fastapi import APIRouter, Depends, File, Form, Request, UploadFile

from common.constants import DEFAULT_STATUS_PATH, DEFAULT_UPLOAD_PATH
from common.exceptions import InvalidChunkError
from common.protocol import ChunkMetadata
from server.schemas.common import ErrorResponse
from server.schemas.upload import ChunkUploadResponse, UploadStatusResponse
from server.upload_service import UploadService

router = APIRouter(tags=["Uploads"])


def get_upload_service(request: Request) -> UploadService:
    """Upload service of the running application."""
    return request.app.state.upload_service


@router.post(
    DEFAULT_UPLOAD_PATH,
    response_model=ChunkUploadResponse,
    response_model_exclude_none=True,
    responses={
        400: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
    },
)
async def upload_chunk(
    chunk: UploadFile = File(...),
    metadata: str = Form(...),
    service: UploadService = Depends(get_upload_service)
):
    """
    Receive one chunk of a file.

    Parameters:
        - chunk: Raw chunk bytes (multipart/form-data file field)
        - metadata: JSON object with chunkIndex, totalChunks, fileName,
          fileSize, chunkSize and uploadId

    Returns:
        - success, message and uploadId; on the final chunk the message
          reports completion and storedFileName names the stored file

    Raises:
        - 400: Malformed metadata or chunk
        - 404: Upload already completed
        - 409: Metadata disagrees with the existing upload
        - 500: Reassembly failed (upload can be retried)
    """
    chunk_metadata = ChunkMetadata.from_json(metadata)
    data = await chunk.read()

    if len(data) != chunk_metadata.chunk_size:
        raise InvalidChunkError(
            f"Chunk size mismatch: metadata says {chunk_metadata.chunk_size} bytes, "
            f"received {len(data)}"
        )

    receipt = await service.receive_chunk(
        upload_id=chunk_metadata.upload_id,
        chunk_index=chunk_metadata.chunk_index,
        total_chunks=chunk_metadata.total_chunks,
        file_name=chunk_metadata.file_name,
        file_size=chunk_metadata.file_size,
        chunk_bytes=data,
    )

    if receipt.completed:
        return ChunkUploadResponse(
            message="File upload completed",
            upload_id=chunk_metadata.upload_id,
            stored_file_name=receipt.stored_file_name,
        )

    return ChunkUploadResponse(
        message=f"Chunk {chunk_metadata.chunk_index + 1}/{chunk_metadata.total_chunks} received",
        upload_id=chunk_metadata.upload_id,
    )


@router.get(
    DEFAULT_STATUS_PATH + "/{upload_id}",
    response_model=UploadStatusResponse,
    responses={404: {"model": ErrorResponse}},
)
async def upload_status(
    upload_id: str,
    service: UploadService = Depends(get_upload_service)
):
    """
    Report which chunks of an upload have arrived, for resuming.

    Raises:
        - 404: Upload not found (never started, expired or already completed)
    """
    status = service.get_status(upload_id)
    return UploadStatusResponse(
        upload_id=status.upload_id,
        total_chunks=status.total_chunks,
        received_chunks=status.received_chunks,
        progress=status.progress,
    )
