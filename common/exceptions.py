"""Exception hierarchy shared by the upload client and server."""

from typing import Optional


class ChunkUploadError(Exception):
    """
    Base exception class for all chunked-upload errors.
    """
    pass


class InvalidConfigurationError(ChunkUploadError):
    """
    Raised when a chunk size or retry count is not a positive integer.
    """
    pass


class TransientTransportError(ChunkUploadError):
    """
    Raised when a single chunk transmission attempt fails.

    Covers both network errors and non-success HTTP statuses. Recoverable
    by retrying the same chunk.
    """

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class ChunkDeliveryExhaustedError(ChunkUploadError):
    """
    Raised when every retry attempt for one chunk has failed.
    """

    def __init__(self, chunk_index: int, attempts: int, last_error: Optional[Exception] = None):
        detail = f": {last_error}" if last_error else ""
        super().__init__(
            f"Chunk {chunk_index} failed after {attempts} attempt(s){detail}"
        )
        self.chunk_index = chunk_index
        self.attempts = attempts
        self.last_error = last_error


class ReassemblyError(ChunkUploadError):
    """
    Raised when staged chunks cannot be read or the output artifact cannot be written.
    """

    def __init__(self, upload_id: str, message: str):
        super().__init__(message)
        self.upload_id = upload_id


class UnknownSessionError(ChunkUploadError):
    """
    Raised when an upload session does not exist (never created, expired or already completed).
    """

    def __init__(self, upload_id: str):
        super().__init__(f"Upload not found: {upload_id}")
        self.upload_id = upload_id


class InvalidChunkError(ChunkUploadError):
    """
    Raised when chunk metadata is malformed or the chunk index is out of range.
    """
    pass


class SessionConflictError(ChunkUploadError):
    """
    Raised when a chunk's metadata disagrees with the session it belongs to.
    """
    pass
