"""Client-side orchestrator for chunked, resumable uploads."""

import time
import uuid
from enum import Enum
from pathlib import Path
from typing import Callable, Iterable, Optional, Union

import httpx

from client.retry import RetryPolicy
from common.chunking import plan_chunks, total_chunks, validate_chunk_size
from common.constants import (
    CHUNK_FIELD,
    DEFAULT_CHUNK_SIZE_BYTES,
    DEFAULT_MAX_RETRIES,
    DEFAULT_REQUEST_TIMEOUT_SECONDS,
    METADATA_FIELD,
)
from common.exceptions import ChunkDeliveryExhaustedError, TransientTransportError
from common.logging_config import get_logger
from common.protocol import ChunkMetadata, SessionStatus, UploadProgress, UploadResult

logger = get_logger(__name__)

ProgressObserver = Callable[[UploadProgress], None]
ChunkCompleteObserver = Callable[[int, int], None]
ErrorObserver = Callable[[Exception, int], None]


class TransferState(Enum):
    """States of the per-file transfer loop."""
    IDLE = "idle"
    SENDING_CHUNK = "sending_chunk"
    VERIFYING = "verifying"
    RETRYING = "retrying"
    COMPLETED = "completed"
    FAILED = "failed"


def generate_upload_id() -> str:
    """Unique id from wall-clock milliseconds plus random bits."""
    return f"upload-{int(time.time() * 1000)}-{uuid.uuid4().hex[:12]}"


class ChunkUploader:
    """
    Uploads a file as a strictly sequential series of chunk requests.

    Each chunk goes through the RetryPolicy. A chunk that exhausts its
    retries ends the transfer; later chunks are not attempted.
    """

    def __init__(
        self,
        chunk_size: int = DEFAULT_CHUNK_SIZE_BYTES,
        max_retries: int = DEFAULT_MAX_RETRIES,
        on_progress: Optional[ProgressObserver] = None,
        on_chunk_complete: Optional[ChunkCompleteObserver] = None,
        on_error: Optional[ErrorObserver] = None,
        http_client: Optional[httpx.Client] = None,
        timeout: float = DEFAULT_REQUEST_TIMEOUT_SECONDS,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Initialize chunk uploader.

        Args:
            chunk_size: Nominal chunk size in bytes
            max_retries: Attempts per chunk before the transfer fails
            on_progress: Called with an UploadProgress after each delivered chunk
            on_chunk_complete: Called with (chunk_index, total_chunks) after each delivered chunk
            on_error: Called with (error, chunk_index) when a chunk exhausts its retries
            http_client: Pre-built httpx client (tests inject mock transports here)
            timeout: Per-request timeout when the uploader builds its own client
            sleep: Blocking sleep used for backoff

        Raises:
            InvalidConfigurationError: If chunk_size or max_retries is not positive
        """
        self.chunk_size = validate_chunk_size(chunk_size)
        self.on_progress = on_progress
        self.on_chunk_complete = on_chunk_complete
        self.retry_policy = RetryPolicy(
            max_retries=max_retries,
            on_error=on_error,
            on_retry=self._on_retry,
            sleep=sleep,
        )

        self._owns_client = http_client is None
        self.session = http_client or httpx.Client(timeout=timeout)

        self.state = TransferState.IDLE
        self.current_chunk: Optional[int] = None

    @property
    def max_retries(self) -> int:
        return self.retry_policy.max_retries

    def calculate_total_chunks(self, file_size: int) -> int:
        """Number of chunks a file of ``file_size`` bytes will be split into."""
        return total_chunks(file_size, self.chunk_size)

    def upload_file(
        self,
        file_path: Union[str, Path],
        endpoint: str,
        upload_id: Optional[str] = None,
    ) -> UploadResult:
        """
        Upload a whole file, chunk by chunk.

        Args:
            file_path: Path of the file to upload
            endpoint: Chunk upload URL (or path, when the client has a base_url)
            upload_id: Existing upload id; generated when omitted

        Returns:
            UploadResult; success is False if any chunk could not be delivered
        """
        upload_id = upload_id or generate_upload_id()
        return self._transfer(
            file_path,
            endpoint,
            upload_id,
            completed_chunks=(),
            success_message="File uploaded successfully",
        )

    def resume_upload(
        self,
        file_path: Union[str, Path],
        endpoint: str,
        upload_id: str,
        completed_chunk_indices: Iterable[int],
    ) -> UploadResult:
        """
        Continue an interrupted upload, skipping chunks the server already holds.

        The chunk size must match the one used when the upload started,
        otherwise the indices no longer line up.

        Args:
            file_path: Path of the file to upload
            endpoint: Chunk upload URL
            upload_id: Id of the interrupted upload
            completed_chunk_indices: Indices already acknowledged by the server

        Returns:
            UploadResult
        """
        return self._transfer(
            file_path,
            endpoint,
            upload_id,
            completed_chunks=completed_chunk_indices,
            success_message="File upload resumed and completed successfully",
        )

    def get_status(self, status_endpoint: str, upload_id: str) -> Optional[SessionStatus]:
        """
        Fetch the server's view of an upload session.

        Returns:
            SessionStatus, or None if the server does not know the upload

        Raises:
            TransientTransportError: On network failure or an unexpected status
        """
        url = f"{status_endpoint.rstrip('/')}/{upload_id}"
        try:
            response = self.session.get(url)
        except httpx.HTTPError as e:
            raise TransientTransportError(f"Network error: {type(e).__name__}: {e}")

        if response.status_code == 404:
            logger.info(f"Upload {upload_id} not found on server")
            return None
        if not response.is_success:
            raise TransientTransportError(
                f"Status query failed with status {response.status_code}",
                status_code=response.status_code,
            )
        return SessionStatus.from_response(response.json())

    def close(self) -> None:
        """Close the HTTP client if this uploader created it."""
        if self._owns_client:
            self.session.close()

    def __enter__(self) -> 'ChunkUploader':
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def _transfer(
        self,
        file_path: Union[str, Path],
        endpoint: str,
        upload_id: str,
        completed_chunks: Iterable[int],
        success_message: str,
    ) -> UploadResult:
        path = Path(file_path)
        self.state = TransferState.IDLE
        self.current_chunk = None

        try:
            file_size = path.stat().st_size
        except OSError as e:
            self.state = TransferState.FAILED
            logger.error(f"Cannot read {path}: {e}")
            return UploadResult(success=False, upload_id=upload_id, message=f"Cannot read file: {e}")

        if file_size == 0:
            self.state = TransferState.FAILED
            return UploadResult(success=False, upload_id=upload_id, message="Cannot upload an empty file")

        spans = plan_chunks(file_size, self.chunk_size)
        count = len(spans)
        skip = {index for index in completed_chunks if 0 <= index < count}
        uploaded_bytes = sum(spans[index].length for index in skip)

        logger.info(
            f"Starting transfer of {path.name} ({file_size} bytes, {count} chunks, "
            f"{len(skip)} already delivered) [upload_id={upload_id}]"
        )

        try:
            with open(path, 'rb') as f:
                for span in spans:
                    if span.index in skip:
                        continue

                    f.seek(span.start)
                    data = f.read(span.length)
                    metadata = ChunkMetadata(
                        chunk_index=span.index,
                        total_chunks=count,
                        file_name=path.name,
                        file_size=file_size,
                        chunk_size=len(data),
                        upload_id=upload_id,
                    )

                    self.current_chunk = span.index
                    self.retry_policy.execute(
                        lambda: self._send_chunk(endpoint, metadata, data),
                        span.index,
                    )
                    self.state = TransferState.IDLE

                    uploaded_bytes += len(data)
                    self._emit_progress(uploaded_bytes, file_size, span.index, count)

        except ChunkDeliveryExhaustedError as e:
            self.state = TransferState.FAILED
            return UploadResult(success=False, upload_id=upload_id, message=str(e))
        except OSError as e:
            self.state = TransferState.FAILED
            logger.error(f"Error reading {path}: {e}")
            return UploadResult(success=False, upload_id=upload_id, message=f"Cannot read file: {e}")
        except Exception as e:
            self.state = TransferState.FAILED
            logger.error(
                f"Transfer of {path.name} aborted at chunk {self.current_chunk}: {e} [upload_id={upload_id}]",
                exc_info=True
            )
            return UploadResult(success=False, upload_id=upload_id, message=f"Upload failed: {e}")

        self.state = TransferState.COMPLETED
        logger.info(f"Transfer of {path.name} complete [upload_id={upload_id}]")
        return UploadResult(success=True, upload_id=upload_id, message=success_message)

    def _send_chunk(self, endpoint: str, metadata: ChunkMetadata, data: bytes) -> httpx.Response:
        """One transmission attempt; raises TransientTransportError on any failure."""
        self.state = TransferState.SENDING_CHUNK
        try:
            response = self.session.post(
                endpoint,
                files={CHUNK_FIELD: (metadata.file_name, data, 'application/octet-stream')},
                data={METADATA_FIELD: metadata.to_json()},
            )
        except httpx.HTTPError as e:
            raise TransientTransportError(f"Network error: {type(e).__name__}: {e}")

        self.state = TransferState.VERIFYING
        if not response.is_success:
            raise TransientTransportError(
                f"Upload failed with status {response.status_code}",
                status_code=response.status_code,
            )

        logger.debug(
            f"Chunk {metadata.chunk_index + 1}/{metadata.total_chunks} accepted [upload_id={metadata.upload_id}]"
        )
        return response

    def _on_retry(self, attempt_index: int, delay: float) -> None:
        self.state = TransferState.RETRYING

    def _emit_progress(self, uploaded_bytes: int, file_size: int, chunk_index: int, count: int) -> None:
        if self.on_progress:
            self.on_progress(UploadProgress(
                uploaded_bytes=uploaded_bytes,
                total_bytes=file_size,
                percentage=uploaded_bytes * 100 / file_size,
                current_chunk=chunk_index + 1,
                total_chunks=count,
            ))
        if self.on_chunk_complete:
            self.on_chunk_complete(chunk_index, count)
