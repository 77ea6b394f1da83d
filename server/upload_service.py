"""Business logic for receiving chunks and reporting upload status."""

import asyncio
import functools
import re
from dataclasses import dataclass
from typing import Optional

from common.constants import MAX_FILE_NAME_BYTES
from common.exceptions import (
    InvalidChunkError,
    SessionConflictError,
    UnknownSessionError,
)
from common.logging_config import get_logger
from common.protocol import SessionStatus
from server.chunk_storage import ChunkStore
from server.reassembly import ReassemblyEngine
from server.session_registry import SessionRegistry

logger = get_logger(__name__)

UPLOAD_ID_PATTERN = re.compile(r'[A-Za-z0-9._-]{1,128}')
FORBIDDEN_NAME_CHARACTERS = ('\0', '/', '\\')


@dataclass(frozen=True)
class ChunkReceipt:
    """Outcome of accepting one chunk."""
    completed: bool
    stored_file_name: Optional[str] = None


class UploadService:
    """
    Accepts chunks into the registry and staging area and triggers reassembly.

    Everything done for one upload id (session lookup, staging, completeness
    check, reassembly, purge) runs under that id's registry lock, so a
    session is reassembled at most once.
    """

    def __init__(
        self,
        registry: SessionRegistry,
        chunk_store: ChunkStore,
        reassembly_engine: ReassemblyEngine,
    ):
        self.registry = registry
        self.chunk_store = chunk_store
        self.reassembly_engine = reassembly_engine

    async def receive_chunk(
        self,
        upload_id: str,
        chunk_index: int,
        total_chunks: int,
        file_name: str,
        file_size: int,
        chunk_bytes: bytes,
    ) -> ChunkReceipt:
        """
        Stage one chunk and reassemble the file if it was the last one missing.

        Re-delivering a chunk index replaces the staged bytes and leaves the
        received set unchanged.

        Args:
            upload_id: Upload session id (creates the session if unseen)
            chunk_index: 0-based index of this chunk
            total_chunks: Expected number of chunks
            file_name: Original file name
            file_size: Original file size in bytes
            chunk_bytes: Raw chunk content

        Returns:
            ChunkReceipt; completed is True once the file has been reassembled

        Raises:
            InvalidChunkError: If the arguments are malformed
            SessionConflictError: If they disagree with the existing session
            UnknownSessionError: If the upload already completed
            ReassemblyError: If reassembly fails (session and chunks are kept)
        """
        self._validate_chunk(upload_id, chunk_index, total_chunks, file_name, file_size, chunk_bytes)

        async with self.registry.locked(upload_id):
            session = self.registry.get(upload_id)
            created = False
            if session is None:
                if self.registry.is_completed(upload_id):
                    logger.warning(f"Chunk {chunk_index} arrived for completed upload [upload_id={upload_id}]")
                    raise UnknownSessionError(upload_id)
                session = self.registry.create(upload_id, file_name, file_size, total_chunks)
                created = True
            elif session.total_chunks != total_chunks or session.file_size != file_size:
                raise SessionConflictError(
                    f"Chunk metadata ({total_chunks} chunks, {file_size} bytes) does not match "
                    f"upload {upload_id} ({session.total_chunks} chunks, {session.file_size} bytes)"
                )

            try:
                await self._run_blocking(self.chunk_store.write_chunk, upload_id, chunk_index, chunk_bytes)
            except OSError:
                if created:
                    # nothing staged yet, so the session never really started
                    self.registry.remove(upload_id)
                logger.error(
                    f"Failed to stage chunk {chunk_index} [upload_id={upload_id}]", exc_info=True
                )
                raise
            self.registry.mark_received(session, chunk_index)

            logger.debug(
                f"Chunk {chunk_index + 1}/{total_chunks} staged ({len(chunk_bytes)} bytes) "
                f"[upload_id={upload_id}]"
            )

            if not session.is_complete:
                return ChunkReceipt(completed=False)

            logger.info(f"All {total_chunks} chunks received, reassembling [upload_id={upload_id}]")
            final_path = await self._run_blocking(self.reassembly_engine.reassemble, session)

            self.registry.remove(upload_id, completed=True)
            return ChunkReceipt(completed=True, stored_file_name=final_path.name)

    def get_status(self, upload_id: str) -> SessionStatus:
        """
        Snapshot of an in-flight session.

        Raises:
            UnknownSessionError: If no such session is registered
        """
        session = self.registry.get(upload_id)
        if session is None:
            raise UnknownSessionError(upload_id)

        return SessionStatus(
            upload_id=upload_id,
            total_chunks=session.total_chunks,
            received_chunks=sorted(session.received_chunks),
            progress=session.progress,
        )

    async def expire_idle_sessions(self, idle_timeout: float) -> int:
        """
        Drop sessions idle for longer than idle_timeout seconds with their staged chunks.

        Also deletes staged chunks that belong to no session and have not
        been touched for idle_timeout seconds, removes temporary and partial
        files left by interrupted writes, and forgets old completed ids.

        Returns:
            Number of sessions expired
        """
        expired = 0
        for upload_id in self.registry.idle_session_ids(idle_timeout):
            async with self.registry.locked(upload_id):
                # activity may have resumed while waiting for the lock
                if not self.registry.is_idle(upload_id, idle_timeout):
                    continue
                session = self.registry.remove(upload_id)
                deleted = await self._run_blocking(self.chunk_store.delete_upload_chunks, upload_id)
                expired += 1
                logger.info(
                    f"Expired idle upload session for {session.file_name}: "
                    f"{len(session.received_chunks)}/{session.total_chunks} chunks received, "
                    f"{deleted} staged chunks deleted [upload_id={upload_id}]"
                )

        stale_ids = await self._run_blocking(self.chunk_store.list_stale_upload_ids, idle_timeout)
        for upload_id in stale_ids:
            async with self.registry.locked(upload_id):
                if upload_id in self.registry:
                    continue
                deleted = await self._run_blocking(self.chunk_store.delete_upload_chunks, upload_id)
                logger.info(f"Deleted {deleted} orphaned staged chunks [upload_id={upload_id}]")

        await self._run_blocking(self.chunk_store.delete_stale_temp_files, idle_timeout)
        await self._run_blocking(self.reassembly_engine.delete_stale_partials, idle_timeout)

        self.registry.expire_completed(idle_timeout)
        return expired

    @staticmethod
    def _validate_chunk(
        upload_id: str,
        chunk_index: int,
        total_chunks: int,
        file_name: str,
        file_size: int,
        chunk_bytes: bytes,
    ) -> None:
        if not isinstance(upload_id, str) or not UPLOAD_ID_PATTERN.fullmatch(upload_id):
            raise InvalidChunkError(
                "uploadId must be 1-128 characters of letters, digits, '.', '_' or '-'"
            )
        if not isinstance(file_name, str) or not file_name:
            raise InvalidChunkError("fileName must not be empty")
        if any(ch in file_name for ch in FORBIDDEN_NAME_CHARACTERS):
            raise InvalidChunkError("fileName must not contain path separators or NUL")
        if len(file_name.encode('utf-8', errors='replace')) > MAX_FILE_NAME_BYTES:
            raise InvalidChunkError(f"fileName must be at most {MAX_FILE_NAME_BYTES} bytes")
        if file_size < 1:
            raise InvalidChunkError("fileSize must be at least 1")
        if total_chunks < 1:
            raise InvalidChunkError("totalChunks must be at least 1")
        if not 0 <= chunk_index < total_chunks:
            raise InvalidChunkError(
                f"chunkIndex {chunk_index} out of range for {total_chunks} chunks"
            )
        if not chunk_bytes:
            raise InvalidChunkError("Chunk is empty")

    @staticmethod
    async def _run_blocking(func, *args):
        """Run blocking disk I/O in the default executor."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, functools.partial(func, *args))
