"""In-memory registry of in-flight upload sessions."""

import asyncio
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import AsyncIterator, Callable, Dict, List, Optional, Set

from common.logging_config import get_logger

logger = get_logger(__name__)


@dataclass
class UploadSession:
    """State of one upload, from its first chunk to reassembly."""
    upload_id: str
    file_name: str
    file_size: int
    total_chunks: int
    received_chunks: Set[int] = field(default_factory=set)
    created_at: float = 0.0
    last_activity: float = 0.0

    @property
    def is_complete(self) -> bool:
        return len(self.received_chunks) == self.total_chunks

    @property
    def progress(self) -> float:
        """Percentage of chunks received, 0-100."""
        return len(self.received_chunks) * 100 / self.total_chunks


class SessionRegistry:
    """
    Table of upload sessions keyed by upload id.

    Callers serialize all work on one upload id with ``locked(upload_id)``.
    The per-id locks are created and dropped under a registry-wide lock.
    Ids of completed uploads are remembered for a while so late chunks for
    them can be told apart from a brand new upload.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self.lock = asyncio.Lock()
        self._clock = clock
        self._sessions: Dict[str, UploadSession] = {}
        self._locks: Dict[str, asyncio.Lock] = {}
        self._completed: Dict[str, float] = {}

    @asynccontextmanager
    async def locked(self, upload_id: str) -> AsyncIterator[None]:
        """
        Hold the lock for ``upload_id`` for the duration of the block.

        The lock entry is dropped once the id has no session, so the table
        does not grow with finished uploads.
        """
        while True:
            async with self.lock:
                lock = self._locks.setdefault(upload_id, asyncio.Lock())
            await lock.acquire()
            if self._locks.get(upload_id) is lock:
                break
            # entry was replaced while we waited
            lock.release()

        try:
            yield
        finally:
            if upload_id not in self._sessions and self._locks.get(upload_id) is lock:
                del self._locks[upload_id]
            lock.release()

    def get(self, upload_id: str) -> Optional[UploadSession]:
        return self._sessions.get(upload_id)

    def create(self, upload_id: str, file_name: str, file_size: int, total_chunks: int) -> UploadSession:
        """
        Register a new session with an empty received set.

        Must be called while holding ``locked(upload_id)``.
        """
        now = self._clock()
        session = UploadSession(
            upload_id=upload_id,
            file_name=file_name,
            file_size=file_size,
            total_chunks=total_chunks,
            created_at=now,
            last_activity=now,
        )
        self._sessions[upload_id] = session
        logger.info(
            f"Created upload session for {file_name} ({file_size} bytes, {total_chunks} chunks) "
            f"[upload_id={upload_id}]"
        )
        return session

    def mark_received(self, session: UploadSession, chunk_index: int) -> None:
        """Record a chunk arrival and refresh the session's activity time."""
        session.received_chunks.add(chunk_index)
        session.last_activity = self._clock()

    def remove(self, upload_id: str, completed: bool = False) -> Optional[UploadSession]:
        """
        Drop a session.

        Args:
            upload_id: Session to drop
            completed: Remember the id as a finished upload

        Returns:
            The removed session, or None if it was not registered
        """
        session = self._sessions.pop(upload_id, None)
        if completed:
            self._completed[upload_id] = self._clock()
        return session

    def is_completed(self, upload_id: str) -> bool:
        """True if the id belongs to an upload that finished recently."""
        return upload_id in self._completed

    def idle_session_ids(self, idle_timeout: float) -> List[str]:
        """Ids of sessions with no chunk activity for more than idle_timeout seconds."""
        cutoff = self._clock() - idle_timeout
        return [
            upload_id for upload_id, session in self._sessions.items()
            if session.last_activity < cutoff
        ]

    def is_idle(self, upload_id: str, idle_timeout: float) -> bool:
        session = self._sessions.get(upload_id)
        return session is not None and session.last_activity < self._clock() - idle_timeout

    def expire_completed(self, max_age: float) -> int:
        """
        Forget completed upload ids older than max_age seconds.

        Returns:
            Number of ids forgotten
        """
        cutoff = self._clock() - max_age
        expired = [upload_id for upload_id, at in self._completed.items() if at < cutoff]
        for upload_id in expired:
            del self._completed[upload_id]
        return len(expired)

    def session_ids(self) -> List[str]:
        return list(self._sessions)

    def __contains__(self, upload_id: str) -> bool:
        return upload_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)
