"""Manages staged chunk files on disk until an upload is reassembled."""

import os
import time
import uuid
from pathlib import Path
from typing import Iterator, List, Set

from common.logging_config import get_logger

logger = get_logger(__name__)

CHUNK_NAME_SEPARATOR = "-chunk-"


class ChunkStore:
    """
    Staging area holding one file per (upload_id, chunk_index).

    Files are named ``<upload_id>-chunk-<index>``. Writing a chunk that is
    already staged replaces it.
    """

    def __init__(self, staging_dir: Path):
        """
        Args:
            staging_dir: Directory for staged chunk files (created on demand)
        """
        self.staging_dir = Path(staging_dir)

    def ensure_directory(self) -> None:
        """Ensure staging directory exists."""
        self.staging_dir.mkdir(parents=True, exist_ok=True)

    def get_chunk_path(self, upload_id: str, chunk_index: int) -> Path:
        """
        Get file path for a staged chunk.

        Args:
            upload_id: Upload session id
            chunk_index: 0-based chunk index

        Returns:
            Path object for chunk file
        """
        return self.staging_dir / f"{upload_id}{CHUNK_NAME_SEPARATOR}{chunk_index}"

    def write_chunk(self, upload_id: str, chunk_index: int, data: bytes) -> str:
        """
        Write chunk data to disk, replacing any previously staged bytes.

        The data lands in a temporary file first and is renamed into place,
        so readers never observe a partially written chunk.

        Returns:
            String path to written file

        Raises:
            OSError: If write operation fails
        """
        self.ensure_directory()
        filepath = self.get_chunk_path(upload_id, chunk_index)
        tmp_path = filepath.with_name(f".{filepath.name}.{uuid.uuid4().hex}.tmp")
        try:
            tmp_path.write_bytes(data)
            os.replace(tmp_path, filepath)
        except OSError:
            tmp_path.unlink(missing_ok=True)
            raise
        return str(filepath)

    def read_chunk(self, upload_id: str, chunk_index: int) -> bytes:
        """
        Read entire staged chunk.

        Raises:
            FileNotFoundError: If chunk does not exist
            OSError: If read operation fails
        """
        return self.get_chunk_path(upload_id, chunk_index).read_bytes()

    def read_chunk_streaming(
        self, upload_id: str, chunk_index: int, piece_size: int = 64 * 1024
    ) -> Iterator[bytes]:
        """
        Stream staged chunk data in pieces.

        Args:
            upload_id: Upload session id
            chunk_index: 0-based chunk index
            piece_size: Size of each piece in bytes (default 64KB)

        Yields:
            Chunk data pieces

        Raises:
            FileNotFoundError: If chunk does not exist
            OSError: If read operation fails
        """
        filepath = self.get_chunk_path(upload_id, chunk_index)
        with open(filepath, 'rb') as f:
            while True:
                piece = f.read(piece_size)
                if not piece:
                    break
                yield piece

    def chunk_exists(self, upload_id: str, chunk_index: int) -> bool:
        return self.get_chunk_path(upload_id, chunk_index).exists()

    def delete_chunk(self, upload_id: str, chunk_index: int) -> bool:
        """
        Delete one staged chunk.

        Returns:
            True if file was deleted, False if it didn't exist
        """
        filepath = self.get_chunk_path(upload_id, chunk_index)
        if filepath.exists():
            filepath.unlink()
            return True
        return False

    def list_upload_chunks(self, upload_id: str) -> List[int]:
        """
        List staged chunk indices for one upload, ascending.
        """
        if not self.staging_dir.exists():
            return []

        indices = []
        for filepath in self.staging_dir.glob(f"{upload_id}{CHUNK_NAME_SEPARATOR}*"):
            parsed = _parse_chunk_name(filepath.name)
            if parsed and parsed[0] == upload_id:
                indices.append(parsed[1])
        return sorted(indices)

    def delete_upload_chunks(self, upload_id: str) -> int:
        """
        Delete every staged chunk of an upload.

        Returns:
            Number of files deleted
        """
        deleted = 0
        for chunk_index in self.list_upload_chunks(upload_id):
            if self.delete_chunk(upload_id, chunk_index):
                deleted += 1
        if deleted:
            logger.debug(f"Deleted {deleted} staged chunks [upload_id={upload_id}]")
        return deleted

    def list_stale_upload_ids(self, max_age_seconds: float) -> Set[str]:
        """
        Upload ids whose newest staged chunk is older than max_age_seconds.

        Used to find chunks left behind by sessions the registry no longer
        knows about (for example after a restart).
        """
        if not self.staging_dir.exists():
            return set()

        newest = {}
        for filepath in self.staging_dir.iterdir():
            parsed = _parse_chunk_name(filepath.name)
            if not parsed:
                continue
            try:
                mtime = filepath.stat().st_mtime
            except FileNotFoundError:
                continue
            upload_id = parsed[0]
            newest[upload_id] = max(mtime, newest.get(upload_id, 0.0))

        cutoff = time.time() - max_age_seconds
        return {upload_id for upload_id, mtime in newest.items() if mtime < cutoff}

    def delete_stale_temp_files(self, max_age_seconds: float) -> int:
        """
        Remove ``.<name>.<hex>.tmp`` files older than max_age_seconds.

        A write interrupted by a crash leaves its temporary file behind.

        Returns:
            Number of files removed
        """
        if not self.staging_dir.is_dir():
            return 0

        cutoff = time.time() - max_age_seconds
        removed = 0
        for filepath in self.staging_dir.glob(".*.tmp"):
            try:
                if filepath.stat().st_mtime < cutoff:
                    filepath.unlink()
                    removed += 1
            except FileNotFoundError:
                continue
        if removed:
            logger.info(f"Removed {removed} stale temporary chunk files")
        return removed


def _parse_chunk_name(name: str):
    """Split ``<upload_id>-chunk-<index>`` into (upload_id, index), or None."""
    upload_id, sep, index = name.rpartition(CHUNK_NAME_SEPARATOR)
    if not sep or not upload_id or not index.isdigit() or name.startswith('.'):
        return None
    return upload_id, int(index)
