"""Concatenates the staged chunks of a completed session into the final file."""

import hashlib
import os
import time
from pathlib import Path
from typing import Callable, Optional

from common.constants import MAX_STORED_EXTENSION_LENGTH, STORED_NAME_HASH_LENGTH
from common.exceptions import ReassemblyError
from common.logging_config import get_logger
from server.chunk_storage import ChunkStore
from server.session_registry import UploadSession

logger = get_logger(__name__)

MAX_NAME_ATTEMPTS = 100
PARTIAL_SUFFIX = ".partial"


def digest_name(file_name: str, millis: int) -> str:
    """
    Stored name for ``file_name`` at ``millis``: sha256 prefix plus extension.

    Extensions longer than MAX_STORED_EXTENSION_LENGTH are dropped so the
    result always fits in one path component.
    """
    digest = hashlib.sha256(f"{file_name}{millis}".encode('utf-8')).hexdigest()
    extension = os.path.splitext(file_name)[1]
    if len(extension) > MAX_STORED_EXTENSION_LENGTH:
        extension = ""
    return digest[:STORED_NAME_HASH_LENGTH] + extension


class ReassemblyEngine:
    """
    Writes chunks 0..total_chunks-1 of a session, in order, to one output file.

    The output is named ``<hash><ext>``: the first 16 hex characters of
    sha256(original name + current time in ms), followed by the original
    extension. The original name is not kept in the stored file name.
    """

    def __init__(
        self,
        chunk_store: ChunkStore,
        output_dir: Path,
        clock: Callable[[], float] = time.time,
    ):
        """
        Args:
            chunk_store: Staging area to read chunks from
            output_dir: Directory for reassembled files (created on demand)
            clock: Wall-clock source used for naming
        """
        self.chunk_store = chunk_store
        self.output_dir = Path(output_dir)
        self._clock = clock

    def reassemble(self, session: UploadSession) -> Path:
        """
        Build the final file for a complete session and purge its staged chunks.

        Args:
            session: Session whose chunks are all staged

        Returns:
            Path of the written file

        Raises:
            ReassemblyError: If a chunk cannot be read, the output cannot be
                written, or the result does not match the declared file size.
                Staged chunks are left in place.
        """
        upload_id = session.upload_id
        partial_path = self.output_dir / f".{upload_id}{PARTIAL_SUFFIX}"
        final_path = None

        try:
            self.output_dir.mkdir(parents=True, exist_ok=True)
            final_path = self._reserve_output(session)

            written = 0
            with open(partial_path, 'wb') as out:
                for chunk_index in range(session.total_chunks):
                    for piece in self.chunk_store.read_chunk_streaming(upload_id, chunk_index):
                        out.write(piece)
                        written += len(piece)

            if written != session.file_size:
                raise ReassemblyError(
                    upload_id,
                    f"Reassembled {written} bytes but expected {session.file_size}",
                )

            os.replace(partial_path, final_path)
        except ReassemblyError:
            self._discard(partial_path, final_path)
            logger.error(f"Reassembly failed for {session.file_name} [upload_id={upload_id}]")
            raise
        except OSError as e:
            self._discard(partial_path, final_path)
            logger.error(
                f"Reassembly failed for {session.file_name}: {e} [upload_id={upload_id}]",
                exc_info=True
            )
            raise ReassemblyError(upload_id, f"Failed to reassemble upload: {e}") from e

        self.chunk_store.delete_upload_chunks(upload_id)

        logger.info(f"File merged successfully: {final_path}")
        logger.info(f"Original: {session.file_name} -> Stored: {final_path.name} [upload_id={upload_id}]")
        return final_path

    def delete_stale_partials(self, max_age_seconds: float) -> int:
        """
        Remove ``.<upload_id>.partial`` files untouched for max_age_seconds.

        They are left behind when the process dies mid-merge.

        Returns:
            Number of files removed
        """
        if not self.output_dir.is_dir():
            return 0

        cutoff = time.time() - max_age_seconds
        removed = 0
        for path in self.output_dir.glob(f".*{PARTIAL_SUFFIX}"):
            try:
                if path.stat().st_mtime < cutoff:
                    path.unlink()
                    removed += 1
            except FileNotFoundError:
                continue
        if removed:
            logger.info(f"Removed {removed} stale partial output files from {self.output_dir}")
        return removed

    def _reserve_output(self, session: UploadSession) -> Path:
        """
        Claim an unused output name by creating it empty.

        Two uploads of the same name within one millisecond would hash to
        the same name, so the timestamp is bumped until the name is free.
        """
        millis = int(self._clock() * 1000)
        for offset in range(MAX_NAME_ATTEMPTS):
            path = self.output_dir / digest_name(session.file_name, millis + offset)
            try:
                with open(path, 'xb'):
                    return path
            except FileExistsError:
                continue

        raise ReassemblyError(session.upload_id, "No free output file name")

    @staticmethod
    def _discard(partial_path: Path, final_path: Optional[Path]) -> None:
        """Best-effort removal of the partial output and the reserved name."""
        for path in (partial_path, final_path):
            if path is None:
                continue
            try:
                path.unlink(missing_ok=True)
            except OSError as e:
                logger.warning(f"Could not remove {path}: {e}")
