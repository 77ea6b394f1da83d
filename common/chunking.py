"""Chunk planning: chunk counts and byte boundaries for a file."""

from dataclasses import dataclass
from typing import List, Tuple

from common.exceptions import InvalidConfigurationError


@dataclass(frozen=True)
class ChunkSpan:
    """
    Byte range of one chunk. ``end`` is exclusive.
    """
    index: int
    start: int
    end: int

    @property
    def length(self) -> int:
        return self.end - self.start


def validate_chunk_size(chunk_size: int) -> int:
    """
    Ensure the chunk size is a positive integer.

    Raises:
        InvalidConfigurationError: If chunk_size is not positive
    """
    if isinstance(chunk_size, bool) or not isinstance(chunk_size, int) or chunk_size <= 0:
        raise InvalidConfigurationError(
            f"chunk_size must be a positive integer, got {chunk_size!r}"
        )
    return chunk_size


def total_chunks(file_size: int, chunk_size: int) -> int:
    """
    Number of chunks needed to cover file_size bytes.

    Args:
        file_size: Size of the file in bytes (0 yields 0 chunks)
        chunk_size: Nominal chunk size in bytes

    Returns:
        ceil(file_size / chunk_size)

    Raises:
        InvalidConfigurationError: If chunk_size is not positive or file_size is negative
    """
    validate_chunk_size(chunk_size)
    if file_size < 0:
        raise InvalidConfigurationError(f"file_size must not be negative, got {file_size}")
    return (file_size + chunk_size - 1) // chunk_size


def chunk_range(index: int, file_size: int, chunk_size: int) -> Tuple[int, int]:
    """
    Return the (start, end) byte offsets of chunk ``index``.

    The final chunk is clipped to file_size and may be shorter than chunk_size.
    """
    count = total_chunks(file_size, chunk_size)
    if not 0 <= index < count:
        raise ValueError(f"chunk index {index} out of range for {count} chunks")
    start = index * chunk_size
    return start, min(start + chunk_size, file_size)


def plan_chunks(file_size: int, chunk_size: int) -> List[ChunkSpan]:
    """Every chunk span of the file, in index order."""
    spans = []
    for index in range(total_chunks(file_size, chunk_size)):
        start, end = chunk_range(index, file_size, chunk_size)
        spans.append(ChunkSpan(index=index, start=start, end=end))
    return spans
