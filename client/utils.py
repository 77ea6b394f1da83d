"""Terminal output helpers for the upload CLI."""

import sys
from typing import TextIO

from common.protocol import UploadProgress

GREEN = "\033[92m"
RED = "\033[91m"
RESET = "\033[0m"


class ProgressPrinter:
    """Progress observer that redraws a single status line on a stream."""

    def __init__(self, file_name: str, stream: TextIO = sys.stdout):
        """
        Args:
            file_name: Display name for the file being uploaded
            stream: Output stream (stdout by default)
        """
        self.file_name = file_name
        self.stream = stream
        self._finished = False

    def __call__(self, progress: UploadProgress) -> None:
        uploaded_str = format_file_size(progress.uploaded_bytes)
        total_str = format_file_size(progress.total_bytes)
        self.stream.write(
            f"\rUploading {self.file_name}: {uploaded_str} / {total_str} "
            f"chunk {progress.current_chunk}/{progress.total_chunks} "
            f"({GREEN}{progress.percentage:.1f}%{RESET})"
        )
        self.stream.flush()
        if progress.uploaded_bytes >= progress.total_bytes:
            self.finish()

    def finish(self) -> None:
        """Terminate the progress line with a newline, once."""
        if not self._finished:
            self._finished = True
            self.stream.write('\n')
            self.stream.flush()


def format_file_size(size_bytes: int) -> str:
    """
    Format file size in bytes to human-readable format with appropriate unit.

    Uses binary units (1024-based).

    Args:
        size_bytes: File size in bytes

    Returns:
        Formatted string with size and unit (e.g., "1.50 MiB", "512 B")
    """
    if size_bytes < 1024:
        return f"{size_bytes} B"

    units = ['KiB', 'MiB', 'GiB', 'TiB']
    size = size_bytes / 1024.0

    for unit in units:
        if size < 1024.0:
            return f"{size:.2f} {unit}"
        size /= 1024.0

    return f"{size:.2f} PiB"
