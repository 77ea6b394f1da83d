"""Command handler functions for the upload CLI."""

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from client.config import Config
from client.uploader import ChunkUploader
from client.utils import GREEN, RED, RESET, ProgressPrinter, format_file_size
from common.exceptions import TransientTransportError
from common.logging_config import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class CommandOutcome:
    """Result of a CLI command: whether it succeeded and what to print."""
    ok: bool
    message: str


def build_uploader(config: Config, file_name: Optional[str] = None) -> ChunkUploader:
    """
    Create a ChunkUploader from configuration.

    Args:
        config: Client configuration
        file_name: When given, progress for this file is printed to stdout

    Returns:
        ChunkUploader instance
    """
    return ChunkUploader(
        chunk_size=config.get_chunk_size(),
        max_retries=config.get_max_retries(),
        timeout=config.get_timeout(),
        on_progress=ProgressPrinter(file_name) if file_name else None,
    )


def handle_upload(
    file_path: str,
    config: Config,
    upload_id: Optional[str] = None,
    uploader: Optional[ChunkUploader] = None,
) -> CommandOutcome:
    """
    Handle 'upload' command.

    Args:
        file_path: File to upload
        config: Client configuration
        upload_id: Optional upload id to reuse
        uploader: Optional ChunkUploader for dependency injection (testing)

    Returns:
        CommandOutcome with success flag and message
    """
    path = Path(file_path)
    if uploader is None:
        uploader = build_uploader(config, path.name)

    if path.is_file():
        size = path.stat().st_size
        logger.info(
            f"Uploading {path.name} ({format_file_size(size)}) in "
            f"{uploader.calculate_total_chunks(size)} chunk(s)"
        )

    with uploader:
        result = uploader.upload_file(path, config.get_upload_url(), upload_id)

    if result.success:
        return CommandOutcome(True, f"{GREEN}Uploaded: {path.name}{RESET} [upload_id={result.upload_id}]")
    return CommandOutcome(False, (
        f"{RED}Upload failed: {result.message}{RESET}\n"
        f"Resume with: resume {file_path} {result.upload_id}"
    ))


def handle_resume(
    file_path: str,
    upload_id: str,
    config: Config,
    uploader: Optional[ChunkUploader] = None,
) -> CommandOutcome:
    """
    Handle 'resume' command: ask the server which chunks it holds, then send the rest.

    Args:
        file_path: File being uploaded
        upload_id: Id of the interrupted upload
        config: Client configuration
        uploader: Optional ChunkUploader for dependency injection (testing)

    Returns:
        CommandOutcome with success flag and message
    """
    path = Path(file_path)
    if uploader is None:
        uploader = build_uploader(config, path.name)

    with uploader:
        try:
            status = uploader.get_status(config.get_status_url(), upload_id)
        except TransientTransportError as e:
            return CommandOutcome(False, f"{RED}Cannot query upload status: {e}{RESET}")

        if status is None:
            return CommandOutcome(False, f"{RED}Upload {upload_id} not found on server; start a new upload{RESET}")

        logger.info(
            f"Server holds {len(status.received_chunks)}/{status.total_chunks} chunks [upload_id={upload_id}]"
        )
        result = uploader.resume_upload(
            path, config.get_upload_url(), upload_id, status.received_chunks
        )

    if result.success:
        return CommandOutcome(True, f"{GREEN}Resumed and uploaded: {path.name}{RESET} [upload_id={upload_id}]")
    return CommandOutcome(False, f"{RED}Resume failed: {result.message}{RESET}")


def handle_status(
    upload_id: str,
    config: Config,
    uploader: Optional[ChunkUploader] = None,
) -> CommandOutcome:
    """
    Handle 'status' command.

    Returns:
        CommandOutcome with a human-readable status line
    """
    if uploader is None:
        uploader = build_uploader(config)

    with uploader:
        try:
            status = uploader.get_status(config.get_status_url(), upload_id)
        except TransientTransportError as e:
            return CommandOutcome(False, f"{RED}Cannot query upload status: {e}{RESET}")

    if status is None:
        return CommandOutcome(False, f"Upload {upload_id} not found (never started, expired or already completed)")

    received = ", ".join(str(i) for i in status.received_chunks) or "none"
    return CommandOutcome(True, (
        f"Upload {upload_id}: {len(status.received_chunks)}/{status.total_chunks} chunks "
        f"({status.progress:.1f}%)\nReceived chunks: {received}"
    ))
