"""CLI entry point for the upload client."""

import argparse
import os
import sys
from pathlib import Path
from typing import List, Optional

from client.commands import handle_resume, handle_status, handle_upload
from client.config import DEFAULT_CONFIG_PATH, Config
from common.exceptions import InvalidConfigurationError
from common.logging_config import setup_logging


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="chunk-upload",
        description="Resumable chunked file upload client",
    )
    parser.add_argument("--config", type=Path, default=DEFAULT_CONFIG_PATH, help="Path to config JSON file")
    parser.add_argument("--server", help="Server base URL (overrides config)")
    parser.add_argument("--chunk-size", type=int, help="Chunk size in bytes (overrides config)")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")

    subparsers = parser.add_subparsers(dest="command", required=True)

    upload = subparsers.add_parser("upload", help="Upload a file")
    upload.add_argument("file")
    upload.add_argument("--upload-id", help="Reuse an upload id")

    resume = subparsers.add_parser("resume", help="Resume an interrupted upload")
    resume.add_argument("file")
    resume.add_argument("upload_id")

    status = subparsers.add_parser("status", help="Show server-side progress of an upload")
    status.add_argument("upload_id")

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Entry point for CLI."""
    args = build_parser().parse_args(argv)

    log_level = 'DEBUG' if args.debug else os.getenv('LOG_LEVEL', 'INFO')
    logger = setup_logging('client', log_level=log_level)

    config = Config(args.config)
    if args.server:
        config.data['server_url'] = args.server
    if args.chunk_size is not None:
        config.data['chunk_size'] = args.chunk_size

    try:
        if args.command == "upload":
            outcome = handle_upload(args.file, config, upload_id=args.upload_id)
        elif args.command == "resume":
            outcome = handle_resume(args.file, args.upload_id, config)
        else:
            outcome = handle_status(args.upload_id, config)
    except InvalidConfigurationError as e:
        logger.error(f"Invalid configuration: {e}")
        print(f"Invalid configuration: {e}", file=sys.stderr)
        return 2

    print(outcome.message)
    return 0 if outcome.ok else 1


if __name__ == "__main__":
    sys.exit(main())
