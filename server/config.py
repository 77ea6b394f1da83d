"""Configuration settings for the upload server."""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List


def _cors_origins() -> List[str]:
    raw = os.environ.get("UPLOAD_CORS_ORIGINS", "*")
    return [origin.strip() for origin in raw.split(",") if origin.strip()]


@dataclass
class ServerSettings:
    """Runtime settings, read from the environment by load_settings()."""
    host: str = "0.0.0.0"
    port: int = 3000
    staging_dir: Path = Path("uploads/chunks")
    output_dir: Path = Path("uploads/files")
    session_idle_timeout: float = 24 * 3600.0
    sweep_interval: float = 60.0
    cors_origins: List[str] = field(default_factory=lambda: ["*"])


def load_settings() -> ServerSettings:
    """
    Build ServerSettings from environment variables.

    UPLOAD_SERVER_PORT takes precedence over the generic PORT variable.
    """
    port = os.environ.get("UPLOAD_SERVER_PORT") or os.environ.get("PORT", "3000")
    return ServerSettings(
        host=os.environ.get("UPLOAD_SERVER_HOST", "0.0.0.0"),
        port=int(port),
        staging_dir=Path(os.environ.get("UPLOAD_STAGING_DIR", "uploads/chunks")),
        output_dir=Path(os.environ.get("UPLOAD_OUTPUT_DIR", "uploads/files")),
        session_idle_timeout=float(os.environ.get("UPLOAD_SESSION_IDLE_TIMEOUT", str(24 * 3600))),
        sweep_interval=float(os.environ.get("UPLOAD_SWEEP_INTERVAL", "60")),
        cors_origins=_cors_origins(),
    )
