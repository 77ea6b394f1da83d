"""Configuration management for the upload client."""

import json
import os
import shutil
from pathlib import Path

from common.chunking import validate_chunk_size
from common.constants import (
    DEFAULT_CHUNK_SIZE_BYTES,
    DEFAULT_MAX_RETRIES,
    DEFAULT_REQUEST_TIMEOUT_SECONDS,
    DEFAULT_STATUS_PATH,
    DEFAULT_UPLOAD_PATH,
)
from common.exceptions import InvalidConfigurationError
from common.logging_config import get_logger

logger = get_logger(__name__)

DEFAULT_CONFIG_PATH = Path.home() / '.chunkupload' / 'config.json'


class Config:
    """Manages client configuration stored in a JSON file."""

    DEFAULT_CONFIG = {
        "server_url": "http://localhost:3000",
        "upload_path": DEFAULT_UPLOAD_PATH,
        "status_path": DEFAULT_STATUS_PATH,
        "chunk_size": DEFAULT_CHUNK_SIZE_BYTES,
        "max_retries": DEFAULT_MAX_RETRIES,
        "timeout": DEFAULT_REQUEST_TIMEOUT_SECONDS,
    }

    def __init__(self, config_path: Path = DEFAULT_CONFIG_PATH):
        """
        Initialize configuration manager.

        Args:
            config_path: Path to config JSON file (typically ~/.chunkupload/config.json)
        """
        self.config_path = Path(config_path)
        self.data = self._load()

        env_url = os.environ.get("CHUNK_UPLOAD_SERVER_URL")
        if env_url:
            self.data['server_url'] = env_url

    def _load(self) -> dict:
        """
        Load configuration from file, creating defaults if necessary.

        Returns:
            Configuration dictionary
        """
        try:
            self.config_path.parent.mkdir(parents=True, exist_ok=True)
        except PermissionError:
            import tempfile
            self.config_path = Path(tempfile.gettempdir()) / '.chunkupload' / 'config.json'
            self.config_path.parent.mkdir(parents=True, exist_ok=True)

        if self.config_path.exists():
            try:
                with open(self.config_path, 'r') as f:
                    data = json.load(f)
                if not isinstance(data, dict):
                    raise ValueError("config root must be an object")
                config = self.DEFAULT_CONFIG.copy()
                config.update(data)
                return config
            except (ValueError, IOError) as e:
                backup_path = self.config_path.with_suffix('.json.bak')
                logger.warning(f"Invalid config file {self.config_path}: {e}; backing up to {backup_path}")
                try:
                    shutil.copy(self.config_path, backup_path)
                except OSError as copy_error:
                    logger.warning(f"Could not back up config file: {copy_error}")
                return self.DEFAULT_CONFIG.copy()
        else:
            config = self.DEFAULT_CONFIG.copy()
            try:
                with open(self.config_path, 'w') as f:
                    json.dump(config, f, indent=2)
            except IOError as e:
                logger.warning(f"Could not write default config: {e}")
            return config

    def get_upload_url(self) -> str:
        """
        Get chunk upload URL.

        Returns:
            URL string (e.g., "http://localhost:3000/upload")
        """
        return self.data['server_url'].rstrip('/') + self.data.get('upload_path', DEFAULT_UPLOAD_PATH)

    def get_status_url(self) -> str:
        """
        Get status endpoint base URL (the upload id is appended per request).
        """
        return self.data['server_url'].rstrip('/') + self.data.get('status_path', DEFAULT_STATUS_PATH)

    def get_chunk_size(self) -> int:
        """
        Get nominal chunk size in bytes.

        Raises:
            InvalidConfigurationError: If the configured value is not a positive integer
        """
        return validate_chunk_size(self.data.get('chunk_size', DEFAULT_CHUNK_SIZE_BYTES))

    def get_max_retries(self) -> int:
        """
        Get attempts per chunk.

        Raises:
            InvalidConfigurationError: If the configured value is not a positive integer
        """
        value = self.data.get('max_retries', DEFAULT_MAX_RETRIES)
        if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
            raise InvalidConfigurationError(f"max_retries must be a positive integer, got {value!r}")
        return value

    def get_timeout(self) -> float:
        """
        Get request timeout in seconds.
        """
        return float(self.data.get('timeout', DEFAULT_REQUEST_TIMEOUT_SECONDS))
