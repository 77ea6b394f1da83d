"""Project-wide constants (chunk sizing, retry defaults, wire field names)."""

DEFAULT_CHUNK_SIZE_BYTES: int = 1024 * 1024  # 1 MiB default chunk size
DEFAULT_MAX_RETRIES: int = 3
DEFAULT_REQUEST_TIMEOUT_SECONDS: float = 30.0

DEFAULT_UPLOAD_PATH: str = "/upload"
DEFAULT_STATUS_PATH: str = "/upload-status"

# Multipart form field names shared by client and server
CHUNK_FIELD: str = "chunk"
METADATA_FIELD: str = "metadata"

STORED_NAME_HASH_LENGTH: int = 16
MAX_STORED_EXTENSION_LENGTH: int = 32

# Longest accepted original file name, in UTF-8 bytes
MAX_FILE_NAME_BYTES: int = 255
