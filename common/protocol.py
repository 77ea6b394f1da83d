"""Wire message definitions shared by the upload client and server."""

from dataclasses import dataclass, field
from typing import List, Optional
import json

from common.exceptions import InvalidChunkError


@dataclass
class ChunkMetadata:
    """Metadata sent alongside every chunk in the ``metadata`` form field."""
    chunk_index: int
    total_chunks: int
    file_name: str
    file_size: int
    chunk_size: int
    upload_id: str

    def to_dict(self) -> dict:
        """Wire representation with camelCase keys."""
        return {
            'chunkIndex': self.chunk_index,
            'totalChunks': self.total_chunks,
            'fileName': self.file_name,
            'fileSize': self.file_size,
            'chunkSize': self.chunk_size,
            'uploadId': self.upload_id,
        }

    def to_json(self) -> str:
        """Serialize to a JSON string."""
        return json.dumps(self.to_dict())

    @classmethod
    def from_json(cls, data) -> 'ChunkMetadata':
        """
        Deserialize from a JSON string or bytes.

        Raises:
            InvalidChunkError: If the payload is not valid JSON or a field is missing or mistyped
        """
        try:
            obj = json.loads(data)
        except (TypeError, ValueError) as e:
            raise InvalidChunkError(f"Metadata is not valid JSON: {e}")

        if not isinstance(obj, dict):
            raise InvalidChunkError("Metadata must be a JSON object")

        try:
            metadata = cls(
                chunk_index=obj['chunkIndex'],
                total_chunks=obj['totalChunks'],
                file_name=obj['fileName'],
                file_size=obj['fileSize'],
                chunk_size=obj['chunkSize'],
                upload_id=obj['uploadId'],
            )
        except KeyError as e:
            raise InvalidChunkError(f"Metadata missing field {e.args[0]!r}")

        for name in ('chunk_index', 'total_chunks', 'file_size', 'chunk_size'):
            value = getattr(metadata, name)
            if isinstance(value, bool) or not isinstance(value, int):
                raise InvalidChunkError(f"Metadata field {name} must be an integer")
        for name in ('file_name', 'upload_id'):
            if not isinstance(getattr(metadata, name), str):
                raise InvalidChunkError(f"Metadata field {name} must be a string")

        return metadata


@dataclass(frozen=True)
class UploadProgress:
    """Progress snapshot emitted after each successfully delivered chunk."""
    uploaded_bytes: int
    total_bytes: int
    percentage: float
    current_chunk: int
    total_chunks: int


@dataclass(frozen=True)
class UploadResult:
    """Outcome of a whole-file transfer."""
    success: bool
    upload_id: str
    message: Optional[str] = None


@dataclass
class SessionStatus:
    """Server-side view of an in-flight upload session."""
    upload_id: str
    total_chunks: int
    received_chunks: List[int] = field(default_factory=list)
    progress: float = 0.0

    @classmethod
    def from_response(cls, data: dict) -> 'SessionStatus':
        """Build from a status endpoint JSON body."""
        return cls(
            upload_id=data['uploadId'],
            total_chunks=data['totalChunks'],
            received_chunks=sorted(data.get('receivedChunks', [])),
            progress=data.get('progress', 0.0),
        )
