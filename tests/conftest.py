"""Shared pytest fixtures for all tests."""

import json
import re

import httpx
import pytest
from fastapi.testclient import TestClient

from client.config import Config
from common.protocol import ChunkMetadata
from server.chunk_storage import ChunkStore
from server.config import ServerSettings
from server.main import create_app
from server.reassembly import ReassemblyEngine
from server.session_registry import SessionRegistry
from server.upload_service import UploadService

METADATA_PATTERN = re.compile(rb'name="metadata"\r\n\r\n(.*?)\r\n--', re.DOTALL)


def extract_metadata(request: httpx.Request) -> dict:
    """Pull the JSON metadata field out of a multipart chunk request."""
    match = METADATA_PATTERN.search(request.read())
    assert match, "request has no metadata field"
    return json.loads(match.group(1))


def post_chunk(client, upload_id, chunk_index, total_chunks, data, file_name='file.bin', file_size=None):
    """Send one chunk to the server the way the uploader does."""
    metadata = ChunkMetadata(
        chunk_index=chunk_index,
        total_chunks=total_chunks,
        file_name=file_name,
        file_size=file_size if file_size is not None else len(data) * total_chunks,
        chunk_size=len(data),
        upload_id=upload_id,
    )
    return client.post(
        '/upload',
        files={'chunk': (file_name, data, 'application/octet-stream')},
        data={'metadata': metadata.to_json()},
    )


@pytest.fixture
def temp_config(tmp_path):
    """
    Create temporary client config instance.

    Args:
        tmp_path: pytest tmp_path fixture

    Returns:
        Config instance with temp config file
    """
    return Config(tmp_path / '.chunkupload' / 'config.json')


@pytest.fixture
def server_settings(tmp_path):
    """Server settings pointing at temporary staging and output directories."""
    return ServerSettings(
        staging_dir=tmp_path / 'chunks',
        output_dir=tmp_path / 'files',
        session_idle_timeout=3600.0,
        sweep_interval=3600.0,
    )


@pytest.fixture
def app(server_settings):
    """Fresh application with its own registry."""
    return create_app(server_settings)


@pytest.fixture
def client(app):
    """Create FastAPI test client (runs startup and shutdown events)."""
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def chunk_store(tmp_path):
    return ChunkStore(tmp_path / 'chunks')


@pytest.fixture
def upload_service(tmp_path, chunk_store):
    """UploadService over temporary directories."""
    return UploadService(
        registry=SessionRegistry(),
        chunk_store=chunk_store,
        reassembly_engine=ReassemblyEngine(chunk_store, tmp_path / 'files'),
    )


@pytest.fixture
def sample_file(tmp_path):
    """
    Create a 2500-byte file with non-repeating content.

    Returns:
        Path to sample file
    """
    file_path = tmp_path / 'sample.bin'
    file_path.write_bytes(bytes(i % 251 for i in range(2500)))
    return file_path


@pytest.fixture
def no_sleep():
    """Sleep replacement that records requested delays."""
    delays = []

    def sleep(seconds):
        delays.append(seconds)

    sleep.delays = delays
    return sleep
