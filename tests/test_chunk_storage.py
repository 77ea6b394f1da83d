"""Tests for the chunk staging area."""

import os
import time

import pytest


def test_write_and_read_chunk(chunk_store):
    path = chunk_store.write_chunk('upload-1', 0, b'hello')

    assert path.endswith('upload-1-chunk-0')
    assert chunk_store.read_chunk('upload-1', 0) == b'hello'
    assert chunk_store.chunk_exists('upload-1', 0)


def test_write_creates_staging_directory(chunk_store):
    assert not chunk_store.staging_dir.exists()

    chunk_store.write_chunk('upload-1', 0, b'x')

    assert chunk_store.staging_dir.is_dir()


def test_rewrite_replaces_staged_bytes(chunk_store):
    chunk_store.write_chunk('upload-1', 2, b'first version')
    chunk_store.write_chunk('upload-1', 2, b'second')

    assert chunk_store.read_chunk('upload-1', 2) == b'second'
    assert chunk_store.list_upload_chunks('upload-1') == [2]
    assert len(list(chunk_store.staging_dir.iterdir())) == 1


def test_read_missing_chunk_raises(chunk_store):
    with pytest.raises(FileNotFoundError):
        chunk_store.read_chunk('upload-1', 0)
    assert not chunk_store.chunk_exists('upload-1', 0)


def test_streaming_read_yields_pieces(chunk_store):
    chunk_store.write_chunk('upload-1', 0, b'abcdefghij')

    pieces = list(chunk_store.read_chunk_streaming('upload-1', 0, piece_size=4))

    assert pieces == [b'abcd', b'efgh', b'ij']


def test_list_upload_chunks_is_scoped_to_upload(chunk_store):
    for index in (3, 0, 11):
        chunk_store.write_chunk('upload-a', index, b'a')
    chunk_store.write_chunk('upload-a-chunk-9', 0, b'b')
    chunk_store.write_chunk('upload-ab', 1, b'c')

    assert chunk_store.list_upload_chunks('upload-a') == [0, 3, 11]
    assert chunk_store.list_upload_chunks('upload-ab') == [1]


def test_list_upload_chunks_without_directory(chunk_store):
    assert chunk_store.list_upload_chunks('upload-1') == []


def test_delete_upload_chunks(chunk_store):
    for index in range(3):
        chunk_store.write_chunk('upload-1', index, b'x')
    chunk_store.write_chunk('upload-2', 0, b'y')

    assert chunk_store.delete_upload_chunks('upload-1') == 3
    assert chunk_store.list_upload_chunks('upload-1') == []
    assert chunk_store.list_upload_chunks('upload-2') == [0]


def test_delete_chunk(chunk_store):
    chunk_store.write_chunk('upload-1', 0, b'x')

    assert chunk_store.delete_chunk('upload-1', 0) is True
    assert chunk_store.delete_chunk('upload-1', 0) is False


def test_list_stale_upload_ids(chunk_store):
    chunk_store.write_chunk('old', 0, b'x')
    chunk_store.write_chunk('old', 1, b'x')
    chunk_store.write_chunk('fresh', 0, b'x')
    past = time.time() - 7200
    for index in (0, 1):
        os.utime(chunk_store.get_chunk_path('old', index), (past, past))

    assert chunk_store.list_stale_upload_ids(3600) == {'old'}


def test_stale_temp_files_are_removed(chunk_store):
    chunk_store.write_chunk('upload-1', 0, b'kept')
    stale = chunk_store.staging_dir / '.upload-1-chunk-1.0123abcd.tmp'
    fresh = chunk_store.staging_dir / '.upload-1-chunk-2.4567cdef.tmp'
    stale.write_bytes(b'interrupted')
    fresh.write_bytes(b'in flight')
    old = time.time() - 500
    os.utime(stale, (old, old))

    assert chunk_store.delete_stale_temp_files(max_age_seconds=100) == 1

    assert not stale.exists()
    assert fresh.exists()
    assert chunk_store.list_upload_chunks('upload-1') == [0]


def test_stale_temp_files_without_staging_dir(chunk_store):
    assert chunk_store.delete_stale_temp_files(max_age_seconds=0) == 0
