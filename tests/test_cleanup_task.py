"""Tests for idle session expiry and the sweeper task."""

import asyncio
import os
import time

import pytest

from server.cleanup_task import SessionSweeper
from server.reassembly import ReassemblyEngine
from server.session_registry import SessionRegistry
from server.upload_service import UploadService


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def service(tmp_path, chunk_store, clock):
    return UploadService(
        registry=SessionRegistry(clock=clock),
        chunk_store=chunk_store,
        reassembly_engine=ReassemblyEngine(chunk_store, tmp_path / 'files'),
    )


async def stage(service, upload_id, index=0, total=2):
    await service.receive_chunk(upload_id, index, total, 'f.bin', total * 4, b'data')


@pytest.mark.asyncio
async def test_idle_session_expires_with_its_chunks(service, chunk_store, clock):
    await stage(service, 'upload-old')
    clock.now += 50
    await stage(service, 'upload-new')
    clock.now += 60

    expired = await service.expire_idle_sessions(idle_timeout=100)

    assert expired == 1
    assert 'upload-old' not in service.registry
    assert 'upload-new' in service.registry
    assert chunk_store.list_upload_chunks('upload-old') == []
    assert chunk_store.list_upload_chunks('upload-new') == [0]


@pytest.mark.asyncio
async def test_activity_keeps_session_alive(service, clock):
    await stage(service, 'upload-1', index=0)
    clock.now += 90
    await stage(service, 'upload-1', index=0)
    clock.now += 90

    assert await service.expire_idle_sessions(idle_timeout=100) == 0
    assert 'upload-1' in service.registry


@pytest.mark.asyncio
async def test_orphaned_stale_chunks_are_deleted(service, chunk_store):
    chunk_store.write_chunk('upload-orphan', 0, b'left over')
    path = chunk_store.get_chunk_path('upload-orphan', 0)
    old = time.time() - 500
    os.utime(path, (old, old))

    await service.expire_idle_sessions(idle_timeout=100)

    assert chunk_store.list_upload_chunks('upload-orphan') == []


@pytest.mark.asyncio
async def test_live_session_chunks_survive_orphan_sweep(service, chunk_store):
    await stage(service, 'upload-live')
    path = chunk_store.get_chunk_path('upload-live', 0)
    old = time.time() - 500
    os.utime(path, (old, old))

    await service.expire_idle_sessions(idle_timeout=100)

    assert chunk_store.list_upload_chunks('upload-live') == [0]


@pytest.mark.asyncio
async def test_completed_ids_are_forgotten(service, clock):
    await service.receive_chunk('upload-done', 0, 1, 'f.bin', 4, b'data')
    assert service.registry.is_completed('upload-done')

    clock.now += 200
    await service.expire_idle_sessions(idle_timeout=100)

    assert not service.registry.is_completed('upload-done')


@pytest.mark.asyncio
async def test_sweep_once(service, clock):
    await stage(service, 'upload-1')
    clock.now += 500
    sweeper = SessionSweeper(service, interval_seconds=10, idle_timeout_seconds=100)

    assert await sweeper.sweep_once() == 1
    assert len(service.registry) == 0


@pytest.mark.asyncio
async def test_sweeper_runs_periodically(service, clock):
    await stage(service, 'upload-1')
    clock.now += 500
    sweeper = SessionSweeper(service, interval_seconds=0.01, idle_timeout_seconds=100)

    await sweeper.start()
    assert sweeper.running
    for _ in range(100):
        if len(service.registry) == 0:
            break
        await asyncio.sleep(0.01)
    await sweeper.stop()

    assert not sweeper.running
    assert len(service.registry) == 0


@pytest.mark.asyncio
async def test_sweeper_start_is_idempotent(service):
    sweeper = SessionSweeper(service, interval_seconds=60)

    await sweeper.start()
    task = sweeper._task
    await sweeper.start()

    assert sweeper._task is task
    await sweeper.stop()
    await sweeper.stop()


@pytest.mark.asyncio
async def test_sweep_removes_interrupted_write_leftovers(service, chunk_store):
    chunk_store.ensure_directory()
    service.reassembly_engine.output_dir.mkdir(parents=True)
    leftovers = [
        chunk_store.staging_dir / '.upload-x-chunk-0.deadbeef.tmp',
        service.reassembly_engine.output_dir / '.upload-x.partial',
    ]
    old = time.time() - 500
    for path in leftovers:
        path.write_bytes(b'half')
        os.utime(path, (old, old))

    await service.expire_idle_sessions(idle_timeout=100)

    assert not any(path.exists() for path in leftovers)
