"""Tests for the session registry."""

import asyncio

import pytest

from server.session_registry import SessionRegistry, UploadSession


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


def test_session_progress():
    session = UploadSession(upload_id='u', file_name='f', file_size=10, total_chunks=5, received_chunks={0, 3})

    assert session.progress == 40
    assert not session.is_complete


def test_create_get_remove():
    registry = SessionRegistry()

    session = registry.create('u1', 'a.txt', 100, 4)

    assert registry.get('u1') is session
    assert 'u1' in registry
    assert len(registry) == 1
    assert session.received_chunks == set()

    assert registry.remove('u1') is session
    assert registry.get('u1') is None
    assert not registry.is_completed('u1')


def test_mark_received_is_idempotent_and_touches_session():
    clock = FakeClock()
    registry = SessionRegistry(clock=clock)
    session = registry.create('u1', 'a.txt', 100, 4)

    clock.now += 5
    registry.mark_received(session, 2)
    registry.mark_received(session, 2)

    assert session.received_chunks == {2}
    assert session.last_activity == clock.now


def test_completed_ids_are_remembered_and_expire():
    clock = FakeClock()
    registry = SessionRegistry(clock=clock)
    registry.create('u1', 'a.txt', 100, 1)

    registry.remove('u1', completed=True)
    assert registry.is_completed('u1')

    clock.now += 10
    assert registry.expire_completed(max_age=60) == 0
    clock.now += 100
    assert registry.expire_completed(max_age=60) == 1
    assert not registry.is_completed('u1')


def test_idle_session_ids():
    clock = FakeClock()
    registry = SessionRegistry(clock=clock)
    registry.create('old', 'a', 1, 1)
    clock.now += 100
    registry.create('new', 'b', 1, 1)

    assert registry.idle_session_ids(50) == ['old']
    assert registry.is_idle('old', 50)
    assert not registry.is_idle('new', 50)
    assert not registry.is_idle('missing', 50)


@pytest.mark.asyncio
async def test_locked_serializes_same_upload():
    registry = SessionRegistry()
    registry.create('u1', 'a', 1, 1)
    inside = []
    overlaps = []

    async def worker(name):
        async with registry.locked('u1'):
            if inside:
                overlaps.append(name)
            inside.append(name)
            await asyncio.sleep(0.01)
            inside.remove(name)

    await asyncio.gather(*(worker(i) for i in range(5)))

    assert overlaps == []


@pytest.mark.asyncio
async def test_locked_does_not_block_other_uploads():
    registry = SessionRegistry()
    first_holding = asyncio.Event()
    release_first = asyncio.Event()

    async def hold_first():
        async with registry.locked('u1'):
            first_holding.set()
            await release_first.wait()

    task = asyncio.create_task(hold_first())
    await first_holding.wait()

    async with registry.locked('u2'):
        entered_second = True

    release_first.set()
    await task
    assert entered_second


@pytest.mark.asyncio
async def test_lock_entries_dropped_without_session():
    registry = SessionRegistry()

    async with registry.locked('u1'):
        pass

    assert registry._locks == {}

    async with registry.locked('u2'):
        registry.create('u2', 'a', 1, 1)

    assert 'u2' in registry._locks
