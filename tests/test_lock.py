"""Tests for the candidate configuration lock manager."""
import asyncio

import pytest

from mcp_junos_config.config_engine.lock import ConfigLockManager
from mcp_junos_config.devices.base import CommandKind, SessionState
from mcp_junos_config.errors import (
    ConfigConflict,
    LockConflict,
    LockReleaseError,
    TransportError,
)


class TestAcquireRelease:
    """Local and device lock handling."""

    @pytest.mark.asyncio
    async def test_acquire_and_release(self, backend, make_session):
        """Acquire takes the device lock, release gives it back."""
        locks = ConfigLockManager()
        session = await make_session()

        await locks.acquire(session)
        assert locks.is_locked("lab")
        assert backend.lock_owner == session.session_id
        assert session.state == SessionState.LOCKED
        assert locks.holder("lab") == session.session_id

        await locks.release(session)
        assert not locks.is_locked("lab")
        assert backend.lock_owner is None
        assert session.state == SessionState.UNLOCKED

    @pytest.mark.asyncio
    async def test_second_session_waits(self, backend, make_session):
        """At most one holder per device; the second waits for the first."""
        locks = ConfigLockManager(wait=True)
        first = await make_session()
        second = await make_session()

        await locks.acquire(first)
        waiter = asyncio.create_task(locks.acquire(second))
        for _ in range(5):
            await asyncio.sleep(0)
        assert not waiter.done()
        assert backend.lock_owner == first.session_id

        await locks.release(first)
        await waiter
        assert backend.lock_owner == second.session_id
        await locks.release(second)

    @pytest.mark.asyncio
    async def test_fail_fast(self, make_session):
        locks = ConfigLockManager(wait=False)
        first = await make_session()
        second = await make_session()

        await locks.acquire(first)
        with pytest.raises(LockConflict):
            await locks.acquire(second)
        await locks.release(first)

    @pytest.mark.asyncio
    async def test_wait_times_out(self, make_session):
        locks = ConfigLockManager(lock_timeout=0.05)
        first = await make_session()
        second = await make_session()

        await locks.acquire(first)
        with pytest.raises(LockConflict, match="Timed out"):
            await locks.acquire(second)
        assert locks.holder("lab") == first.session_id
        await locks.release(first)

    @pytest.mark.asyncio
    async def test_device_locked_by_other_client(self, backend, make_session):
        """The device lock is retried, then surfaces as LockConflict."""
        backend.lock_by_other("admin")
        locks = ConfigLockManager(device_retries=2, device_retry_delay=0)
        session = await make_session()

        with pytest.raises(LockConflict) as exc_info:
            await locks.acquire(session)

        assert "admin" in exc_info.value.device_message
        assert len(backend.sent(CommandKind.LOCK)) == 2
        assert not locks.is_locked("lab")

    @pytest.mark.asyncio
    async def test_lock_transport_failure_releases_local(self, backend, make_session):
        backend.inject(CommandKind.LOCK, raises=ConnectionResetError)
        locks = ConfigLockManager()
        session = await make_session()

        with pytest.raises(TransportError):
            await locks.acquire(session)
        assert not locks.is_locked("lab")

    @pytest.mark.asyncio
    async def test_release_refused(self, backend, make_session):
        """A refused unlock raises, and the local lock is dropped anyway."""
        locks = ConfigLockManager()
        session = await make_session()
        await locks.acquire(session)
        backend.inject(CommandKind.UNLOCK, error="error: configuration database not locked")

        with pytest.raises(LockReleaseError):
            await locks.release(session)
        assert not locks.is_locked("lab")

    @pytest.mark.asyncio
    async def test_release_transport_failure(self, backend, make_session):
        locks = ConfigLockManager()
        session = await make_session()
        await locks.acquire(session)
        backend.inject(CommandKind.UNLOCK, raises=BrokenPipeError)

        with pytest.raises(LockReleaseError) as exc_info:
            await locks.release(session)
        assert isinstance(exc_info.value.__cause__, TransportError)
        assert not locks.is_locked("lab")


class TestHold:
    """Scoped acquisition."""

    @pytest.mark.asyncio
    async def test_hold_releases(self, backend, make_session):
        locks = ConfigLockManager()
        session = await make_session()

        async with locks.hold(session):
            assert backend.lock_owner == session.session_id
        assert backend.lock_owner is None
        assert not locks.is_locked("lab")

    @pytest.mark.asyncio
    async def test_release_error_attached_to_primary(self, backend, make_session):
        """A failing release never hides the body's error."""
        locks = ConfigLockManager()
        session = await make_session()
        backend.inject(CommandKind.UNLOCK, error="error: unlock failed")

        with pytest.raises(ConfigConflict) as exc_info:
            async with locks.hold(session):
                raise ConfigConflict("load rejected")

        assert len(exc_info.value.cleanup_errors) == 1
        assert isinstance(exc_info.value.cleanup_errors[0], LockReleaseError)
        assert not locks.is_locked("lab")
