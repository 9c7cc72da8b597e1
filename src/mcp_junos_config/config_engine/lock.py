"""Candidate configuration lock manager.

Two layers guard the candidate configuration:
- a per-device asyncio.Lock serializing transactions inside this process
- the device's own candidate lock, which also keeps out other clients
"""
import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Optional

from ..devices.base import Command, CommandKind, NetworkDevice, SessionState
from ..errors import LockConflict, LockReleaseError, ReconcileError, TransportError
from ..utils.connection import backoff_retrying

logger = logging.getLogger(__name__)


def _session_label(session: NetworkDevice) -> str:
    return getattr(session, "session_id", None) or f"{session.device_id}@{id(session):x}"


class ConfigLockManager:
    """Per-device exclusive edit access.

    Settings left as None fall back to the session's DeviceConfig
    (lock_timeout, lock_wait, lock_retries, lock_retry_delay).

    Usage:
        locks = ConfigLockManager()
        async with locks.hold(session):
            ...
    """

    def __init__(
        self,
        lock_timeout: Optional[float] = None,
        wait: Optional[bool] = None,
        device_retries: Optional[int] = None,
        device_retry_delay: Optional[float] = None,
    ):
        self.lock_timeout = lock_timeout
        self.wait = wait
        self.device_retries = device_retries
        self.device_retry_delay = device_retry_delay
        self._locks: dict[str, asyncio.Lock] = {}
        self._holders: dict[str, str] = {}

    def _lock_for(self, device_id: str) -> asyncio.Lock:
        if device_id not in self._locks:
            self._locks[device_id] = asyncio.Lock()
        return self._locks[device_id]

    def is_locked(self, device_id: str) -> bool:
        return device_id in self._locks and self._locks[device_id].locked()

    def holder(self, device_id: str) -> Optional[str]:
        """Label of the local session holding the device lock, if any."""
        return self._holders.get(device_id)

    def _setting(self, name: str, session: NetworkDevice, fallback: str):
        value = getattr(self, name)
        return getattr(session.config, fallback) if value is None else value

    async def acquire(self, session: NetworkDevice, wait: Optional[bool] = None) -> None:
        """Take the local lock, then the device candidate lock.

        Raises:
            LockConflict: lock held locally (fail-fast or timed out) or by another client
            TransportError: the lock request itself failed
        """
        device_id = session.device_id
        lock = self._lock_for(device_id)
        if wait is None:
            wait = self._setting("wait", session, "lock_wait")
        timeout = self._setting("lock_timeout", session, "lock_timeout")

        if lock.locked() and not wait:
            raise LockConflict(
                f"Configuration of {device_id} is being edited by {self.holder(device_id)}"
            )
        try:
            await asyncio.wait_for(lock.acquire(), timeout=timeout)
        except asyncio.TimeoutError as e:
            raise LockConflict(
                f"Timed out after {timeout}s waiting for the configuration lock on {device_id} "
                f"(held by {self.holder(device_id)})"
            ) from e

        self._holders[device_id] = _session_label(session)
        try:
            await self._lock_device(session)
        except BaseException:
            self._release_local(device_id)
            raise
        session.state = SessionState.LOCKED
        logger.debug(f"Configuration lock on {device_id} acquired by {self._holders[device_id]}")

    async def _lock_device(self, session: NetworkDevice) -> None:
        retries = self._setting("device_retries", session, "lock_retries")
        delay = self._setting("device_retry_delay", session, "lock_retry_delay")

        async for attempt in backoff_retrying(
            retries, lambda e: isinstance(e, LockConflict), min_wait=delay, max_wait=max(delay, 10)
        ):
            with attempt:
                reply = await session.send(Command(CommandKind.LOCK))
                if not reply.ok:
                    raise LockConflict(
                        f"Candidate configuration of {session.device_id} is locked by another client",
                        device_message=reply.error_message,
                    )

    def _release_local(self, device_id: str) -> None:
        self._holders.pop(device_id, None)
        lock = self._locks.get(device_id)
        if lock is not None and lock.locked():
            lock.release()

    async def release(self, session: NetworkDevice) -> None:
        """Unlock the candidate and always drop the local lock.

        Raises:
            LockReleaseError: unlock was rejected or the session is gone
        """
        device_id = session.device_id
        if not session.is_connected:
            # Closing the session released the candidate lock device-side
            self._release_local(device_id)
            logger.info(f"Session to {device_id} already closed; candidate lock went with it")
            return
        try:
            reply = await session.send(Command(CommandKind.UNLOCK))
        except TransportError as e:
            raise LockReleaseError(
                f"Could not unlock the candidate configuration of {device_id}",
                device_message=e.message,
            ) from e
        finally:
            self._release_local(device_id)
        if not reply.ok:
            raise LockReleaseError(
                f"Device refused to unlock the candidate configuration of {device_id}",
                device_message=reply.error_message,
            )
        session.state = SessionState.UNLOCKED
        logger.debug(f"Configuration lock on {device_id} released")

    @asynccontextmanager
    async def hold(self, session: NetworkDevice, wait: Optional[bool] = None):
        """Scoped acquisition. A release failure never hides the body's error."""
        await self.acquire(session, wait=wait)
        try:
            yield session
        except BaseException as primary:
            try:
                await self.release(session)
            except LockReleaseError as release_error:
                if isinstance(primary, ReconcileError):
                    primary.add_cleanup_error(release_error)
                else:
                    logger.error(f"Lock release on {session.device_id} failed: {release_error}")
            raise
        await self.release(session)
