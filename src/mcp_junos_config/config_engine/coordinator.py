"""Transaction coordinator: lock -> load -> validate -> commit -> unlock.

Any failure after the lock is taken discards the candidate (ROLLED_BACK)
and the lock is released exactly once per attempt. Transient transport
failures while loading or validating restart the whole batch from lock
acquisition; a commit that times out is reported as CommitUnknown and is
never retried.
"""
import logging
import re
from typing import Awaitable, Callable, Optional

from ..devices.base import Command, CommandKind, NetworkDevice, Reply
from ..errors import (
    CommitUnknown,
    ConfigConflict,
    LockReleaseError,
    ReconcileError,
    TransportError,
)
from ..utils.audit_log import log_transaction
from ..utils.connection import backoff_retrying
from ..utils.logging_config import log_context, timed_section
from .lock import ConfigLockManager
from .schema import Transaction, TransactionState
from .statement import Statement

logger = logging.getLogger(__name__)

Precheck = Callable[[NetworkDevice], Awaitable[None]]

# Phases in which a transient transport error restarts the batch
RETRYABLE_PHASES = ("load", "validate")

REJECTED_STATEMENT = re.compile(r"\(statement: ([^)]*)\)")


def rejected_paths(batch: list[Statement], reply: Reply) -> list[str]:
    """Paths of the statements the device named in its errors.

    Falls back to the whole batch when the device did not say which
    statement it rejected.
    """
    message = reply.error_message
    named = [b.strip() for b in REJECTED_STATEMENT.findall(message) if b.strip()]
    hits = [
        stmt for stmt in batch
        if stmt.to_text() in message
        or any(name == stmt.to_text() or name in stmt.full_path for name in named)
    ]
    return [str(stmt.full_path) for stmt in (hits or batch)]


class TransactionCoordinator:
    """Runs Transactions against one session at a time.

    Settings left as None fall back to the session's DeviceConfig
    (max_attempts, retry_delay, load_batch_size, commit_comment_prefix).
    """

    def __init__(
        self,
        locks: ConfigLockManager,
        max_attempts: Optional[int] = None,
        retry_delay: Optional[float] = None,
        load_batch_size: Optional[int] = None,
        commit_timeout: Optional[float] = None,
    ):
        self.locks = locks
        self.max_attempts = max_attempts
        self.retry_delay = retry_delay
        self.load_batch_size = load_batch_size
        self.commit_timeout = commit_timeout

    def _setting(self, name: str, session: NetworkDevice, fallback: str):
        value = getattr(self, name)
        return getattr(session.config, fallback) if value is None else value

    async def run(
        self,
        session: NetworkDevice,
        transaction: Transaction,
        precheck: Optional[Precheck] = None,
    ) -> Transaction:
        """Apply a transaction atomically.

        Args:
            session: Connected session to the target device
            transaction: Statements to apply, in order
            precheck: Optional coroutine run under the lock before loading

        Returns:
            The transaction, in state LOCK_RELEASED with committed=True

        Raises:
            LockConflict, ConfigConflict, CommitUnknown, TransportError,
            LockReleaseError or whatever the precheck raises
        """
        if transaction.empty:
            logger.info(f"Nothing to apply on {session.device_id}")
            return transaction

        transaction.mark_started()
        max_attempts = self._setting("max_attempts", session, "max_attempts")
        delay = self._setting("retry_delay", session, "retry_delay")
        label = " ".join(p for p in (transaction.operation, transaction.resource) if p) or "raw"

        with log_context(device=session.device_id, tx=label):
            try:
                async for attempt in backoff_retrying(
                    max_attempts,
                    lambda e: self._should_retry(e, transaction),
                    min_wait=delay,
                ):
                    with attempt:
                        transaction.reset_attempt()
                        if not session.is_connected:
                            logger.info(f"Reconnecting to {session.device_id}")
                            await session.connect()
                        await self._attempt(session, transaction, precheck)
            except Exception as e:
                if isinstance(e, ReconcileError):
                    e.annotate(resource=transaction.resource, statements=transaction.lines())
                transaction.mark_finished()
                self._audit(transaction, error=e)
                raise

            transaction.mark_finished()
            self._audit(transaction)
            logger.info(
                f"Committed {len(transaction.statements)} statements on {transaction.device_id} "
                f"(attempts={transaction.attempts})"
            )
        return transaction

    @staticmethod
    def _should_retry(error: BaseException, transaction: Transaction) -> bool:
        retry = (
            isinstance(error, TransportError)
            and error.transient
            and transaction.failed_phase in RETRYABLE_PHASES
        )
        if retry:
            logger.warning(
                f"Transient failure during {transaction.failed_phase} on "
                f"{transaction.device_id}, restarting from lock acquisition: {error}"
            )
        return retry

    async def _attempt(
        self,
        session: NetworkDevice,
        tx: Transaction,
        precheck: Optional[Precheck],
    ) -> None:
        device_id = session.device_id
        tx.failed_phase = "lock"
        async with timed_section("lock", device_id=device_id, attempt=tx.attempts):
            await self.locks.acquire(session)
        tx.advance(TransactionState.LOCK_ACQUIRED)

        try:
            if precheck is not None:
                tx.failed_phase = "precheck"
                await precheck(session)

            tx.failed_phase = "load"
            async with timed_section("load", device_id=device_id, statements=len(tx.statements)):
                await self._load(session, tx)
            tx.advance(TransactionState.LOADED)

            tx.failed_phase = "validate"
            async with timed_section("validate", device_id=device_id):
                await self._validate(session, tx)
            tx.advance(TransactionState.VALIDATED)

            tx.failed_phase = "commit"
            async with timed_section("commit", device_id=device_id):
                await self._commit(session, tx)
            tx.advance(TransactionState.COMMITTED)
            tx.failed_phase = None
        except BaseException as primary:
            if tx.failed_phase != "precheck":
                await self._rollback(session, tx)
            await self._release(session, tx, primary)
            raise

        await self._release(session, tx, None)

    def _batches(self, session: NetworkDevice, statements: list[Statement]) -> list[list[Statement]]:
        size = self._setting("load_batch_size", session, "load_batch_size")
        if not size or size <= 0:
            return [statements]
        return [statements[i:i + size] for i in range(0, len(statements), size)]

    async def _load(self, session: NetworkDevice, tx: Transaction) -> None:
        for batch in self._batches(session, tx.statements):
            command = Command(CommandKind.LOAD, lines=tuple(s.to_text() for s in batch))
            reply = await session.send(command)
            tx.warnings.extend(reply.warnings)
            if not reply.ok:
                raise ConfigConflict(
                    f"{session.device_id} rejected configuration statements",
                    paths=rejected_paths(batch, reply),
                    device_message=reply.error_message,
                )

    async def _validate(self, session: NetworkDevice, tx: Transaction) -> None:
        reply = await session.send(Command(CommandKind.VALIDATE))
        tx.warnings.extend(reply.warnings)
        if not reply.ok:
            raise ConfigConflict(
                f"Commit check failed on {session.device_id}",
                paths=rejected_paths(tx.statements, reply),
                device_message=reply.error_message,
            )

    def _commit_comment(self, session: NetworkDevice, tx: Transaction) -> str:
        prefix = session.config.commit_comment_prefix
        body = tx.comment or " ".join(p for p in (tx.operation, tx.resource) if p)
        return f"{prefix}: {body}" if prefix else body

    async def _commit(self, session: NetworkDevice, tx: Transaction) -> None:
        command = Command(CommandKind.COMMIT, text=self._commit_comment(session, tx))
        try:
            reply = await session.send(command, timeout=self.commit_timeout)
        except TransportError as e:
            raise CommitUnknown(
                f"Commit on {session.device_id} did not complete; the change may or may not "
                f"be active, re-read before retrying",
                paths=[str(s.full_path) for s in tx.statements],
                device_message=e.message,
            ) from e
        tx.warnings.extend(reply.warnings)
        if not reply.ok:
            raise ConfigConflict(
                f"Commit rejected by {session.device_id}",
                paths=rejected_paths(tx.statements, reply),
                device_message=reply.error_message,
            )

    async def _rollback(self, session: NetworkDevice, tx: Transaction) -> None:
        """Discard candidate edits. Best-effort: failures are logged only."""
        device_id = session.device_id
        if not session.is_connected:
            logger.warning(
                f"Session to {device_id} is gone; the device discards uncommitted edits on teardown"
            )
        else:
            try:
                reply = await session.send(Command(CommandKind.DISCARD))
            except TransportError as e:
                logger.error(f"Discarding candidate on {device_id} failed: {e}")
            else:
                if not reply.ok:
                    logger.error(f"Discarding candidate on {device_id} failed: {reply.error_message}")
        tx.advance(TransactionState.ROLLED_BACK)

    async def _release(
        self,
        session: NetworkDevice,
        tx: Transaction,
        primary: Optional[BaseException],
    ) -> None:
        try:
            await self.locks.release(session)
        except LockReleaseError as release_error:
            tx.advance(TransactionState.LOCK_RELEASED)
            if primary is None:
                raise
            if isinstance(primary, ReconcileError):
                primary.add_cleanup_error(release_error)
            logger.error(f"Lock release on {session.device_id} failed: {release_error}")
            return
        tx.advance(TransactionState.LOCK_RELEASED)

    def _audit(self, tx: Transaction, error: Optional[BaseException] = None) -> None:
        log_transaction(
            device_id=tx.device_id,
            operation=tx.operation,
            statements=tx.lines(),
            success=error is None and tx.committed,
            final_state=tx.state.value,
            attempts=tx.attempts,
            resource=tx.resource,
            comment=tx.comment,
            error=error,
        )
