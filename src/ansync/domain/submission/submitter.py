"""Transaction submitter: drains reconciliation ops into committed transactions.

Each batch is driven through a bounded state machine::

    PENDING --(committed)--> COMMITTED
    PENDING --(fatal | unexpected error | retry budget exhausted | cancelled)--> FAILED
    PENDING --(retryable, attempts left)--> PENDING

The signer sequence for a ``(network_id, signer)`` pair is owned by a single
``submit`` call; concurrent calls for the same pair queue on a lock.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING

from ansync.domain.errors import (
    FatalSubmissionError,
    NetworkUnreachable,
    RetryableSubmissionError,
)
from ansync.domain.model import SubmissionOutcome, SubmissionRecord, SubmissionStatus
from ansync.domain.ports.chain import EndpointError

from .batching import batch_messages, chunk_ops, tx_hash_of
from .classify import raise_for_broadcast, raise_for_delivery

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Iterable, Mapping, Sequence

    from ansync.config.networks import NetworkConfig, SubmissionPolicy
    from ansync.domain.model import Checkpoint, ReconciliationOp
    from ansync.domain.ports.chain import (
        AccountInfo,
        ChainClient,
        ConnectionPool,
        TransactionSigner,
        TxResult,
    )
    from ansync.domain.ports.unit_of_work import ReconcileUnitOfWork

log = logging.getLogger(__name__)

CANCELLED_ERROR = "cancelled before confirmation"


@dataclass(slots=True)
class _SignerSession:
    """Sequence state for one signer on one network, valid for one ``submit`` call."""

    signer: TransactionSigner
    account_number: int | None = None
    sequence: int | None = None

    @property
    def stale(self) -> bool:
        return self.sequence is None

    def reset(self, account: AccountInfo) -> None:
        self.account_number = account.account_number
        self.sequence = account.sequence

    def advance(self) -> None:
        if self.sequence is not None:
            self.sequence += 1

    def invalidate(self) -> None:
        self.sequence = None


class TransactionSubmitter:
    """Submit op batches per network and keep checkpoints in step with commits."""

    def __init__(
        self,
        *,
        networks: Mapping[str, NetworkConfig],
        pool: ConnectionPool,
        signers: Mapping[str, TransactionSigner],
        unit_of_work_factory: Callable[[], ReconcileUnitOfWork],
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._networks = networks
        self._pool = pool
        self._signers = signers
        self._unit_of_work_factory = unit_of_work_factory
        self._sleep = sleep
        self._clock = clock
        self._locks: dict[tuple[str, str], asyncio.Lock] = {}

    # Public API -----------------------------------------------------------------

    async def submit(
        self,
        network_id: str,
        ops: Iterable[ReconciliationOp],
        *,
        snapshot_revision: int | None = None,
    ) -> SubmissionOutcome:
        """Drain ``ops`` against ``network_id`` in order.

        When every batch commits and ``snapshot_revision`` is given, the checkpoint
        advances to it; otherwise it only covers the contiguously committed revisions.
        """

        network = self._networks[network_id]
        signer = self._signers[network_id]
        lock = self._locks.setdefault((network_id, signer.address), asyncio.Lock())
        async with lock:
            return await self._submit_locked(network, signer, tuple(ops), snapshot_revision)

    async def recover_pending(self, network_id: str) -> list[SubmissionRecord]:
        """Resolve records left ``pending`` by an interrupted run.

        A record whose transaction is found committed on-chain becomes committed;
        anything else becomes failed. Nothing is re-broadcast.
        """

        with self._unit_of_work_factory() as uow:
            pending = uow.repositories.submissions.by_status(network_id, SubmissionStatus.PENDING)
        if not pending:
            return []

        for record in pending:
            tx = await self._lookup_quietly(network_id, record.broadcast_hashes)
            if tx is not None and tx.succeeded:
                record.mark_committed(tx.tx_hash)
            else:
                record.mark_failed("interrupted before confirmation")
            log.warning(
                "Recovered interrupted submission %s on %s as %s",
                record.id,
                network_id,
                record.status,
            )
            self._save(record)

        checkpoint = self._current_checkpoint(network_id)
        self._prune_committed(network_id, checkpoint.revision if checkpoint else None)
        return pending

    # Submission loop ---------------------------------------------------------------

    async def _submit_locked(
        self,
        network: NetworkConfig,
        signer: TransactionSigner,
        ops: tuple[ReconciliationOp, ...],
        snapshot_revision: int | None,
    ) -> SubmissionOutcome:
        network_id = network.network_id
        outcome = SubmissionOutcome(network_id=network_id)
        existing = self._current_checkpoint(network_id)
        outcome.checkpoint = existing.revision if existing else None

        batches = chunk_ops(ops, network.max_ops_per_tx)
        if not batches:
            if snapshot_revision is not None:
                outcome.checkpoint = self._advance_checkpoint(network_id, snapshot_revision)
            return outcome

        log.info("Submitting %s ops to %s in %s batches", len(ops), network_id, len(batches))
        session = _SignerSession(signer=signer)
        for index, batch in enumerate(batches):
            record = SubmissionRecord(
                network_id=network_id,
                signer=signer.address,
                signer_sequence=None,
                op_batch=batch,
            )
            outcome.records.append(record)
            await self._drive(record, session, network)

            target = _contiguous_revision(outcome.records, batches[index + 1 :])
            if target is not None and record.status is SubmissionStatus.COMMITTED:
                outcome.checkpoint = self._advance_checkpoint(network_id, target)

        if outcome.fully_committed and snapshot_revision is not None:
            outcome.checkpoint = self._advance_checkpoint(network_id, snapshot_revision)

        self._prune_committed(network_id, outcome.checkpoint)
        return outcome

    async def _drive(
        self,
        record: SubmissionRecord,
        session: _SignerSession,
        network: NetworkConfig,
    ) -> None:
        policy = network.submission
        self._save(record)
        try:
            while not record.is_terminal:
                try:
                    tx_hash = await self._attempt(record, session, network)
                except RetryableSubmissionError as exc:
                    session.invalidate()
                    record.record_retry(str(exc))
                    if record.retry_count >= policy.max_attempts:
                        record.mark_failed(f"retry budget exhausted: {exc}")
                        break
                    delay = policy.backoff(record.retry_count)
                    log.warning(
                        "Retryable failure on %s batch (attempt %s/%s), retrying in %.1fs: %s",
                        network.network_id,
                        record.retry_count,
                        policy.max_attempts,
                        delay,
                        exc,
                    )
                    self._save(record)
                    await self._sleep(delay)
                except FatalSubmissionError as exc:
                    session.invalidate()
                    record.mark_failed(str(exc))
                except Exception as exc:
                    log.exception("Unexpected error submitting batch on %s", network.network_id)
                    session.invalidate()
                    record.mark_failed(f"unexpected error: {exc!r}")
                else:
                    record.mark_committed(tx_hash)
                    session.advance()
        except asyncio.CancelledError:
            if not record.is_terminal:
                record.mark_failed(CANCELLED_ERROR)
                self._save(record)
            raise

        if record.status is SubmissionStatus.FAILED:
            log.error(
                "Batch of %s ops on %s failed: %s",
                len(record.op_batch),
                network.network_id,
                record.last_error,
            )
        else:
            log.info(
                "Committed batch of %s ops on %s in tx %s",
                len(record.op_batch),
                network.network_id,
                record.tx_hash,
            )
        self._save(record)

    async def _attempt(
        self,
        record: SubmissionRecord,
        session: _SignerSession,
        network: NetworkConfig,
    ) -> str:
        """Run one broadcast attempt; return the committed tx hash or raise."""

        try:
            async with self._pool.connection(network.network_id) as connection:
                earlier = await _find_broadcast(connection, record.broadcast_hashes)
                if earlier is not None:
                    raise_for_delivery(earlier)
                    return earlier.tx_hash

                if session.stale:
                    session.reset(await connection.account(session.signer.address))
                record.signer_sequence = session.sequence
                self._save(record)

                tx_bytes = await session.signer.sign(
                    chain_id=network.chain_id,
                    account_number=session.account_number or 0,
                    sequence=record.signer_sequence or 0,
                    messages=batch_messages(
                        record.op_batch,
                        sender=session.signer.address,
                        contract=network.registry_contract,
                    ),
                )
                tx_hash = tx_hash_of(tx_bytes)
                raise_for_broadcast(await connection.broadcast(tx_bytes))
                record.record_broadcast(tx_hash)
                self._save(record)

                delivered = await self._await_commit(connection, tx_hash, network.submission)
                raise_for_delivery(delivered)
                return tx_hash
        except EndpointError as exc:
            raise RetryableSubmissionError(f"endpoint error: {exc}") from exc
        except NetworkUnreachable as exc:
            raise RetryableSubmissionError(str(exc)) from exc

    async def _await_commit(
        self,
        connection: ChainClient,
        tx_hash: str,
        policy: SubmissionPolicy,
    ) -> TxResult:
        deadline = self._clock() + policy.confirm_timeout
        while True:
            found = await connection.get_tx(tx_hash)
            if found is not None:
                return found
            if self._clock() >= deadline:
                raise RetryableSubmissionError(
                    f"tx {tx_hash} not confirmed within {policy.confirm_timeout:.0f}s"
                )
            await self._sleep(policy.confirm_poll_interval)

    async def _lookup_quietly(
        self, network_id: str, tx_hashes: Sequence[str]
    ) -> TxResult | None:
        if not tx_hashes:
            return None
        try:
            async with self._pool.connection(network_id) as connection:
                return await _find_broadcast(connection, tx_hashes)
        except (EndpointError, NetworkUnreachable) as exc:
            log.warning("Could not look up txs %s on %s: %s", tx_hashes, network_id, exc)
            return None

    # Persistence -------------------------------------------------------------------

    def _save(self, record: SubmissionRecord) -> None:
        with self._unit_of_work_factory() as uow:
            uow.repositories.submissions.save(record)
            uow.commit()

    def _current_checkpoint(self, network_id: str) -> Checkpoint | None:
        with self._unit_of_work_factory() as uow:
            return uow.repositories.checkpoints.get(network_id)

    def _advance_checkpoint(self, network_id: str, revision: int) -> int:
        with self._unit_of_work_factory() as uow:
            stored = uow.repositories.checkpoints.advance(network_id, revision)
            uow.commit()
        log.info("Checkpoint for %s at revision %s", network_id, stored)
        return stored

    def _prune_committed(self, network_id: str, checkpoint: int | None) -> None:
        if checkpoint is None:
            return
        with self._unit_of_work_factory() as uow:
            repository = uow.repositories.submissions
            for record in repository.by_status(network_id, SubmissionStatus.COMMITTED):
                if all(op.source_revision <= checkpoint for op in record.op_batch):
                    repository.delete(record)
            uow.commit()


def _contiguous_revision(
    records: Sequence[SubmissionRecord],
    remaining: Sequence[Sequence[ReconciliationOp]],
) -> int | None:
    """Highest committed revision with no uncommitted op at or below it."""

    uncommitted = [
        op.source_revision
        for record in records
        if record.status is not SubmissionStatus.COMMITTED
        for op in record.op_batch
    ]
    uncommitted.extend(op.source_revision for batch in remaining for op in batch)
    ceiling = min(uncommitted, default=None)

    committed = [
        op.source_revision
        for record in records
        if record.status is SubmissionStatus.COMMITTED
        for op in record.op_batch
        if ceiling is None or op.source_revision < ceiling
    ]
    return max(committed, default=None)


async def _find_broadcast(connection: ChainClient, tx_hashes: Sequence[str]) -> TxResult | None:
    """Look up each hash a batch was broadcast under, newest first.

    A successful transaction wins over failed ones; otherwise the newest one found.
    """

    failed: TxResult | None = None
    for tx_hash in tx_hashes:
        found = await connection.get_tx(tx_hash)
        if found is None:
            continue
        if found.succeeded:
            return found
        failed = failed or found
    return failed
