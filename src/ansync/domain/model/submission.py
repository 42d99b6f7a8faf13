"""Submission bookkeeping: records, checkpoints and outcomes."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from .enums import OpAction, SubmissionStatus

if TYPE_CHECKING:
    from .operations import ReconciliationOp


def utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass(eq=False, kw_only=True)
class SubmissionRecord:
    """Ledger entry for one transaction-sized batch.

    Transitions only ``PENDING -> COMMITTED`` or ``PENDING -> FAILED``.
    """

    network_id: str
    signer: str
    op_batch: tuple[ReconciliationOp, ...]
    signer_sequence: int | None = None
    status: SubmissionStatus = SubmissionStatus.PENDING
    retry_count: int = 0
    last_error: str | None = None
    tx_hash: str | None = None
    earlier_tx_hashes: tuple[str, ...] = ()
    id: UUID = field(default_factory=uuid4)
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    @property
    def is_terminal(self) -> bool:
        return self.status is not SubmissionStatus.PENDING

    @property
    def broadcast_hashes(self) -> tuple[str, ...]:
        """Every hash this batch was broadcast under, newest first."""

        current = () if self.tx_hash is None else (self.tx_hash,)
        return (*current, *reversed(self.earlier_tx_hashes))

    def record_broadcast(self, tx_hash: str) -> None:
        self._require_pending()
        self._set_tx_hash(tx_hash)
        self.updated_at = utcnow()

    def mark_committed(self, tx_hash: str) -> None:
        self._require_pending()
        self.status = SubmissionStatus.COMMITTED
        self._set_tx_hash(tx_hash)
        self.updated_at = utcnow()

    def mark_failed(self, error: str) -> None:
        self._require_pending()
        self.status = SubmissionStatus.FAILED
        self.last_error = error
        self.updated_at = utcnow()

    def record_retry(self, error: str) -> None:
        self._require_pending()
        self.retry_count += 1
        self.last_error = error
        self.updated_at = utcnow()

    def _set_tx_hash(self, tx_hash: str) -> None:
        oldest_first = reversed(self.broadcast_hashes)
        self.earlier_tx_hashes = tuple(known for known in oldest_first if known != tx_hash)
        self.tx_hash = tx_hash

    def _require_pending(self) -> None:
        if self.status is not SubmissionStatus.PENDING:
            raise ValueError(f"Submission record {self.id} is already {self.status}")


@dataclass(eq=False, kw_only=True)
class Checkpoint:
    """Last source revision fully committed on-chain for a network."""

    network_id: str
    revision: int
    updated_at: datetime = field(default_factory=utcnow)


@dataclass(slots=True, frozen=True)
class BatchFailure:
    signer_sequence: int | None
    op_count: int
    reason: str


@dataclass(slots=True)
class SubmissionOutcome:
    """Result of draining one network's op sequence."""

    network_id: str
    records: list[SubmissionRecord] = field(default_factory=list["SubmissionRecord"])
    checkpoint: int | None = None

    @property
    def committed_ops(self) -> list[ReconciliationOp]:
        return [
            op
            for record in self.records
            if record.status is SubmissionStatus.COMMITTED
            for op in record.op_batch
        ]

    @property
    def failed_batches(self) -> list[BatchFailure]:
        return [
            BatchFailure(
                signer_sequence=record.signer_sequence,
                op_count=len(record.op_batch),
                reason=record.last_error or "unknown error",
            )
            for record in self.records
            if record.status is SubmissionStatus.FAILED
        ]

    def committed_count(self, action: OpAction) -> int:
        return sum(1 for op in self.committed_ops if op.ACTION is action)

    @property
    def fully_committed(self) -> bool:
        return all(record.status is SubmissionStatus.COMMITTED for record in self.records)
