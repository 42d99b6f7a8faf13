"""Ports for persisting checkpoints and submission records."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from uuid import UUID

    from ansync.domain.model import Checkpoint, SubmissionRecord, SubmissionStatus


@runtime_checkable
class CheckpointRepository(Protocol):
    """Per-network checkpoint storage with monotonic advance."""

    def get(self, network_id: str) -> Checkpoint | None: ...

    def advance(self, network_id: str, revision: int) -> int:
        """Atomically raise the checkpoint to ``revision``; return the stored value."""
        ...

    def list_all(self) -> list[Checkpoint]: ...


@runtime_checkable
class SubmissionRecordRepository(Protocol):
    """Ledger of submission records owned by the submitter."""

    def save(self, record: SubmissionRecord) -> None:
        """Insert ``record`` or overwrite the stored copy with the same id."""
        ...

    def get(self, record_id: UUID) -> SubmissionRecord | None: ...

    def delete(self, record: SubmissionRecord) -> None: ...

    def by_status(self, network_id: str, status: SubmissionStatus) -> list[SubmissionRecord]: ...
