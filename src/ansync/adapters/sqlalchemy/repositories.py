"""Repository implementations backed by SQLAlchemy sessions."""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy import select

from ansync.adapters.sqlalchemy.mappings import checkpoint_table, submission_record_table
from ansync.domain.model import Checkpoint, SubmissionRecord, utcnow

if TYPE_CHECKING:
    import uuid

    from sqlalchemy.orm import Session

    from ansync.domain.model import SubmissionStatus


class SqlAlchemyCheckpointRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def get(self, network_id: str) -> Checkpoint | None:
        return self.session.get(Checkpoint, network_id)

    def advance(self, network_id: str, revision: int) -> int:
        """Raise the stored revision to ``revision``; a lower value leaves it untouched."""

        current = self.session.get(Checkpoint, network_id, with_for_update=True)
        if current is None:
            current = Checkpoint(network_id=network_id, revision=revision)
            self.session.add(current)
        elif revision > current.revision:
            current.revision = revision
            current.updated_at = utcnow()
        self.session.flush()
        return current.revision

    def list_all(self) -> list[Checkpoint]:
        stmt = select(Checkpoint).order_by(checkpoint_table.c.network_id)
        return list(self.session.execute(stmt).scalars().all())


class SqlAlchemySubmissionRecordRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def save(self, record: SubmissionRecord) -> None:
        self.session.merge(record)
        self.session.flush()

    def get(self, record_id: uuid.UUID) -> SubmissionRecord | None:
        return self.session.get(SubmissionRecord, record_id)

    def delete(self, record: SubmissionRecord) -> None:
        stored = self.session.get(SubmissionRecord, record.id)
        if stored is not None:
            self.session.delete(stored)

    def by_status(self, network_id: str, status: SubmissionStatus) -> list[SubmissionRecord]:
        stmt = (
            select(SubmissionRecord)
            .where(submission_record_table.c.network_id == network_id)
            .where(submission_record_table.c.status == status)
            .order_by(submission_record_table.c.created_at)
        )
        return list(self.session.execute(stmt).scalars().all())
