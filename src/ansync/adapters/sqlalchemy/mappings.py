"""SQLAlchemy mapping metadata for checkpoints and submission records."""

from __future__ import annotations

import json
import logging
import uuid
from datetime import UTC, datetime
from functools import cache
from typing import TYPE_CHECKING, Any, cast

from sqlalchemy import (
    Column,
    DateTime,
    Dialect,
    Enum,
    Index,
    Integer,
    String,
    Table,
    Text,
    TypeDecorator,
    Uuid,
    orm,
)

from ansync.domain.model import (
    Checkpoint,
    ReconciliationOp,
    SubmissionRecord,
    SubmissionStatus,
    op_from_payload,
    op_to_payload,
)

if TYPE_CHECKING:
    from sqlalchemy.engine import Engine

log = logging.getLogger(__name__)

UUIDColumnType = Uuid[uuid.UUID]


class UTCDateTime(TypeDecorator[datetime]):
    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect: Dialect) -> datetime | None:
        _ = dialect
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        return value.astimezone(UTC)

    def process_result_value(self, value: datetime | None, dialect: Dialect) -> datetime | None:
        _ = dialect
        if value is None:
            return None
        return value if value.tzinfo else value.replace(tzinfo=UTC)


class OpBatchType(TypeDecorator[tuple[ReconciliationOp, ...]]):
    """Stores an op batch as a JSON array of op payloads."""

    impl = Text
    cache_ok = True

    def process_bind_param(
        self, value: tuple[ReconciliationOp, ...] | None, dialect: Dialect
    ) -> str | None:
        _ = dialect
        if value is None:
            return None
        return json.dumps([op_to_payload(op) for op in value], sort_keys=True)

    def process_result_value(
        self, value: str | None, dialect: Dialect
    ) -> tuple[ReconciliationOp, ...]:
        _ = dialect
        if value is None:
            return ()
        loaded = json.loads(value)
        if not isinstance(loaded, list):
            raise ValueError("Stored op batch is not a JSON array")
        items = cast(list[dict[str, Any]], loaded)
        return tuple(op_from_payload(item) for item in items)


class HashListType(TypeDecorator[tuple[str, ...]]):
    """Stores transaction hashes as a JSON array of strings."""

    impl = Text
    cache_ok = True

    def process_bind_param(self, value: tuple[str, ...] | None, dialect: Dialect) -> str:
        _ = dialect
        return json.dumps(list(value or ()))

    def process_result_value(self, value: str | None, dialect: Dialect) -> tuple[str, ...]:
        _ = dialect
        if value is None:
            return ()
        loaded = json.loads(value)
        if not isinstance(loaded, list):
            raise ValueError("Stored transaction hashes are not a JSON array")
        return tuple(str(item) for item in cast(list[Any], loaded))


mapper_registry = orm.registry()
mapper_registry.metadata.naming_convention = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_label)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_label)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}

checkpoint_table = Table(
    "checkpoint",
    mapper_registry.metadata,
    Column("network_id", String, primary_key=True),
    Column("revision", Integer, nullable=False),
    Column("updated_at", UTCDateTime(), nullable=False),
)

submission_record_table = Table(
    "submission_record",
    mapper_registry.metadata,
    Column("id", UUIDColumnType, primary_key=True, default=uuid.uuid4),
    Column("network_id", String, nullable=False),
    Column("signer", String, nullable=False),
    Column("signer_sequence", Integer, nullable=True),
    Column("op_batch", OpBatchType(), nullable=False),
    Column(
        "status",
        Enum(SubmissionStatus, native_enum=False, length=16),
        nullable=False,
    ),
    Column("retry_count", Integer, nullable=False, default=0),
    Column("last_error", Text, nullable=True),
    Column("tx_hash", String(64), nullable=True),
    Column("earlier_tx_hashes", HashListType(), nullable=False),
    Column("created_at", UTCDateTime(), nullable=False),
    Column("updated_at", UTCDateTime(), nullable=False),
    Index("ix_submission_record_network_status", "network_id", "status"),
)


@cache
def start_mappers() -> orm.registry:
    """Configure SQLAlchemy mappers for the domain model."""

    log.info("Starting SQLAlchemy mappers")

    mapper_registry.map_imperatively(Checkpoint, checkpoint_table)
    mapper_registry.map_imperatively(SubmissionRecord, submission_record_table)

    orm.configure_mappers()
    return mapper_registry


def create_all_tables(engine: Engine) -> None:
    """Create database tables for the mapped metadata."""

    log.info("Creating all tables")
    mapper_registry.metadata.create_all(engine)
