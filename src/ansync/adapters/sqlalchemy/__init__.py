"""SQLAlchemy adapter package for the checkpoint store."""

from __future__ import annotations

from .mappings import create_all_tables, mapper_registry, start_mappers
from .repositories import SqlAlchemyCheckpointRepository, SqlAlchemySubmissionRecordRepository
from .unit_of_work import SqlAlchemyReconcileUnitOfWork, shutdown, startup

__all__ = [
    "SqlAlchemyCheckpointRepository",
    "SqlAlchemyReconcileUnitOfWork",
    "SqlAlchemySubmissionRecordRepository",
    "create_all_tables",
    "mapper_registry",
    "shutdown",
    "start_mappers",
    "startup",
]
