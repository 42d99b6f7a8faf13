"""Domain port definitions for adapters."""

from __future__ import annotations

from .chain import (
    AccountInfo,
    BroadcastResult,
    ChainClient,
    ConnectionPool,
    EndpointError,
    ExecuteMessage,
    TransactionSigner,
    TxResult,
)
from .persistence import CheckpointRepository, SubmissionRecordRepository
from .source import RegistrySource
from .unit_of_work import (
    ReconcileRepositories,
    ReconcileUnitOfWork,
    RepositoryCollection,
    UnitOfWork,
)

__all__ = [
    "AccountInfo",
    "BroadcastResult",
    "ChainClient",
    "CheckpointRepository",
    "ConnectionPool",
    "EndpointError",
    "ExecuteMessage",
    "ReconcileRepositories",
    "ReconcileUnitOfWork",
    "RegistrySource",
    "RepositoryCollection",
    "SubmissionRecordRepository",
    "TransactionSigner",
    "TxResult",
    "UnitOfWork",
]
