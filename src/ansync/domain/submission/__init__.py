"""Transaction submission for reconciliation ops."""

from __future__ import annotations

from .batching import batch_messages, chunk_ops, tx_hash_of
from .classify import raise_for_broadcast, raise_for_delivery
from .submitter import CANCELLED_ERROR, TransactionSubmitter

__all__ = [
    "CANCELLED_ERROR",
    "TransactionSubmitter",
    "batch_messages",
    "chunk_ops",
    "raise_for_broadcast",
    "raise_for_delivery",
    "tx_hash_of",
]
