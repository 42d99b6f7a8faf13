"""Chunking op sequences into transaction-sized batches."""

from __future__ import annotations

import hashlib
from itertools import batched
from typing import TYPE_CHECKING

from ansync.domain.contract_messages import update_messages
from ansync.domain.ports.chain import ExecuteMessage

if TYPE_CHECKING:
    from collections.abc import Sequence

    from ansync.domain.model import ReconciliationOp


def chunk_ops(
    ops: Sequence[ReconciliationOp],
    max_ops_per_tx: int,
) -> list[tuple[ReconciliationOp, ...]]:
    if max_ops_per_tx <= 0:
        raise ValueError("max_ops_per_tx must be positive")
    return list(batched(ops, max_ops_per_tx))


def batch_messages(
    batch: Sequence[ReconciliationOp],
    *,
    sender: str,
    contract: str,
) -> list[ExecuteMessage]:
    return [
        ExecuteMessage(sender=sender, contract=contract, msg=msg)
        for msg in update_messages(batch)
    ]


def tx_hash_of(tx_bytes: bytes) -> str:
    """Transaction hash as reported by Cosmos SDK nodes."""

    return hashlib.sha256(tx_bytes).hexdigest().upper()
