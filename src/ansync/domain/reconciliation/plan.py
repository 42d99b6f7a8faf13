"""Summaries of reconciliation op sequences."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from ansync.domain.model import Insert, OpAction, Remove, Update

if TYPE_CHECKING:
    from collections.abc import Iterable

    from ansync.domain.model import ReconciliationOp


@dataclass(slots=True, frozen=True)
class OpCounts:
    inserted: int = 0
    updated: int = 0
    removed: int = 0

    @property
    def total(self) -> int:
        return self.inserted + self.updated + self.removed


def summarize(ops: Iterable[ReconciliationOp]) -> OpCounts:
    counts = dict.fromkeys(OpAction, 0)
    for op in ops:
        counts[op.ACTION] += 1
    return OpCounts(
        inserted=counts[OpAction.INSERT],
        updated=counts[OpAction.UPDATE],
        removed=counts[OpAction.REMOVE],
    )


def describe(op: ReconciliationOp) -> str:
    """One-line human readable rendering used by dry runs."""

    match op:
        case Insert(key=key, value=value):
            return f"+ {key} = {value}"
        case Update(key=key, old_value=old_value, new_value=new_value):
            return f"~ {key}: {old_value} -> {new_value}"
        case Remove(key=key):
            return f"- {key}"
