"""Pure application of ops to an on-chain snapshot (dry runs and simulations)."""

from __future__ import annotations

from typing import TYPE_CHECKING

from ansync.domain.model import Insert, Remove, Update

if TYPE_CHECKING:
    from collections.abc import Iterable

    from ansync.domain.model import ActualState, ReconciliationOp


def apply_ops(actual: ActualState, ops: Iterable[ReconciliationOp]) -> ActualState:
    """Return a copy of ``actual`` with ``ops`` applied in order."""

    result = actual.copy()
    for op in ops:
        if op.network_id != result.network_id:
            raise ValueError(f"Op for {op.network_id!r} applied to {result.network_id!r}")
        match op:
            case Insert(key=key, value=value) | Update(key=key, new_value=value):
                result.entries[key] = value
            case Remove(key=key):
                result.entries.pop(key, None)
    return result
