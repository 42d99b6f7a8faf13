"""Diff computation between desired and on-chain registry state.

``diff`` is pure and deterministic: removals come first so a key that changes kind
never exists twice on-chain, then inserts, then updates, each in ascending key order.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import TYPE_CHECKING

from ansync.domain.model import Insert, Remove, Update

if TYPE_CHECKING:
    from ansync.domain.model import ActualState, DesiredState, EntryValue, ReconciliationOp


def values_equal(left: EntryValue, right: EntryValue) -> bool:
    if isinstance(left, Mapping) and isinstance(right, Mapping):
        return dict(left) == dict(right)
    if isinstance(left, Mapping) or isinstance(right, Mapping):
        return False
    return left == right


def diff(desired: DesiredState, actual: ActualState) -> tuple[ReconciliationOp, ...]:
    """Return the ordered ops that turn ``actual`` into ``desired``."""

    if desired.network_id != actual.network_id:
        raise ValueError(
            f"Cannot diff {desired.network_id!r} against {actual.network_id!r}"
        )

    removes: list[ReconciliationOp] = [
        Remove(key=key, source_revision=desired.revision)
        for key in sorted(actual)
        if key not in desired
    ]

    inserts: list[ReconciliationOp] = []
    updates: list[ReconciliationOp] = []
    for key in sorted(desired):
        entry = desired.entries[key]
        if key not in actual:
            inserts.append(
                Insert(key=key, value=entry.value, source_revision=entry.source_revision)
            )
            continue
        current = actual.entries[key]
        if not values_equal(current, entry.value):
            updates.append(
                Update(
                    key=key,
                    old_value=current,
                    new_value=entry.value,
                    source_revision=entry.source_revision,
                )
            )

    return (*removes, *inserts, *updates)
