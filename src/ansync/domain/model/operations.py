"""Reconciliation operations: the only artifacts passed from the engine to the submitter."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, ClassVar

from .enums import EntryKind, OpAction
from .registry import EntryKey, EntryValue


@dataclass(frozen=True, slots=True, kw_only=True)
class Insert:
    ACTION: ClassVar[OpAction] = OpAction.INSERT

    key: EntryKey
    value: EntryValue
    source_revision: int

    @property
    def network_id(self) -> str:
        return self.key.network_id


@dataclass(frozen=True, slots=True, kw_only=True)
class Update:
    ACTION: ClassVar[OpAction] = OpAction.UPDATE

    key: EntryKey
    old_value: EntryValue
    new_value: EntryValue
    source_revision: int

    @property
    def network_id(self) -> str:
        return self.key.network_id

    @property
    def value(self) -> EntryValue:
        return self.new_value


@dataclass(frozen=True, slots=True, kw_only=True)
class Remove:
    ACTION: ClassVar[OpAction] = OpAction.REMOVE

    key: EntryKey
    source_revision: int

    @property
    def network_id(self) -> str:
        return self.key.network_id


type ReconciliationOp = Insert | Update | Remove


def _plain(value: EntryValue) -> Any:
    if isinstance(value, Mapping):
        return {str(k): str(v) for k, v in value.items()}
    return value


def op_to_payload(op: ReconciliationOp) -> dict[str, Any]:
    """Serialize ``op`` into a JSON-compatible mapping."""

    payload: dict[str, Any] = {
        "action": str(op.ACTION),
        "network_id": op.key.network_id,
        "kind": str(op.key.kind),
        "key": op.key.key,
        "source_revision": op.source_revision,
    }
    match op:
        case Insert(value=value):
            payload["value"] = _plain(value)
        case Update(old_value=old_value, new_value=new_value):
            payload["old_value"] = _plain(old_value)
            payload["new_value"] = _plain(new_value)
        case Remove():
            pass
    return payload


def op_from_payload(payload: Mapping[str, Any]) -> ReconciliationOp:
    """Inverse of :func:`op_to_payload`."""

    key = EntryKey(
        network_id=str(payload["network_id"]),
        kind=EntryKind(payload["kind"]),
        key=str(payload["key"]),
    )
    revision = int(payload["source_revision"])
    action = OpAction(payload["action"])
    if action is OpAction.INSERT:
        return Insert(key=key, value=payload["value"], source_revision=revision)
    if action is OpAction.UPDATE:
        return Update(
            key=key,
            old_value=payload["old_value"],
            new_value=payload["new_value"],
            source_revision=revision,
        )
    return Remove(key=key, source_revision=revision)
