"""Query and execute message shapes of the on-chain name-service registry contract."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import TYPE_CHECKING, Any, Final

from ansync.domain.model import EntryKind, Remove

from .naming import (
    CHANNEL_SEPARATOR,
    CONTRACT_SEPARATOR,
    split_channel_key,
    split_contract_key,
)

if TYPE_CHECKING:
    from ansync.domain.model import EntryValue, ReconciliationOp

LISTING_QUERIES: Final[dict[EntryKind, str]] = {
    EntryKind.ASSET: "asset_list",
    EntryKind.CONTRACT: "contract_list",
    EntryKind.CHANNEL: "channel_list",
}
LISTING_FIELDS: Final[dict[EntryKind, str]] = {
    EntryKind.ASSET: "assets",
    EntryKind.CONTRACT: "contracts",
    EntryKind.CHANNEL: "channels",
}
UPDATE_MESSAGES: Final[dict[EntryKind, str]] = {
    EntryKind.ASSET: "update_asset_addresses",
    EntryKind.CONTRACT: "update_contract_addresses",
    EntryKind.CHANNEL: "update_channels",
}


def wire_key(kind: EntryKind, key: str) -> str | dict[str, str]:
    if kind is EntryKind.CONTRACT:
        protocol, contract = split_contract_key(key)
        return {"protocol": protocol, "contract": contract}
    if kind is EntryKind.CHANNEL:
        connected_chain, protocol = split_channel_key(key)
        return {"connected_chain": connected_chain, "protocol": protocol}
    return key


def key_from_wire(kind: EntryKind, raw: object) -> str:
    if kind is EntryKind.ASSET:
        if not isinstance(raw, str):
            raise ValueError(f"Asset key must be a string, got {raw!r}")
        return raw
    if not isinstance(raw, Mapping):
        raise ValueError(f"{kind} key must be an object, got {raw!r}")
    fields: Mapping[str, Any] = raw
    if kind is EntryKind.CONTRACT:
        head, tail, separator = fields["protocol"], fields["contract"], CONTRACT_SEPARATOR
    else:
        head, tail, separator = fields["connected_chain"], fields["protocol"], CHANNEL_SEPARATOR
    # Keys split on the first separator, so it must not occur in the leading part.
    if not isinstance(head, str) or not isinstance(tail, str) or not head or separator in head:
        raise ValueError(f"Ambiguous {kind} key {dict(fields)!r}")
    return f"{head}{separator}{tail}"


def value_from_wire(kind: EntryKind, raw: object) -> EntryValue:
    if kind is EntryKind.ASSET:
        if not isinstance(raw, Mapping) or len(raw) != 1:
            raise ValueError(f"Asset info must be a single-key object, got {raw!r}")
        info: Mapping[str, Any] = raw
        ((variant, target),) = info.items()
        return {str(variant): str(target)}
    if not isinstance(raw, str):
        raise ValueError(f"{kind} value must be a string, got {raw!r}")
    return raw


def listing_query(kind: EntryKind, *, start_after: str | None, limit: int) -> dict[str, Any]:
    cursor = wire_key(kind, start_after) if start_after is not None else None
    return {LISTING_QUERIES[kind]: {"start_after": cursor, "limit": limit}}


def parse_listing(kind: EntryKind, payload: object) -> list[tuple[str, EntryValue]]:
    """Decode one listing page into ``(key, value)`` pairs, in page order."""

    if not isinstance(payload, Mapping):
        raise ValueError(f"Listing response must be an object, got {type(payload).__name__}")
    response: Mapping[str, Any] = payload
    items = response.get(LISTING_FIELDS[kind])
    if not isinstance(items, Sequence) or isinstance(items, str):
        raise ValueError(f"Listing response lacks '{LISTING_FIELDS[kind]}'")

    page: list[tuple[str, EntryValue]] = []
    for item in items:
        if not isinstance(item, Sequence) or isinstance(item, str) or len(item) != 2:
            raise ValueError(f"Listing item must be a [key, value] pair, got {item!r}")
        try:
            page.append((key_from_wire(kind, item[0]), value_from_wire(kind, item[1])))
        except (KeyError, TypeError) as exc:
            raise ValueError(f"Unreadable listing item {item!r}") from exc
    return page


def _plain_value(value: EntryValue) -> str | dict[str, str]:
    if isinstance(value, Mapping):
        return dict(value)
    return value


def update_messages(ops: Sequence[ReconciliationOp]) -> list[dict[str, Any]]:
    """Encode ops as execute messages, preserving op order.

    Consecutive ops of the same kind and family (removal vs. addition) share one
    message. The contract applies ``to_add`` before ``to_remove`` inside a message,
    so a removal is never merged into a message that also adds.
    """

    messages: list[dict[str, Any]] = []
    current: tuple[EntryKind, bool] | None = None
    body: dict[str, list[Any]] = {}
    for op in ops:
        kind = op.key.kind
        removing = isinstance(op, Remove)
        if current != (kind, removing):
            body = {"to_add": [], "to_remove": []}
            messages.append({UPDATE_MESSAGES[kind]: body})
            current = (kind, removing)
        if isinstance(op, Remove):
            body["to_remove"].append(wire_key(kind, op.key.key))
        else:
            body["to_add"].append([wire_key(kind, op.key.key), _plain_value(op.value)])
    return messages
