"""Translate registry feed records into canonical registry entries."""

from __future__ import annotations

from collections.abc import Mapping
from logging import getLogger
from typing import TYPE_CHECKING, Any, cast

from pydantic import ValidationError

from ansync.domain.errors import SourceMalformed
from ansync.domain.model import DesiredState, EntryKind, MalformedRecord, RegistryEntry
from ansync.domain.naming import (
    ASSET_SEPARATOR,
    CHANNEL_SEPARATOR,
    CONTRACT_SEPARATOR,
    asset_key,
    channel_key,
    contract_key,
    is_address,
    is_channel_id,
    is_denom,
    is_valid_key,
)

from .schema import FEED_RECORD_ADAPTER, AssetRecord, ChannelRecord, ContractRecord

if TYPE_CHECKING:
    from .schema import FeedSnapshot

log = getLogger(__name__)

_LABEL_FIELDS: tuple[tuple[str, ...], ...] = (
    ("key",),
    ("chain_name", "symbol"),
    ("symbol",),
    ("protocol", "contract"),
    ("connected_chain", "protocol"),
)


def translate_record(
    record: AssetRecord | ContractRecord | ChannelRecord,
    *,
    network_id: str,
    chain_name: str,
    default_revision: int,
) -> RegistryEntry:
    """Build the canonical entry for one validated record or raise ``SourceMalformed``."""

    revision = record.revision if record.revision is not None else default_revision
    key: str
    value: str | Mapping[str, str]
    match record:
        case AssetRecord():
            kind = EntryKind.ASSET
            key, value = _asset(record, chain_name)
        case ContractRecord():
            kind = EntryKind.CONTRACT
            key, value = _contract(record)
        case ChannelRecord():
            kind = EntryKind.CHANNEL
            key, value = _channel(record)
    return RegistryEntry(
        network_id=network_id,
        kind=kind,
        key=key,
        value=value,
        source_revision=revision,
    )


def _asset(record: AssetRecord, chain_name: str) -> tuple[str, Mapping[str, str]]:
    if record.key and ASSET_SEPARATOR in record.key:
        key = record.key.lower()
    else:
        key = asset_key(record.chain_name or chain_name, record.key or record.symbol)
    if not is_valid_key(key, ASSET_SEPARATOR):
        raise SourceMalformed(key, "invalid asset key")

    if record.denom and record.cw20:
        raise SourceMalformed(key, "asset declares both a native denom and a cw20 address")
    if record.denom:
        if not is_denom(record.denom):
            raise SourceMalformed(key, f"invalid denom {record.denom!r}")
        return key, {"native": record.denom}
    if record.cw20:
        if not is_address(record.cw20):
            raise SourceMalformed(key, f"invalid cw20 address {record.cw20!r}")
        return key, {"cw20": record.cw20}
    raise SourceMalformed(key, "asset has neither denom nor cw20 address")


def _contract(record: ContractRecord) -> tuple[str, str]:
    key = contract_key(record.protocol, record.contract)
    if not is_valid_key(key, CONTRACT_SEPARATOR):
        raise SourceMalformed(key, "invalid contract key")
    if not is_address(record.address):
        raise SourceMalformed(key, f"invalid contract address {record.address!r}")
    return key, record.address


def _channel(record: ChannelRecord) -> tuple[str, str]:
    key = channel_key(record.connected_chain, record.protocol)
    if not is_valid_key(key, CHANNEL_SEPARATOR):
        raise SourceMalformed(key, "invalid channel key")
    if not is_channel_id(record.channel_id):
        raise SourceMalformed(key, f"invalid channel id {record.channel_id!r}")
    return key, record.channel_id


def record_label(raw: object) -> str:
    """Best-effort identifier for a record that failed validation."""

    if not isinstance(raw, Mapping):
        return f"<{type(raw).__name__}>"
    payload = cast(Mapping[str, Any], raw)
    kind = payload.get("kind", "?")
    for fields in _LABEL_FIELDS:
        if all(isinstance(payload.get(name), str) for name in fields):
            return f"{kind}:" + "/".join(str(payload[name]) for name in fields)
    return f"{kind}:<unnamed>"


def normalize_snapshot(
    snapshot: FeedSnapshot,
    *,
    network_id: str,
    chain_name: str,
) -> DesiredState:
    """Validate and translate every record; keep the highest revision per key.

    Records that fail validation are skipped and listed on ``DesiredState.malformed``.
    """

    desired = DesiredState(network_id=network_id, revision=snapshot.revision)
    for raw in snapshot.records:
        try:
            record = FEED_RECORD_ADAPTER.validate_python(raw)
        except ValidationError as exc:
            label = record_label(raw)
            _skip(desired, label, f"{exc.error_count()} validation error(s)")
            continue
        try:
            entry = translate_record(
                record,
                network_id=network_id,
                chain_name=chain_name,
                default_revision=snapshot.revision,
            )
        except SourceMalformed as exc:
            _skip(desired, exc.key, exc.reason)
            continue
        desired.offer(entry)

    desired.revision = max(desired.revision, desired.max_entry_revision)
    log.info(
        "Normalized %s feed records for %s into %s entries at revision %s (%s malformed)",
        len(snapshot.records),
        network_id,
        len(desired),
        desired.revision,
        len(desired.malformed),
    )
    return desired


def _skip(desired: DesiredState, key: str, reason: str) -> None:
    log.warning("Skipping malformed feed record %s for %s: %s", key, desired.network_id, reason)
    desired.malformed.append(MalformedRecord(key=key, reason=reason))
