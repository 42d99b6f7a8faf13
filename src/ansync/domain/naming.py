"""Name-service key conventions and value validation.

Keys are namespaced strings:

- assets: ``<chain_name>><symbol>``, lower-cased (``osmosis>osmo``)
- contracts: ``<protocol>:<contract>`` (``astroport:factory``)
- channels: ``<connected_chain>><protocol>`` (``osmosis>ics20``)
"""

from __future__ import annotations

import re
from typing import Final

ASSET_SEPARATOR: Final[str] = ">"
CONTRACT_SEPARATOR: Final[str] = ":"
CHANNEL_SEPARATOR: Final[str] = ">"

_BECH32_ADDRESS = re.compile(r"[a-z][a-z0-9]{0,82}1[02-9ac-hj-np-z]{38,}")
_DENOM = re.compile(r"[a-zA-Z][a-zA-Z0-9/:._-]{2,127}")
_CHANNEL_ID = re.compile(r"channel-\d+")
_NAME_PART = re.compile(r"[a-z0-9][a-z0-9._\-/]*")


def asset_key(chain_name: str, symbol: str) -> str:
    return f"{chain_name.strip().lower()}{ASSET_SEPARATOR}{symbol.strip().lower()}"


def contract_key(protocol: str, contract: str) -> str:
    return f"{protocol.strip().lower()}{CONTRACT_SEPARATOR}{contract.strip().lower()}"


def channel_key(connected_chain: str, protocol: str) -> str:
    return f"{connected_chain.strip().lower()}{CHANNEL_SEPARATOR}{protocol.strip().lower()}"


def split_contract_key(key: str) -> tuple[str, str]:
    protocol, sep, contract = key.partition(CONTRACT_SEPARATOR)
    if not sep or not protocol or not contract:
        raise ValueError(f"Not a contract key: {key!r}")
    return protocol, contract


def split_channel_key(key: str) -> tuple[str, str]:
    connected_chain, sep, protocol = key.partition(CHANNEL_SEPARATOR)
    if not sep or not connected_chain or not protocol:
        raise ValueError(f"Not a channel key: {key!r}")
    return connected_chain, protocol


def is_valid_key(key: str, separator: str) -> bool:
    left, sep, right = key.partition(separator)
    return bool(sep) and all(_NAME_PART.fullmatch(part) for part in (left, right))


def is_address(value: str) -> bool:
    return bool(_BECH32_ADDRESS.fullmatch(value))


def is_denom(value: str) -> bool:
    return bool(_DENOM.fullmatch(value))


def is_channel_id(value: str) -> bool:
    return bool(_CHANNEL_ID.fullmatch(value))
