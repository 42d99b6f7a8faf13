"""CosmWasm chain adapter: LCD REST client, endpoint pool and signer loading."""

from __future__ import annotations

from .client import CosmWasmRestClient, build_chain_client, encode_smart_query
from .pool import ChainConnectionPool, EndpointState, PooledConnection
from .signer import build_signers, load_signer_factory

__all__ = [
    "ChainConnectionPool",
    "CosmWasmRestClient",
    "EndpointState",
    "PooledConnection",
    "build_chain_client",
    "build_signers",
    "encode_smart_query",
    "load_signer_factory",
]
