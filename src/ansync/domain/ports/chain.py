"""Ports for talking to chain nodes and signing transactions."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence
    from contextlib import AbstractAsyncContextManager

    from ansync.domain.model import EndpointHealth


class EndpointError(RuntimeError):
    """Transport-level failure talking to one chain endpoint."""

    def __init__(self, message: str, *, endpoint: str | None = None) -> None:
        super().__init__(message)
        self.endpoint = endpoint


@dataclass(slots=True, frozen=True)
class AccountInfo:
    address: str
    account_number: int
    sequence: int


@dataclass(slots=True, frozen=True)
class BroadcastResult:
    """CheckTx outcome of a synchronous broadcast."""

    tx_hash: str
    code: int
    codespace: str = ""
    raw_log: str = ""

    @property
    def accepted(self) -> bool:
        return self.code == 0


@dataclass(slots=True, frozen=True)
class TxResult:
    """DeliverTx outcome of a transaction found in a block."""

    tx_hash: str
    height: int
    code: int
    codespace: str = ""
    raw_log: str = ""

    @property
    def succeeded(self) -> bool:
        return self.code == 0


@dataclass(slots=True, frozen=True)
class ExecuteMessage:
    """A contract execute message to be wrapped into a signed transaction."""

    sender: str
    contract: str
    msg: Mapping[str, Any]


@runtime_checkable
class ChainClient(Protocol):
    """Query and broadcast channel to a single node endpoint.

    Implementations raise :class:`EndpointError` for transport failures only;
    application-level outcomes are returned as data.
    """

    @property
    def endpoint(self) -> str: ...

    async def query_smart(self, contract: str, query: Mapping[str, Any]) -> Any: ...

    async def account(self, address: str) -> AccountInfo: ...

    async def broadcast(self, tx_bytes: bytes) -> BroadcastResult: ...

    async def get_tx(self, tx_hash: str) -> TxResult | None: ...

    async def probe(self) -> None: ...

    async def aclose(self) -> None: ...


@runtime_checkable
class TransactionSigner(Protocol):
    """Signs execute messages into broadcastable transaction bytes."""

    @property
    def address(self) -> str: ...

    async def sign(
        self,
        *,
        chain_id: str,
        account_number: int,
        sequence: int,
        messages: Sequence[ExecuteMessage],
    ) -> bytes: ...


@runtime_checkable
class ConnectionPool(Protocol):
    """Hands out exclusive chain connections per network."""

    async def acquire(self, network_id: str) -> ChainClient: ...

    async def release(self, connection: ChainClient) -> None: ...

    def connection(self, network_id: str) -> AbstractAsyncContextManager[ChainClient]: ...

    def health(self, network_id: str) -> EndpointHealth: ...


__all__ = [
    "AccountInfo",
    "BroadcastResult",
    "ChainClient",
    "ConnectionPool",
    "EndpointError",
    "ExecuteMessage",
    "TransactionSigner",
    "TxResult",
]
