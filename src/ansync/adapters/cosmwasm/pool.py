"""Per-network endpoint pool with health tracking, failover and re-probing."""

from __future__ import annotations

import asyncio
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from logging import getLogger
from typing import TYPE_CHECKING, Any

from ansync.config.networks import PoolConfig
from ansync.domain.errors import NetworkUnreachable
from ansync.domain.model import EndpointHealth
from ansync.domain.ports.chain import EndpointError

from .client import build_chain_client

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Awaitable, Callable, Mapping, Sequence

    from ansync.domain.ports.chain import (
        AccountInfo,
        BroadcastResult,
        ChainClient,
        ConnectionPool,
        TxResult,
    )

log = getLogger(__name__)


@dataclass(slots=True)
class EndpointState:
    url: str
    client: ChainClient | None = None
    consecutive_failures: int = 0
    down_since: float | None = None

    @property
    def is_down(self) -> bool:
        return self.down_since is not None


@dataclass(slots=True)
class _NetworkEndpoints:
    network_id: str
    endpoints: list[EndpointState]
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)


class PooledConnection:
    """Exclusive handle on one endpoint; reports call outcomes back to the pool."""

    def __init__(
        self,
        pool: ChainConnectionPool,
        network: _NetworkEndpoints,
        state: EndpointState,
        client: ChainClient,
    ) -> None:
        self._pool = pool
        self._network = network
        self._state = state
        self._client = client
        self.released = False

    @property
    def network_id(self) -> str:
        return self._network.network_id

    @property
    def endpoint(self) -> str:
        return self._state.url

    async def query_smart(self, contract: str, query: Mapping[str, Any]) -> Any:
        return await self._call(self._client.query_smart(contract, query))

    async def account(self, address: str) -> AccountInfo:
        return await self._call(self._client.account(address))

    async def broadcast(self, tx_bytes: bytes) -> BroadcastResult:
        return await self._call(self._client.broadcast(tx_bytes))

    async def get_tx(self, tx_hash: str) -> TxResult | None:
        return await self._call(self._client.get_tx(tx_hash))

    async def probe(self) -> None:
        await self._call(self._client.probe())

    async def aclose(self) -> None:
        await self._pool.release(self)

    async def _call[T](self, call: Awaitable[T]) -> T:
        if self.released:
            if asyncio.iscoroutine(call):
                call.close()
            raise RuntimeError(f"Connection to {self.endpoint} was already released")
        try:
            result = await call
        except EndpointError:
            self._pool.record_failure(self._network.network_id, self._state)
            raise
        self._pool.record_success(self._state)
        return result


class ChainConnectionPool:
    """Hands out one exclusive connection per network.

    Endpoints without failures are preferred in config order; failing but not yet down
    endpoints are used only when none is clean, fewest failures first.

    An endpoint goes down after ``failure_threshold`` consecutive transport failures and
    is probed again once ``reprobe_interval`` seconds have passed.
    """

    def __init__(
        self,
        endpoints: Mapping[str, Sequence[str]],
        *,
        config: PoolConfig | None = None,
        client_factory: Callable[[str], ChainClient] = build_chain_client,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._config = config or PoolConfig()
        self._client_factory = client_factory
        self._clock = clock
        self._networks: dict[str, _NetworkEndpoints] = {
            network_id: _NetworkEndpoints(
                network_id=network_id,
                endpoints=[EndpointState(url=url) for url in urls],
            )
            for network_id, urls in endpoints.items()
        }

    async def acquire(self, network_id: str) -> PooledConnection:
        network = self._network(network_id)
        await network.lock.acquire()
        try:
            state = await self._select(network)
        except BaseException:
            network.lock.release()
            raise
        return PooledConnection(self, network, state, self._client(state))

    async def release(self, connection: ChainClient) -> None:
        if not isinstance(connection, PooledConnection):
            raise TypeError(f"Not a pooled connection: {connection!r}")
        if connection.released:
            return
        connection.released = True
        self._network(connection.network_id).lock.release()

    @asynccontextmanager
    async def connection(self, network_id: str) -> AsyncIterator[ChainClient]:
        pooled = await self.acquire(network_id)
        try:
            yield pooled
        finally:
            await self.release(pooled)

    def health(self, network_id: str) -> EndpointHealth:
        endpoints = self._network(network_id).endpoints
        if all(state.is_down for state in endpoints):
            return EndpointHealth.DOWN
        if any(state.is_down or state.consecutive_failures for state in endpoints):
            return EndpointHealth.DEGRADED
        return EndpointHealth.HEALTHY

    async def reprobe(self) -> None:
        """Probe every down endpoint of every network now."""

        for network in self._networks.values():
            for state in network.endpoints:
                if state.is_down:
                    await self._probe(network.network_id, state)

    async def aclose(self) -> None:
        for network in self._networks.values():
            for state in network.endpoints:
                if state.client is not None:
                    await state.client.aclose()
                    state.client = None

    def record_failure(self, network_id: str, state: EndpointState) -> None:
        state.consecutive_failures += 1
        log.warning(
            "Endpoint %s of %s failed (%s consecutive)",
            state.url,
            network_id,
            state.consecutive_failures,
        )
        if not state.is_down and state.consecutive_failures >= self._config.failure_threshold:
            state.down_since = self._clock()
            log.error("Marking endpoint %s of %s as down", state.url, network_id)

    def record_success(self, state: EndpointState) -> None:
        state.consecutive_failures = 0

    async def _select(self, network: _NetworkEndpoints) -> EndpointState:
        now = self._clock()
        failing: list[EndpointState] = []
        for state in network.endpoints:
            if (
                state.is_down
                and state.down_since is not None
                and now - state.down_since >= self._config.reprobe_interval
            ):
                await self._probe(network.network_id, state)
            if state.is_down:
                continue
            if not state.consecutive_failures:
                return state
            failing.append(state)
        if not failing:
            raise NetworkUnreachable(network.network_id)
        return min(failing, key=lambda state: state.consecutive_failures)

    async def _probe(self, network_id: str, state: EndpointState) -> None:
        try:
            await self._client(state).probe()
        except EndpointError as exc:
            state.down_since = self._clock()
            log.info("Endpoint %s of %s still down: %s", state.url, network_id, exc)
            return
        state.down_since = None
        state.consecutive_failures = 0
        log.info("Endpoint %s of %s is back up", state.url, network_id)

    def _client(self, state: EndpointState) -> ChainClient:
        if state.client is None:
            state.client = self._client_factory(state.url)
        return state.client

    def _network(self, network_id: str) -> _NetworkEndpoints:
        network = self._networks.get(network_id)
        if network is None:
            raise KeyError(f"No endpoints configured for network {network_id!r}")
        return network


if TYPE_CHECKING:
    _pool_check: ConnectionPool = ChainConnectionPool({})
