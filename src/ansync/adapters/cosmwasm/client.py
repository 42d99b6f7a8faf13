"""Cosmos SDK REST client for one chain node endpoint."""

from __future__ import annotations

import base64
import json
from logging import getLogger
from typing import TYPE_CHECKING, Any

import httpx

from ansync.adapters.http_resilience import (
    RateLimit,
    ResilienceConfig,
    ResilientClient,
    RetryPolicy,
)
from ansync.domain.ports.chain import AccountInfo, BroadcastResult, EndpointError, TxResult

from .schema import (
    AccountResponse,
    BroadcastRequest,
    LcdBaseModel,
    SmartQueryResponse,
    TxResponseEnvelope,
)

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping

    from ansync.domain.ports.chain import ChainClient

log = getLogger(__name__)

SMART_QUERY_PATH = "/cosmwasm/wasm/v1/contract/{contract}/smart/{query}"
ACCOUNT_PATH = "/cosmos/auth/v1beta1/accounts/{address}"
BROADCAST_PATH = "/cosmos/tx/v1beta1/txs"
TX_PATH = "/cosmos/tx/v1beta1/txs/{tx_hash}"
NODE_INFO_PATH = "/cosmos/base/tendermint/v1beta1/node_info"

_DEFAULT_TIMEOUT_SECONDS = 15.0


def _default_resilience_config(endpoint: str) -> ResilienceConfig:
    # Broadcasts are POSTs and stay outside the transport retry policy.
    return ResilienceConfig(
        name=f"chain:{endpoint}",
        base_url=endpoint.rstrip("/"),
        timeout_seconds=_DEFAULT_TIMEOUT_SECONDS,
        retry=RetryPolicy(total=2),
        ratelimit=RateLimit(max_calls=10, per_seconds=1.0),
    )


def _default_client_factory(config: ResilienceConfig) -> ResilientClient:
    return ResilientClient(config)


def encode_smart_query(query: Mapping[str, Any]) -> str:
    raw = json.dumps(query, separators=(",", ":"), sort_keys=True).encode("utf-8")
    return base64.urlsafe_b64encode(raw).decode("ascii")


class CosmWasmRestClient:
    """``ChainClient`` over the LCD REST API of a single node."""

    def __init__(
        self,
        endpoint: str,
        *,
        resilience: ResilienceConfig | None = None,
        client_factory: Callable[[ResilienceConfig], ResilientClient] | None = None,
    ) -> None:
        self._endpoint = endpoint.rstrip("/")
        self._resilience = resilience or _default_resilience_config(self._endpoint)
        self._client = (client_factory or _default_client_factory)(self._resilience)

    @property
    def endpoint(self) -> str:
        return self._endpoint

    async def aclose(self) -> None:
        await self._client.aclose()

    async def query_smart(self, contract: str, query: Mapping[str, Any]) -> Any:
        path = SMART_QUERY_PATH.format(contract=contract, query=encode_smart_query(query))
        response = await self._request("GET", path)
        return self._parse(SmartQueryResponse, response).data

    async def account(self, address: str) -> AccountInfo:
        response = await self._request("GET", ACCOUNT_PATH.format(address=address))
        account = self._parse(AccountResponse, response).account
        return AccountInfo(
            address=account.address,
            account_number=account.account_number,
            sequence=account.sequence,
        )

    async def broadcast(self, tx_bytes: bytes) -> BroadcastResult:
        body = BroadcastRequest(tx_bytes=base64.b64encode(tx_bytes).decode("ascii"))
        response = await self._request("POST", BROADCAST_PATH, body=body.model_dump())
        tx = self._parse(TxResponseEnvelope, response).tx_response
        log.debug("Broadcast %s via %s: code %s", tx.txhash, self._endpoint, tx.code)
        return BroadcastResult(
            tx_hash=tx.txhash.upper(),
            code=tx.code,
            codespace=tx.codespace,
            raw_log=tx.raw_log,
        )

    async def get_tx(self, tx_hash: str) -> TxResult | None:
        path = TX_PATH.format(tx_hash=tx_hash)
        response = await self._send("GET", path)
        if response.status_code == httpx.codes.NOT_FOUND:
            return None
        self._raise_for_status("GET", path, response)
        tx = self._parse(TxResponseEnvelope, response).tx_response
        return TxResult(
            tx_hash=tx.txhash.upper(),
            height=tx.height,
            code=tx.code,
            codespace=tx.codespace,
            raw_log=tx.raw_log,
        )

    async def probe(self) -> None:
        await self._request("GET", NODE_INFO_PATH)

    async def _request(
        self,
        method: str,
        path: str,
        *,
        body: object | None = None,
    ) -> httpx.Response:
        response = await self._send(method, path, body=body)
        self._raise_for_status(method, path, response)
        return response

    async def _send(
        self,
        method: str,
        path: str,
        *,
        body: object | None = None,
    ) -> httpx.Response:
        try:
            return await self._client.request(method, path, json=body)
        except httpx.HTTPError as exc:
            raise EndpointError(
                f"{method} {path} failed: {exc!r}", endpoint=self._endpoint
            ) from exc

    def _raise_for_status(self, method: str, path: str, response: httpx.Response) -> None:
        if response.is_error:
            raise EndpointError(
                f"{method} {path} returned HTTP {response.status_code}: {response.text[:200]}",
                endpoint=self._endpoint,
            )

    def _parse[TModel: LcdBaseModel](
        self,
        model: type[TModel],
        response: httpx.Response,
    ) -> TModel:
        try:
            return model.model_validate(response.json())
        except ValueError as exc:
            raise EndpointError(
                f"Unexpected {model.__name__} payload from {self._endpoint}: {exc}",
                endpoint=self._endpoint,
            ) from exc


def build_chain_client(endpoint: str) -> ChainClient:
    return CosmWasmRestClient(endpoint)


__all__ = [
    "CosmWasmRestClient",
    "build_chain_client",
    "encode_smart_query",
]
