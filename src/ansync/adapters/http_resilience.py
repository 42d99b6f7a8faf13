"""Shared HTTP plumbing for the registry feed and chain node clients."""

from __future__ import annotations

import json
from logging import getLogger
from typing import TYPE_CHECKING

import httpx
from aiolimiter import AsyncLimiter
from hishel import AsyncSqliteStorage, FilterPolicy
from hishel import Response as HishelCacheResponse
from hishel._policies import BaseFilter
from hishel.httpx import AsyncCacheClient
from httpx_retries import Retry, RetryTransport

from ansync.config.http_resilience import (
    CacheConfig,
    RateLimit,
    ResilienceConfig,
    RetryPolicy,
    ShouldCacheHook,
)

if TYPE_CHECKING:
    from types import TracebackType

__all__ = [
    "CacheConfig",
    "RateLimit",
    "ResilienceConfig",
    "ResilientClient",
    "RetryPolicy",
    "build_retry",
]

log = getLogger(__name__)


def build_retry(policy: RetryPolicy) -> Retry:
    return Retry(
        total=policy.total,
        backoff_factor=policy.backoff_factor,
        max_backoff_wait=policy.max_backoff_wait,
        respect_retry_after_header=policy.respect_retry_after_header,
        allowed_methods=tuple(policy.allowed_methods),
        status_forcelist=tuple(policy.status_forcelist),
        retry_on_exceptions=policy.retry_on_exceptions,
        backoff_jitter=policy.backoff_jitter,
    )


class ResilientClient:
    """Rate-limited JSON client with transport retries and an optional response cache.

    Retries follow ``config.retry``; whether a method is replayed at all is decided by
    its ``allowed_methods``.
    """

    def __init__(
        self,
        config: ResilienceConfig,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.config = config
        self._limiter = (
            AsyncLimiter(config.ratelimit.max_calls, config.ratelimit.per_seconds)
            if config.ratelimit
            else None
        )
        retrying = RetryTransport(transport=transport, retry=build_retry(config.retry))
        self._client = _open_client(config, retrying)

    async def __aenter__(self) -> ResilientClient:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def request(self, method: str, path: str, *, json: object = None) -> httpx.Response:
        if self._limiter is None:
            return await self._client.request(method, path, json=json)
        async with self._limiter:
            return await self._client.request(method, path, json=json)

    async def get(self, path: str) -> httpx.Response:
        return await self.request("GET", path)


def _open_client(config: ResilienceConfig, transport: RetryTransport) -> httpx.AsyncClient:
    headers = dict(config.default_headers or {})
    base_url = config.base_url or ""
    cache = config.cache
    if cache is None or not cache.enabled:
        return httpx.AsyncClient(
            base_url=base_url,
            headers=headers,
            timeout=config.timeout_seconds,
            transport=transport,
        )

    log.debug("Caching %s responses in %s", config.name, cache.backend)
    return AsyncCacheClient(
        base_url=base_url,
        headers=headers,
        timeout=config.timeout_seconds,
        transport=transport,
        storage=_cache_storage(cache),
        policy=_cache_policy(cache),
    )


def _cache_storage(cache: CacheConfig) -> AsyncSqliteStorage:
    if cache.backend == "memory":
        database_path = ":memory:"
    elif cache.backend == "sqlite" and cache.sqlite_path:
        database_path = cache.sqlite_path
    else:
        raise ValueError(f"Cache backend {cache.backend!r} needs a database path")
    return AsyncSqliteStorage(
        database_path=database_path,
        default_ttl=cache.default_ttl_seconds,
        refresh_ttl_on_access=cache.refresh_ttl_on_access,
    )


def _cache_policy(cache: CacheConfig) -> FilterPolicy | None:
    if cache.should_cache is None:
        return None
    return FilterPolicy(response_filters=[_JsonPayloadFilter(cache.should_cache)])


class _JsonPayloadFilter(BaseFilter[HishelCacheResponse]):
    """Only stores responses whose decoded JSON body satisfies ``predicate``."""

    def __init__(self, predicate: ShouldCacheHook) -> None:
        self._predicate = predicate

    def needs_body(self) -> bool:
        return True

    def apply(self, item: HishelCacheResponse, body: bytes | None) -> bool:  # noqa: ARG002
        if body is None:
            return True
        try:
            payload = json.loads(body)
        except (UnicodeDecodeError, json.JSONDecodeError):
            return False
        return bool(self._predicate(payload))
