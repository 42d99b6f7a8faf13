"""HTTP source for the registry feed."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from logging import getLogger
from typing import TYPE_CHECKING

import httpx
from pydantic import ValidationError

from ansync.adapters.http_resilience import ResilientClient
from ansync.domain.errors import SourceUnavailable

from .schema import FeedSnapshot
from .translator import normalize_snapshot

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping

    from ansync.config.feed import FeedConfig
    from ansync.config.http_resilience import ResilienceConfig
    from ansync.domain.model import DesiredState

log = getLogger(__name__)


def _should_cache_payload(payload: object) -> bool:
    return isinstance(payload, dict) and isinstance(payload.get("records"), list)


def _default_client_factory(config: ResilienceConfig) -> ResilientClient:
    return ResilientClient(config)


@dataclass(slots=True)
class RegistryFeedSource:
    """Fetch ``{base_url}/{chain_name}.json`` and normalize it into a ``DesiredState``."""

    resilience: ResilienceConfig
    chain_names: Mapping[str, str]
    client_factory: Callable[[ResilienceConfig], ResilientClient] = field(
        default=_default_client_factory
    )

    async def fetch_desired(self, network_id: str) -> DesiredState:
        chain_name = self.chain_names.get(network_id)
        if chain_name is None:
            raise KeyError(f"No feed chain name configured for {network_id!r}")

        snapshot = await self._fetch_snapshot(chain_name)
        return normalize_snapshot(snapshot, network_id=network_id, chain_name=chain_name)

    async def _fetch_snapshot(self, chain_name: str) -> FeedSnapshot:
        path = f"{chain_name}.json"
        async with self.client_factory(self.resilience) as client:
            try:
                response = await client.get(path)
            except httpx.HTTPError as exc:
                raise SourceUnavailable(f"Registry feed request for {path} failed: {exc}") from exc

        if response.is_error:
            raise SourceUnavailable(
                f"Registry feed returned HTTP {response.status_code} for {path}"
            )
        try:
            payload = response.json()
        except ValueError as exc:
            raise SourceUnavailable(f"Registry feed returned non-JSON content for {path}") from exc
        try:
            snapshot = FeedSnapshot.model_validate(payload)
        except ValidationError as exc:
            raise SourceUnavailable(f"Unusable registry feed envelope for {path}: {exc}") from exc

        log.debug(
            "Fetched %s records at revision %s from %s",
            len(snapshot.records),
            snapshot.revision,
            path,
        )
        return snapshot


def build_registry_feed_source(
    config: FeedConfig,
    chain_names: Mapping[str, str],
    *,
    client_factory: Callable[[ResilienceConfig], ResilientClient] | None = None,
) -> RegistryFeedSource:
    """Feed source whose cache only keeps responses with a usable envelope."""

    resilience = config.resilience
    if resilience.cache is not None:
        cache = replace(resilience.cache, should_cache=_should_cache_payload)
        resilience = replace(resilience, cache=cache)
    return RegistryFeedSource(
        resilience=resilience,
        chain_names=dict(chain_names),
        client_factory=client_factory or _default_client_factory,
    )
