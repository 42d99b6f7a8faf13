"""Registry feed configuration values."""

from __future__ import annotations

from dataclasses import dataclass

from ansync import __version__

from .env import optional_float, require_env_var
from .http_resilience import CacheConfig, RateLimit, ResilienceConfig, RetryPolicy
from .storage import StorageConfig, get_storage_config

DEFAULT_FEED_CACHE_TTL_SECONDS = 300.0


@dataclass(frozen=True, slots=True)
class FeedConfig:
    resilience: ResilienceConfig


def get_feed_config(*, storage: StorageConfig | None = None) -> FeedConfig:
    base_url = require_env_var("ANSYNC_FEED_URL").strip().rstrip("/") + "/"
    ttl = optional_float("ANSYNC_FEED_CACHE_TTL", DEFAULT_FEED_CACHE_TTL_SECONDS)
    storage_config = storage or get_storage_config()

    cache: CacheConfig | None = None
    if ttl:
        cache = CacheConfig(
            enabled=True,
            backend="sqlite",
            sqlite_path=str(storage_config.http_cache_path()),
            default_ttl_seconds=ttl,
        )

    resilience = ResilienceConfig(
        name="registry-feed",
        base_url=base_url,
        ratelimit=RateLimit(max_calls=4, per_seconds=1.0),
        retry=RetryPolicy(total=4),
        cache=cache,
        default_headers={"User-Agent": f"ansync/{__version__}"},
    )
    return FeedConfig(resilience=resilience)
