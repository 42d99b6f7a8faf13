"""Per-network settings loaded from the networks TOML file."""

from __future__ import annotations

import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any, Final

from .env import require_env_var
from .errors import ConfigurationError

if TYPE_CHECKING:
    from collections.abc import Mapping

NETWORKS_FILE_ENV: Final[str] = "ANSYNC_NETWORKS_FILE"
DEFAULT_MAX_OPS_PER_TX: Final[int] = 25
DEFAULT_PAGE_LIMIT: Final[int] = 50
DEFAULT_FAILURE_THRESHOLD: Final[int] = 3


@dataclass(frozen=True, slots=True)
class SubmissionPolicy:
    """Retry budget and confirmation settings for transaction submission."""

    max_attempts: int = 3
    backoff_factor: float = 1.0
    max_backoff_wait: float = 30.0
    confirm_timeout: float = 60.0
    confirm_poll_interval: float = 2.0

    def backoff(self, attempt: int) -> float:
        """Delay before retrying after the ``attempt``-th failure (1-based)."""

        return min(self.backoff_factor * (2 ** max(attempt - 1, 0)), self.max_backoff_wait)


@dataclass(frozen=True, slots=True)
class PoolConfig:
    failure_threshold: int = DEFAULT_FAILURE_THRESHOLD
    reprobe_interval: float = 60.0


@dataclass(frozen=True, slots=True)
class NetworkConfig:
    network_id: str
    chain_id: str
    chain_name: str
    registry_contract: str
    signer_address: str
    endpoints: tuple[str, ...]
    max_ops_per_tx: int = DEFAULT_MAX_OPS_PER_TX
    page_limit: int = DEFAULT_PAGE_LIMIT
    read_attempts: int = 3
    submission: SubmissionPolicy = field(default_factory=SubmissionPolicy)


@dataclass(frozen=True, slots=True)
class NetworksConfig:
    networks: tuple[NetworkConfig, ...]
    pool: PoolConfig = field(default_factory=PoolConfig)

    def get(self, network_id: str) -> NetworkConfig:
        for network in self.networks:
            if network.network_id == network_id:
                return network
        raise ConfigurationError(f"Unknown network: {network_id}")

    def select(self, network_ids: list[str] | None) -> tuple[NetworkConfig, ...]:
        if not network_ids:
            return self.networks
        return tuple(self.get(network_id) for network_id in network_ids)


def _require(table: Mapping[str, Any], name: str, *, context: str) -> Any:
    value = table.get(name)
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ConfigurationError(f"{context}: missing '{name}'")
    return value


def _positive_int(table: Mapping[str, Any], name: str, default: int, *, context: str) -> int:
    value = table.get(name, default)
    if not isinstance(value, int) or isinstance(value, bool) or value <= 0:
        raise ConfigurationError(f"{context}: '{name}' must be a positive integer")
    return value


def _parse_submission(table: Mapping[str, Any], *, context: str) -> SubmissionPolicy:
    defaults = SubmissionPolicy()
    try:
        return SubmissionPolicy(
            max_attempts=_positive_int(
                table, "max_attempts", defaults.max_attempts, context=context
            ),
            backoff_factor=float(table.get("backoff_factor", defaults.backoff_factor)),
            max_backoff_wait=float(table.get("max_backoff_wait", defaults.max_backoff_wait)),
            confirm_timeout=float(table.get("confirm_timeout", defaults.confirm_timeout)),
            confirm_poll_interval=float(
                table.get("confirm_poll_interval", defaults.confirm_poll_interval)
            ),
        )
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"{context}: invalid submission settings ({exc})") from exc


def _parse_network(
    network_id: str,
    table: Mapping[str, Any],
    defaults: Mapping[str, Any],
) -> NetworkConfig:
    context = f"networks.{network_id}"
    merged: dict[str, Any] = {**defaults, **table}

    endpoints = _require(merged, "endpoints", context=context)
    if isinstance(endpoints, str):
        endpoints = [endpoints]
    if not isinstance(endpoints, list) or not endpoints:
        raise ConfigurationError(f"{context}: 'endpoints' must be a non-empty list")
    cleaned = tuple(str(endpoint).strip().rstrip("/") for endpoint in endpoints)
    if any(not endpoint for endpoint in cleaned):
        raise ConfigurationError(f"{context}: blank endpoint")

    return NetworkConfig(
        network_id=network_id,
        chain_id=str(merged.get("chain_id", network_id)),
        chain_name=str(_require(merged, "chain_name", context=context)),
        registry_contract=str(_require(merged, "registry_contract", context=context)),
        signer_address=str(_require(merged, "signer_address", context=context)),
        endpoints=cleaned,
        max_ops_per_tx=_positive_int(
            merged, "max_ops_per_tx", DEFAULT_MAX_OPS_PER_TX, context=context
        ),
        page_limit=_positive_int(merged, "page_limit", DEFAULT_PAGE_LIMIT, context=context),
        read_attempts=_positive_int(merged, "read_attempts", 3, context=context),
        submission=_parse_submission(merged, context=context),
    )


def parse_networks(document: Mapping[str, Any]) -> NetworksConfig:
    """Build :class:`NetworksConfig` from a decoded TOML document."""

    defaults = document.get("defaults", {})
    networks_table = document.get("networks")
    if not isinstance(networks_table, dict) or not networks_table:
        raise ConfigurationError("No [networks.<id>] tables configured")

    networks = tuple(
        _parse_network(str(network_id), table, defaults)
        for network_id, table in sorted(networks_table.items())
    )

    pool_table = document.get("pool", {})
    pool = PoolConfig(
        failure_threshold=_positive_int(
            pool_table, "failure_threshold", DEFAULT_FAILURE_THRESHOLD, context="pool"
        ),
        reprobe_interval=float(pool_table.get("reprobe_interval", 60.0)),
    )
    return NetworksConfig(networks=networks, pool=pool)


def load_networks_config(path: Path | None = None) -> NetworksConfig:
    """Load the networks file, defaulting to ``$ANSYNC_NETWORKS_FILE``."""

    resolved = path or Path(require_env_var(NETWORKS_FILE_ENV))
    try:
        with resolved.expanduser().open("rb") as handle:
            document = tomllib.load(handle)
    except FileNotFoundError as exc:
        raise ConfigurationError(f"Networks file not found: {resolved}") from exc
    except tomllib.TOMLDecodeError as exc:
        raise ConfigurationError(f"Networks file is not valid TOML: {resolved}: {exc}") from exc
    return parse_networks(document)
