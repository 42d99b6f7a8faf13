"""Cycle-level settings."""

from __future__ import annotations

import os
from dataclasses import dataclass

from .env import optional_float

DEFAULT_CYCLE_TIMEOUT_SECONDS = 900.0


@dataclass(frozen=True, slots=True)
class ReconcileConfig:
    cycle_timeout: float | None = DEFAULT_CYCLE_TIMEOUT_SECONDS
    signer_factory: str | None = None


def get_reconcile_config() -> ReconcileConfig:
    factory = os.getenv("ANSYNC_SIGNER_FACTORY")
    return ReconcileConfig(
        cycle_timeout=optional_float("ANSYNC_CYCLE_TIMEOUT", DEFAULT_CYCLE_TIMEOUT_SECONDS),
        signer_factory=factory.strip() if factory and factory.strip() else None,
    )
