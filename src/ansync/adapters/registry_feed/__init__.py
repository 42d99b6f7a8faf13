"""Registry feed adapter."""

from __future__ import annotations

from .client import RegistryFeedSource, build_registry_feed_source
from .translator import normalize_snapshot, translate_record

__all__ = [
    "RegistryFeedSource",
    "build_registry_feed_source",
    "normalize_snapshot",
    "translate_record",
]
