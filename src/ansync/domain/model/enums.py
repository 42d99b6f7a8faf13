"""Domain enums (pure, dependency-light)."""

from __future__ import annotations

from enum import StrEnum


class EntryKind(StrEnum):
    ASSET = "asset"
    CONTRACT = "contract"
    CHANNEL = "channel"


class OpAction(StrEnum):
    INSERT = "insert"
    UPDATE = "update"
    REMOVE = "remove"


class SubmissionStatus(StrEnum):
    PENDING = "pending"
    COMMITTED = "committed"
    FAILED = "failed"


class EndpointHealth(StrEnum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    DOWN = "down"


class NetworkStatus(StrEnum):
    """Per-network outcome of one reconciliation cycle."""

    RECONCILED = "reconciled"
    PLANNED = "planned"
    UP_TO_DATE = "up_to_date"
    PARTIAL = "partial"
    FAILED = "failed"
    SOURCE_UNAVAILABLE = "source_unavailable"
    UNREACHABLE = "unreachable"
    READ_FAILED = "read_failed"
    TIMED_OUT = "timed_out"
