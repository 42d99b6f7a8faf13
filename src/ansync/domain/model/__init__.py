"""Domain model for registry reconciliation."""

from __future__ import annotations

from .enums import EndpointHealth, EntryKind, NetworkStatus, OpAction, SubmissionStatus
from .operations import (
    Insert,
    ReconciliationOp,
    Remove,
    Update,
    op_from_payload,
    op_to_payload,
)
from .registry import (
    ActualState,
    DesiredState,
    EntryKey,
    EntryValue,
    MalformedRecord,
    RegistryEntry,
)
from .submission import (
    BatchFailure,
    Checkpoint,
    SubmissionOutcome,
    SubmissionRecord,
    utcnow,
)

__all__ = [
    "ActualState",
    "BatchFailure",
    "Checkpoint",
    "DesiredState",
    "EndpointHealth",
    "EntryKey",
    "EntryKind",
    "EntryValue",
    "Insert",
    "MalformedRecord",
    "NetworkStatus",
    "OpAction",
    "ReconciliationOp",
    "RegistryEntry",
    "Remove",
    "SubmissionOutcome",
    "SubmissionRecord",
    "SubmissionStatus",
    "Update",
    "op_from_payload",
    "op_to_payload",
    "utcnow",
]
