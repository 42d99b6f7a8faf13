"""Error taxonomy shared by the reconciliation pipeline."""

from __future__ import annotations


class AnsyncError(RuntimeError):
    """Base class for pipeline errors."""


class SourceUnavailable(AnsyncError):
    """The registry feed could not be reached or returned an unusable envelope."""


class SourceMalformed(AnsyncError):
    """A single feed record could not be normalized. Never aborts a fetch."""

    def __init__(self, key: str, reason: str) -> None:
        super().__init__(f"Malformed record {key!r}: {reason}")
        self.key = key
        self.reason = reason


class NetworkUnreachable(AnsyncError):
    """Every candidate endpoint of a network is down."""

    def __init__(self, network_id: str) -> None:
        super().__init__(f"All endpoints for network {network_id!r} are down")
        self.network_id = network_id


class PartialReadAborted(AnsyncError):
    """Registry pagination was interrupted; the partial result must be discarded."""


class SubmissionError(AnsyncError):
    """Base class for classified broadcast/commit failures."""

    def __init__(self, message: str, *, code: int | None = None) -> None:
        super().__init__(message)
        self.code = code


class RetryableSubmissionError(SubmissionError):
    """Timeouts, transient node errors and sequence mismatches."""


class FatalSubmissionError(SubmissionError):
    """Malformed transactions, insufficient funds and contract rejections."""


class CheckpointStoreUnavailable(AnsyncError):
    """The checkpoint store failed; the whole cycle must stop."""
