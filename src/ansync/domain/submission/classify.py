"""Classification of node responses into retryable and fatal submission errors."""

from __future__ import annotations

from typing import TYPE_CHECKING, Final

from ansync.domain.errors import FatalSubmissionError, RetryableSubmissionError

if TYPE_CHECKING:
    from ansync.domain.ports.chain import BroadcastResult, TxResult

SDK_CODESPACE: Final[str] = "sdk"
CODE_TX_IN_MEMPOOL_CACHE: Final[int] = 19
CODE_MEMPOOL_FULL: Final[int] = 20
CODE_WRONG_SEQUENCE: Final[int] = 32

RETRYABLE_SDK_CODES: Final[frozenset[int]] = frozenset({CODE_MEMPOOL_FULL, CODE_WRONG_SEQUENCE})


def _describe(code: int, codespace: str, raw_log: str) -> str:
    return f"code {code} ({codespace or 'unknown'}): {raw_log or 'no log'}"


def _classify(code: int, codespace: str, raw_log: str) -> None:
    message = _describe(code, codespace, raw_log)
    if codespace in {SDK_CODESPACE, ""} and code in RETRYABLE_SDK_CODES:
        raise RetryableSubmissionError(message, code=code)
    raise FatalSubmissionError(message, code=code)


def raise_for_broadcast(result: BroadcastResult) -> None:
    """Raise for a rejected CheckTx; a tx already in the mempool counts as accepted."""

    if result.accepted:
        return
    if result.code == CODE_TX_IN_MEMPOOL_CACHE and result.codespace in {SDK_CODESPACE, ""}:
        return
    _classify(result.code, result.codespace, result.raw_log)


def raise_for_delivery(result: TxResult) -> None:
    if result.succeeded:
        return
    _classify(result.code, result.codespace, result.raw_log)
