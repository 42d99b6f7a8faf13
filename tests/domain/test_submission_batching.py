from __future__ import annotations

import hashlib

import pytest

from ansync.domain.errors import FatalSubmissionError, RetryableSubmissionError
from ansync.domain.model import EntryKey, EntryKind, Insert, Remove
from ansync.domain.ports.chain import BroadcastResult, TxResult
from ansync.domain.submission import (
    batch_messages,
    chunk_ops,
    raise_for_broadcast,
    raise_for_delivery,
    tx_hash_of,
)

from tests.helpers.chain import ADDR_A, REGISTRY_CONTRACT, SIGNER_ADDRESS


def _insert(index: int) -> Insert:
    return Insert(
        key=EntryKey("chain-a", EntryKind.ASSET, f"asset-{index:02d}"),
        value={"native": f"uasset{index}"},
        source_revision=index,
    )


def test_chunk_ops_preserves_order_and_bounds_batch_size() -> None:
    ops = [_insert(index) for index in range(7)]

    batches = chunk_ops(ops, 3)

    assert [len(batch) for batch in batches] == [3, 3, 1]
    assert [op for batch in batches for op in batch] == ops


def test_chunk_ops_of_nothing_is_empty() -> None:
    assert chunk_ops([], 5) == []


def test_chunk_ops_rejects_non_positive_size() -> None:
    with pytest.raises(ValueError, match="positive"):
        chunk_ops([_insert(1)], 0)


def test_batch_messages_target_the_registry_contract() -> None:
    batch = (
        Remove(key=EntryKey("chain-a", EntryKind.CONTRACT, "astroport:router"), source_revision=2),
        Insert(
            key=EntryKey("chain-a", EntryKind.CONTRACT, "astroport:factory"),
            value=ADDR_A,
            source_revision=2,
        ),
    )

    messages = batch_messages(batch, sender=SIGNER_ADDRESS, contract=REGISTRY_CONTRACT)

    assert len(messages) == 2
    assert all(message.sender == SIGNER_ADDRESS for message in messages)
    assert all(message.contract == REGISTRY_CONTRACT for message in messages)
    assert messages[0].msg == {
        "update_contract_addresses": {
            "to_add": [],
            "to_remove": [{"protocol": "astroport", "contract": "router"}],
        }
    }


def test_tx_hash_is_upper_case_sha256() -> None:
    assert tx_hash_of(b"signed") == hashlib.sha256(b"signed").hexdigest().upper()


def test_broadcast_already_in_mempool_counts_as_accepted() -> None:
    raise_for_broadcast(BroadcastResult(tx_hash="AB", code=0))
    raise_for_broadcast(BroadcastResult(tx_hash="AB", code=19, codespace="sdk"))


@pytest.mark.parametrize("code", [20, 32])
def test_mempool_full_and_sequence_mismatch_are_retryable(code: int) -> None:
    with pytest.raises(RetryableSubmissionError) as exc:
        raise_for_broadcast(BroadcastResult(tx_hash="AB", code=code, codespace="sdk"))

    assert exc.value.code == code


@pytest.mark.parametrize(("code", "codespace"), [(4, "sdk"), (5, "sdk"), (13, "sdk"), (5, "wasm")])
def test_other_broadcast_codes_are_fatal(code: int, codespace: str) -> None:
    with pytest.raises(FatalSubmissionError):
        raise_for_broadcast(BroadcastResult(tx_hash="AB", code=code, codespace=codespace))


def test_contract_rejection_on_delivery_is_fatal() -> None:
    raise_for_delivery(TxResult(tx_hash="AB", height=3, code=0))

    with pytest.raises(FatalSubmissionError, match="Unauthorized"):
        raise_for_delivery(
            TxResult(tx_hash="AB", height=3, code=5, codespace="wasm", raw_log="Unauthorized")
        )
