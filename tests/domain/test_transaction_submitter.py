from __future__ import annotations

import asyncio
import logging
from collections import deque
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import pytest

from ansync.adapters.cosmwasm import ChainConnectionPool
from ansync.domain.model import (
    EntryKey,
    EntryKind,
    Insert,
    SubmissionRecord,
    SubmissionStatus,
    Update,
)
from ansync.domain.reconciliation import diff
from ansync.domain.submission import CANCELLED_ERROR, TransactionSubmitter, tx_hash_of

from tests.helpers.chain import ADDR_A, ADDR_B, FakeChain, FakeChainClient, FakeSigner
from tests.helpers.persistence import InMemoryStore, VirtualClock
from tests.helpers.registry import actual_state, desired_state, entry, make_network

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Sequence

    from ansync.config.networks import NetworkConfig
    from ansync.domain.model import ReconciliationOp, SubmissionOutcome
    from ansync.domain.ports.chain import ExecuteMessage


@dataclass
class _Harness:
    store: InMemoryStore
    network: NetworkConfig
    chain: FakeChain = field(default_factory=FakeChain)
    clock: VirtualClock = field(default_factory=VirtualClock)
    signer: FakeSigner = field(default_factory=FakeSigner)
    clients: dict[str, FakeChainClient] = field(default_factory=dict["str", "FakeChainClient"])
    sleep: Callable[[float], Awaitable[None]] | None = None

    def __post_init__(self) -> None:
        for url in self.network.endpoints:
            self.clients.setdefault(url, FakeChainClient(url, self.chain))
        self.pool = ChainConnectionPool(
            {self.network.network_id: self.network.endpoints},
            client_factory=self.clients.__getitem__,
            clock=self.clock,
        )
        self.submitter = TransactionSubmitter(
            networks={self.network.network_id: self.network},
            pool=self.pool,
            signers={self.network.network_id: self.signer},
            unit_of_work_factory=self.store.unit_of_work,
            sleep=self.sleep or self.clock.sleep,
            clock=self.clock,
        )


def _insert(key: str, revision: int) -> Insert:
    return Insert(
        key=EntryKey("chain-a", EntryKind.ASSET, key),
        value={"native": f"u{key}"},
        source_revision=revision,
    )


def _submit(
    harness: _Harness,
    ops: list[ReconciliationOp],
    snapshot_revision: int | None = None,
) -> SubmissionOutcome:
    return asyncio.run(
        harness.submitter.submit("chain-a", ops, snapshot_revision=snapshot_revision)
    )


def test_insert_commits_and_checkpoints_the_snapshot(store: InMemoryStore) -> None:
    harness = _Harness(store, make_network())
    ops = list(diff(desired_state([entry("usdc", ADDR_A, 5)]), actual_state({})))

    outcome = _submit(harness, ops, snapshot_revision=5)

    assert outcome.fully_committed
    assert outcome.checkpoint == 5
    assert store.revision("chain-a") == 5
    assert harness.chain.contract.entries == {(EntryKind.ASSET, "usdc"): ADDR_A}
    # committed and checkpointed records are pruned
    assert store.records == {}


def test_retryable_failures_then_commit_within_budget(store: InMemoryStore) -> None:
    harness = _Harness(store, make_network(max_attempts=3))
    harness.chain.broadcast_codes = deque([20, 32])

    outcome = _submit(harness, [_insert("usdc", 5)], snapshot_revision=5)

    (record,) = outcome.records
    assert record.status is SubmissionStatus.COMMITTED
    assert record.retry_count == 2
    assert harness.clock.sleeps == [1.0, 2.0]
    assert len(harness.chain.broadcasts) == 3
    assert outcome.checkpoint == 5


def test_exhausted_retry_budget_fails_batch_and_keeps_checkpoint(store: InMemoryStore) -> None:
    harness = _Harness(store, make_network(max_attempts=3))
    harness.chain.broadcast_codes = deque([20, 20, 20])

    outcome = _submit(harness, [_insert("usdc", 5)], snapshot_revision=5)

    (record,) = outcome.records
    assert record.status is SubmissionStatus.FAILED
    assert record.retry_count == 3
    assert record.last_error is not None
    assert record.last_error.startswith("retry budget exhausted")
    assert harness.clock.sleeps == [1.0, 2.0]
    assert outcome.checkpoint is None
    assert store.revision("chain-a") is None
    assert [stored.status for stored in store.records.values()] == [SubmissionStatus.FAILED]


def test_fatal_batch_fails_without_retry_and_later_batches_continue(
    store: InMemoryStore,
) -> None:
    harness = _Harness(store, make_network(max_ops_per_tx=1))
    harness.chain.broadcast_codes = deque([0, 5, 0])
    ops: list[ReconciliationOp] = [_insert("a", 1), _insert("b", 2), _insert("c", 3)]

    outcome = _submit(harness, ops, snapshot_revision=3)

    assert [record.status for record in outcome.records] == [
        SubmissionStatus.COMMITTED,
        SubmissionStatus.FAILED,
        SubmissionStatus.COMMITTED,
    ]
    assert outcome.records[1].retry_count == 0
    (failure,) = outcome.failed_batches
    assert failure.op_count == 1
    assert "code 5" in failure.reason
    # revision 3 is committed but revision 2 is not, so the checkpoint stops at 1
    assert outcome.checkpoint == 1
    assert store.revision("chain-a") == 1
    assert [op.key.key for op in outcome.committed_ops] == ["a", "c"]
    assert harness.signer.signed == [0, 1, 1]


def test_rejected_delivery_is_fatal_and_sequence_is_refetched(store: InMemoryStore) -> None:
    harness = _Harness(store, make_network(max_ops_per_tx=1))
    harness.chain.delivery_codes = deque([5])

    outcome = _submit(harness, [_insert("a", 1), _insert("b", 1)], snapshot_revision=1)

    assert [record.status for record in outcome.records] == [
        SubmissionStatus.FAILED,
        SubmissionStatus.COMMITTED,
    ]
    # the failed tx still consumed sequence 0 on chain
    assert harness.signer.signed == [0, 1]
    assert (EntryKind.ASSET, "a") not in harness.chain.contract.entries
    assert outcome.checkpoint is None


def test_sequence_starts_from_account_and_advances_per_commit(store: InMemoryStore) -> None:
    harness = _Harness(store, make_network(max_ops_per_tx=2))
    harness.chain.sequence = 41

    ops: list[ReconciliationOp] = [_insert(f"asset-{index}", index) for index in range(5)]
    outcome = _submit(harness, ops)

    assert outcome.fully_committed
    assert harness.signer.signed == [41, 42, 43]
    assert [record.signer_sequence for record in outcome.records] == [41, 42, 43]


def test_checkpoint_advances_after_each_committed_batch(store: InMemoryStore) -> None:
    harness = _Harness(store, make_network(max_ops_per_tx=1))
    ops: list[ReconciliationOp] = [_insert("a", 1), _insert("b", 2), _insert("c", 3)]

    outcome = _submit(harness, ops, snapshot_revision=4)

    assert store.advances == [("chain-a", 1), ("chain-a", 2), ("chain-a", 3), ("chain-a", 4)]
    assert outcome.checkpoint == 4


def test_checkpoint_never_moves_backwards(store: InMemoryStore) -> None:
    harness = _Harness(store, make_network())
    with store.unit_of_work() as uow:
        uow.repositories.checkpoints.advance("chain-a", 10)

    outcome = _submit(harness, [_insert("a", 3)], snapshot_revision=5)

    assert outcome.checkpoint == 10
    assert store.revision("chain-a") == 10


def test_empty_diff_advances_checkpoint_to_snapshot(store: InMemoryStore) -> None:
    harness = _Harness(store, make_network())

    outcome = _submit(harness, [], snapshot_revision=8)

    assert outcome.records == []
    assert outcome.checkpoint == 8
    assert harness.chain.broadcasts == []


def test_commit_found_while_polling(store: InMemoryStore) -> None:
    clock = VirtualClock()
    chain = FakeChain(unconfirmed=1)

    async def sleep(delay: float) -> None:
        await clock.sleep(delay)
        if clock.now >= 2:
            chain.reveal()

    harness = _Harness(
        store, make_network(confirm_timeout=10.0), chain=chain, clock=clock, sleep=sleep
    )

    outcome = _submit(harness, [_insert("usdc", 2)])

    (record,) = outcome.records
    assert record.status is SubmissionStatus.COMMITTED
    assert record.retry_count == 0
    assert clock.sleeps == [1.0, 1.0]


def test_unconfirmed_broadcast_is_looked_up_before_rebroadcast(store: InMemoryStore) -> None:
    clock = VirtualClock()
    chain = FakeChain(unconfirmed=1)

    async def sleep(delay: float) -> None:
        await clock.sleep(delay)
        # the tx surfaces only after the confirmation timeout and the first backoff
        if clock.now >= 4:
            chain.reveal()

    harness = _Harness(
        store, make_network(confirm_timeout=3.0), chain=chain, clock=clock, sleep=sleep
    )

    outcome = _submit(harness, [_insert("usdc", 2)], snapshot_revision=2)

    (record,) = outcome.records
    assert record.status is SubmissionStatus.COMMITTED
    assert record.retry_count == 1
    assert record.tx_hash in chain.txs
    assert "not confirmed within 3s" in (record.last_error or "")
    assert len(chain.broadcasts) == 1
    assert clock.sleeps == [1.0, 1.0, 1.0, 1.0]
    assert outcome.checkpoint == 2


def test_endpoint_failures_fail_over_to_next_endpoint(store: InMemoryStore) -> None:
    network = make_network(max_attempts=5)
    chain = FakeChain()
    primary, secondary = network.endpoints
    harness = _Harness(
        store,
        network,
        chain=chain,
        clients={
            primary: FakeChainClient(primary, chain, down=True),
            secondary: FakeChainClient(secondary, chain),
        },
    )

    outcome = _submit(harness, [_insert("usdc", 2)])

    (record,) = outcome.records
    assert record.status is SubmissionStatus.COMMITTED
    # the retry goes to the endpoint without failures instead of the failing primary
    assert record.retry_count == 1
    assert "endpoint error" in (record.last_error or "")


def test_concurrent_submits_for_one_signer_are_serialized(store: InMemoryStore) -> None:
    harness = _Harness(store, make_network())

    async def run_both() -> None:
        await asyncio.gather(
            harness.submitter.submit("chain-a", [_insert("a", 1)]),
            harness.submitter.submit("chain-a", [_insert("b", 1)]),
        )

    asyncio.run(run_both())

    assert len(harness.chain.broadcasts) == 2
    assert harness.signer.signed == [0, 1]


def test_cancellation_marks_pending_record_failed(store: InMemoryStore) -> None:
    started = asyncio.Event()

    async def hang(_delay: float) -> None:
        started.set()
        await asyncio.Event().wait()

    harness = _Harness(store, make_network(), sleep=hang)
    harness.chain.unconfirmed = 1

    async def run_and_cancel() -> None:
        task = asyncio.create_task(
            harness.submitter.submit("chain-a", [_insert("usdc", 2)], snapshot_revision=2)
        )
        await started.wait()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    asyncio.run(run_and_cancel())

    (stored,) = store.records.values()
    assert stored.status is SubmissionStatus.FAILED
    assert stored.last_error == CANCELLED_ERROR
    assert stored.tx_hash is not None
    assert store.revision("chain-a") is None


def test_recover_pending_resolves_interrupted_records(store: InMemoryStore) -> None:
    harness = _Harness(store, make_network())
    landed_bytes = b'{"sequence":0,"messages":[]}'
    harness.chain.broadcast(landed_bytes)
    landed = SubmissionRecord(
        network_id="chain-a",
        signer=harness.signer.address,
        op_batch=(_insert("a", 1),),
        signer_sequence=0,
        tx_hash=tx_hash_of(landed_bytes),
    )
    lost = SubmissionRecord(
        network_id="chain-a",
        signer=harness.signer.address,
        op_batch=(_insert("b", 1),),
        signer_sequence=1,
        tx_hash="F" * 64,
    )
    never_sent = SubmissionRecord(
        network_id="chain-a",
        signer=harness.signer.address,
        op_batch=(
            Update(
                key=EntryKey("chain-a", EntryKind.ASSET, "c"),
                old_value=ADDR_A,
                new_value=ADDR_B,
                source_revision=1,
            ),
        ),
    )
    with store.unit_of_work() as uow:
        for record in (landed, lost, never_sent):
            uow.repositories.submissions.save(record)
    broadcasts_before = len(harness.chain.broadcasts)

    recovered = asyncio.run(harness.submitter.recover_pending("chain-a"))

    statuses = {record.id: record.status for record in recovered}
    assert statuses == {
        landed.id: SubmissionStatus.COMMITTED,
        lost.id: SubmissionStatus.FAILED,
        never_sent.id: SubmissionStatus.FAILED,
    }
    assert store.records[lost.id].last_error == "interrupted before confirmation"
    assert store.records[landed.id].status is SubmissionStatus.COMMITTED
    assert len(harness.chain.broadcasts) == broadcasts_before


def test_recover_pending_without_records_is_a_no_op(store: InMemoryStore) -> None:
    harness = _Harness(store, make_network())

    assert asyncio.run(harness.submitter.recover_pending("chain-a")) == []


@dataclass
class _RecordingSigner(FakeSigner):
    hashes: list[str] = field(default_factory=list["str"])

    async def sign(
        self,
        *,
        chain_id: str,
        account_number: int,
        sequence: int,
        messages: Sequence[ExecuteMessage],
    ) -> bytes:
        tx_bytes = await super().sign(
            chain_id=chain_id,
            account_number=account_number,
            sequence=sequence,
            messages=messages,
        )
        self.hashes.append(tx_hash_of(tx_bytes))
        return tx_bytes


class _BrokenSigner(FakeSigner):
    async def sign(
        self,
        *,
        chain_id: str,
        account_number: int,
        sequence: int,
        messages: Sequence[ExecuteMessage],
    ) -> bytes:
        raise RuntimeError("hsm unavailable")


def test_every_earlier_broadcast_is_looked_up_before_signing_again(store: InMemoryStore) -> None:
    clock = VirtualClock()
    chain = FakeChain(unconfirmed=2)
    signer = _RecordingSigner()

    async def sleep(delay: float) -> None:
        await clock.sleep(delay)
        # only the first broadcast surfaces, after the second one timed out too
        if clock.now >= 9:
            chain.hidden.discard(signer.hashes[0])

    harness = _Harness(
        store,
        make_network(max_attempts=3, confirm_timeout=3.0),
        chain=chain,
        clock=clock,
        signer=signer,
        sleep=sleep,
    )

    outcome = _submit(harness, [_insert("usdc", 2)], snapshot_revision=2)

    (record,) = outcome.records
    assert record.status is SubmissionStatus.COMMITTED
    assert record.retry_count == 2
    assert len(chain.broadcasts) == 2
    assert signer.signed == [0, 1]
    assert record.tx_hash == signer.hashes[0]
    assert record.earlier_tx_hashes == (signer.hashes[1],)


def test_recover_pending_checks_earlier_hashes(store: InMemoryStore) -> None:
    harness = _Harness(store, make_network())
    landed_bytes = b'{"sequence":0,"messages":[]}'
    harness.chain.broadcast(landed_bytes)
    record = SubmissionRecord(
        network_id="chain-a",
        signer=harness.signer.address,
        op_batch=(_insert("a", 1),),
        signer_sequence=1,
        tx_hash="F" * 64,
        earlier_tx_hashes=(tx_hash_of(landed_bytes),),
    )
    with store.unit_of_work() as uow:
        uow.repositories.submissions.save(record)

    (recovered,) = asyncio.run(harness.submitter.recover_pending("chain-a"))

    assert recovered.status is SubmissionStatus.COMMITTED
    assert recovered.tx_hash == tx_hash_of(landed_bytes)
    assert recovered.earlier_tx_hashes == ("F" * 64,)


def test_unexpected_signer_error_fails_the_batch(
    store: InMemoryStore, caplog: pytest.LogCaptureFixture
) -> None:
    harness = _Harness(store, make_network(max_ops_per_tx=1), signer=_BrokenSigner())

    with caplog.at_level(logging.ERROR, logger="ansync.domain.submission.submitter"):
        outcome = _submit(harness, [_insert("a", 1), _insert("b", 2)], snapshot_revision=2)

    assert [record.status for record in outcome.records] == [
        SubmissionStatus.FAILED,
        SubmissionStatus.FAILED,
    ]
    assert all(stored.status is SubmissionStatus.FAILED for stored in store.records.values())
    assert "hsm unavailable" in (outcome.records[0].last_error or "")
    assert outcome.records[0].retry_count == 0
    assert harness.chain.broadcasts == []
    assert store.revision("chain-a") is None
    assert "Unexpected error submitting batch on chain-a" in caplog.text
