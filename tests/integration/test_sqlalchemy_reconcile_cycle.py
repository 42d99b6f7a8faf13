from __future__ import annotations

from collections.abc import Callable  # noqa: TC003
from typing import TYPE_CHECKING

import pytest

from ansync.adapters.cosmwasm import ChainConnectionPool
from ansync.adapters.sqlalchemy import SqlAlchemyReconcileUnitOfWork  # noqa: TC001
from ansync.app import list_checkpoints, reconcile_networks
from ansync.config import NetworksConfig
from ansync.domain.model import (
    EntryKey,
    EntryKind,
    NetworkStatus,
    Remove,
    SubmissionRecord,
    SubmissionStatus,
)
from ansync.domain.ports.chain import TxResult

from tests.helpers.chain import (
    ADDR_A,
    ADDR_B,
    SIGNER_ADDRESS,
    FakeChain,
    FakeChainClient,
    FakeSigner,
)
from tests.helpers.registry import FakeRegistrySource, desired_state, entry, make_network

if TYPE_CHECKING:
    from ansync.domain.cycle import CycleSummary
    from ansync.domain.model import EntryValue

pytestmark = pytest.mark.integration

UowFactory = Callable[[], SqlAlchemyReconcileUnitOfWork]


def _reconcile(
    chain: FakeChain,
    uow_factory: UowFactory,
    revision: int,
    **values: EntryValue,
) -> CycleSummary:
    network = make_network("chain-a", max_ops_per_tx=1)
    clients = {url: FakeChainClient(url, chain) for url in network.endpoints}
    source = FakeRegistrySource(
        {
            "chain-a": desired_state(
                [entry(key, value, revision) for key, value in values.items()],
                revision=revision,
            )
        }
    )
    pool = ChainConnectionPool({"chain-a": network.endpoints}, client_factory=clients.__getitem__)
    return reconcile_networks(
        networks=NetworksConfig(networks=(network,)),
        source=source,
        pool=pool,
        signers={"chain-a": FakeSigner()},
        unit_of_work_factory=uow_factory,
        timeout=30,
    )


def _records(uow_factory: UowFactory, status: SubmissionStatus) -> list[SubmissionRecord]:
    with uow_factory() as uow:
        return uow.repositories.submissions.by_status("chain-a", status)


def test_cycle_checkpoints_in_sqlite_and_skips_next_run(sqlite_unit_of_work: UowFactory) -> None:
    chain = FakeChain()

    values: dict[str, EntryValue] = {"usdc": {"cw20": ADDR_A}, "osmo": {"native": "uosmo"}}

    first = _reconcile(chain, sqlite_unit_of_work, 4, **values)
    second = _reconcile(chain, sqlite_unit_of_work, 4, **values)

    report = first.get("chain-a")
    assert report is not None
    assert report.status is NetworkStatus.RECONCILED
    assert report.checkpoint == 4
    assert len(chain.broadcasts) == 2
    skipped = second.get("chain-a")
    assert skipped is not None
    assert skipped.status is NetworkStatus.UP_TO_DATE
    checkpoints = list_checkpoints(unit_of_work_factory=sqlite_unit_of_work)
    assert [(c.network_id, c.revision) for c in checkpoints] == [("chain-a", 4)]
    assert _records(sqlite_unit_of_work, SubmissionStatus.COMMITTED) == []


def test_failed_batch_is_kept_with_its_ops(sqlite_unit_of_work: UowFactory) -> None:
    chain = FakeChain()
    chain.delivery_codes.append(5)

    summary = _reconcile(chain, sqlite_unit_of_work, 6, usdc={"cw20": ADDR_B})

    report = summary.get("chain-a")
    assert report is not None
    assert report.status is NetworkStatus.FAILED
    assert report.checkpoint is None
    (failed,) = _records(sqlite_unit_of_work, SubmissionStatus.FAILED)
    assert failed.signer == SIGNER_ADDRESS
    assert failed.signer_sequence == 0
    assert [op.key for op in failed.op_batch] == [EntryKey("chain-a", EntryKind.ASSET, "usdc")]


def test_interrupted_submissions_are_recovered_before_reconciling(
    sqlite_unit_of_work: UowFactory,
) -> None:
    chain = FakeChain()
    chain.txs["AB12"] = TxResult(tx_hash="AB12", height=90, code=0)
    stale = Remove(key=EntryKey("chain-a", EntryKind.ASSET, "stale"), source_revision=9)
    landed = SubmissionRecord(
        network_id="chain-a", signer=SIGNER_ADDRESS, op_batch=(stale,), tx_hash="AB12"
    )
    lost = SubmissionRecord(network_id="chain-a", signer=SIGNER_ADDRESS, op_batch=(stale,))
    with sqlite_unit_of_work() as uow:
        uow.repositories.submissions.save(landed)
        uow.repositories.submissions.save(lost)
        uow.commit()

    summary = _reconcile(chain, sqlite_unit_of_work, 4, usdc={"cw20": ADDR_A})

    assert summary.ok
    assert _records(sqlite_unit_of_work, SubmissionStatus.PENDING) == []
    (failed,) = _records(sqlite_unit_of_work, SubmissionStatus.FAILED)
    assert failed.id == lost.id
    assert failed.last_error == "interrupted before confirmation"
    (committed,) = _records(sqlite_unit_of_work, SubmissionStatus.COMMITTED)
    assert committed.id == landed.id
