"""Application orchestration entry points."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from logging import getLogger
from typing import TYPE_CHECKING

from ansync.adapters.cosmwasm import ChainConnectionPool, build_signers, load_signer_factory
from ansync.adapters.registry_feed import build_registry_feed_source
from ansync.adapters.sqlalchemy.unit_of_work import (
    SqlAlchemyReconcileUnitOfWork,
    is_started,
    startup,
)
from ansync.config import get_feed_config, get_reconcile_config, load_networks_config
from ansync.domain.cycle import CycleSummary, NetworkReport, ReconcileCycle
from ansync.domain.ports.unit_of_work import ReconcileUnitOfWork
from ansync.domain.reader import StateReader
from ansync.domain.submission import TransactionSubmitter

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

    from ansync.config import NetworksConfig
    from ansync.domain.model import Checkpoint
    from ansync.domain.ports.chain import ConnectionPool, TransactionSigner
    from ansync.domain.ports.source import RegistrySource

UnitOfWorkFactory = Callable[[], ReconcileUnitOfWork]


log = getLogger(__name__)


def reconcile_networks(
    network_ids: Sequence[str] | None = None,
    *,
    force: bool = False,
    dry_run: bool = False,
    timeout: float | None = None,
    networks: NetworksConfig | None = None,
    source: RegistrySource | None = None,
    pool: ConnectionPool | None = None,
    signers: Mapping[str, TransactionSigner] | None = None,
    unit_of_work_factory: UnitOfWorkFactory | None = None,
) -> CycleSummary:
    """Run one reconciliation cycle over the selected networks using the configured adapters."""

    return asyncio.run(
        reconcile_networks_async(
            network_ids,
            force=force,
            dry_run=dry_run,
            timeout=timeout,
            networks=networks,
            source=source,
            pool=pool,
            signers=signers,
            unit_of_work_factory=unit_of_work_factory,
        )
    )


async def reconcile_networks_async(
    network_ids: Sequence[str] | None = None,
    *,
    force: bool = False,
    dry_run: bool = False,
    timeout: float | None = None,
    networks: NetworksConfig | None = None,
    source: RegistrySource | None = None,
    pool: ConnectionPool | None = None,
    signers: Mapping[str, TransactionSigner] | None = None,
    unit_of_work_factory: UnitOfWorkFactory | None = None,
) -> CycleSummary:
    networks_config = networks or load_networks_config()
    selected = networks_config.select(list(network_ids) if network_ids else None)
    by_id = {network.network_id: network for network in selected}
    reconcile_config = get_reconcile_config()

    effective_uow = unit_of_work_factory or _default_unit_of_work_factory()
    effective_source = source or build_registry_feed_source(
        get_feed_config(),
        {network.network_id: network.chain_name for network in selected},
    )
    owned_pool: ChainConnectionPool | None = None
    if pool is None:
        owned_pool = ChainConnectionPool(
            {network.network_id: network.endpoints for network in selected},
            config=networks_config.pool,
        )
        pool = owned_pool

    if signers is None:
        signers = (
            {}
            if dry_run
            else build_signers(load_signer_factory(reconcile_config.signer_factory), selected)
        )

    cycle = ReconcileCycle(
        networks=by_id,
        source=effective_source,
        pool=pool,
        reader=StateReader(
            contracts={network.network_id: network.registry_contract for network in selected},
            page_limits={network.network_id: network.page_limit for network in selected},
        ),
        submitter=TransactionSubmitter(
            networks=by_id,
            pool=pool,
            signers=signers,
            unit_of_work_factory=effective_uow,
        ),
        unit_of_work_factory=effective_uow,
    )

    effective_timeout = timeout if timeout is not None else reconcile_config.cycle_timeout
    try:
        summary = await cycle.run(
            list(by_id), force=force, dry_run=dry_run, timeout=effective_timeout
        )
    finally:
        if owned_pool is not None:
            await owned_pool.aclose()

    for line in summary.render():
        log.info(line)
    return summary


def preview_network(
    network_id: str,
    *,
    networks: NetworksConfig | None = None,
    source: RegistrySource | None = None,
    pool: ConnectionPool | None = None,
    unit_of_work_factory: UnitOfWorkFactory | None = None,
) -> NetworkReport:
    """Compute the ops that would bring ``network_id`` in line with the feed, without submitting."""

    summary = reconcile_networks(
        [network_id],
        force=True,
        dry_run=True,
        networks=networks,
        source=source,
        pool=pool,
        signers={},
        unit_of_work_factory=unit_of_work_factory,
    )
    report = summary.get(network_id)
    if report is None:
        raise RuntimeError(f"No report produced for {network_id}")
    return report


def list_checkpoints(
    *,
    unit_of_work_factory: UnitOfWorkFactory | None = None,
) -> list[Checkpoint]:
    effective_uow = unit_of_work_factory or _default_unit_of_work_factory()
    with effective_uow() as uow:
        return uow.repositories.checkpoints.list_all()


def _default_unit_of_work_factory() -> UnitOfWorkFactory:
    if not is_started():
        startup()
    return SqlAlchemyReconcileUnitOfWork
