"""Reconciliation cycle: fetch -> read -> diff -> submit, one task per network."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from ansync.domain.errors import (
    AnsyncError,
    CheckpointStoreUnavailable,
    NetworkUnreachable,
    PartialReadAborted,
    SourceUnavailable,
)
from ansync.domain.model import NetworkStatus, OpAction
from ansync.domain.reconciliation import OpCounts, diff, summarize

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Iterator, Mapping

    from ansync.config.networks import NetworkConfig
    from ansync.domain.model import (
        ActualState,
        BatchFailure,
        DesiredState,
        ReconciliationOp,
        SubmissionOutcome,
    )
    from ansync.domain.ports.chain import ConnectionPool
    from ansync.domain.ports.source import RegistrySource
    from ansync.domain.ports.unit_of_work import ReconcileUnitOfWork
    from ansync.domain.reader import StateReader
    from ansync.domain.submission import TransactionSubmitter

log = logging.getLogger(__name__)


@dataclass(slots=True)
class NetworkReport:
    """Outcome of one network within a cycle."""

    network_id: str
    status: NetworkStatus
    checkpoint: int | None = None
    desired_revision: int | None = None
    planned: OpCounts = field(default_factory=OpCounts)
    committed: OpCounts = field(default_factory=OpCounts)
    failed_batches: list[BatchFailure] = field(default_factory=list["BatchFailure"])
    malformed: int = 0
    ops: tuple[ReconciliationOp, ...] = ()
    error: str | None = None

    def record_outcome(self, outcome: SubmissionOutcome) -> None:
        self.committed = OpCounts(
            inserted=outcome.committed_count(OpAction.INSERT),
            updated=outcome.committed_count(OpAction.UPDATE),
            removed=outcome.committed_count(OpAction.REMOVE),
        )
        self.failed_batches = outcome.failed_batches
        self.checkpoint = outcome.checkpoint
        if not outcome.records:
            self.status = NetworkStatus.UP_TO_DATE
        elif outcome.fully_committed:
            self.status = NetworkStatus.RECONCILED
        elif self.committed.total:
            self.status = NetworkStatus.PARTIAL
        else:
            self.status = NetworkStatus.FAILED

    def render(self) -> str:
        parts = [f"{self.network_id}: {self.status}"]
        if self.status is NetworkStatus.PLANNED:
            parts.append(
                f"planned +{self.planned.inserted} ~{self.planned.updated} -{self.planned.removed}"
            )
        elif self.committed.total or self.failed_batches:
            parts.append(
                f"committed +{self.committed.inserted} ~{self.committed.updated} "
                f"-{self.committed.removed}"
            )
        if self.failed_batches:
            parts.append(f"failed batches {len(self.failed_batches)}")
        if self.malformed:
            parts.append(f"malformed records {self.malformed}")
        parts.append(f"checkpoint {self.checkpoint if self.checkpoint is not None else '-'}")
        if self.error:
            parts.append(f"error: {self.error}")
        return ", ".join(parts)


@dataclass(slots=True)
class CycleSummary:
    reports: list[NetworkReport] = field(default_factory=list["NetworkReport"])

    def __iter__(self) -> Iterator[NetworkReport]:
        return iter(self.reports)

    def get(self, network_id: str) -> NetworkReport | None:
        for report in self.reports:
            if report.network_id == network_id:
                return report
        return None

    @property
    def ok(self) -> bool:
        return all(
            report.status
            in {NetworkStatus.RECONCILED, NetworkStatus.UP_TO_DATE, NetworkStatus.PLANNED}
            for report in self.reports
        )

    def render(self) -> list[str]:
        lines = [report.render() for report in self.reports]
        for report in self.reports:
            lines.extend(
                f"  {report.network_id} batch @seq {failure.signer_sequence}: "
                f"{failure.op_count} ops failed: {failure.reason}"
                for failure in report.failed_batches
            )
        return lines


class ReconcileCycle:
    """Run one reconciliation pass over a set of networks.

    Networks are isolated from each other: any per-network error becomes that
    network's report status. Only a failing checkpoint store aborts the cycle.
    """

    def __init__(
        self,
        *,
        networks: Mapping[str, NetworkConfig],
        source: RegistrySource,
        pool: ConnectionPool,
        reader: StateReader,
        submitter: TransactionSubmitter,
        unit_of_work_factory: Callable[[], ReconcileUnitOfWork],
    ) -> None:
        self._networks = networks
        self._source = source
        self._pool = pool
        self._reader = reader
        self._submitter = submitter
        self._unit_of_work_factory = unit_of_work_factory

    async def run(
        self,
        network_ids: Iterable[str] | None = None,
        *,
        force: bool = False,
        dry_run: bool = False,
        timeout: float | None = None,
    ) -> CycleSummary:
        selected = list(network_ids) if network_ids is not None else list(self._networks)
        checkpoints = self._load_checkpoints(selected)
        log.info(
            "Starting reconciliation cycle: networks=%s, force=%s, dry_run=%s",
            ",".join(selected),
            force,
            dry_run,
        )

        tasks = {
            asyncio.create_task(
                self._reconcile_network(
                    network_id, checkpoints.get(network_id), force=force, dry_run=dry_run
                ),
                name=f"reconcile:{network_id}",
            ): network_id
            for network_id in selected
        }
        finished = await self._wait(tasks, timeout)

        summary = CycleSummary()
        for task, network_id in tasks.items():
            if task in finished:
                summary.reports.append(task.result())
                continue
            log.error("Network %s did not finish before the cycle timeout", network_id)
            summary.reports.append(
                NetworkReport(
                    network_id=network_id,
                    status=NetworkStatus.TIMED_OUT,
                    checkpoint=checkpoints.get(network_id),
                    error=f"cycle timeout of {timeout}s exceeded",
                )
            )
        log.info("Finished reconciliation cycle: ok=%s", summary.ok)
        return summary

    async def _wait(
        self,
        tasks: Mapping[asyncio.Task[NetworkReport], str],
        timeout: float | None,
    ) -> set[asyncio.Task[NetworkReport]]:
        """Wait for tasks until done or the deadline; re-raise the first cycle-level error."""

        loop = asyncio.get_running_loop()
        deadline = None if timeout is None else loop.time() + timeout
        finished: set[asyncio.Task[NetworkReport]] = set()
        pending: set[asyncio.Task[NetworkReport]] = set(tasks)
        try:
            while pending:
                remaining = None if deadline is None else max(deadline - loop.time(), 0.0)
                done, pending = await asyncio.wait(
                    pending, timeout=remaining, return_when=asyncio.FIRST_EXCEPTION
                )
                for task in done:
                    error = task.exception()
                    if error is not None:
                        raise error
                finished |= done
                if not done:
                    break
        finally:
            for task in pending:
                task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)
        return finished

    def _load_checkpoints(self, network_ids: list[str]) -> dict[str, int]:
        with self._unit_of_work_factory() as uow:
            repository = uow.repositories.checkpoints
            checkpoints: dict[str, int] = {}
            for network_id in network_ids:
                stored = repository.get(network_id)
                if stored is not None:
                    checkpoints[network_id] = stored.revision
        return checkpoints

    async def _reconcile_network(
        self,
        network_id: str,
        checkpoint: int | None,
        *,
        force: bool,
        dry_run: bool,
    ) -> NetworkReport:
        report = NetworkReport(
            network_id=network_id, status=NetworkStatus.FAILED, checkpoint=checkpoint
        )
        try:
            if not dry_run:
                await self._submitter.recover_pending(network_id)

            fetched, read = await asyncio.gather(
                self._source.fetch_desired(network_id),
                self._read_actual(network_id),
                return_exceptions=True,
            )
            if isinstance(fetched, BaseException):
                raise fetched
            desired: DesiredState = fetched
            report.desired_revision = desired.revision
            report.malformed = len(desired.malformed)

            if not force and checkpoint is not None and desired.revision <= checkpoint:
                log.info(
                    "%s already reconciled at revision %s (snapshot %s); skipping",
                    network_id,
                    checkpoint,
                    desired.revision,
                )
                report.status = NetworkStatus.UP_TO_DATE
                return report

            if isinstance(read, BaseException):
                raise read
            actual: ActualState = read

            ops = diff(desired, actual)
            report.planned = summarize(ops)
            log.info(
                "%s: %s ops planned (%s inserts, %s updates, %s removals)",
                network_id,
                report.planned.total,
                report.planned.inserted,
                report.planned.updated,
                report.planned.removed,
            )
            if dry_run:
                report.ops = ops
                report.status = NetworkStatus.PLANNED
                return report

            outcome = await self._submitter.submit(
                network_id, ops, snapshot_revision=desired.revision
            )
            report.record_outcome(outcome)
        except CheckpointStoreUnavailable:
            raise
        except SourceUnavailable as exc:
            log.warning("Registry feed unavailable for %s: %s", network_id, exc)
            report.status = NetworkStatus.SOURCE_UNAVAILABLE
            report.error = str(exc)
        except NetworkUnreachable as exc:
            log.warning("Skipping %s: %s", network_id, exc)
            report.status = NetworkStatus.UNREACHABLE
            report.error = str(exc)
        except PartialReadAborted as exc:
            log.warning("Could not read registry state of %s: %s", network_id, exc)
            report.status = NetworkStatus.READ_FAILED
            report.error = str(exc)
        except AnsyncError as exc:
            log.error("Reconciliation of %s failed: %s", network_id, exc)
            report.status = NetworkStatus.FAILED
            report.error = str(exc)
        except Exception as exc:
            log.exception("Unexpected error while reconciling %s", network_id)
            report.status = NetworkStatus.FAILED
            report.error = f"unexpected error: {exc!r}"
        return report

    async def _read_actual(self, network_id: str) -> ActualState:
        """Read the full on-chain state, retrying aborted reads on a fresh connection."""

        attempts = max(self._networks[network_id].read_attempts, 1)
        attempt = 1
        while True:
            try:
                async with self._pool.connection(network_id) as connection:
                    return await self._reader.read_actual(network_id, connection)
            except PartialReadAborted as exc:
                if attempt >= attempts:
                    raise
                log.warning(
                    "Read of %s aborted (attempt %s/%s), retrying: %s",
                    network_id,
                    attempt,
                    attempts,
                    exc,
                )
                attempt += 1
