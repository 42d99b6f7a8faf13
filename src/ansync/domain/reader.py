"""On-chain state reader: materializes a registry contract's full listing."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from ansync.domain.contract_messages import listing_query, parse_listing
from ansync.domain.errors import PartialReadAborted
from ansync.domain.model import ActualState, EntryKey, EntryKind
from ansync.domain.ports.chain import EndpointError
from ansync.domain.reconciliation import values_equal

if TYPE_CHECKING:
    from collections.abc import Mapping

    from ansync.domain.model import EntryValue
    from ansync.domain.ports.chain import ChainClient

log = logging.getLogger(__name__)

DEFAULT_PAGE_LIMIT = 50


@dataclass(slots=True)
class StateReader:
    """Read every entry kind from each network's registry contract.

    ``contracts`` maps network ids to registry contract addresses; ``page_limits``
    overrides the listing page size per network.
    """

    contracts: Mapping[str, str]
    page_limits: Mapping[str, int] = field(default_factory=dict["str", "int"])

    async def read_actual(self, network_id: str, connection: ChainClient) -> ActualState:
        contract = self.contracts.get(network_id)
        if contract is None:
            raise KeyError(f"No registry contract configured for {network_id!r}")

        state = ActualState(network_id=network_id)
        for kind in EntryKind:
            await self._read_kind(state, kind, contract=contract, connection=connection)
        log.info(
            "Read %s registry entries from %s via %s",
            len(state),
            network_id,
            connection.endpoint,
        )
        return state

    async def _read_kind(
        self,
        state: ActualState,
        kind: EntryKind,
        *,
        contract: str,
        connection: ChainClient,
    ) -> None:
        cursor: str | None = None
        seen_cursors: set[str] = set()
        limit = self.page_limits.get(state.network_id, DEFAULT_PAGE_LIMIT)
        pages = 0
        while True:
            query = listing_query(kind, start_after=cursor, limit=limit)
            try:
                payload = await connection.query_smart(contract, query)
                page = parse_listing(kind, payload)
            except EndpointError as exc:
                raise PartialReadAborted(
                    f"{state.network_id}: {kind} listing interrupted after {pages} pages: {exc}"
                ) from exc
            except ValueError as exc:
                raise PartialReadAborted(
                    f"{state.network_id}: unreadable {kind} listing page: {exc}"
                ) from exc

            # Contracts may cap `limit` below the requested size: only an empty page ends a listing.
            if not page:
                return
            pages += 1
            for key, value in page:
                _merge(state, EntryKey(state.network_id, kind, key), value)

            next_cursor = page[-1][0]
            if next_cursor == cursor or next_cursor in seen_cursors:
                raise PartialReadAborted(
                    f"{state.network_id}: {kind} listing cursor stopped advancing at "
                    f"{next_cursor!r} after {pages} pages"
                )
            seen_cursors.add(next_cursor)
            cursor = next_cursor


def _merge(state: ActualState, key: EntryKey, value: EntryValue) -> None:
    current = state.entries.get(key)
    if current is not None and not values_equal(current, value):
        log.warning("Conflicting duplicate for %s across pages: %r vs %r", key, current, value)
    state.entries[key] = value
