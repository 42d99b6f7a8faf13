"""Port for the external registry feed."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from ansync.domain.model import DesiredState


@runtime_checkable
class RegistrySource(Protocol):
    """Fetch and normalize the ground-truth snapshot for one network.

    Raises ``SourceUnavailable`` when the feed cannot be reached. Malformed records
    are reported on ``DesiredState.malformed`` instead of raising.
    """

    async def fetch_desired(self, network_id: str) -> DesiredState: ...


__all__ = ["RegistrySource"]
