"""Registry entries and the desired/actual state snapshots built from them."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from .enums import EntryKind

if TYPE_CHECKING:
    from collections.abc import Iterator, Mapping

# address or channel id for contracts/channels, {"native": denom} | {"cw20": addr} for assets
type EntryValue = str | Mapping[str, str]


@dataclass(frozen=True, slots=True, order=True)
class EntryKey:
    """Unique identity of a registry entry; orders by network, kind, then key."""

    network_id: str
    kind: EntryKind
    key: str

    def __str__(self) -> str:
        return f"{self.network_id}/{self.kind}/{self.key}"


@dataclass(frozen=True, slots=True)
class RegistryEntry:
    """Canonical unit of truth observed in one source snapshot."""

    network_id: str
    kind: EntryKind
    key: str
    value: EntryValue
    source_revision: int

    @property
    def entry_key(self) -> EntryKey:
        return EntryKey(self.network_id, self.kind, self.key)


@dataclass(slots=True)
class MalformedRecord:
    """A feed record that was skipped during normalization."""

    key: str
    reason: str


@dataclass(slots=True)
class DesiredState:
    """What the registry contract of ``network_id`` should hold."""

    network_id: str
    revision: int
    entries: dict[EntryKey, RegistryEntry] = field(
        default_factory=dict["EntryKey", "RegistryEntry"]
    )
    malformed: list[MalformedRecord] = field(default_factory=list["MalformedRecord"])

    def __len__(self) -> int:
        return len(self.entries)

    def __contains__(self, key: object) -> bool:
        return key in self.entries

    def __iter__(self) -> Iterator[EntryKey]:
        return iter(self.entries)

    def get(self, key: EntryKey) -> RegistryEntry | None:
        return self.entries.get(key)

    def offer(self, entry: RegistryEntry) -> bool:
        """Keep ``entry`` unless an entry with a higher revision already holds its key.

        Equal revisions let the later record win. Returns whether ``entry`` was kept.
        """

        key = entry.entry_key
        current = self.entries.get(key)
        if current is not None and current.source_revision > entry.source_revision:
            return False
        self.entries[key] = entry
        return True

    @property
    def max_entry_revision(self) -> int:
        return max((entry.source_revision for entry in self.entries.values()), default=0)


@dataclass(slots=True)
class ActualState:
    """Fully materialized on-chain registry content for ``network_id``."""

    network_id: str
    entries: dict[EntryKey, EntryValue] = field(default_factory=dict["EntryKey", "EntryValue"])

    def __len__(self) -> int:
        return len(self.entries)

    def __contains__(self, key: object) -> bool:
        return key in self.entries

    def __iter__(self) -> Iterator[EntryKey]:
        return iter(self.entries)

    def get(self, key: EntryKey) -> EntryValue | None:
        return self.entries.get(key)

    def copy(self) -> ActualState:
        return ActualState(network_id=self.network_id, entries=dict(self.entries))
