"""Repository interfaces anchoring the domain layer."""
from __future__ import annotations

from typing import Protocol, Sequence

from .models import FabricPriceHistory, PriceEntry
from .results import FabricChangeSet, SaveResult


class PriceHistoryRepository(Protocol):
    """Backing store of fabric price histories.

    Writes either apply completely and return the authoritative post-write
    history, or apply nothing.
    """

    def list_histories(self) -> Sequence[FabricPriceHistory]:
        ...

    def get_history(self, fabric_id: str) -> FabricPriceHistory | None:
        ...

    def submit_changes(self, fabric_id: str, change_set: FabricChangeSet) -> SaveResult:
        ...

    def create_fabric(self, history: FabricPriceHistory) -> SaveResult:
        ...

    def append_entry(self, fabric_id: str, entry: PriceEntry) -> SaveResult:
        ...


class SnapshotSource(Protocol):
    """Read-only access to the current authoritative history of a fabric."""

    def get(self, fabric_id: str) -> FabricPriceHistory:
        ...
