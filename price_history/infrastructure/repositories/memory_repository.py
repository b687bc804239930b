"""Dictionary-backed repository for tests and local demos."""
from __future__ import annotations

import threading
from typing import Callable, Iterable, Sequence

from price_history.domain.errors import ChangeConflictError, FabricExistsError
from price_history.domain.models import FabricPriceHistory, PriceEntry
from price_history.domain.repositories import PriceHistoryRepository
from price_history.domain.results import FabricChangeSet, SaveResult

from .changes import append_entry, apply_change_set, assign_ids, new_entry_id


class InMemoryPriceHistoryRepository(PriceHistoryRepository):
    def __init__(
        self,
        histories: Iterable[FabricPriceHistory] = (),
        id_factory: Callable[[], str] = new_entry_id,
    ) -> None:
        self._histories = {history.fabric_id: history for history in histories}
        self._id_factory = id_factory
        self._lock = threading.Lock()
        self.submitted: list[FabricChangeSet] = []

    def list_histories(self) -> Sequence[FabricPriceHistory]:
        with self._lock:
            return tuple(self._histories.values())

    def get_history(self, fabric_id: str) -> FabricPriceHistory | None:
        with self._lock:
            return self._histories.get(fabric_id)

    def submit_changes(self, fabric_id: str, change_set: FabricChangeSet) -> SaveResult:
        with self._lock:
            self.submitted.append(change_set)
            current = self._histories.get(fabric_id)
            if current is None:
                return SaveResult.failed(fabric_id, f"Fabric {fabric_id} does not exist")
            try:
                updated = apply_change_set(current, change_set, id_factory=self._id_factory)
            except ChangeConflictError as exc:
                return SaveResult.failed(fabric_id, str(exc))
            self._histories[fabric_id] = updated
        return SaveResult.ok(updated, f"Updated: {len(updated.entries)} entries in total")

    def create_fabric(self, history: FabricPriceHistory) -> SaveResult:
        with self._lock:
            if history.fabric_id in self._histories:
                raise FabricExistsError(history.fabric_id)
            created = assign_ids(history, id_factory=self._id_factory)
            self._histories[history.fabric_id] = created
        return SaveResult.ok(created, f"Fabric {history.fabric_id} created")

    def append_entry(self, fabric_id: str, entry: PriceEntry) -> SaveResult:
        with self._lock:
            current = self._histories.get(fabric_id)
            if current is None:
                return SaveResult.failed(fabric_id, f"Fabric {fabric_id} does not exist")
            updated = append_entry(current, entry, id_factory=self._id_factory)
            self._histories[fabric_id] = updated
        return SaveResult.ok(updated, f"Provider {entry.provider} added")
