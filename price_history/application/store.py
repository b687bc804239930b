"""Read model holding the authoritative price histories."""
from __future__ import annotations

import logging
import threading
from types import MappingProxyType
from typing import Mapping, Sequence

from price_history.config import SETTINGS, Settings
from price_history.domain.errors import FabricNotFoundError
from price_history.domain.matrix import build_matrix, build_summaries
from price_history.domain.models import FabricPriceHistory, PriceHistorySummary, PriceMatrix
from price_history.domain.repositories import PriceHistoryRepository

logger = logging.getLogger(__name__)


class EntryStore:
    """Immutable snapshots of every fabric's history.

    The mapping is swapped as a whole on every change, so a reader holding the
    result of :meth:`histories` never observes a half-applied save. Derived
    views are cached against :attr:`version`.
    """

    def __init__(self, repository: PriceHistoryRepository, settings: Settings | None = None) -> None:
        self._repository = repository
        self._settings = settings or SETTINGS
        self._histories: Mapping[str, FabricPriceHistory] = MappingProxyType({})
        self._version = 0
        self._lock = threading.Lock()
        self._matrix: tuple[int, PriceMatrix] | None = None
        self._summaries: tuple[int, list[PriceHistorySummary]] | None = None

    @property
    def version(self) -> int:
        return self._version

    def load(self) -> None:
        histories = self._repository.list_histories()
        fresh = {history.fabric_id: history for history in histories}
        with self._lock:
            self._histories = MappingProxyType(fresh)
            self._version += 1
        logger.info("Loaded price history for %d fabric(s)", len(fresh))

    def replace(self, history: FabricPriceHistory) -> None:
        with self._lock:
            updated = dict(self._histories)
            updated[history.fabric_id] = history
            self._histories = MappingProxyType(updated)
            self._version += 1

    def get(self, fabric_id: str) -> FabricPriceHistory:
        try:
            return self._histories[fabric_id]
        except KeyError:
            raise FabricNotFoundError(fabric_id) from None

    def __contains__(self, fabric_id: object) -> bool:
        return fabric_id in self._histories

    def histories(self) -> Sequence[FabricPriceHistory]:
        return tuple(self._histories.values())

    def matrix(self) -> PriceMatrix:
        cached = self._matrix
        if cached is not None and cached[0] == self._version:
            return cached[1]
        version, histories = self._read()
        matrix = build_matrix(histories, self._settings)
        self._matrix = (version, matrix)
        return matrix

    def summaries(self) -> list[PriceHistorySummary]:
        cached = self._summaries
        if cached is not None and cached[0] == self._version:
            return list(cached[1])
        version, histories = self._read()
        summaries = build_summaries(histories, self._settings)
        self._summaries = (version, summaries)
        return list(summaries)

    def _read(self) -> tuple[int, Sequence[FabricPriceHistory]]:
        with self._lock:
            return self._version, tuple(self._histories.values())
