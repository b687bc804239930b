"""Save protocol: commit an edit session's pending changes as one batch."""
from __future__ import annotations

import logging
import threading
from collections import defaultdict

from price_history.domain.errors import RepositoryError, SessionStateError
from price_history.domain.repositories import PriceHistoryRepository
from price_history.domain.results import FabricChangeSet, SaveResult
from price_history.domain.session import EditSession

from .store import EntryStore

logger = logging.getLogger(__name__)


class Reconciler:
    """Sends a fabric's pending changes to the repository and refreshes local truth.

    A save is all-or-nothing from the caller's side: unless the repository
    returns a successful result carrying the post-write history, the pending
    log is left exactly as it was.
    """

    def __init__(self, store: EntryStore, repository: PriceHistoryRepository, session: EditSession) -> None:
        self._store = store
        self._repository = repository
        self._session = session
        self._locks: dict[str, threading.Lock] = defaultdict(threading.Lock)
        self._locks_guard = threading.Lock()
        self.last_error: str | None = None
        self.last_result: SaveResult | None = None

    def is_saving(self, fabric_id: str) -> bool:
        return self._lock_for(fabric_id).locked()

    def save_changes(self, fabric_id: str) -> bool:
        if self._session.active_fabric_id != fabric_id:
            raise SessionStateError(f"Fabric {fabric_id} is not open for editing")

        if not self._session.has_pending_changes:
            logger.info("Nothing to save for fabric %s", fabric_id)
            return False
        report = self._session.validation()
        if not report.is_valid:
            logger.warning("Save of fabric %s blocked by %d validation error(s)", fabric_id, len(report.errors))
            return False

        lock = self._lock_for(fabric_id)
        if not lock.acquire(blocking=False):
            logger.warning("Save of fabric %s already in flight", fabric_id)
            return False
        try:
            with self._session.saving() as change_set:
                return self._commit(fabric_id, change_set)
        finally:
            lock.release()

    def discard_changes(self, fabric_id: str) -> None:
        if self._session.active_fabric_id != fabric_id:
            raise SessionStateError(f"Fabric {fabric_id} is not open for editing")
        self._session.reset_changes()

    def _commit(self, fabric_id: str, change_set: FabricChangeSet) -> bool:
        try:
            result = self._repository.submit_changes(fabric_id, change_set)
        except (RepositoryError, OSError) as exc:
            logger.exception("Saving %d change(s) for fabric %s failed", len(change_set), fabric_id)
            self._fail(SaveResult.failed(fabric_id, f"Error saving changes: {exc}"))
            return False

        if not result.success or result.history is None:
            logger.error("Repository rejected changes for fabric %s: %s", fabric_id, result.message)
            self._fail(result if not result.success else SaveResult.failed(fabric_id, "Repository returned no history"))
            return False
        if result.history.fabric_id != fabric_id:
            self._fail(SaveResult.failed(fabric_id, f"Repository returned history for {result.history.fabric_id}"))
            return False

        self._store.replace(result.history)
        self._session.refresh_from_source()
        self.last_error = None
        self.last_result = result
        logger.info("Saved %d change(s) for fabric %s", len(change_set), fabric_id)
        return True

    def _fail(self, result: SaveResult) -> None:
        self.last_result = result
        self.last_error = result.message or "; ".join(result.errors) or "Unknown error"

    def _lock_for(self, fabric_id: str) -> threading.Lock:
        with self._locks_guard:
            return self._locks[fabric_id]
