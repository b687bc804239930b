"""Directory of JSON files, one per fabric, acting as the price-history repository."""
from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Callable, Sequence

from price_history.config import SETTINGS
from price_history.domain.errors import ChangeConflictError, FabricExistsError, RepositoryError
from price_history.domain.models import FabricPriceHistory, PriceEntry
from price_history.domain.repositories import PriceHistoryRepository
from price_history.domain.results import FabricChangeSet, SaveResult
from price_history.infrastructure.parsing.utils import parse_timestamp, row_to_entry

from .changes import append_entry, apply_change_set, assign_ids, new_entry_id

logger = logging.getLogger(__name__)

SUFFIX = ".json"


def history_to_document(history: FabricPriceHistory) -> dict[str, object]:
    return {
        "fabricId": history.fabric_id,
        "fabricName": history.fabric_name,
        "lastUpdated": history.last_updated.isoformat() if history.last_updated else None,
        "history": [entry.to_payload() for entry in history.entries],
    }


def document_to_history(fabric_id: str, document: object) -> FabricPriceHistory:
    """Accept both the current object layout and the bare array of rows used by older files."""
    if isinstance(document, list):
        rows, name, updated = document, fabric_id, None
    elif isinstance(document, dict):
        rows = document.get("history") or []
        name = document.get("fabricName") or fabric_id
        updated = parse_timestamp(document.get("lastUpdated"))
        if not isinstance(rows, list):
            raise RepositoryError(f"History of fabric {fabric_id} is not a list")
    else:
        raise RepositoryError(f"Unrecognised document for fabric {fabric_id}")

    entries: list[PriceEntry] = []
    seen: set[str] = set()
    for index, row in enumerate(rows):
        entry = row_to_entry(fabric_id, index, row)
        if entry is None:
            continue
        if entry.id in seen:
            logger.warning("Duplicate entry id %s in fabric %s; keeping the first", entry.id, fabric_id)
            continue
        seen.add(entry.id)
        entries.append(entry)
    return FabricPriceHistory(fabric_id=fabric_id, fabric_name=str(name), entries=tuple(entries), last_updated=updated)


class JsonPriceHistoryRepository(PriceHistoryRepository):
    def __init__(self, root: Path | None = None, id_factory: Callable[[], str] = new_entry_id) -> None:
        self._root = Path(root) if root is not None else SETTINGS.data_dir
        self._id_factory = id_factory
        self._lock = threading.RLock()

    @property
    def root(self) -> Path:
        return self._root

    def list_histories(self) -> Sequence[FabricPriceHistory]:
        if not self._root.exists():
            return ()
        with self._lock:
            paths = sorted(p for p in self._root.iterdir() if p.is_file() and p.suffix.lower() == SUFFIX)
            return tuple(self._read(path.stem, path) for path in paths)

    def get_history(self, fabric_id: str) -> FabricPriceHistory | None:
        path = self._path(fabric_id)
        with self._lock:
            if not path.exists():
                return None
            return self._read(fabric_id, path)

    def submit_changes(self, fabric_id: str, change_set: FabricChangeSet) -> SaveResult:
        with self._lock:
            current = self.get_history(fabric_id)
            if current is None:
                return SaveResult.failed(fabric_id, f"Fabric {fabric_id} does not exist")
            try:
                updated = apply_change_set(current, change_set, id_factory=self._id_factory)
            except ChangeConflictError as exc:
                return SaveResult.failed(fabric_id, str(exc))
            self._write(updated)
        return SaveResult.ok(updated, f"Updated: {len(updated.entries)} entries in total")

    def create_fabric(self, history: FabricPriceHistory) -> SaveResult:
        with self._lock:
            if self._path(history.fabric_id).exists():
                raise FabricExistsError(history.fabric_id)
            created = assign_ids(history, id_factory=self._id_factory)
            self._write(created)
        return SaveResult.ok(created, f"Fabric {history.fabric_id} created")

    def append_entry(self, fabric_id: str, entry: PriceEntry) -> SaveResult:
        with self._lock:
            current = self.get_history(fabric_id)
            if current is None:
                return SaveResult.failed(fabric_id, f"Fabric {fabric_id} does not exist")
            updated = append_entry(current, entry, id_factory=self._id_factory)
            self._write(updated)
        return SaveResult.ok(updated, f"Provider {entry.provider} added")

    def _path(self, fabric_id: str) -> Path:
        if not fabric_id or Path(fabric_id).name != fabric_id or fabric_id.startswith("."):
            raise RepositoryError(f"Invalid fabric id: {fabric_id!r}")
        return self._root / f"{fabric_id}{SUFFIX}"

    def _read(self, fabric_id: str, path: Path) -> FabricPriceHistory:
        text = path.read_text(encoding="utf-8")
        if not text.strip():
            return FabricPriceHistory(fabric_id=fabric_id, fabric_name=fabric_id)
        try:
            document = json.loads(text)
        except json.JSONDecodeError as exc:
            raise RepositoryError(f"Price history for {fabric_id} is not valid JSON: {exc}") from exc
        return document_to_history(fabric_id, document)

    def _write(self, history: FabricPriceHistory) -> None:
        path = self._path(history.fabric_id)
        path.parent.mkdir(parents=True, exist_ok=True)
        payload = json.dumps(history_to_document(history), ensure_ascii=False, indent=2)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{history.fabric_id}.", suffix=".tmp", dir=path.parent)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(payload)
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
