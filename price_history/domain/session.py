"""Edit session: the working copy of one fabric and its pending-change log.

Per entry the session tracks an explicit :class:`EntryState`. The log holds at
most one change per entry id and is kept equal to
:func:`~price_history.domain.diff.derive_pending_changes` over the snapshot
and the working copy after every operation.
"""
from __future__ import annotations

import logging
import uuid
from contextlib import contextmanager
from datetime import date, datetime
from typing import Any, Callable, Iterator, Mapping

from price_history.config import SETTINGS, Settings

from .diff import change_for_entry, delete_change, derive_pending_changes
from .errors import (
    EditInProgressError,
    SaveInProgressError,
    SessionStateError,
    UnknownEntryError,
    UnsavedChangesError,
)
from .models import (
    TEMP_ID_PREFIX,
    EditableEntry,
    EntryState,
    FabricPriceHistory,
    PendingChange,
    PriceEntry,
    ValidationError,
    normalize_provider,
)
from .repositories import SnapshotSource
from .results import FabricChangeSet, ValidationReport
from .validation import ValidationContext, coerce_entry, validate_entry

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = frozenset({"date", "quantity", "unit"})


def _temporary_id() -> str:
    return f"{TEMP_ID_PREFIX}{uuid.uuid4().hex}"


def _today() -> date:
    return datetime.now(SETTINGS.timezone).date()


class EditSession:
    """Single-operator editing state for one fabric at a time."""

    def __init__(
        self,
        source: SnapshotSource,
        today: Callable[[], date] | None = None,
        id_factory: Callable[[], str] | None = None,
        settings: Settings | None = None,
    ) -> None:
        self._source = source
        self._today = today or _today
        self._new_id = id_factory or _temporary_id
        self._settings = settings or SETTINGS
        self._fabric_id: str | None = None
        self._snapshot: FabricPriceHistory | None = None
        self._working: dict[str, list[EditableEntry]] = {}
        self._deleted: dict[str, EditableEntry] = {}
        self._pending: dict[str, PendingChange] = {}
        self._saving = False

    # -- lifecycle -------------------------------------------------------

    def initialize_fabric_for_editing(self, fabric_id: str, discard: bool = False) -> None:
        """Open ``fabric_id`` for editing.

        Another fabric's unsaved changes are never merged into this one: the
        call fails with :class:`UnsavedChangesError` unless ``discard`` is set.
        Re-opening the active fabric keeps its drafts and pending changes.
        """
        self._ensure_not_saving()
        if self._fabric_id == fabric_id and (self._pending or self.editing_entry_id):
            return
        if self._fabric_id not in (None, fabric_id) and self._pending:
            if not discard:
                raise UnsavedChangesError(self._fabric_id, len(self._pending))
            logger.warning(
                "Discarding %d unsaved change(s) for fabric %s to edit %s",
                len(self._pending),
                self._fabric_id,
                fabric_id,
            )
        self._load(self._source.get(fabric_id))

    def reset_changes(self) -> None:
        """Drop every pending change and draft, re-reading the current snapshot."""
        if self._fabric_id is None:
            return
        self._ensure_not_saving()
        if self._pending:
            logger.info("Discarded %d pending change(s) for fabric %s", len(self._pending), self._fabric_id)
        self._load(self._source.get(self._fabric_id))

    def refresh_from_source(self) -> None:
        """Re-snapshot after the source changed underneath the session (e.g. a committed save)."""
        if self._fabric_id is None:
            raise SessionStateError("No fabric is open for editing")
        self._load(self._source.get(self._fabric_id))

    @contextmanager
    def saving(self) -> Iterator[FabricChangeSet]:
        """Yield the change set to write; mutations raise :class:`SaveInProgressError` until the block exits."""
        change_set = self.change_set()
        if self._saving:
            raise SaveInProgressError(change_set.fabric_id)
        self._saving = True
        try:
            yield change_set
        finally:
            self._saving = False

    def close(self) -> None:
        self._ensure_not_saving()
        self._fabric_id = None
        self._snapshot = None
        self._working = {}
        self._deleted = {}
        self._pending = {}

    def _load(self, snapshot: FabricPriceHistory) -> None:
        working: dict[str, list[EditableEntry]] = {}
        for provider in snapshot.providers():
            newest_first = reversed(snapshot.entries_for(provider))
            working[provider] = [EditableEntry.from_entry(entry) for entry in newest_first]
        self._fabric_id = snapshot.fabric_id
        self._snapshot = snapshot
        self._working = working
        self._deleted = {}
        self._pending = {}

    # -- mutations -------------------------------------------------------

    def add_new_entry(self, fabric_id: str, provider: str) -> str:
        """Insert a blank draft row at the top of ``provider``'s list and return its temporary id."""
        self._ensure_not_saving()
        self._require_fabric(fabric_id)
        key = normalize_provider(provider)
        if not key:
            raise ValueError("Provider is required to add an entry")
        self._ensure_not_editing_other(None)
        entry = EditableEntry(
            id=self._new_id(),
            provider=key,
            date=self._today(),
            quantity=None,
            unit=self._settings.default_unit,
            is_new=True,
            state=EntryState.EDITING,
        )
        self._working.setdefault(key, []).insert(0, entry)
        return entry.id

    def start_edit(self, fabric_id: str, provider: str, entry_id: str) -> None:
        self._ensure_not_saving()
        entry = self._find(fabric_id, provider, entry_id)
        self._ensure_not_editing_other(entry.id)
        entry.state = EntryState.EDITING

    def update_entry(
        self, fabric_id: str, provider: str, entry_id: str, data: Mapping[str, Any]
    ) -> list[ValidationError]:
        """Merge ``data`` into the draft and record the change if it validates.

        Returns the validation errors for the entry; an empty list means the
        change is queued.
        """
        self._ensure_not_saving()
        entry = self._find(fabric_id, provider, entry_id)
        self._ensure_not_editing_other(entry.id)
        unknown = set(data) - EDITABLE_FIELDS
        if unknown:
            raise ValueError(f"Fields cannot be edited: {', '.join(sorted(unknown))}")

        for name, value in data.items():
            setattr(entry, name, value)

        errors = validate_entry(entry.draft(), self._context(entry.id))
        if errors:
            entry.state = EntryState.EDITING
            return errors

        entry.staged = coerce_entry(entry.id, entry.draft())
        change = change_for_entry(fabric_id, self._snapshot, entry)
        if change is None:
            self._pending.pop(entry.id, None)
            entry.state = EntryState.CLEAN
        else:
            self._pending[entry.id] = change
            entry.state = EntryState.DIRTY
        return []

    def delete_entry(self, fabric_id: str, provider: str, entry_id: str) -> None:
        self._ensure_not_saving()
        entry = self._find(fabric_id, provider, entry_id)
        self._working[entry.provider].remove(entry)
        if entry.is_new:
            self._pending.pop(entry.id, None)
            return
        entry.state = EntryState.DELETED
        self._deleted[entry.id] = entry
        self._pending[entry.id] = delete_change(fabric_id, self._snapshot, entry)

    def cancel_edit(self, fabric_id: str, provider: str, entry_id: str) -> None:
        self._ensure_not_saving()
        entry = self._find(fabric_id, provider, entry_id)
        if entry.is_new:
            self._working[entry.provider].remove(entry)
        else:
            entry.restore_original()
        self._pending.pop(entry.id, None)

    # -- queries ---------------------------------------------------------

    @property
    def active_fabric_id(self) -> str | None:
        return self._fabric_id

    @property
    def snapshot(self) -> FabricPriceHistory | None:
        return self._snapshot

    @property
    def editing_entry_id(self) -> str | None:
        for entries in self._working.values():
            for entry in entries:
                if entry.is_editing:
                    return entry.id
        return None

    @property
    def is_saving(self) -> bool:
        return self._saving

    @property
    def has_pending_changes(self) -> bool:
        return bool(self._pending)

    @property
    def pending_changes(self) -> tuple[PendingChange, ...]:
        return tuple(self._pending.values())

    def providers(self) -> tuple[str, ...]:
        return tuple(self._working)

    def get_entries_for_provider(self, fabric_id: str, provider: str) -> tuple[EditableEntry, ...]:
        self._require_fabric(fabric_id)
        return tuple(self._working.get(normalize_provider(provider), ()))

    def deleted_entries(self) -> tuple[EditableEntry, ...]:
        return tuple(self._deleted.values())

    def working_entries(self) -> dict[str, tuple[PriceEntry, ...]]:
        """Validated values of every visible entry, newest first per provider."""
        view: dict[str, tuple[PriceEntry, ...]] = {}
        for provider, entries in self._working.items():
            staged = tuple(entry.staged for entry in entries if entry.staged is not None)
            if staged:
                view[provider] = staged
        return view

    def validation(self) -> ValidationReport:
        """Errors across every new, editing or dirty entry of the open fabric."""
        context = self._context(None)
        errors = []
        for entries in self._working.values():
            for entry in entries:
                if entry.is_new or entry.state in (EntryState.EDITING, EntryState.DIRTY):
                    errors.extend(validate_entry(entry.draft(), context.for_entry(entry.id)))
        return ValidationReport(errors=tuple(errors))

    def derive_pending_changes(self) -> dict[str, PendingChange]:
        if self._snapshot is None:
            return {}
        return derive_pending_changes(self._snapshot, self._working, self._deleted.values())

    def change_set(self) -> FabricChangeSet:
        if self._fabric_id is None:
            raise SessionStateError("No fabric is open for editing")
        return FabricChangeSet.from_changes(self._fabric_id, self._pending.values())

    # -- helpers ---------------------------------------------------------

    def _context(self, entry_id: str | None) -> ValidationContext:
        return ValidationContext(today=self._today(), units=self._settings.units, entry_id=entry_id)

    def _require_fabric(self, fabric_id: str) -> None:
        if self._fabric_id is None:
            raise SessionStateError("No fabric is open for editing")
        if fabric_id != self._fabric_id:
            raise SessionStateError(f"Fabric {fabric_id} is not open for editing (active: {self._fabric_id})")

    def _find(self, fabric_id: str, provider: str, entry_id: str) -> EditableEntry:
        self._require_fabric(fabric_id)
        for entry in self._working.get(normalize_provider(provider), ()):
            if entry.id == entry_id:
                return entry
        raise UnknownEntryError(fabric_id, provider, entry_id)

    def _ensure_not_saving(self) -> None:
        if self._saving:
            raise SaveInProgressError(self._fabric_id or "")

    def _ensure_not_editing_other(self, entry_id: str | None) -> None:
        editing = self.editing_entry_id
        if editing is not None and editing != entry_id:
            raise EditInProgressError(editing)
