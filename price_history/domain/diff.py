"""Derivation of the pending-change log from a snapshot and a working copy.

The edit session keeps its log incrementally for cheap reads; this module is
the reference definition that log must always agree with.
"""
from __future__ import annotations

from typing import Iterable, Mapping, Sequence

from .models import ChangeKind, EditableEntry, FabricPriceHistory, PendingChange


def change_for_entry(fabric_id: str, snapshot: FabricPriceHistory, entry: EditableEntry) -> PendingChange | None:
    """The change a visible working entry implies, or ``None`` when it matches the snapshot."""
    if entry.is_new:
        if entry.staged is None:
            return None
        return PendingChange(
            fabric_id=fabric_id,
            provider=entry.provider,
            entry_id=entry.id,
            kind=ChangeKind.ADD,
            payload=entry.staged,
        )
    original = snapshot.find(entry.id)
    if original is None:
        raise ValueError(f"Entry {entry.id} is not part of the {fabric_id} snapshot")
    if entry.staged is None or entry.staged == original:
        return None
    return PendingChange(
        fabric_id=fabric_id,
        provider=entry.provider,
        entry_id=entry.id,
        kind=ChangeKind.UPDATE,
        payload=entry.staged,
        original=original,
    )


def delete_change(fabric_id: str, snapshot: FabricPriceHistory, entry: EditableEntry) -> PendingChange:
    original = snapshot.find(entry.id)
    if original is None:
        raise ValueError(f"Entry {entry.id} is not part of the {fabric_id} snapshot")
    return PendingChange(
        fabric_id=fabric_id,
        provider=entry.provider,
        entry_id=entry.id,
        kind=ChangeKind.DELETE,
        payload=original,
        original=original,
    )


def derive_pending_changes(
    snapshot: FabricPriceHistory,
    working: Mapping[str, Sequence[EditableEntry]],
    deleted: Iterable[EditableEntry] = (),
) -> dict[str, PendingChange]:
    """Pending changes keyed by entry id."""
    fabric_id = snapshot.fabric_id
    changes: dict[str, PendingChange] = {}
    for entries in working.values():
        for entry in entries:
            change = change_for_entry(fabric_id, snapshot, entry)
            if change is not None:
                changes[entry.id] = change
    for entry in deleted:
        changes[entry.id] = delete_change(fabric_id, snapshot, entry)
    return changes
