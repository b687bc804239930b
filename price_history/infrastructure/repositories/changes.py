"""Server-side application of a fabric change batch.

Shared by every repository adapter so they agree on what a batch means:
deletes first, then updates, then adds. A batch that references an entry the
history no longer contains is rejected whole.
"""
from __future__ import annotations

import uuid
from dataclasses import replace
from datetime import datetime
from typing import Callable

from price_history.config import SETTINGS
from price_history.domain.errors import ChangeConflictError
from price_history.domain.models import FabricPriceHistory, PriceEntry, entry_sort_key, normalize_provider
from price_history.domain.results import FabricChangeSet


def new_entry_id() -> str:
    return uuid.uuid4().hex


def sort_newest_first(entries: list[PriceEntry]) -> tuple[PriceEntry, ...]:
    return tuple(sorted(entries, key=entry_sort_key, reverse=True))


def apply_change_set(
    history: FabricPriceHistory,
    change_set: FabricChangeSet,
    id_factory: Callable[[], str] = new_entry_id,
    now: datetime | None = None,
) -> FabricPriceHistory:
    if change_set.fabric_id != history.fabric_id:
        raise ChangeConflictError(f"Change set for {change_set.fabric_id} applied to {history.fabric_id}")

    working: dict[str, PriceEntry] = {entry.id: entry for entry in history.entries}

    missing = [entry_id for entry_id in change_set.deleted if entry_id not in working]
    missing.extend(entry.id for entry in change_set.updated if entry.id not in working)
    if missing:
        raise ChangeConflictError(
            f"Fabric {history.fabric_id} no longer has entries: {', '.join(sorted(set(missing)))}"
        )
    clash = set(change_set.deleted).intersection(entry.id for entry in change_set.updated)
    if clash:
        raise ChangeConflictError(f"Entries both updated and deleted: {', '.join(sorted(clash))}")

    for entry_id in change_set.deleted:
        del working[entry_id]
    for entry in change_set.updated:
        working[entry.id] = replace(entry, provider=normalize_provider(entry.provider))
    for entry in change_set.added:
        entry_id = id_factory()
        while entry_id in working:
            entry_id = id_factory()
        working[entry_id] = replace(entry, id=entry_id, provider=normalize_provider(entry.provider))

    return FabricPriceHistory(
        fabric_id=history.fabric_id,
        fabric_name=history.fabric_name,
        entries=sort_newest_first(list(working.values())),
        last_updated=now or datetime.now(SETTINGS.timezone),
    )


def append_entry(
    history: FabricPriceHistory,
    entry: PriceEntry,
    id_factory: Callable[[], str] = new_entry_id,
    now: datetime | None = None,
) -> FabricPriceHistory:
    change_set = FabricChangeSet(fabric_id=history.fabric_id, added=(entry,))
    return apply_change_set(history, change_set, id_factory=id_factory, now=now)


def assign_ids(
    history: FabricPriceHistory,
    id_factory: Callable[[], str] = new_entry_id,
    now: datetime | None = None,
) -> FabricPriceHistory:
    """Replace every entry id with a repository id, as on fabric creation."""
    seed = FabricPriceHistory(fabric_id=history.fabric_id, fabric_name=history.fabric_name)
    change_set = FabricChangeSet(fabric_id=history.fabric_id, added=history.entries)
    return apply_change_set(seed, change_set, id_factory=id_factory, now=now)
