"""Value objects exchanged between the session, the reconciler and repositories."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Sequence

from .models import ChangeKind, FabricPriceHistory, PendingChange, PriceEntry, ValidationError


@dataclass(frozen=True)
class ValidationReport:
    errors: Sequence[ValidationError] = field(default_factory=tuple)

    @property
    def is_valid(self) -> bool:
        return not self.errors

    def for_entry(self, entry_id: str) -> tuple[ValidationError, ...]:
        return tuple(error for error in self.errors if error.entry_id == entry_id)

    def fields_for(self, entry_id: str) -> set[str]:
        return {error.field for error in self.for_entry(entry_id)}


@dataclass(frozen=True)
class FabricChangeSet:
    """One fabric's pending changes, grouped the way the write endpoint expects.

    ``updated`` entries carry the id of the stored entry they replace;
    ``deleted`` lists stored entry ids.
    """

    fabric_id: str
    added: Sequence[PriceEntry] = field(default_factory=tuple)
    updated: Sequence[PriceEntry] = field(default_factory=tuple)
    deleted: Sequence[str] = field(default_factory=tuple)

    @classmethod
    def from_changes(cls, fabric_id: str, changes: Iterable[PendingChange]) -> FabricChangeSet:
        added: list[PriceEntry] = []
        updated: list[PriceEntry] = []
        deleted: list[str] = []
        for change in changes:
            if change.fabric_id != fabric_id:
                raise ValueError(f"Change for {change.fabric_id} cannot be sent with fabric {fabric_id}")
            if change.kind is ChangeKind.ADD:
                added.append(change.payload)
            elif change.kind is ChangeKind.UPDATE:
                updated.append(change.payload)
            else:
                deleted.append(change.entry_id)
        return cls(fabric_id=fabric_id, added=tuple(added), updated=tuple(updated), deleted=tuple(deleted))

    def is_empty(self) -> bool:
        return not (self.added or self.updated or self.deleted)

    def __len__(self) -> int:
        return len(self.added) + len(self.updated) + len(self.deleted)

    def to_payload(self) -> dict[str, object]:
        return {
            "fabricId": self.fabric_id,
            "changes": {
                "added": [entry.to_payload() for entry in self.added],
                "updated": [entry.to_payload() for entry in self.updated],
                "deleted": list(self.deleted),
            },
        }


@dataclass(frozen=True)
class SaveResult:
    """Repository answer to a write: the authoritative history, or why it failed."""

    success: bool
    fabric_id: str
    history: FabricPriceHistory | None = None
    message: str = ""
    errors: Sequence[str] = field(default_factory=tuple)

    @classmethod
    def ok(cls, history: FabricPriceHistory, message: str = "") -> SaveResult:
        return cls(success=True, fabric_id=history.fabric_id, history=history, message=message)

    @classmethod
    def failed(cls, fabric_id: str, message: str, errors: Sequence[str] = ()) -> SaveResult:
        return cls(success=False, fabric_id=fabric_id, message=message, errors=tuple(errors) or (message,))


@dataclass(frozen=True)
class WriteResult:
    """Outcome of a single-entry insert (new fabric or new provider)."""

    success: bool
    fabric_id: str | None
    message: str = ""
    errors: Sequence[ValidationError] = field(default_factory=tuple)
    conflict: bool = False
    history: FabricPriceHistory | None = None
