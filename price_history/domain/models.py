"""Domain models for the price history engine.

Stored records (:class:`PriceEntry`, :class:`FabricPriceHistory`) are frozen.
:class:`EditableEntry` is the only mutable model and lives inside an edit
session. Matrix and summary types are derived and rebuilt on every read.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Mapping, Sequence

TEMP_ID_PREFIX = "new-"


def normalize_provider(value: object) -> str:
    return "" if value is None else str(value).strip().upper()


def entry_sort_key(entry: PriceEntry) -> tuple[date, Decimal, str, str]:
    """Total order on entries: chronological, ties broken by price, unit and id."""
    return (entry.date, entry.quantity, entry.unit, entry.id)


@dataclass(frozen=True)
class PriceEntry:
    """One observed unit price from one provider; ``provider`` is stored normalized."""

    id: str
    provider: str
    date: date
    quantity: Decimal
    unit: str

    def __post_init__(self) -> None:
        object.__setattr__(self, "provider", normalize_provider(self.provider))

    @property
    def is_temporary(self) -> bool:
        return self.id.startswith(TEMP_ID_PREFIX)

    def fields(self) -> dict[str, Any]:
        return {"date": self.date, "quantity": self.quantity, "unit": self.unit}

    def to_payload(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "provider": self.provider,
            "date": self.date.isoformat(),
            "quantity": str(self.quantity),
            "unit": self.unit,
        }


@dataclass(frozen=True)
class FabricPriceHistory:
    fabric_id: str
    fabric_name: str
    entries: tuple[PriceEntry, ...] = ()
    last_updated: datetime | None = None

    def providers(self) -> tuple[str, ...]:
        seen: dict[str, None] = {}
        for entry in sorted(self.entries, key=entry_sort_key, reverse=True):
            seen.setdefault(entry.provider, None)
        return tuple(seen)

    def entries_for(self, provider: str) -> tuple[PriceEntry, ...]:
        """Series for ``provider``, oldest first."""
        key = normalize_provider(provider)
        return tuple(sorted((e for e in self.entries if e.provider == key), key=entry_sort_key))

    def find(self, entry_id: str) -> PriceEntry | None:
        for entry in self.entries:
            if entry.id == entry_id:
                return entry
        return None


class EntryState(str, Enum):
    CLEAN = "clean"
    EDITING = "editing"
    DIRTY = "dirty"
    DELETED = "deleted"


@dataclass
class EditableEntry:
    """Working-copy row of an edit session.

    ``date``, ``quantity`` and ``unit`` hold whatever the operator typed, valid
    or not. ``staged`` holds the last values that passed validation and is what
    the pending-change log is built from.
    """

    id: str
    provider: str
    date: Any
    quantity: Any
    unit: Any
    is_new: bool = False
    state: EntryState = EntryState.CLEAN
    original_data: PriceEntry | None = None
    staged: PriceEntry | None = None

    @classmethod
    def from_entry(cls, entry: PriceEntry) -> EditableEntry:
        return cls(
            id=entry.id,
            provider=entry.provider,
            date=entry.date,
            quantity=entry.quantity,
            unit=entry.unit,
            original_data=entry,
            staged=entry,
        )

    @property
    def is_editing(self) -> bool:
        return self.state is EntryState.EDITING

    def draft(self) -> dict[str, Any]:
        return {
            "provider": self.provider,
            "date": self.date,
            "quantity": self.quantity,
            "unit": self.unit,
        }

    def restore_original(self) -> None:
        if self.original_data is None:
            raise ValueError(f"Entry {self.id} has no original data to restore")
        self.date = self.original_data.date
        self.quantity = self.original_data.quantity
        self.unit = self.original_data.unit
        self.staged = self.original_data
        self.state = EntryState.CLEAN


class ChangeKind(str, Enum):
    ADD = "add"
    UPDATE = "update"
    DELETE = "delete"


@dataclass(frozen=True)
class PendingChange:
    fabric_id: str
    provider: str
    entry_id: str
    kind: ChangeKind
    payload: PriceEntry
    original: PriceEntry | None = None


@dataclass(frozen=True)
class ValidationError:
    field: str
    entry_id: str | None
    message: str


class Trend(str, Enum):
    UP = "up"
    DOWN = "down"
    STABLE = "stable"


@dataclass(frozen=True)
class PricePoint:
    entry: PriceEntry
    trend: Trend = Trend.STABLE
    change_percent: Decimal | None = None


@dataclass(frozen=True)
class ProviderPriceData:
    """Latest price of one provider for one fabric, plus its full series."""

    provider: str
    price: Decimal
    date: date
    unit: str
    trend: Trend
    change_percent: Decimal | None
    total_entries: int
    history: tuple[PricePoint, ...]

    @property
    def all_entries(self) -> tuple[PriceEntry, ...]:
        return tuple(point.entry for point in self.history)

    def point_for(self, entry_id: str) -> PricePoint | None:
        for point in self.history:
            if point.entry.id == entry_id:
                return point
        return None


@dataclass(frozen=True)
class FabricProviderMatrix:
    fabric_id: str
    fabric_name: str
    has_any_data: bool
    providers: Mapping[str, ProviderPriceData | None] = field(default_factory=dict)


@dataclass(frozen=True)
class ProviderColumn:
    id: str
    name: str
    has_data: bool
    total_fabrics: int
    avg_price: Decimal = Decimal("0")
    min_price: Decimal = Decimal("0")
    max_price: Decimal = Decimal("0")
    last_update: date | None = None


@dataclass(frozen=True)
class PriceMatrix:
    fabrics: Sequence[FabricProviderMatrix] = field(default_factory=tuple)
    providers: Sequence[ProviderColumn] = field(default_factory=tuple)

    @property
    def total_fabrics(self) -> int:
        return len(self.fabrics)

    @property
    def fabrics_with_data(self) -> int:
        return sum(1 for fabric in self.fabrics if fabric.has_any_data)

    def column_ids(self) -> tuple[str, ...]:
        return tuple(column.id for column in self.providers)


@dataclass(frozen=True)
class PriceHistorySummary:
    """Fabric-wide price statistics across every provider."""

    fabric_id: str
    fabric_name: str
    current_price: Decimal
    previous_price: Decimal
    price_change: Decimal
    price_change_percent: Decimal
    trend: Trend
    last_updated: date
    total_entries: int
    avg_price: Decimal
    min_price: Decimal
    max_price: Decimal
    unit: str
    min_price_provider: str
    min_price_date: date | None
    max_price_provider: str
    max_price_date: date | None
