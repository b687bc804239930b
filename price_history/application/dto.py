"""Application-level request objects for single-entry writes."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(slots=True, frozen=True)
class InitialPrice:
    provider: str
    date: Any
    quantity: Any
    unit: str

    def as_candidate(self) -> dict[str, Any]:
        return {"provider": self.provider, "date": self.date, "quantity": self.quantity, "unit": self.unit}


@dataclass(slots=True, frozen=True)
class NewFabricRequest:
    fabric_name: str
    initial_price: InitialPrice


@dataclass(slots=True, frozen=True)
class NewProviderRequest:
    fabric_id: str
    provider: str
    date: Any
    quantity: Any
    unit: str

    def as_candidate(self) -> dict[str, Any]:
        return {"provider": self.provider, "date": self.date, "quantity": self.quantity, "unit": self.unit}
