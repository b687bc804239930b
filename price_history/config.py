"""Central configuration for the price history package."""
from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import timezone
from decimal import Context, Decimal
from pathlib import Path

# Units accepted by the storage API; the editor never offers anything else.
UNITS = ("kg", "mt")
DEFAULT_UNIT = "kg"

# Providers pinned to the left of the matrix, in display order.
KNOWN_PROVIDERS = ("AD", "RBK", "LZ", "CHANGXING", "EM", "ASM", "MH")

BASE_DIR = Path(__file__).resolve().parent.parent
DATA_DIR = Path(os.environ.get("PRICE_HISTORY_DATA_DIR", BASE_DIR / "data" / "price_history"))


@dataclass(slots=True, frozen=True)
class Settings:
    decimal_context: Context
    timezone: timezone.__class__
    units: tuple[str, ...]
    default_unit: str
    known_providers: tuple[str, ...]
    trend_threshold_percent: Decimal
    max_quantity: Decimal
    provider_name_min: int
    provider_name_max: int
    data_dir: Path


SETTINGS = Settings(
    decimal_context=Context(prec=28),
    timezone=timezone.utc,
    units=UNITS,
    default_unit=DEFAULT_UNIT,
    known_providers=KNOWN_PROVIDERS,
    trend_threshold_percent=Decimal("1"),
    max_quantity=Decimal("999999"),
    provider_name_min=2,
    provider_name_max=50,
    data_dir=DATA_DIR,
)
