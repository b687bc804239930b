"""Parsing helpers for stored price-history rows."""
from __future__ import annotations

import hashlib
import logging
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Mapping

from price_history.config import SETTINGS
from price_history.domain.models import PriceEntry, normalize_provider
from price_history.domain.validation import parse_entry_date, strip_thousands

logger = logging.getLogger(__name__)

# Older files were written by hand and by earlier import scripts using these names.
DATE_KEYS = ("date", "fecha", "timestamp", "Date")
PROVIDER_KEYS = ("provider", "proveedor", "supplier", "Provider")
QUANTITY_KEYS = ("quantity", "cantidad", "price", "precio")
UNIT_KEYS = ("unit", "unidad")


def first_present(row: Mapping[str, Any], keys: tuple[str, ...]) -> Any:
    for key in keys:
        value = row.get(key)
        if value is not None and value != "":
            return value
    return None


def parse_decimal(value: object) -> Decimal | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        return value
    if isinstance(value, (int, float)):
        return Decimal(str(value))
    s = str(value).strip()
    if not s or s.upper() == "NAN":
        return None
    for ch in ["$", " "]:
        s = s.replace(ch, "")
    s = strip_thousands(s)
    if s is None:
        return None
    try:
        return Decimal(s)
    except InvalidOperation:
        return None


def legacy_entry_id(fabric_id: str, index: int, row: Mapping[str, Any]) -> str:
    """Stable id for a stored row that predates entry ids."""
    raw = "|".join(
        [
            fabric_id,
            str(index),
            str(first_present(row, DATE_KEYS)),
            str(first_present(row, PROVIDER_KEYS)),
            str(first_present(row, QUANTITY_KEYS)),
            str(first_present(row, UNIT_KEYS)),
        ]
    )
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()[:32]


def row_to_entry(fabric_id: str, index: int, row: object) -> PriceEntry | None:
    """Stored row as a :class:`PriceEntry`, or ``None`` when it cannot carry a price."""
    if not isinstance(row, Mapping):
        logger.warning("Skipping non-object row %d in fabric %s", index, fabric_id)
        return None
    entry_date = parse_entry_date(first_present(row, DATE_KEYS))
    provider = normalize_provider(first_present(row, PROVIDER_KEYS))
    quantity = parse_decimal(first_present(row, QUANTITY_KEYS))
    if entry_date is None or not provider or quantity is None or not quantity.is_finite():
        logger.warning("Skipping unusable row %d in fabric %s: %r", index, fabric_id, dict(row))
        return None
    unit = first_present(row, UNIT_KEYS)
    entry_id = row.get("id") or legacy_entry_id(fabric_id, index, row)
    return PriceEntry(
        id=str(entry_id),
        provider=provider,
        date=entry_date,
        quantity=quantity,
        unit=str(unit).strip() if unit else SETTINGS.default_unit,
    )


def parse_timestamp(value: object) -> datetime | None:
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=SETTINGS.timezone)
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        return None
