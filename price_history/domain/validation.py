"""Field rules for candidate price entries.

Every rule runs on every call so the caller can show all problems at once.
Nothing here raises for bad input; violations come back as
:class:`ValidationError` values.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Mapping, Sequence

from price_history.config import SETTINGS

from .models import PriceEntry, ValidationError, normalize_provider

_MISSING = object()
_GROUPED_NUMBER = re.compile(r"^[+-]?\d{1,3}(,\d{3})+(\.\d*)?$")


@dataclass(frozen=True)
class ValidationContext:
    today: date
    units: Sequence[str] = field(default_factory=lambda: SETTINGS.units)
    entry_id: str | None = None
    max_quantity: Decimal | None = None

    def for_entry(self, entry_id: str | None) -> ValidationContext:
        return ValidationContext(
            today=self.today,
            units=self.units,
            entry_id=entry_id,
            max_quantity=self.max_quantity,
        )


def parse_entry_date(value: object) -> date | None:
    """Calendar date from a ``date``, ``datetime`` or ISO string; ``None`` if unparsable."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        return None
    text = value.strip()
    if not text:
        return None
    # The storage layer has written both "2024-03-01" and "2024-03-01T00:00:00.000Z".
    text = text.split("T", 1)[0].split(" ", 1)[0]
    try:
        return date.fromisoformat(text)
    except ValueError:
        return None


def strip_thousands(text: str) -> str | None:
    """``"1,250.75"`` -> ``"1250.75"``; ``None`` when a comma is not a thousands separator."""
    if "," not in text:
        return text
    if not _GROUPED_NUMBER.match(text):
        return None
    return text.replace(",", "")


def parse_quantity(value: object) -> Decimal | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        return value
    if isinstance(value, int):
        return Decimal(value)
    if isinstance(value, float):
        return Decimal(str(value))
    if isinstance(value, str):
        text = strip_thousands(value.strip().replace("$", ""))
        if not text:
            return None
        try:
            return Decimal(text)
        except InvalidOperation:
            return None
    return None


def _is_blank(value: object) -> bool:
    return value is None or value is _MISSING or (isinstance(value, str) and not value.strip())


def _check_date(value: object, context: ValidationContext) -> str | None:
    if _is_blank(value):
        return "Date is required"
    parsed = parse_entry_date(value)
    if parsed is None:
        return "Date is not a valid calendar date"
    if parsed > context.today:
        return "Date cannot be in the future"
    return None


def _check_quantity(value: object, context: ValidationContext) -> str | None:
    if _is_blank(value):
        return "Price is required"
    parsed = parse_quantity(value)
    if parsed is None or not parsed.is_finite():
        return "Price must be a finite number"
    if parsed <= 0:
        return "Price must be greater than zero"
    if context.max_quantity is not None and parsed > context.max_quantity:
        return f"Price cannot exceed {context.max_quantity:,}"
    return None


def _check_unit(value: object, context: ValidationContext) -> str | None:
    if _is_blank(value):
        return "Unit is required"
    if not isinstance(value, str) or value.strip() not in context.units:
        return f"Unit must be one of: {', '.join(context.units)}"
    return None


def _check_provider(value: object, context: ValidationContext) -> str | None:
    if _is_blank(value):
        return "Provider is required"
    return None


_RULES = (
    ("date", _check_date),
    ("quantity", _check_quantity),
    ("unit", _check_unit),
    ("provider", _check_provider),
)


def validate_entry(candidate: Mapping[str, Any], context: ValidationContext) -> list[ValidationError]:
    errors: list[ValidationError] = []
    for field_name, rule in _RULES:
        message = rule(candidate.get(field_name, _MISSING), context)
        if message is not None:
            errors.append(ValidationError(field=field_name, entry_id=context.entry_id, message=message))
    return errors


def validate_provider_name(name: object, context: ValidationContext) -> list[ValidationError]:
    """Length rule applied when a provider is introduced through a single-entry insert."""
    text = "" if name is None else str(name).strip()
    if not text:
        message = "Provider is required"
    elif len(text) < SETTINGS.provider_name_min:
        message = f"Provider must be at least {SETTINGS.provider_name_min} characters"
    elif len(text) > SETTINGS.provider_name_max:
        message = f"Provider cannot exceed {SETTINGS.provider_name_max} characters"
    else:
        return []
    return [ValidationError(field="provider", entry_id=context.entry_id, message=message)]


def coerce_entry(entry_id: str, candidate: Mapping[str, Any]) -> PriceEntry:
    """Build a :class:`PriceEntry` from a candidate that already validated cleanly."""
    entry_date = parse_entry_date(candidate.get("date"))
    quantity = parse_quantity(candidate.get("quantity"))
    if entry_date is None or quantity is None:
        raise ValueError(f"Candidate for {entry_id} has not been validated")
    return PriceEntry(
        id=entry_id,
        provider=normalize_provider(candidate.get("provider")),
        date=entry_date,
        quantity=quantity,
        unit=str(candidate.get("unit")).strip(),
    )
