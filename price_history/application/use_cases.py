"""Application services for writes that bypass the edit session.

Creating a fabric and adding a provider to an existing fabric are single-entry
inserts. They share the session's field rules and add the stricter limits the
insert forms have always enforced.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Callable, Mapping

from price_history.config import SETTINGS, Settings
from price_history.domain.errors import FabricExistsError, RepositoryError
from price_history.domain.models import TEMP_ID_PREFIX, FabricPriceHistory, ValidationError, normalize_provider
from price_history.domain.repositories import PriceHistoryRepository
from price_history.domain.results import SaveResult, WriteResult
from price_history.domain.validation import (
    ValidationContext,
    coerce_entry,
    parse_entry_date,
    validate_entry,
    validate_provider_name,
)

from .dto import NewFabricRequest, NewProviderRequest
from .store import EntryStore

logger = logging.getLogger(__name__)


def generate_fabric_id(fabric_name: str) -> str:
    """Storage key for a fabric name: ``"Lino Premium 2"`` -> ``"LINO_PREMIUM_2"``."""
    fabric_id = re.sub(r"\s+", "_", fabric_name.strip())
    fabric_id = re.sub(r"[^\w\-]", "", fabric_id, flags=re.ASCII)
    return fabric_id.upper()


def _today() -> date:
    return datetime.now(SETTINGS.timezone).date()


@dataclass(slots=True)
class PriceWriteContext:
    repository: PriceHistoryRepository
    store: EntryStore
    today: Callable[[], date] = _today
    settings: Settings = field(default_factory=lambda: SETTINGS)

    def validation_context(self) -> ValidationContext:
        return ValidationContext(
            today=self.today(),
            units=self.settings.units,
            max_quantity=self.settings.max_quantity,
        )


def _validate_insert(candidate: Mapping[str, Any], context: ValidationContext) -> list[ValidationError]:
    errors = [error for error in validate_entry(candidate, context) if error.field != "provider"]
    errors.extend(validate_provider_name(candidate.get("provider"), context))
    return errors


def _from_save(result: SaveResult, store: EntryStore, message: str) -> WriteResult:
    if not result.success or result.history is None:
        return WriteResult(success=False, fabric_id=result.fabric_id, message=result.message or "Write failed")
    store.replace(result.history)
    return WriteResult(success=True, fabric_id=result.fabric_id, message=message, history=result.history)


class CreateFabricUseCase:
    def __init__(self, context: PriceWriteContext) -> None:
        self._context = context

    def execute(self, request: NewFabricRequest) -> WriteResult:
        validation_context = self._context.validation_context()
        name = (request.fabric_name or "").strip()
        errors: list[ValidationError] = []
        if not name:
            errors.append(ValidationError(field="fabric_name", entry_id=None, message="Fabric name is required"))
        errors.extend(_validate_insert(request.initial_price.as_candidate(), validation_context))
        fabric_id = generate_fabric_id(name) if name else ""
        if name and not fabric_id:
            errors.append(
                ValidationError(field="fabric_name", entry_id=None, message="Fabric name yields no usable id")
            )
        if errors:
            return WriteResult(
                success=False, fabric_id=fabric_id or None, message="Invalid fabric", errors=tuple(errors)
            )

        repository = self._context.repository
        if repository.get_history(fabric_id) is not None:
            return WriteResult(
                success=False,
                fabric_id=fabric_id,
                message=f"A fabric named {name} already exists",
                conflict=True,
            )

        entry = coerce_entry(f"{TEMP_ID_PREFIX}{fabric_id}", request.initial_price.as_candidate())
        history = FabricPriceHistory(fabric_id=fabric_id, fabric_name=name, entries=(entry,))
        try:
            result = repository.create_fabric(history)
        except FabricExistsError as exc:
            return WriteResult(success=False, fabric_id=fabric_id, message=str(exc), conflict=True)
        except (RepositoryError, OSError) as exc:
            logger.exception("Creating fabric %s failed", fabric_id)
            return WriteResult(success=False, fabric_id=fabric_id, message=f"Error creating fabric: {exc}")

        logger.info("Created fabric %s with provider %s", fabric_id, entry.provider)
        return _from_save(result, self._context.store, f"Fabric {name} created")


class AddProviderUseCase:
    def __init__(self, context: PriceWriteContext) -> None:
        self._context = context

    def execute(self, request: NewProviderRequest) -> WriteResult:
        candidate = request.as_candidate()
        errors = _validate_insert(candidate, self._context.validation_context())
        if errors:
            return WriteResult(
                success=False, fabric_id=request.fabric_id, message="Invalid price", errors=tuple(errors)
            )

        repository = self._context.repository
        existing = repository.get_history(request.fabric_id)
        if existing is None:
            return WriteResult(
                success=False,
                fabric_id=request.fabric_id,
                message=f"Fabric {request.fabric_id} does not exist",
            )

        provider = normalize_provider(request.provider)
        day = parse_entry_date(request.date)
        if any(entry.provider == provider and entry.date == day for entry in existing.entries):
            return WriteResult(
                success=False,
                fabric_id=request.fabric_id,
                message=f"{provider} already has a price on {day.isoformat()}",
                conflict=True,
            )

        entry = coerce_entry(f"{TEMP_ID_PREFIX}{provider}", candidate)
        try:
            result = repository.append_entry(request.fabric_id, entry)
        except (RepositoryError, OSError) as exc:
            logger.exception("Adding provider %s to fabric %s failed", provider, request.fabric_id)
            return WriteResult(success=False, fabric_id=request.fabric_id, message=f"Error adding provider: {exc}")

        logger.info("Added provider %s to fabric %s", provider, request.fabric_id)
        return _from_save(result, self._context.store, f"Provider {provider} added to {request.fabric_id}")
