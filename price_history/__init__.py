"""Price history editing and reconciliation engine."""
from price_history.application.reconciler import Reconciler
from price_history.application.store import EntryStore
from price_history.application.use_cases import AddProviderUseCase, CreateFabricUseCase, PriceWriteContext
from price_history.domain.matrix import build_matrix
from price_history.domain.session import EditSession
from price_history.domain.validation import ValidationContext, validate_entry
from price_history.infrastructure.repositories.json_repository import JsonPriceHistoryRepository
from price_history.infrastructure.repositories.memory_repository import InMemoryPriceHistoryRepository

__all__ = [
    "AddProviderUseCase",
    "CreateFabricUseCase",
    "EditSession",
    "EntryStore",
    "InMemoryPriceHistoryRepository",
    "JsonPriceHistoryRepository",
    "PriceWriteContext",
    "Reconciler",
    "ValidationContext",
    "build_matrix",
    "validate_entry",
]
