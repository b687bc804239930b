"""Exceptions raised for precondition violations and repository failures.

Field validation problems are never raised; they travel as
:class:`~price_history.domain.models.ValidationError` values.
"""
from __future__ import annotations


class PriceHistoryError(Exception):
    """Base class for every error raised by the package."""


class FabricNotFoundError(PriceHistoryError, KeyError):
    def __init__(self, fabric_id: str) -> None:
        super().__init__(fabric_id)
        self.fabric_id = fabric_id

    def __str__(self) -> str:
        return f"Unknown fabric: {self.fabric_id}"


class UnknownEntryError(PriceHistoryError, KeyError):
    def __init__(self, fabric_id: str, provider: str, entry_id: str) -> None:
        super().__init__(entry_id)
        self.fabric_id = fabric_id
        self.provider = provider
        self.entry_id = entry_id

    def __str__(self) -> str:
        return f"No entry {self.entry_id} for provider {self.provider} in fabric {self.fabric_id}"


class SessionStateError(PriceHistoryError):
    """The caller's view of the edit session is out of sync with the session."""


class EditInProgressError(SessionStateError):
    def __init__(self, editing_entry_id: str) -> None:
        super().__init__(f"Entry {editing_entry_id} is still being edited")
        self.editing_entry_id = editing_entry_id


class UnsavedChangesError(SessionStateError):
    def __init__(self, fabric_id: str, pending: int) -> None:
        super().__init__(f"Fabric {fabric_id} has {pending} unsaved change(s)")
        self.fabric_id = fabric_id
        self.pending = pending


class RepositoryError(PriceHistoryError):
    """The backing repository could not complete a read or write."""


class ChangeConflictError(RepositoryError):
    """A change batch targets entries the repository no longer holds."""


class FabricExistsError(RepositoryError):
    def __init__(self, fabric_id: str) -> None:
        super().__init__(f"Fabric {fabric_id} already exists")
        self.fabric_id = fabric_id


class SaveInProgressError(SessionStateError):
    def __init__(self, fabric_id: str) -> None:
        super().__init__(f"Changes for fabric {fabric_id} are being saved")
        self.fabric_id = fabric_id
