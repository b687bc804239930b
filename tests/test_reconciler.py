import itertools
from datetime import date
from decimal import Decimal

import pytest

from price_history.application.reconciler import Reconciler
from price_history.application.store import EntryStore
from price_history.domain.errors import RepositoryError, SaveInProgressError, SessionStateError
from price_history.domain.models import ChangeKind, FabricPriceHistory, PriceEntry
from price_history.domain.results import FabricChangeSet, SaveResult
from price_history.domain.session import EditSession
from price_history.infrastructure.repositories.memory_repository import InMemoryPriceHistoryRepository

TODAY = date(2024, 6, 1)


def make_entry(entry_id: str, provider: str, day: str, quantity: str, unit: str = "kg") -> PriceEntry:
    return PriceEntry(
        id=entry_id,
        provider=provider,
        date=date.fromisoformat(day),
        quantity=Decimal(quantity),
        unit=unit,
    )


def lino() -> FabricPriceHistory:
    return FabricPriceHistory(
        fabric_id="LINO",
        fabric_name="Lino",
        entries=(
            make_entry("jan", "AD", "2024-01-01", "10.00"),
            make_entry("feb", "AD", "2024-02-01", "11.50"),
            make_entry("mar", "AD", "2024-03-01", "11.40"),
            make_entry("rbk", "RBK", "2024-02-15", "9.00"),
        ),
    )


class FailingRepository(InMemoryPriceHistoryRepository):
    def submit_changes(self, fabric_id, change_set):
        self.submitted.append(change_set)
        raise RepositoryError("storage unavailable")


class RejectingRepository(InMemoryPriceHistoryRepository):
    def submit_changes(self, fabric_id, change_set):
        self.submitted.append(change_set)
        return SaveResult.failed(fabric_id, "Fabric is locked")


def build(repository_class=InMemoryPriceHistoryRepository):
    counter = itertools.count(1)
    repository = repository_class([lino()], id_factory=lambda: f"srv{next(counter)}")
    store = EntryStore(repository)
    store.load()
    session = EditSession(store, today=lambda: TODAY)
    session.initialize_fabric_for_editing("LINO")
    return repository, store, session, Reconciler(store, repository, session)


def test_save_without_changes_writes_nothing():
    repository, _, _, reconciler = build()

    assert reconciler.save_changes("LINO") is False
    assert repository.submitted == []


def test_cancelled_new_entry_produces_no_write():
    repository, _, session, reconciler = build()
    entry_id = session.add_new_entry("LINO", "AD")
    session.cancel_edit("LINO", "AD", entry_id)

    assert reconciler.save_changes("LINO") is False
    assert repository.submitted == []


def test_invalid_draft_blocks_save():
    repository, _, session, reconciler = build()
    session.update_entry("LINO", "RBK", "rbk", {"quantity": "9.25"})
    session.add_new_entry("LINO", "AD")

    assert reconciler.save_changes("LINO") is False
    assert repository.submitted == []
    assert session.has_pending_changes


def test_successful_save_refreshes_store_and_clears_log():
    repository, store, session, reconciler = build()
    new_id = session.add_new_entry("LINO", "AD")
    session.update_entry("LINO", "AD", new_id, {"quantity": "12.20"})
    session.update_entry("LINO", "AD", "feb", {"quantity": "11.60"})
    session.delete_entry("LINO", "RBK", "rbk")
    version = store.version

    assert reconciler.save_changes("LINO") is True

    (change_set,) = repository.submitted
    assert len(change_set) == 3
    assert not session.has_pending_changes
    assert reconciler.last_error is None
    assert store.version == version + 1
    history = store.get("LINO")
    assert {entry.id for entry in history.entries} == {"srv1", "jan", "feb", "mar"}
    assert not any(entry.is_temporary for entry in history.entries)
    assert history.find("feb").quantity == Decimal("11.60")
    assert session.providers() == ("AD",)
    assert store.matrix().fabrics[0].providers["AD"].price == Decimal("12.20")


def test_raised_repository_error_keeps_pending_log():
    repository, store, session, reconciler = build(FailingRepository)
    session.update_entry("LINO", "AD", "feb", {"quantity": "11.60"})
    session.delete_entry("LINO", "AD", "jan")
    before = session.pending_changes
    version = store.version

    assert reconciler.save_changes("LINO") is False

    assert session.pending_changes == before
    assert store.version == version
    assert "storage unavailable" in reconciler.last_error
    assert len(repository.submitted) == 1


def test_rejected_result_keeps_pending_log():
    _, store, session, reconciler = build(RejectingRepository)
    session.update_entry("LINO", "AD", "feb", {"quantity": "11.60"})
    before = session.pending_changes

    assert reconciler.save_changes("LINO") is False

    assert session.pending_changes == before
    assert reconciler.last_error == "Fabric is locked"
    assert store.get("LINO").find("feb").quantity == Decimal("11.50")


def test_conflicting_batch_is_rejected_whole():
    repository, store, session, reconciler = build()
    session.update_entry("LINO", "AD", "mar", {"quantity": "11.00"})
    session.delete_entry("LINO", "RBK", "rbk")
    repository.submit_changes("LINO", FabricChangeSet(fabric_id="LINO", deleted=("rbk",)))

    assert reconciler.save_changes("LINO") is False

    assert "rbk" in reconciler.last_error
    assert repository.get_history("LINO").find("mar").quantity == Decimal("11.40")
    assert {change.kind for change in session.pending_changes} == {ChangeKind.UPDATE, ChangeKind.DELETE}


def test_save_while_in_flight_returns_false():
    nested = []

    class ReentrantRepository(InMemoryPriceHistoryRepository):
        def submit_changes(self, fabric_id, change_set):
            nested.append((reconciler.is_saving(fabric_id), reconciler.save_changes(fabric_id)))
            return super().submit_changes(fabric_id, change_set)

    repository, _, session, reconciler = build(ReentrantRepository)
    session.update_entry("LINO", "AD", "feb", {"quantity": "11.60"})

    assert reconciler.save_changes("LINO") is True
    assert nested == [(True, False)]
    assert len(repository.submitted) == 1
    assert not reconciler.is_saving("LINO")


def test_save_for_other_fabric_raises():
    _, _, _, reconciler = build()

    with pytest.raises(SessionStateError):
        reconciler.save_changes("ALGODON")


def test_discard_changes_resets_session():
    repository, _, session, reconciler = build()
    session.update_entry("LINO", "AD", "feb", {"quantity": "11.60"})

    reconciler.discard_changes("LINO")

    assert not session.has_pending_changes
    assert repository.submitted == []


def test_edit_during_save_is_refused_and_not_lost():
    attempts = []

    class EditingRepository(InMemoryPriceHistoryRepository):
        def submit_changes(self, fabric_id, change_set):
            try:
                session.update_entry("LINO", "RBK", "rbk", {"quantity": "9.50"})
            except SaveInProgressError as exc:
                attempts.append(exc)
            return super().submit_changes(fabric_id, change_set)

    repository, store, session, reconciler = build(EditingRepository)
    session.update_entry("LINO", "AD", "feb", {"quantity": "11.60"})

    assert reconciler.save_changes("LINO") is True

    assert len(attempts) == 1
    assert not session.is_saving
    assert store.get("LINO").find("rbk").quantity == Decimal("9.00")
    session.update_entry("LINO", "RBK", "rbk", {"quantity": "9.50"})
    assert [change.entry_id for change in session.pending_changes] == ["rbk"]


def test_discard_during_save_is_refused():
    outcomes = []

    class DiscardingRepository(InMemoryPriceHistoryRepository):
        def submit_changes(self, fabric_id, change_set):
            with pytest.raises(SaveInProgressError):
                reconciler.discard_changes(fabric_id)
            outcomes.append(session.has_pending_changes)
            return super().submit_changes(fabric_id, change_set)

    _, _, session, reconciler = build(DiscardingRepository)
    session.update_entry("LINO", "AD", "feb", {"quantity": "11.60"})

    assert reconciler.save_changes("LINO") is True
    assert outcomes == [True]
