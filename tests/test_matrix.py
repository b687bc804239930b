import random
from dataclasses import replace
from datetime import date
from decimal import Decimal

from price_history.config import SETTINGS
from price_history.domain.matrix import (
    build_matrix,
    build_summaries,
    classify_change,
    date_range,
    summarize_history,
)
from price_history.domain.models import FabricPriceHistory, PriceEntry, Trend

NO_KNOWN = replace(SETTINGS, known_providers=())


def make_entry(entry_id: str, provider: str, day: str, quantity: str, unit: str = "kg") -> PriceEntry:
    return PriceEntry(
        id=entry_id,
        provider=provider,
        date=date.fromisoformat(day),
        quantity=Decimal(quantity),
        unit=unit,
    )


def make_history(fabric_id: str, *entries: PriceEntry) -> FabricPriceHistory:
    return FabricPriceHistory(fabric_id=fabric_id, fabric_name=fabric_id.title(), entries=tuple(entries))


def lino() -> FabricPriceHistory:
    return make_history(
        "LINO",
        make_entry("jan", "AD", "2024-01-01", "10.00"),
        make_entry("feb", "AD", "2024-02-01", "11.50"),
        make_entry("mar", "AD", "2024-03-01", "11.40"),
        make_entry("rbk", "RBK", "2024-02-15", "9.00"),
    )


def test_trend_per_entry():
    matrix = build_matrix([lino()], NO_KNOWN)
    ad = matrix.fabrics[0].providers["AD"]

    feb = ad.point_for("feb")
    mar = ad.point_for("mar")
    jan = ad.point_for("jan")
    assert feb.trend is Trend.UP
    assert feb.change_percent == Decimal("15")
    assert mar.trend is Trend.STABLE
    assert round(float(mar.change_percent), 2) == -0.87
    assert jan.trend is Trend.STABLE
    assert jan.change_percent is None


def test_latest_entry_drives_cell_and_entries_are_newest_first():
    ad = build_matrix([lino()], NO_KNOWN).fabrics[0].providers["AD"]

    assert ad.price == Decimal("11.40")
    assert ad.date == date(2024, 3, 1)
    assert ad.trend is Trend.STABLE
    assert ad.total_entries == 3
    assert [entry.id for entry in ad.all_entries] == ["mar", "feb", "jan"]


def test_down_trend_below_band():
    history = make_history(
        "SEDA",
        make_entry("a", "EM", "2024-01-01", "20.00"),
        make_entry("b", "EM", "2024-01-10", "19.00"),
    )
    em = build_matrix([history], NO_KNOWN).fabrics[0].providers["EM"]

    assert em.trend is Trend.DOWN
    assert em.change_percent == Decimal("-5")


def test_non_positive_previous_price_has_no_percent():
    assert classify_change(Decimal("5"), Decimal("0")) == (Trend.STABLE, None)


def test_input_order_does_not_change_output():
    history = lino()
    shuffled_entries = list(history.entries)
    random.Random(7).shuffle(shuffled_entries)
    shuffled = replace(history, entries=tuple(shuffled_entries))

    assert build_matrix([history], NO_KNOWN) == build_matrix([shuffled], NO_KNOWN)


def test_same_day_quotes_are_ordered_deterministically():
    history = make_history(
        "LINO",
        make_entry("x", "AD", "2024-01-01", "10.00"),
        make_entry("y", "AD", "2024-01-01", "12.00"),
    )
    ad = build_matrix([history], NO_KNOWN).fabrics[0].providers["AD"]

    assert [entry.id for entry in ad.all_entries] == ["y", "x"]
    assert ad.price == Decimal("12.00")


def test_provider_columns_and_data_flags():
    empty = make_history("VACIA")
    algodon = make_history("ALGODON", make_entry("a1", "AD", "2024-04-01", "8.00"))
    matrix = build_matrix([lino(), algodon, empty], NO_KNOWN)

    columns = {column.id: column for column in matrix.providers}
    assert list(columns) == ["AD", "RBK"]
    assert columns["AD"].total_fabrics == 2
    assert columns["AD"].min_price == Decimal("8.00")
    assert columns["AD"].max_price == Decimal("11.40")
    assert columns["AD"].avg_price == Decimal("9.7")
    assert columns["AD"].last_update == date(2024, 4, 1)
    assert columns["RBK"].total_fabrics == 1

    by_id = {fabric.fabric_id: fabric for fabric in matrix.fabrics}
    assert by_id["LINO"].has_any_data
    assert not by_id["VACIA"].has_any_data
    assert by_id["ALGODON"].providers["RBK"] is None
    assert matrix.total_fabrics == 3
    assert matrix.fabrics_with_data == 2


def test_known_providers_lead_the_columns():
    settings = replace(SETTINGS, known_providers=("LZ", "AD"))
    matrix = build_matrix([lino()], settings)

    assert matrix.column_ids() == ("LZ", "AD", "RBK")
    lz = matrix.providers[0]
    assert not lz.has_data
    assert lz.total_fabrics == 0
    assert matrix.fabrics[0].providers["LZ"] is None


def test_provider_names_are_normalized_when_grouping():
    history = make_history(
        "LINO",
        make_entry("a", " ad ", "2024-01-01", "10.00"),
        make_entry("b", "AD", "2024-02-01", "10.05"),
    )
    matrix = build_matrix([history], NO_KNOWN)

    assert matrix.column_ids() == ("AD",)
    assert matrix.fabrics[0].providers["AD"].total_entries == 2


def test_summary_spans_all_providers():
    summary = summarize_history(lino())

    assert summary.current_price == Decimal("11.40")
    assert summary.previous_price == Decimal("9.00")
    assert summary.trend is Trend.UP
    assert summary.total_entries == 4
    assert summary.min_price == Decimal("9.00")
    assert summary.min_price_provider == "RBK"
    assert summary.max_price == Decimal("11.50")
    assert summary.max_price_date == date(2024, 2, 1)
    assert summary.last_updated == date(2024, 3, 1)


def test_summaries_skip_empty_fabrics_and_date_range():
    histories = [lino(), make_history("VACIA")]

    assert [summary.fabric_id for summary in build_summaries(histories)] == ["LINO"]
    assert date_range(histories) == (date(2024, 1, 1), date(2024, 3, 1))
    assert date_range([make_history("VACIA")]) is None
