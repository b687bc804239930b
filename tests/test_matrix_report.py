import csv
import io
from dataclasses import replace
from datetime import date
from decimal import Decimal

from price_history.config import SETTINGS
from price_history.domain.matrix import build_matrix
from price_history.domain.models import FabricPriceHistory, PriceEntry
from price_history.presentation.matrix_report import (
    matrix_to_dataframe,
    matrix_to_rows,
    providers_to_dataframe,
    render_csv,
    render_xlsx,
)

NO_KNOWN = replace(SETTINGS, known_providers=())


def make_matrix():
    lino = FabricPriceHistory(
        fabric_id="LINO",
        fabric_name="Lino",
        entries=(
            PriceEntry(id="jan", provider="AD", date=date(2024, 1, 1), quantity=Decimal("10"), unit="kg"),
            PriceEntry(id="feb", provider="AD", date=date(2024, 2, 1), quantity=Decimal("11.5"), unit="kg"),
        ),
    )
    algodon = FabricPriceHistory(
        fabric_id="ALGODON",
        fabric_name="Algodon",
        entries=(PriceEntry(id="r1", provider="RBK", date=date(2024, 3, 1), quantity=Decimal("7.25"), unit="mt"),),
    )
    empty = FabricPriceHistory(fabric_id="VACIA", fabric_name="Vacia")
    return build_matrix([lino, algodon, empty], NO_KNOWN)


def test_rows_cover_every_fabric_and_column():
    rows = matrix_to_rows(make_matrix())

    assert len(rows) == 6
    ad = next(row for row in rows if row["fabric_id"] == "LINO" and row["provider"] == "AD")
    assert ad["price"] == "11.50"
    assert ad["trend"] == "up"
    assert ad["change"] == "+15.0%"
    assert ad["entries"] == "2"
    missing = next(row for row in rows if row["fabric_id"] == "LINO" and row["provider"] == "RBK")
    assert missing["price"] == ""
    assert missing["entries"] == "0"


def test_csv_skips_fabrics_without_data():
    text = render_csv(make_matrix()).decode("utf-8")

    rows = list(csv.DictReader(io.StringIO(text)))
    assert {row["fabric_id"] for row in rows} == {"LINO", "ALGODON"}


def test_csv_of_empty_matrix_is_empty():
    assert render_csv(build_matrix([], NO_KNOWN)) == b""


def test_wide_dataframe_has_one_column_per_provider():
    frame = matrix_to_dataframe(make_matrix())

    assert list(frame.columns) == ["fabric_id", "fabric_name", "AD", "RBK"]
    lino = frame.set_index("fabric_id").loc["LINO"]
    assert lino["AD"] == 11.5
    assert frame["RBK"].isna().sum() == 2


def test_provider_dataframe_and_xlsx():
    providers = providers_to_dataframe(make_matrix())

    assert providers["provider"].tolist() == ["AD", "RBK"]
    assert providers["total_fabrics"].tolist() == [1, 1]
    assert render_xlsx(make_matrix()).startswith(b"PK")


def test_csv_header_follows_row_shape():
    header = render_csv(make_matrix()).decode("utf-8").splitlines()[0]

    assert header == "fabric_id,fabric_name,provider,price,date,unit,trend,change,entries"
