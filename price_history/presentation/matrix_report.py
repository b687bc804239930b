"""Flat, read-only shapes of the provider matrix for CSV/XLSX exporters."""
from __future__ import annotations

from decimal import Decimal
from io import BytesIO

import pandas as pd

from price_history.domain.models import PriceMatrix, ProviderPriceData


def _format_percent(value: Decimal | None) -> str:
    if value is None:
        return ""
    return f"{value:+.1f}%"


def _cell_value(data: ProviderPriceData | None) -> dict[str, str]:
    if data is None:
        return {"price": "", "date": "", "unit": "", "trend": "", "change": "", "entries": "0"}
    return {
        "price": f"{data.price:.2f}",
        "date": data.date.isoformat(),
        "unit": data.unit,
        "trend": data.trend.value,
        "change": _format_percent(data.change_percent),
        "entries": str(data.total_entries),
    }


def matrix_to_rows(matrix: PriceMatrix, only_with_data: bool = False) -> list[dict[str, str]]:
    """One row per (fabric, provider) column, in matrix order."""
    rows: list[dict[str, str]] = []
    for fabric in matrix.fabrics:
        if only_with_data and not fabric.has_any_data:
            continue
        for provider in matrix.column_ids():
            cell = _cell_value(fabric.providers.get(provider))
            row = {"fabric_id": fabric.fabric_id, "fabric_name": fabric.fabric_name, "provider": provider}
            rows.append({**row, **cell})
    return rows


def render_csv(matrix: PriceMatrix, only_with_data: bool = True) -> bytes:
    rows = matrix_to_rows(matrix, only_with_data=only_with_data)
    if not rows:
        return b""
    return pd.DataFrame(rows).to_csv(index=False, lineterminator="\n").encode("utf-8")


def matrix_to_dataframe(matrix: PriceMatrix) -> pd.DataFrame:
    """Wide frame: one row per fabric, one latest-price column per provider."""
    columns = list(matrix.column_ids())
    records = []
    for fabric in matrix.fabrics:
        record: dict[str, object] = {"fabric_id": fabric.fabric_id, "fabric_name": fabric.fabric_name}
        for provider in columns:
            data = fabric.providers.get(provider)
            record[provider] = float(data.price) if data is not None else None
        records.append(record)
    return pd.DataFrame(records, columns=["fabric_id", "fabric_name", *columns])


def providers_to_dataframe(matrix: PriceMatrix) -> pd.DataFrame:
    return pd.DataFrame(
        [
            {
                "provider": column.id,
                "has_data": column.has_data,
                "total_fabrics": column.total_fabrics,
                "avg_price": float(column.avg_price),
                "min_price": float(column.min_price),
                "max_price": float(column.max_price),
                "last_update": column.last_update.isoformat() if column.last_update else "",
            }
            for column in matrix.providers
        ],
        columns=["provider", "has_data", "total_fabrics", "avg_price", "min_price", "max_price", "last_update"],
    )


def render_xlsx(matrix: PriceMatrix) -> bytes:
    buf = BytesIO()
    with pd.ExcelWriter(buf, engine="xlsxwriter") as writer:
        matrix_to_dataframe(matrix).to_excel(writer, sheet_name="matrix", index=False)
        providers_to_dataframe(matrix).to_excel(writer, sheet_name="providers", index=False)
    buf.seek(0)
    return buf.getvalue()
