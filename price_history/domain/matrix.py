"""Pivot of fabric price histories into a fabric x provider matrix.

Everything in this module is a pure function of its inputs. Input order never
leaks into the output because every series is sorted on a total key first.
"""
from __future__ import annotations

from collections import defaultdict
from dataclasses import replace
from datetime import date
from decimal import Decimal
from typing import Iterable, Sequence

from price_history.config import SETTINGS, Settings

from .models import (
    FabricPriceHistory,
    FabricProviderMatrix,
    PriceEntry,
    PriceHistorySummary,
    PriceMatrix,
    PricePoint,
    ProviderColumn,
    ProviderPriceData,
    Trend,
    entry_sort_key,
    normalize_provider,
)

_HUNDRED = Decimal("100")


def classify_change(
    current: Decimal, previous: Decimal, threshold: Decimal | None = None
) -> tuple[Trend, Decimal | None]:
    """Trend of ``current`` relative to ``previous``.

    Returns ``(STABLE, None)`` when ``previous`` is not a positive price, since
    no meaningful percentage exists.
    """
    if threshold is None:
        threshold = SETTINGS.trend_threshold_percent
    if previous <= 0:
        return Trend.STABLE, None
    percent = SETTINGS.decimal_context.divide((current - previous) * _HUNDRED, previous)
    if percent > threshold:
        return Trend.UP, percent
    if percent < -threshold:
        return Trend.DOWN, percent
    return Trend.STABLE, percent


def price_points(entries: Iterable[PriceEntry], threshold: Decimal | None = None) -> tuple[PricePoint, ...]:
    """Trend-annotated series, newest first."""
    ordered = sorted(entries, key=entry_sort_key)
    points: list[PricePoint] = []
    previous: PriceEntry | None = None
    for entry in ordered:
        if previous is None:
            points.append(PricePoint(entry=entry))
        else:
            trend, percent = classify_change(entry.quantity, previous.quantity, threshold)
            points.append(PricePoint(entry=entry, trend=trend, change_percent=percent))
        previous = entry
    points.reverse()
    return tuple(points)


def group_by_provider(entries: Iterable[PriceEntry]) -> dict[str, list[PriceEntry]]:
    groups: dict[str, list[PriceEntry]] = defaultdict(list)
    for entry in entries:
        provider = normalize_provider(entry.provider)
        if not provider:
            continue
        groups[provider].append(entry)
    return dict(groups)


def provider_price_data(
    provider: str, entries: Sequence[PriceEntry], threshold: Decimal | None = None
) -> ProviderPriceData | None:
    if not entries:
        return None
    history = price_points(entries, threshold)
    latest = history[0]
    return ProviderPriceData(
        provider=provider,
        price=latest.entry.quantity,
        date=latest.entry.date,
        unit=latest.entry.unit,
        trend=latest.trend,
        change_percent=latest.change_percent,
        total_entries=len(history),
        history=history,
    )


def ordered_providers(histories: Sequence[FabricPriceHistory], known: Sequence[str]) -> list[str]:
    known_list = [normalize_provider(p) for p in known]
    discovered = {
        normalize_provider(entry.provider)
        for history in histories
        for entry in history.entries
        if normalize_provider(entry.provider)
    }
    extra = sorted(discovered.difference(known_list))
    return known_list + extra


def _provider_column(provider: str, latest_prices: list[tuple[Decimal, date]]) -> ProviderColumn:
    if not latest_prices:
        return ProviderColumn(id=provider, name=provider, has_data=False, total_fabrics=0)
    prices = [price for price, _ in latest_prices if price > 0]
    column = ProviderColumn(
        id=provider,
        name=provider,
        has_data=True,
        total_fabrics=len(latest_prices),
        last_update=max(day for _, day in latest_prices),
    )
    if not prices:
        return column
    return replace(
        column,
        avg_price=SETTINGS.decimal_context.divide(sum(prices, Decimal("0")), Decimal(len(prices))),
        min_price=min(prices),
        max_price=max(prices),
    )


def build_matrix(histories: Sequence[FabricPriceHistory], settings: Settings | None = None) -> PriceMatrix:
    settings = settings or SETTINGS
    threshold = settings.trend_threshold_percent
    columns = ordered_providers(histories, settings.known_providers)
    latest_by_provider: dict[str, list[tuple[Decimal, date]]] = {provider: [] for provider in columns}

    fabrics: list[FabricProviderMatrix] = []
    for history in histories:
        cells: dict[str, ProviderPriceData | None] = {provider: None for provider in columns}
        for provider, entries in group_by_provider(history.entries).items():
            data = provider_price_data(provider, entries, threshold)
            cells[provider] = data
            if data is not None:
                latest_by_provider[provider].append((data.price, data.date))
        fabrics.append(
            FabricProviderMatrix(
                fabric_id=history.fabric_id,
                fabric_name=history.fabric_name,
                has_any_data=any(cell is not None for cell in cells.values()),
                providers=cells,
            )
        )

    provider_columns = [_provider_column(provider, latest_by_provider[provider]) for provider in columns]
    return PriceMatrix(fabrics=tuple(fabrics), providers=tuple(provider_columns))


def summarize_history(history: FabricPriceHistory, settings: Settings | None = None) -> PriceHistorySummary | None:
    """Fabric-wide statistics over every provider's entries; ``None`` for an empty history."""
    settings = settings or SETTINGS
    if not history.entries:
        return None
    newest_first = sorted(history.entries, key=entry_sort_key, reverse=True)
    current = newest_first[0]
    previous_price = newest_first[1].quantity if len(newest_first) > 1 else current.quantity
    trend, percent = classify_change(current.quantity, previous_price, settings.trend_threshold_percent)

    priced = [entry for entry in history.entries if entry.quantity > 0]
    if priced:
        cheapest = min(priced, key=lambda e: (e.quantity, e.date, e.id))
        dearest = max(priced, key=lambda e: (e.quantity, e.date, e.id))
        total = sum((entry.quantity for entry in priced), Decimal("0"))
        avg_price = settings.decimal_context.divide(total, Decimal(len(priced)))
    else:
        cheapest = dearest = None
        avg_price = Decimal("0")

    return PriceHistorySummary(
        fabric_id=history.fabric_id,
        fabric_name=history.fabric_name,
        current_price=current.quantity,
        previous_price=previous_price,
        price_change=current.quantity - previous_price,
        price_change_percent=percent if percent is not None else Decimal("0"),
        trend=trend,
        last_updated=current.date,
        total_entries=len(history.entries),
        avg_price=avg_price,
        min_price=cheapest.quantity if cheapest else Decimal("0"),
        max_price=dearest.quantity if dearest else Decimal("0"),
        unit=current.unit,
        min_price_provider=cheapest.provider if cheapest else "N/A",
        min_price_date=cheapest.date if cheapest else None,
        max_price_provider=dearest.provider if dearest else "N/A",
        max_price_date=dearest.date if dearest else None,
    )


def build_summaries(
    histories: Sequence[FabricPriceHistory], settings: Settings | None = None
) -> list[PriceHistorySummary]:
    summaries = []
    for history in histories:
        summary = summarize_history(history, settings)
        if summary is not None:
            summaries.append(summary)
    return summaries


def date_range(histories: Sequence[FabricPriceHistory]) -> tuple[date, date] | None:
    days = [entry.date for history in histories for entry in history.entries]
    if not days:
        return None
    return min(days), max(days)
