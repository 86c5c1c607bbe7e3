"""Search, filtering, sorting and spending analytics over in-memory records.

All functions are pure and synchronous; callers pass the lists they already
loaded from the database.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import date, datetime, timedelta
from typing import Callable, Iterable, Sequence, TypeVar

from .models import Receipt, ReceiptItem

T = TypeVar("T")

DATE_RANGES: dict[str, int | None] = {
    "all": None,
    "today": 0,
    "7days": 7,
    "30days": 30,
    "90days": 90,
}

RECEIPT_SORTS = ("date-desc", "date-asc", "amount-desc", "amount-asc", "store-asc")

SORT_COLUMNS = ("name", "category", "store", "date", "price")


@dataclass
class ItemRow:
    """One purchased item together with the receipt it came from."""

    name: str
    category: str
    price: float
    quantity: float = 1.0
    keywords: list[str] = field(default_factory=list)
    store: str = ""
    location: str | None = None
    date: str | None = None
    receipt_id: int | None = None


def flatten_items(receipts: Iterable[Receipt]) -> list[ItemRow]:
    rows: list[ItemRow] = []
    for receipt in receipts:
        for item in receipt.items:
            rows.append(
                ItemRow(
                    name=item.name,
                    category=item.category or "other",
                    price=item.total_price or 0.0,
                    quantity=item.quantity,
                    keywords=list(item.keywords),
                    store=receipt.store_info.name or "",
                    location=receipt.store_info.location,
                    date=receipt.effective_date,
                    receipt_id=receipt.id,
                )
            )
    return rows


# -- filters ---------------------------------------------------------------


def search_items(rows: Sequence[ItemRow], text: str) -> list[ItemRow]:
    """Case-insensitive substring match on name, keywords, category, store or location."""
    needle = (text or "").strip().lower()
    if not needle:
        return list(rows)

    def matches(row: ItemRow) -> bool:
        fields = [row.name, row.category, row.store, row.location or "", *row.keywords]
        return any(needle in (f or "").lower() for f in fields)

    return [r for r in rows if matches(r)]


def filter_by_category(rows: Sequence[ItemRow], category: str | None) -> list[ItemRow]:
    if not category or category == "all":
        return list(rows)
    wanted = category.lower()
    return [r for r in rows if (r.category or "other").lower() == wanted]


def _to_date(value: str | None) -> date | None:
    if not value:
        return None
    try:
        return date.fromisoformat(value[:10])
    except ValueError:
        return None


def date_range_start(range_key: str, now: datetime | None = None) -> date | None:
    """First day included by a date-range key, or None for 'all'."""
    if range_key not in DATE_RANGES:
        raise ValueError(f"Unknown date range: {range_key!r}")
    days = DATE_RANGES[range_key]
    if days is None:
        return None
    today = (now or datetime.now()).date()
    return today - timedelta(days=days)


def filter_by_date_range(
    rows: Sequence[T],
    range_key: str,
    now: datetime | None = None,
    *,
    date_of: Callable[[T], str | None] = lambda r: r.date,
) -> list[T]:
    """Keep records dated on or after ``now - N days`` (``today`` = N is 0)."""
    start = date_range_start(range_key, now)
    if start is None:
        return list(rows)
    result = []
    for row in rows:
        d = _to_date(date_of(row))
        if d is not None and d >= start:
            result.append(row)
    return result


def filter_receipts(
    receipts: Sequence[Receipt],
    *,
    store_name: str | None = None,
    start_date: date | None = None,
    end_date: date | None = None,
    min_amount: float | None = None,
    max_amount: float | None = None,
) -> list[Receipt]:
    """Filter receipts by store substring, date bounds and total bounds."""
    result = list(receipts)
    if store_name:
        needle = store_name.lower()
        result = [r for r in result if needle in (r.store_info.name or "").lower()]
    if start_date is not None:
        result = [
            r for r in result
            if (d := _to_date(r.effective_date)) is not None and d >= start_date
        ]
    if end_date is not None:
        result = [
            r for r in result
            if (d := _to_date(r.effective_date)) is not None and d <= end_date
        ]
    if min_amount is not None:
        result = [r for r in result if r.summary.total >= min_amount]
    if max_amount is not None:
        result = [r for r in result if r.summary.total <= max_amount]
    return result


# -- sorting ---------------------------------------------------------------


@dataclass(frozen=True)
class SortState:
    column: str = "date"
    descending: bool = True


def toggle_sort(state: SortState, column: str) -> SortState:
    """Clicking the active column flips direction; a new column starts ascending."""
    if column not in SORT_COLUMNS:
        raise ValueError(f"Unknown sort column: {column!r}")
    if state.column == column:
        return replace(state, descending=not state.descending)
    return SortState(column=column, descending=False)


def sort_rows(rows: Sequence[ItemRow], state: SortState) -> list[ItemRow]:
    keys: dict[str, Callable[[ItemRow], object]] = {
        "name": lambda r: r.name.lower(),
        "category": lambda r: (r.category or "").lower(),
        "store": lambda r: r.store.lower(),
        "date": lambda r: r.date or "",
        "price": lambda r: r.price,
    }
    if state.column not in keys:
        raise ValueError(f"Unknown sort column: {state.column!r}")
    return sorted(rows, key=keys[state.column], reverse=state.descending)


def sort_receipts(receipts: Sequence[Receipt], sort_by: str = "date-desc") -> list[Receipt]:
    match sort_by:
        case "date-desc":
            return sorted(receipts, key=lambda r: r.effective_date or "", reverse=True)
        case "date-asc":
            return sorted(receipts, key=lambda r: r.effective_date or "")
        case "amount-desc":
            return sorted(receipts, key=lambda r: r.summary.total, reverse=True)
        case "amount-asc":
            return sorted(receipts, key=lambda r: r.summary.total)
        case "store-asc":
            return sorted(receipts, key=lambda r: (r.store_info.name or "").lower())
        case _:
            raise ValueError(f"Unknown sort: {sort_by!r}")


# -- shopping helpers ------------------------------------------------------


def names_match(a: str, b: str) -> bool:
    """Loose name match: either lower-cased name contains the other."""
    a, b = (a or "").strip().lower(), (b or "").strip().lower()
    if not a or not b:
        return False
    return a in b or b in a


def estimate_price(name: str, items: Iterable[ReceiptItem]) -> float | None:
    """Mean total price of historical items whose name loosely matches ``name``."""
    prices = [i.total_price for i in items if names_match(name, i.name)]
    if not prices:
        return None
    return round(sum(prices) / len(prices), 2)


def store_suggestions(names: Iterable[str], receipts: Iterable[Receipt]) -> list[dict]:
    """Rank stores by how many wanted items appeared on their past receipts."""
    receipts = [r for r in receipts if r.store_info.name]
    counts: dict[str, int] = {}
    for name in names:
        for receipt in receipts:
            if any(names_match(name, item.name) for item in receipt.items):
                store = receipt.store_info.name
                counts[store] = counts.get(store, 0) + 1
    ranked = sorted(counts.items(), key=lambda kv: (-kv[1], kv[0]))
    return [{"store": store, "count": count} for store, count in ranked]


def group_by_category(
    items: Iterable[T],
    order: Sequence[str],
    *,
    category_of: Callable[[T], str | None] = lambda i: i.category,
) -> dict[str, list[T]]:
    """Group items by category, keeping ``order`` and dropping empty groups.

    Unknown or missing categories land in ``'other'``.
    """
    groups: dict[str, list[T]] = {}
    for item in items:
        category = category_of(item) or "other"
        if category not in order:
            category = "other"
        groups.setdefault(category, []).append(item)
    return {c: groups[c] for c in order if groups.get(c)}


# -- analytics -------------------------------------------------------------


def calculate_total_spending(receipts: Sequence[Receipt]) -> float:
    return sum(r.summary.total or 0.0 for r in receipts)


def calculate_average_receipt(receipts: Sequence[Receipt]) -> float:
    if not receipts:
        return 0.0
    return calculate_total_spending(receipts) / len(receipts)


def spending_by_date(receipts: Sequence[Receipt]) -> list[dict]:
    totals: dict[str, float] = {}
    for receipt in receipts:
        d = receipt.effective_date
        if not d:
            continue
        totals[d] = totals.get(d, 0.0) + (receipt.summary.total or 0.0)
    return [{"date": d, "amount": round(a, 2)} for d, a in sorted(totals.items())]


def spending_by_category(receipts: Sequence[Receipt]) -> list[dict]:
    totals: dict[str, float] = {}
    for receipt in receipts:
        for item in receipt.items:
            category = item.category or "other"
            totals[category] = totals.get(category, 0.0) + (item.total_price or 0.0)
    result = [
        {"name": name[:1].upper() + name[1:], "value": round(value, 2)}
        for name, value in totals.items()
    ]
    return sorted(result, key=lambda x: x["value"], reverse=True)


def spending_by_store(receipts: Sequence[Receipt], limit: int = 10) -> list[dict]:
    totals: dict[str, float] = {}
    for receipt in receipts:
        store = receipt.store_info.name or "Unknown Store"
        totals[store] = totals.get(store, 0.0) + (receipt.summary.total or 0.0)
    result = [{"name": s, "value": round(v, 2)} for s, v in totals.items()]
    return sorted(result, key=lambda x: x["value"], reverse=True)[:limit]


def monthly_spending(receipts: Sequence[Receipt]) -> list[dict]:
    totals: dict[str, float] = {}
    for receipt in receipts:
        d = receipt.effective_date
        if not d:
            continue
        month = d[:7]
        totals[month] = totals.get(month, 0.0) + (receipt.summary.total or 0.0)
    return [{"month": m, "amount": round(a, 2)} for m, a in sorted(totals.items())]


def summary_stats(receipts: Sequence[Receipt]) -> dict:
    amounts = [r.summary.total for r in receipts if (r.summary.total or 0) > 0]
    stores = {r.store_info.name for r in receipts if r.store_info.name}
    return {
        "total_spending": round(calculate_total_spending(receipts), 2),
        "average_receipt": round(calculate_average_receipt(receipts), 2),
        "highest_receipt": max(amounts) if amounts else 0.0,
        "lowest_receipt": min(amounts) if amounts else 0.0,
        "receipt_count": len(receipts),
        "store_count": len(stores),
    }


def analytics_report(receipts: Sequence[Receipt]) -> dict:
    """Everything the analytics dashboard shows, in one dict."""
    return {
        "summary": summary_stats(receipts),
        "by_date": spending_by_date(receipts),
        "by_category": spending_by_category(receipts),
        "by_store": spending_by_store(receipts),
        "monthly": monthly_spending(receipts),
    }
