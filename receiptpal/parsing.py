"""Parsing of AI text responses into typed records.

The AI service answers with text that is *usually* JSON, sometimes wrapped in
Markdown code fences and frequently missing fields. Everything here is pure:
no network, no database.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from datetime import date
from typing import Any

from .models import (
    CONFIDENCE_LEVELS,
    RECEIPT_CATEGORIES,
    ReceiptItem,
    StoreInfo,
    Summary,
)

_FENCE_RE = re.compile(r"```(?:json)?[ \t]*\n?", re.IGNORECASE)


def strip_code_fences(text: str) -> str:
    """Remove Markdown code fences (```json ... ```) around a response."""
    return _FENCE_RE.sub("", text or "").strip()


def parse_json_text(text: str) -> Any:
    """Strip code fences and decode JSON.

    Raises:
        json.JSONDecodeError: If the remaining text is not valid JSON.
    """
    return json.loads(strip_code_fences(text))


def to_number(value: Any, default: float = 0.0) -> float:
    """Coerce an AI-supplied number (possibly a string like "$3.50")."""
    if isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        match = re.search(r"-?\d+(?:\.\d+)?", value.replace(",", ""))
        if match:
            return float(match.group())
    return default


def to_optional_int(value: Any) -> int | None:
    if value is None or value == "":
        return None
    number = to_number(value, default=-1.0)
    if number < 0:
        return None
    return int(number)


def _to_text(value: Any, default: str | None) -> str | None:
    if value is None:
        return default
    text = str(value).strip()
    return text or default


def _to_iso_date(value: Any) -> str | None:
    if not isinstance(value, str):
        return None
    try:
        return date.fromisoformat(value.strip()[:10]).isoformat()
    except ValueError:
        return None


def _to_str_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [str(v).strip() for v in value if v is not None and str(v).strip()]


@dataclass
class ParsedReceipt:
    """Structured data extracted from a receipt image."""

    store_info: StoreInfo = field(default_factory=StoreInfo)
    items: list[ReceiptItem] = field(default_factory=list)
    summary: Summary = field(default_factory=Summary)
    confidence: str = "medium"


@dataclass
class ParseError:
    message: str
    raw_text: str = ""


@dataclass
class ParseResult:
    """Either a ``ParsedReceipt`` (``ok``) or a ``ParseError``."""

    value: ParsedReceipt | None = None
    error: ParseError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.value is not None


def _parse_item(raw: Any) -> ReceiptItem:
    if not isinstance(raw, dict):
        raw = {}
    category = _to_text(raw.get("category"), "other").lower()
    if category not in RECEIPT_CATEGORIES:
        category = "other"
    quantity = to_number(raw.get("quantity"), default=0.0) or 1.0
    return ReceiptItem(
        name=_to_text(raw.get("name"), "Unknown Item"),
        category=category,
        quantity=quantity,
        unit_price=to_number(raw.get("unitPrice", raw.get("unit_price"))),
        total_price=to_number(raw.get("totalPrice", raw.get("total_price"))),
        keywords=_to_str_list(raw.get("keywords")),
    )


def parse_receipt_response(text: str) -> ParseResult:
    """Parse a receipt-extraction response, defaulting any missing field.

    Never raises: a response that is not a JSON object yields a
    ``ParseResult`` carrying a ``ParseError``.
    """
    try:
        parsed = parse_json_text(text)
    except json.JSONDecodeError as e:
        return ParseResult(
            error=ParseError(f"Failed to parse AI response: {e}", raw_text=text)
        )
    if not isinstance(parsed, dict):
        return ParseResult(
            error=ParseError(
                "Failed to parse AI response: expected a JSON object",
                raw_text=text,
            )
        )

    store = parsed.get("storeInfo") or {}
    if not isinstance(store, dict):
        store = {}
    summary = parsed.get("summary") or {}
    if not isinstance(summary, dict):
        summary = {}
    items = parsed.get("items") or []
    if not isinstance(items, list):
        items = []

    confidence = _to_text(parsed.get("confidence"), "medium").lower()
    if confidence not in CONFIDENCE_LEVELS:
        confidence = "medium"

    return ParseResult(
        value=ParsedReceipt(
            store_info=StoreInfo(
                name=_to_text(store.get("name"), ""),
                location=_to_text(store.get("location"), None),
                date=_to_iso_date(store.get("date")),
            ),
            items=[_parse_item(item) for item in items],
            summary=Summary(
                subtotal=to_number(summary.get("subtotal")),
                tax=to_number(summary.get("tax")),
                total=to_number(summary.get("total")),
            ),
            confidence=confidence,
        )
    )
