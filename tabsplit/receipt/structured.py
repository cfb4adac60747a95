"""Validation of structured extraction responses."""

import math
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any

from tabsplit.domain.errors import ExtractionFailure
from tabsplit.domain.receipt import LineItem, ReceiptDraft
from tabsplit.receipt.date_utils import parse_receipt_date


def _to_amount(value: Any, field_name: str) -> Decimal:
    # bool is an int subclass; reject it explicitly
    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        raise ExtractionFailure(f"{field_name} must be a number, got {type(value).__name__}")
    if isinstance(value, float) and not math.isfinite(value):
        raise ExtractionFailure(f"{field_name} must be finite")
    try:
        amount = Decimal(str(value))
    except InvalidOperation as exc:
        raise ExtractionFailure(f"{field_name} is not numeric: {value!r}") from exc
    if not amount.is_finite() or amount < 0:
        raise ExtractionFailure(f"{field_name} must be a non-negative number")
    return amount


def _to_date(value: Any, today: date) -> date:
    if value is None or value == "":
        return today
    if not isinstance(value, str):
        raise ExtractionFailure(f"date must be a YYYY-MM-DD string, got {type(value).__name__}")
    parsed = parse_receipt_date(value)
    if parsed is None:
        raise ExtractionFailure(f"date is not YYYY-MM-DD: {value!r}")
    return parsed


def draft_from_payload(payload: Any, today: date | None = None) -> ReceiptDraft:
    """
    Convert a ``{total_amount, date, description, items}`` object to a draft.

    Raises:
        ExtractionFailure: If the payload does not match the expected shape.
    """
    today = today or date.today()
    if not isinstance(payload, dict):
        raise ExtractionFailure("Extraction response is not a JSON object")
    if "total_amount" not in payload:
        raise ExtractionFailure("Extraction response is missing total_amount")

    description = payload.get("description") or ""
    if not isinstance(description, str):
        raise ExtractionFailure("description must be a string")

    raw_items = payload.get("items") or []
    if not isinstance(raw_items, list):
        raise ExtractionFailure("items must be a list")

    items: list[LineItem] = []
    for index, raw_item in enumerate(raw_items):
        if not isinstance(raw_item, dict):
            raise ExtractionFailure(f"items[{index}] is not an object")
        item_description = raw_item.get("description") or ""
        if not isinstance(item_description, str):
            raise ExtractionFailure(f"items[{index}].description must be a string")
        items.append(
            LineItem(
                description=item_description.strip(),
                amount=_to_amount(raw_item.get("amount", 0), f"items[{index}].amount"),
            )
        )

    return ReceiptDraft(
        description=description.strip(),
        total_amount=_to_amount(payload["total_amount"], "total_amount"),
        date=_to_date(payload.get("date"), today),
        items=items,
    )
