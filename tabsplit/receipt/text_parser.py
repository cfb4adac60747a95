"""Line-scanning parser for raw OCR receipt text.

Used only when the extraction backend returns recognized text rather than
structured fields. The heuristics are simple:

- the first ``MM/DD/YYYY`` or ``YYYY-MM-DD`` line is the receipt date
- the largest price on the receipt is taken as the total
- the first line without a price or date is the vendor description

Known weakness: if two lines share the maximum amount both are dropped from
the items, and a large item price that exceeds a misread total is reported as
the total. The review form is where users correct these cases.
"""

import re
from datetime import date
from decimal import Decimal, InvalidOperation

from tabsplit.domain.receipt import LineItem, ReceiptDraft

UNKNOWN_VENDOR = "Unknown Vendor"

US_DATE_PATTERN = re.compile(r"\b(\d{1,2})/(\d{1,2})/(\d{4})\b")
ISO_DATE_PATTERN = re.compile(r"\b(\d{4})-(\d{2})-(\d{2})\b")
PRICE_PATTERN = re.compile(r"\$?\d+\.\d{2}\b")


def _match_date(line: str) -> date | None:
    """Return the calendar date on ``line``, or None if there is no valid one."""
    us_match = US_DATE_PATTERN.search(line)
    if us_match:
        month, day, year = (int(g) for g in us_match.groups())
        try:
            return date(year, month, day)
        except ValueError:
            pass

    iso_match = ISO_DATE_PATTERN.search(line)
    if iso_match:
        year, month, day = (int(g) for g in iso_match.groups())
        try:
            return date(year, month, day)
        except ValueError:
            pass

    return None


def _looks_like_date(line: str) -> bool:
    return US_DATE_PATTERN.search(line) is not None or ISO_DATE_PATTERN.search(line) is not None


def _match_price(line: str) -> tuple[Decimal, str] | None:
    """
    Return ``(amount, description)`` for a priced line.

    The last price on the line wins; the description is the line with that
    price removed.
    """
    matches = list(PRICE_PATTERN.finditer(line))
    if not matches:
        return None

    last = matches[-1]
    try:
        amount = Decimal(last.group(0).lstrip("$"))
    except InvalidOperation:
        return None

    description = (line[: last.start()] + line[last.end() :]).strip()
    description = re.sub(r"\s+", " ", description)
    return amount, description


def drop_total_lines(items: list[LineItem], max_amount: Decimal) -> list[LineItem]:
    """Remove items whose amount is not strictly below the detected total."""
    return [item for item in items if item.amount < max_amount]


def parse_receipt_text(raw_text: str, today: date | None = None) -> ReceiptDraft:
    """
    Build a best-effort draft from OCR text.

    Never raises; anything that cannot be determined falls back to defaults
    (today's date, ``UNKNOWN_VENDOR``, zero total).
    """
    receipt_date: date | None = None
    description: str | None = None
    max_amount = Decimal("0")
    candidates: list[LineItem] = []

    for raw_line in (raw_text or "").splitlines():
        line = raw_line.strip()
        if not line:
            continue

        if receipt_date is None:
            receipt_date = _match_date(line)

        priced = _match_price(line)
        if priced is not None:
            amount, item_description = priced
            if amount > max_amount:
                max_amount = amount
            candidates.append(LineItem(description=item_description, amount=amount))
        elif description is None and "$" not in line and not _looks_like_date(line):
            description = line

    return ReceiptDraft(
        description=description or UNKNOWN_VENDOR,
        total_amount=max_amount,
        date=receipt_date or today or date.today(),
        items=drop_total_lines(candidates, max_amount),
    )
