"""Date helpers for receipt drafts and forms."""

import re
from datetime import date

# date.fromisoformat also takes 20240314 and week dates; forms only take this
RECEIPT_DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def format_receipt_date(value: date) -> str:
    """Render a receipt date the way forms and stores expect it (YYYY-MM-DD)."""
    return value.isoformat()


def parse_receipt_date(value: str) -> date | None:
    """Parse a YYYY-MM-DD form value; return None when it is not a real date."""
    value = value.strip()
    if not RECEIPT_DATE_PATTERN.match(value):
        return None
    try:
        return date.fromisoformat(value)
    except ValueError:
        return None
