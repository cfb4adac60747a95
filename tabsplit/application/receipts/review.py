"""Human-in-the-loop correction of an extracted receipt draft."""

from __future__ import annotations

import math
from decimal import Decimal, InvalidOperation
from typing import Literal

from tabsplit.domain.errors import IngestionStateError, ValidationError
from tabsplit.domain.receipt import FinalizedReceipt, LineItem, ReceiptDraft
from tabsplit.receipt.date_utils import format_receipt_date, parse_receipt_date

ReviewState = Literal["editing", "submitted", "cancelled"]
ItemField = Literal["description", "amount"]


def coerce_amount(value: object) -> Decimal:
    """
    Parse a user-entered amount.

    Empty, unparseable, non-finite and negative input all become 0.
    """
    if isinstance(value, bool) or value is None:
        return Decimal("0")
    if isinstance(value, float) and not math.isfinite(value):
        return Decimal("0")
    try:
        amount = Decimal(str(value).strip())
    except InvalidOperation:
        return Decimal("0")
    if not amount.is_finite() or amount < 0:
        return Decimal("0")
    return amount


class ReviewForm:
    """
    Editable copy of a ReceiptDraft.

    The user has final authority: the persisted total is always the sum of
    the edited items, whatever the extraction suggested.
    """

    def __init__(self, draft: ReceiptDraft) -> None:
        self.description = draft.description
        self.date = format_receipt_date(draft.date)
        self.items = [LineItem(description=item.description, amount=item.amount) for item in draft.items]
        self.image_ref = draft.image_ref
        self.suggested_total = draft.total_amount
        self.state: ReviewState = "editing"

    def _require_editing(self) -> None:
        if self.state != "editing":
            raise IngestionStateError(f"Review form is {self.state}")

    def set_description(self, value: str) -> None:
        self._require_editing()
        self.description = value

    def set_date(self, value: str) -> None:
        self._require_editing()
        self.date = value

    def add_item(self) -> None:
        self._require_editing()
        self.items.append(LineItem(description="", amount=Decimal("0")))

    def remove_item(self, index: int) -> None:
        self._require_editing()
        if 0 <= index < len(self.items):
            del self.items[index]

    def update_item(self, index: int, field: ItemField, value: object) -> None:
        self._require_editing()
        if not 0 <= index < len(self.items):
            return
        if field == "amount":
            self.items[index].amount = coerce_amount(value)
        elif field == "description":
            self.items[index].description = "" if value is None else str(value)
        else:
            raise ValidationError(f"Unknown item field: {field}")

    def compute_total(self) -> Decimal:
        return sum((item.amount for item in self.items), Decimal("0"))

    def submit(self) -> FinalizedReceipt:
        """Validate required fields and package the confirmed receipt."""
        self._require_editing()

        description = self.description.strip()
        if not description:
            raise ValidationError("Description is required")
        if not self.date.strip():
            raise ValidationError("Date is required")
        receipt_date = parse_receipt_date(self.date)
        if receipt_date is None:
            raise ValidationError(f"Date must be YYYY-MM-DD, got {self.date!r}")

        finalized = FinalizedReceipt(
            description=description,
            total_amount=self.compute_total(),
            date=receipt_date,
            items=tuple(LineItem(description=item.description, amount=item.amount) for item in self.items),
            image_ref=self.image_ref,
        )
        self.state = "submitted"
        return finalized

    def reopen(self) -> None:
        """Return a submitted form to editing (e.g. after a failed save)."""
        if self.state != "submitted":
            raise IngestionStateError(f"Cannot reopen a {self.state} review form")
        self.state = "editing"

    def cancel(self) -> None:
        self._require_editing()
        self.items = []
        self.description = ""
        self.state = "cancelled"
