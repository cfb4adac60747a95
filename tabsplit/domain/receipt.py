"""Data models for receipt ingestion."""

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal


@dataclass
class LineItem:
    """A single line item on a receipt."""

    description: str
    amount: Decimal = Decimal("0")


@dataclass
class ReceiptDraft:
    """Unconfirmed extraction result awaiting human review."""

    description: str
    total_amount: Decimal
    date: date
    items: list[LineItem] = field(default_factory=list)
    image_ref: str | None = None


@dataclass(frozen=True)
class FinalizedReceipt:
    """Receipt confirmed by the user, ready for persistence."""

    description: str
    # Sum of the edited item amounts at submit time, never the extracted total.
    total_amount: Decimal
    date: date
    items: tuple[LineItem, ...] = ()
    image_ref: str | None = None


@dataclass(frozen=True)
class StoredReceipt:
    """Receipt record as returned by a receipt store."""

    id: str
    group_id: str
    description: str
    total_amount: Decimal
    date: date
    uploaded_by: str | None = None
    paid_by: str | None = None
    image_url: str | None = None
    items: tuple[LineItem, ...] = ()


@dataclass(frozen=True)
class ReceiptUpload:
    """A file selected for ingestion."""

    filename: str
    content_type: str
    data: bytes


@dataclass(frozen=True)
class AuthContext:
    """Authenticated session handed in by the identity layer."""

    access_token: str
    user_id: str


def empty_draft(today: date | None = None) -> ReceiptDraft:
    """Return the manual-entry template used when extraction fails."""
    return ReceiptDraft(
        description="",
        total_amount=Decimal("0"),
        date=today or date.today(),
        items=[],
    )
