"""Receipt listing workflow orchestration."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from tabsplit.domain.receipt import StoredReceipt
    from tabsplit.runtime.receipt_store import ReceiptStore


@dataclass(frozen=True)
class GroupReceiptListing:
    """A group's receipts, newest first, for display."""

    group_id: str
    receipts: list[StoredReceipt]

    @property
    def total_spent(self) -> Decimal:
        return sum((receipt.total_amount for receipt in self.receipts), Decimal("0"))


async def run_list_group_receipts(store: ReceiptStore, group_id: str) -> GroupReceiptListing:
    """Load the receipts recorded for ``group_id``."""
    return GroupReceiptListing(group_id=group_id, receipts=await store.list_receipts(group_id))
