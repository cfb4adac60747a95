"""Receipt workflows."""

from tabsplit.application.receipts.ingest import IngestState, ReceiptIngestion
from tabsplit.application.receipts.listing import GroupReceiptListing, run_list_group_receipts
from tabsplit.application.receipts.review import ReviewForm, coerce_amount
from tabsplit.application.receipts.scan import ReceiptScanRequest, ReceiptScanResult, run_receipt_scan

__all__ = [
    "IngestState",
    "ReceiptIngestion",
    "ReviewForm",
    "coerce_amount",
    "GroupReceiptListing",
    "run_list_group_receipts",
    "ReceiptScanRequest",
    "ReceiptScanResult",
    "run_receipt_scan",
]
