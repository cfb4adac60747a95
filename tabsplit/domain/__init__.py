"""Core domain models for the receipt pipeline.

Usage:
    from tabsplit.domain import ReceiptDraft, LineItem, FinalizedReceipt
"""

from tabsplit.domain.errors import (
    ExtractionFailure,
    IngestionStateError,
    PersistenceError,
    StorageFailure,
    TabsplitError,
    ValidationError,
)
from tabsplit.domain.receipt import (
    AuthContext,
    FinalizedReceipt,
    LineItem,
    ReceiptDraft,
    ReceiptUpload,
    StoredReceipt,
    empty_draft,
)

__all__ = [
    "AuthContext",
    "FinalizedReceipt",
    "LineItem",
    "ReceiptDraft",
    "ReceiptUpload",
    "StoredReceipt",
    "empty_draft",
    "TabsplitError",
    "ValidationError",
    "ExtractionFailure",
    "StorageFailure",
    "PersistenceError",
    "IngestionStateError",
]
