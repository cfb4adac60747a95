"""Shared pytest fixtures for tabsplit tests."""

from __future__ import annotations

from collections.abc import Iterator
from datetime import date
from decimal import Decimal
from pathlib import Path

import pytest
from tabsplit.domain.errors import ExtractionFailure, PersistenceError, StorageFailure
from tabsplit.domain.receipt import FinalizedReceipt, LineItem, ReceiptDraft, StoredReceipt
from tabsplit.runtime import paths as paths_module
from tabsplit.runtime import settings as settings_module
from tabsplit.runtime.paths import DataPaths


@pytest.fixture(autouse=True)
def data_paths(tmp_path: Path) -> Iterator[DataPaths]:
    """Point local fallback storage at a per-test directory."""
    previous = paths_module._paths
    paths = paths_module.set_data_dir(tmp_path / "data")
    yield paths
    paths_module._paths = previous


@pytest.fixture(autouse=True)
def clean_settings(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    for key in (
        "TABSPLIT_EXTRACTION_MODE",
        "TABSPLIT_EXTRACTION_URL",
        "TABSPLIT_EXTRACTION_TIMEOUT",
        "SUPABASE_URL",
        "SUPABASE_ANON_KEY",
        "OPENAI_API_KEY",
    ):
        monkeypatch.delenv(key, raising=False)
    settings_module.reset_settings()
    yield
    settings_module.reset_settings()


class FakeExtractor:
    """Extraction backend returning a canned draft, or failing on demand."""

    def __init__(self, draft: ReceiptDraft | None = None, fail: bool = False) -> None:
        self.draft = draft
        self.fail = fail
        self.calls: list[bytes] = []

    async def extract(self, image_bytes: bytes) -> ReceiptDraft:
        self.calls.append(image_bytes)
        if self.fail or self.draft is None:
            raise ExtractionFailure("backend unavailable")
        return self.draft


class FakeObjectStore:
    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.objects: dict[str, bytes] = {}

    async def put(self, name: str, data: bytes, content_type: str) -> str:
        if self.fail:
            raise StorageFailure("bucket unavailable")
        self.objects[name] = data
        return f"https://storage.example/receipts/{name}"


class FakeReceiptStore:
    """In-memory receipt store; ``failures`` saves fail before one succeeds."""

    def __init__(self, failures: int = 0) -> None:
        self.failures = failures
        self.saved: list[StoredReceipt] = []
        self.save_calls: list[tuple[str, FinalizedReceipt, str | None]] = []

    async def save_receipt(
        self, group_id: str, receipt: FinalizedReceipt, user_id: str | None = None
    ) -> StoredReceipt:
        self.save_calls.append((group_id, receipt, user_id))
        if self.failures > 0:
            self.failures -= 1
            raise PersistenceError("database unavailable")
        stored = StoredReceipt(
            id=f"r{len(self.saved) + 1}",
            group_id=group_id,
            description=receipt.description,
            total_amount=receipt.total_amount,
            date=receipt.date,
            uploaded_by=user_id,
            paid_by=user_id,
            image_url=receipt.image_ref,
            items=receipt.items,
        )
        self.saved.append(stored)
        return stored

    async def get_receipt(self, receipt_id: str) -> StoredReceipt | None:
        return next((r for r in self.saved if r.id == receipt_id), None)

    async def list_receipts(self, group_id: str) -> list[StoredReceipt]:
        return [r for r in self.saved if r.group_id == group_id]


@pytest.fixture
def coffee_draft() -> ReceiptDraft:
    return ReceiptDraft(
        description="Blue Bottle",
        total_amount=Decimal("4.00"),
        date=date(2024, 3, 14),
        items=[
            LineItem(description="Coffee", amount=Decimal("3.50")),
            LineItem(description="Tax", amount=Decimal("0.50")),
        ],
    )
