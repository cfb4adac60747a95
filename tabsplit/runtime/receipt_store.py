"""Persistence of finalized receipts.

Two implementations of one interface:

- SupabaseReceiptStore: the hosted relational service (authenticated users)
- LocalReceiptStore: a JSON file under the data directory (anonymous use)

``select_receipt_store`` picks one from the optional auth context, so callers
never branch on session state themselves.
"""

import asyncio
import json
import threading
import uuid
from datetime import date
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Protocol

import httpx

from tabsplit.domain.errors import PersistenceError
from tabsplit.domain.receipt import AuthContext, FinalizedReceipt, LineItem, StoredReceipt
from tabsplit.runtime.logging import get_logger
from tabsplit.runtime.paths import DataPaths, get_paths
from tabsplit.runtime.settings import Settings

logger = get_logger(__name__)

CENTS = Decimal("0.01")

# Shared by every LocalReceiptStore; stores are built per request
_local_write_lock = threading.Lock()


class ReceiptStore(Protocol):
    async def save_receipt(
        self, group_id: str, receipt: FinalizedReceipt, user_id: str | None = None
    ) -> StoredReceipt: ...

    async def get_receipt(self, receipt_id: str) -> StoredReceipt | None: ...

    async def list_receipts(self, group_id: str) -> list[StoredReceipt]: ...


def quantize_amount(amount: Decimal) -> Decimal:
    """Round to cents, the precision stored for every amount."""
    return amount.quantize(CENTS, rounding=ROUND_HALF_UP)


def receipt_record(group_id: str, receipt: FinalizedReceipt, user_id: str | None) -> dict[str, Any]:
    """Build the ``receipts`` row for a finalized receipt."""
    record: dict[str, Any] = {
        "group_id": group_id,
        "description": receipt.description,
        "total_amount": float(quantize_amount(receipt.total_amount)),
        "date": receipt.date.isoformat(),
        "uploaded_by": user_id,
        "paid_by": user_id,
    }
    if receipt.image_ref:
        record["image_url"] = receipt.image_ref
    return record


def item_records(receipt_id: str, items: tuple[LineItem, ...] | list[LineItem]) -> list[dict[str, Any]]:
    return [
        {"receipt_id": receipt_id, "description": item.description, "amount": float(quantize_amount(item.amount))}
        for item in items
    ]


def stored_receipt_from_record(record: dict[str, Any]) -> StoredReceipt:
    """Rebuild a StoredReceipt from a row (with optional nested ``items``)."""
    try:
        items = tuple(
            LineItem(description=item.get("description") or "", amount=quantize_amount(Decimal(str(item["amount"]))))
            for item in record.get("items") or []
        )
        return StoredReceipt(
            id=str(record["id"]),
            group_id=str(record["group_id"]),
            description=record.get("description") or "",
            total_amount=quantize_amount(Decimal(str(record["total_amount"]))),
            date=date.fromisoformat(str(record["date"])[:10]),
            uploaded_by=record.get("uploaded_by"),
            paid_by=record.get("paid_by"),
            image_url=record.get("image_url"),
            items=items,
        )
    except (KeyError, TypeError, ValueError, InvalidOperation) as e:
        raise PersistenceError(f"Malformed receipt record: {e}") from e


class LocalReceiptStore:
    """Receipts kept in ``receipts.json`` for anonymous sessions."""

    def __init__(self, paths: DataPaths | None = None) -> None:
        self.paths = paths or get_paths()

    def _load(self) -> list[dict[str, Any]]:
        path = self.paths.receipts_json
        if not path.exists():
            return []
        try:
            data = json.loads(path.read_text())
        except (OSError, json.JSONDecodeError) as e:
            raise PersistenceError(f"Failed to read {path}: {e}") from e
        if not isinstance(data, list):
            raise PersistenceError(f"Unexpected content in {path}")
        return data

    def _dump(self, records: list[dict[str, Any]]) -> None:
        path = self.paths.receipts_json
        tmp_path = path.with_suffix(".json.tmp")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(json.dumps(records, indent=2))
            tmp_path.replace(path)
        except OSError as e:
            raise PersistenceError(f"Failed to write {path}: {e}") from e

    def _save(self, group_id: str, receipt: FinalizedReceipt, user_id: str | None) -> StoredReceipt:
        receipt_id = str(uuid.uuid4())
        record = receipt_record(group_id, receipt, user_id)
        record["id"] = receipt_id
        record["items"] = [
            {"description": item["description"], "amount": item["amount"]}
            for item in item_records(receipt_id, receipt.items)
        ]
        with _local_write_lock:
            records = self._load()
            records.append(record)
            self._dump(records)
        logger.info("Saved receipt %s locally for group %s", receipt_id, group_id)
        return stored_receipt_from_record(record)

    def _get(self, receipt_id: str) -> StoredReceipt | None:
        for record in self._load():
            if record.get("id") == receipt_id:
                return stored_receipt_from_record(record)
        return None

    def _list(self, group_id: str) -> list[StoredReceipt]:
        receipts = [stored_receipt_from_record(r) for r in self._load() if r.get("group_id") == group_id]
        return sorted(receipts, key=lambda r: r.date, reverse=True)

    # Called on the server's event loop; file IO runs in a worker thread.
    async def save_receipt(
        self, group_id: str, receipt: FinalizedReceipt, user_id: str | None = None
    ) -> StoredReceipt:
        return await asyncio.to_thread(self._save, group_id, receipt, user_id)

    async def get_receipt(self, receipt_id: str) -> StoredReceipt | None:
        return await asyncio.to_thread(self._get, receipt_id)

    async def list_receipts(self, group_id: str) -> list[StoredReceipt]:
        return await asyncio.to_thread(self._list, group_id)


class SupabaseReceiptStore:
    """Receipts in the hosted ``receipts`` / ``receipt_items`` tables."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        access_token: str,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.rest_url = f"{base_url.rstrip('/')}/rest/v1"
        self.timeout = timeout
        self._transport = transport
        self._headers = {
            "apikey": api_key,
            "Authorization": f"Bearer {access_token}",
            "Content-Type": "application/json",
        }

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        headers = {**self._headers, **kwargs.pop("headers", {})}
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.request(method, f"{self.rest_url}/{path}", headers=headers, **kwargs)
        except httpx.RequestError as e:
            logger.error("Failed to reach data service: %s", e)
            raise PersistenceError(f"Failed to reach data service: {e}") from e

        if not response.is_success:
            logger.error("Data service %s %s failed: %s", method, path, response.status_code)
            raise PersistenceError(f"Data service error: {response.status_code}")

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise PersistenceError("Data service returned invalid JSON") from e

    async def save_receipt(
        self, group_id: str, receipt: FinalizedReceipt, user_id: str | None = None
    ) -> StoredReceipt:
        rows = await self._request(
            "POST",
            "receipts",
            json=receipt_record(group_id, receipt, user_id),
            headers={"Prefer": "return=representation"},
        )
        if not isinstance(rows, list) or not rows:
            raise PersistenceError("Data service did not return the inserted receipt")
        record = rows[0]
        if not isinstance(record, dict) or record.get("id") in (None, ""):
            raise PersistenceError("Data service returned a receipt without an id")
        receipt_id = str(record["id"])

        items = item_records(receipt_id, receipt.items)
        if items:
            try:
                item_rows = await self._request(
                    "POST",
                    "receipt_items",
                    json=items,
                    headers={"Prefer": "return=representation"},
                )
            except PersistenceError:
                await self._discard_receipt(receipt_id)
                raise
            record["items"] = item_rows if isinstance(item_rows, list) else items
        else:
            record["items"] = []

        logger.info("Saved receipt %s for group %s", receipt_id, group_id)
        return stored_receipt_from_record(record)

    async def _discard_receipt(self, receipt_id: str) -> None:
        """Delete a receipt row whose items could not be saved."""
        try:
            await self._request("DELETE", "receipts", params={"id": f"eq.{receipt_id}"})
        except PersistenceError as e:
            logger.error("Could not remove receipt %s after failed item insert: %s", receipt_id, e)
        else:
            logger.warning("Removed receipt %s after failed item insert", receipt_id)

    async def get_receipt(self, receipt_id: str) -> StoredReceipt | None:
        rows = await self._request(
            "GET",
            "receipts",
            params={"id": f"eq.{receipt_id}", "select": "*,items:receipt_items(description,amount)"},
        )
        if not rows:
            return None
        return stored_receipt_from_record(rows[0])

    async def list_receipts(self, group_id: str) -> list[StoredReceipt]:
        rows = await self._request(
            "GET",
            "receipts",
            params={
                "group_id": f"eq.{group_id}",
                "select": "*,items:receipt_items(description,amount)",
                "order": "date.desc",
            },
        )
        return [stored_receipt_from_record(row) for row in rows or []]


def select_receipt_store(
    settings: Settings,
    auth: AuthContext | None,
    paths: DataPaths | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> ReceiptStore:
    """Remote store for authenticated sessions, local fallback otherwise."""
    if auth is not None and settings.supabase_url and settings.supabase_anon_key:
        return SupabaseReceiptStore(
            settings.supabase_url,
            settings.supabase_anon_key,
            auth.access_token,
            transport=transport,
        )
    return LocalReceiptStore(paths)
